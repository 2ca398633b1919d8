import pytest

from voter_client.crypto import G
from voter_client.encoding import BLOCK_SIZE, block_to_point, encode_bytes, encode_selection, point_to_block


def test_block_embedding_round_trip():
    for block in (bytes(BLOCK_SIZE), b"\x01" + bytes(BLOCK_SIZE - 1), bytes(range(BLOCK_SIZE)), b"\xff" * BLOCK_SIZE):
        assert point_to_block(block_to_point(block)) == block


def test_block_must_have_block_size():
    with pytest.raises(ValueError):
        block_to_point(b"\x01")


def test_point_outside_embedding_is_rejected():
    # the generator's x coordinate does not start with a zero byte
    assert G.x().to_bytes(32, "big")[0] != 0
    assert point_to_block(G) is None


def test_encode_bytes_pads_and_splits():
    blocks = encode_bytes(1, 1, b"hello", 2)
    assert len(blocks) == 2
    assert all(len(b) == BLOCK_SIZE for b in blocks)
    assert blocks[0].startswith(b"\x01hello")
    assert blocks[1] == bytes(BLOCK_SIZE)


def test_encode_bytes_multi_byte_code():
    blocks = encode_bytes(0x0102, 2, b"", 1)
    assert blocks[0][:3] == b"\x01\x02\x00"


def test_encode_bytes_over_capacity():
    with pytest.raises(ValueError):
        encode_bytes(1, 1, b"x" * BLOCK_SIZE, 1)


def test_encode_selection_gives_one_point_per_cryptogram():
    points = encode_selection(2, 1, b"write in", 3)
    assert len(points) == 3
    assert point_to_block(points[0])[:9] == b"\x02write in"
