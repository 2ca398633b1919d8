"""Selection encoding: option code + write-in text <-> fixed-size point blocks.

A selection is laid out as ``code`` (big-endian, ``code_size`` bytes) followed
by the write-in text bytes, zero padded to ``cryptogram_count * BLOCK_SIZE``.
Each block is embedded into a curve point whose x coordinate is
``0x00 || block || counter``; the counter byte is bumped until x lies on the
curve.
"""

from typing import List, Optional

from .crypto import is_infinity, lift_x

BLOCK_SIZE = 30
_MAX_COUNTER = 256


def block_to_point(block: bytes):
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"block must be {BLOCK_SIZE} bytes, got {len(block)}")
    prefix = b"\x00" + block
    for counter in range(_MAX_COUNTER):
        point = lift_x(int.from_bytes(prefix + bytes([counter]), "big"))
        if point is not None:
            return point
    raise ValueError("could not embed block into a curve point")


def point_to_block(point) -> Optional[bytes]:
    """Inverse of ``block_to_point``; None if the point is not an embedding."""
    if is_infinity(point):
        return None
    data = point.x().to_bytes(32, "big")
    if data[0] != 0:
        return None
    return data[1:1 + BLOCK_SIZE]


def encode_bytes(code: int, code_size: int, payload: bytes, cryptogram_count: int) -> List[bytes]:
    content = code.to_bytes(code_size, "big") + payload
    capacity = cryptogram_count * BLOCK_SIZE
    if len(content) > capacity:
        raise ValueError(f"encoded selection is {len(content)} bytes, capacity is {capacity}")
    content = content.ljust(capacity, b"\x00")
    return [content[i:i + BLOCK_SIZE] for i in range(0, capacity, BLOCK_SIZE)]


def encode_selection(code: int, code_size: int, payload: bytes, cryptogram_count: int) -> list:
    """Encode a selection into ``cryptogram_count`` message points."""
    return [block_to_point(block) for block in encode_bytes(code, code_size, payload, cryptogram_count)]
