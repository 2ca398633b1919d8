"""Decrypt combined cryptograms back into contest selections (spoil path).

The cryptograms handed in are the homomorphic sum of a board share (the
empty cryptograms) and a voter share, so the randomness of slot ``i`` is
``r_board[i] + r_voter[i]`` and the message point is ``c2 - r*pk``.
"""

from typing import Any, Dict, List, Mapping, Optional

from .commitments import CommitmentOpening, validate_commitment
from .crypto import point_from_hex, scalar_from_hex
from .cryptogram import Cryptogram
from .election_config import ContestConfig
from .encoding import point_to_block
from .encrypt_votes import BLANK_CODE
from .errors import CommitmentMismatchError, DataIntegrityError


def _randomizers(opening: CommitmentOpening, contest: str, count: int, party: str) -> List[int]:
    values = opening.randomizers.get(contest)
    if values is None or len(values) != count:
        raise CommitmentMismatchError(
            f"Commitment opening of the {party} has no randomizers for contest {contest}",
            party=party,
            contest=contest,
        )
    try:
        return [scalar_from_hex(value) for value in values]
    except ValueError:
        raise CommitmentMismatchError(
            f"Commitment opening of the {party} is malformed", party=party, contest=contest
        ) from None


def decode_contest_content(contest: ContestConfig, content: bytes) -> Dict[str, Any]:
    code = int.from_bytes(content[:contest.code_size], "big")
    rest = content[contest.code_size:]

    if code == BLANK_CODE:
        if not contest.allows_blank or rest.strip(b"\x00"):
            raise DataIntegrityError(f"Invalid blank selection in contest {contest.reference}", contest=contest.reference)
        return {"reference": contest.reference, "optionSelections": []}

    option = contest.option_by_code(code)
    if option is None:
        raise DataIntegrityError(
            f"Decrypted code {code} is not an option of contest {contest.reference}",
            contest=contest.reference,
            code=code,
        )

    selection: Dict[str, Any] = {"reference": option.reference}
    if option.write_in is not None:
        raw = rest[:option.write_in.max_size]
        if rest[option.write_in.max_size:].strip(b"\x00"):
            raise DataIntegrityError(f"Write-in overflow in contest {contest.reference}", contest=contest.reference)
        try:
            selection["text"] = raw.rstrip(b"\x00").decode(option.write_in.encoding)
        except UnicodeDecodeError:
            raise DataIntegrityError(
                f"Write-in text of contest {contest.reference} cannot be decoded", contest=contest.reference
            ) from None
    elif rest.strip(b"\x00"):
        raise DataIntegrityError(f"Unexpected data after option code in contest {contest.reference}", contest=contest.reference)

    return {"reference": contest.reference, "optionSelections": [selection]}


def decrypt_contest_selections(
    contest_configs: Mapping[str, ContestConfig],
    encryption_key: str,
    cryptograms: Mapping[str, List[str]],
    board_opening: CommitmentOpening,
    voter_opening: CommitmentOpening,
    board_commitment: Optional[str] = None,
    voter_commitment: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Recover ``[{reference, optionSelections: [{reference, text?}]}]``.

    Commitment problems raise ``CommitmentMismatchError``; cryptograms that do
    not decode to a configured option raise ``DataIntegrityError``.
    """
    if board_commitment is not None:
        validate_commitment(board_commitment, board_opening, party="board")
    if voter_commitment is not None:
        validate_commitment(voter_commitment, voter_opening, party="voter")

    public_key = point_from_hex(encryption_key)
    selections = []
    for contest_id, wire_cryptograms in cryptograms.items():
        contest = contest_configs.get(contest_id)
        if contest is None:
            raise DataIntegrityError(f"Unknown contest {contest_id}", contest=contest_id)
        if len(wire_cryptograms) != contest.cryptogram_count:
            raise DataIntegrityError(
                f"Contest {contest_id} expects {contest.cryptogram_count} cryptograms",
                contest=contest_id,
            )
        board_randomizers = _randomizers(board_opening, contest_id, len(wire_cryptograms), "board")
        voter_randomizers = _randomizers(voter_opening, contest_id, len(wire_cryptograms), "voter")

        content = b""
        for wire, r_board, r_voter in zip(wire_cryptograms, board_randomizers, voter_randomizers):
            point = Cryptogram.from_wire(wire).decrypt_with_randomizer(public_key, r_board + r_voter)
            block = point_to_block(point)
            if block is None:
                raise DataIntegrityError(
                    f"Cryptogram of contest {contest_id} does not decrypt to an encoded block",
                    contest=contest_id,
                )
            content += block
        selections.append(decode_contest_content(contest, content))
    return selections


def validate_board_opening(
    empty_cryptograms: Mapping[str, List[str]],
    opening: CommitmentOpening,
    encryption_key: str,
) -> None:
    """The board's randomizers must open exactly its empty cryptograms."""
    public_key = point_from_hex(encryption_key)
    for contest_id, wire_cryptograms in empty_cryptograms.items():
        randomizers = _randomizers(opening, contest_id, len(wire_cryptograms), "board")
        for wire, r in zip(wire_cryptograms, randomizers):
            if not Cryptogram.from_wire(wire).opens_as_empty(public_key, r):
                raise CommitmentMismatchError(
                    f"Board randomizers do not open the empty cryptograms of contest {contest_id}",
                    party="board",
                    contest=contest_id,
                )
