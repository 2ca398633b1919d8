"""Hash commitments over cryptogram randomizers.

A commitment opening is the per-contest list of randomizers plus a random
``commitment_randomness``; the commitment is the canonical hash of both.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .crypto import RandomSource, hash_object, is_valid_hex_string, scalar_to_hex
from .errors import CommitmentMismatchError


@dataclass
class CommitmentOpening:
    randomizers: Dict[str, List[str]] = field(default_factory=dict)
    commitment_randomness: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "randomizers": {contest: list(values) for contest, values in self.randomizers.items()},
            "commitmentRandomness": self.commitment_randomness,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "CommitmentOpening":
        if not isinstance(data, Mapping):
            raise CommitmentMismatchError("Commitment opening is malformed")
        randomizers = data.get("randomizers")
        commitment_randomness = data.get("commitmentRandomness", "")
        if not isinstance(randomizers, Mapping) or not isinstance(commitment_randomness, str):
            raise CommitmentMismatchError("Commitment opening is malformed")
        parsed: Dict[str, List[str]] = {}
        for contest, values in randomizers.items():
            if not isinstance(values, list) or not all(is_valid_hex_string(v) for v in values):
                raise CommitmentMismatchError("Commitment opening is malformed", contest=contest)
            parsed[contest] = list(values)
        return cls(randomizers=parsed, commitment_randomness=commitment_randomness)


def compute_commitment(opening: CommitmentOpening) -> str:
    return hash_object(
        {
            "commitment_randomness": opening.commitment_randomness,
            "randomizers": opening.randomizers,
        }
    )


def generate_commitment(randomizers: Mapping[str, List[str]], random_source: RandomSource):
    """Returns (commitment, opening) for the given randomizers."""
    opening = CommitmentOpening(
        randomizers={contest: list(values) for contest, values in randomizers.items()},
        commitment_randomness=scalar_to_hex(random_source.random_scalar()),
    )
    return compute_commitment(opening), opening


def validate_commitment(commitment: str, opening: CommitmentOpening, party: str = "board") -> None:
    computed = compute_commitment(opening)
    if computed != commitment:
        raise CommitmentMismatchError(
            f"Commitment opening of the {party} does not match its commitment",
            party=party,
            expected=commitment,
            computed=computed,
        )
