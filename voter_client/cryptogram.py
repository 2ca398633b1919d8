"""ElGamal cryptograms over secp256k1 with the message in a point.

Encryption: (c1, c2) = (r*G, M + r*pk)
Homomorphic addition: component-wise point addition
Empty cryptogram: encryption of the identity, (r*G, r*pk)
"""

from typing import Tuple

from .crypto import (
    G,
    RandomSource,
    is_infinity,
    point_from_hex,
    point_to_hex,
    q,
    subtract,
)
from .errors import CryptogramDecodingError

DELIMITER = ","


class Cryptogram:
    __slots__ = ("_c1", "_c2")

    def __init__(self, c1, c2):
        self._c1 = c1
        self._c2 = c2

    @property
    def c1(self):
        return self._c1

    @property
    def c2(self):
        return self._c2

    ## --- wire format ---------------------------------------------------------

    @classmethod
    def from_wire(cls, value: str) -> "Cryptogram":
        if not isinstance(value, str):
            raise CryptogramDecodingError("Invalid cryptogram: expected a string", value=value)
        parts = value.split(DELIMITER)
        if len(parts) != 2:
            raise CryptogramDecodingError(
                "Invalid cryptogram: expected two points separated by a comma", value=value
            )
        return cls(point_from_hex(parts[0]), point_from_hex(parts[1]))

    def to_wire(self) -> str:
        return point_to_hex(self._c1) + DELIMITER + point_to_hex(self._c2)

    ## --- algebra -------------------------------------------------------------

    def homomorphic_add(self, other: "Cryptogram") -> "Cryptogram":
        return Cryptogram(self._c1 + other.c1, self._c2 + other.c2)

    __add__ = homomorphic_add

    @classmethod
    def encrypt(cls, message_point, public_key, randomizer: int) -> "Cryptogram":
        return cls(randomizer * G, message_point + randomizer * public_key)

    @classmethod
    def empty_with_randomizer(cls, public_key, random_source: RandomSource) -> Tuple["Cryptogram", int]:
        r = random_source.random_scalar()
        return cls(r * G, r * public_key), r

    @classmethod
    def empty(cls, public_key, random_source: RandomSource) -> "Cryptogram":
        cryptogram, _ = cls.empty_with_randomizer(public_key, random_source)
        return cryptogram

    def rerandomize(self, public_key, randomizer: int) -> "Cryptogram":
        return Cryptogram(self._c1 + randomizer * G, self._c2 + randomizer * public_key)

    def decrypt(self, private_key: int):
        """Message point using the private key: M = c2 - sk*c1."""
        return subtract(self._c2, private_key * self._c1)

    def decrypt_with_randomizer(self, public_key, randomizer: int):
        """Message point using the encryption randomness: M = c2 - r*pk."""
        return subtract(self._c2, (randomizer % q) * public_key)

    def opens_as_empty(self, public_key, randomizer: int) -> bool:
        r = randomizer % q
        if r == 0:
            return False
        return self._c1 == r * G and self._c2 == r * public_key

    ## --- comparisons ---------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, Cryptogram):
            return NotImplemented
        return self._c1 == other.c1 and self._c2 == other.c2

    def __hash__(self) -> int:
        return hash(self.to_wire())

    def __repr__(self) -> str:
        if is_infinity(self._c1) or is_infinity(self._c2):
            return "Cryptogram(<identity component>)"
        return f"Cryptogram({self.to_wire()!r})"
