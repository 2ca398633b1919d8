"""Group primitives used by the voter client.

This module contains the small set of building blocks the rest of the package
is written against:
- curve: secp256k1 from ``ecdsa``, hex codecs for points and scalars
- hashing: canonical JSON hashing and hash-to-scalar (SHA-256)
- randomness: an injectable ``RandomSource`` (``secrets`` backed by default)
- keys and proofs: key pairs, Schnorr signatures and discrete-log proofs

Points are ``ecdsa`` ``PointJacobi`` objects; scalars are plain ints.
"""

from dataclasses import dataclass
from typing import Any, Tuple
import hashlib
import json
import re
import secrets

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, PointJacobi
from ecdsa.errors import MalformedPointError

from .errors import CryptogramDecodingError


CURVE = SECP256k1
G = CURVE.generator
q = CURVE.order
p = CURVE.curve.p()

# compressed point: 1 flag byte + 32 bytes of x
POINT_HEX_LEN = 66
SCALAR_HEX_LEN = 64

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")


def is_valid_hex_string(value: Any) -> bool:
    """Even length and only ``[0-9A-Fa-f]`` characters."""
    if not isinstance(value, str) or len(value) % 2 != 0:
        return False
    return _HEX_RE.fullmatch(value) is not None


## --- points and scalars ---------------------------------------------------


def is_infinity(point) -> bool:
    return point == INFINITY


def point_to_bytes(point) -> bytes:
    if is_infinity(point):
        raise ValueError("point at infinity has no compressed encoding")
    return point.to_bytes("compressed")


def point_to_hex(point) -> str:
    return point_to_bytes(point).hex()


def point_from_hex(value: str) -> PointJacobi:
    """Parse a compressed secp256k1 point, rejecting anything else."""
    if not is_valid_hex_string(value):
        raise CryptogramDecodingError("Invalid point encoding: not a hex string", value=value)
    data = bytes.fromhex(value)
    if len(data) != POINT_HEX_LEN // 2 or data[:1] not in (b"\x02", b"\x03"):
        raise CryptogramDecodingError("Invalid point encoding: not a compressed point", value=value)
    if int.from_bytes(data[1:], "big") >= p:
        raise CryptogramDecodingError("Invalid point encoding: x out of range", value=value)
    try:
        return PointJacobi.from_bytes(
            CURVE.curve, data, valid_encodings=("compressed",), order=q
        )
    except MalformedPointError as e:
        raise CryptogramDecodingError(f"Invalid point encoding: {e}", value=value) from None


def lift_x(x: int, odd: bool = False):
    """Return the curve point with the given x coordinate, or None."""
    if not 0 <= x < p:
        return None
    flag = b"\x03" if odd else b"\x02"
    try:
        return PointJacobi.from_bytes(
            CURVE.curve, flag + x.to_bytes(32, "big"), valid_encodings=("compressed",), order=q
        )
    except MalformedPointError:
        return None


def negate(point):
    return (q - 1) * point


def subtract(a, b):
    return a + negate(b)


def scalar_to_hex(x: int) -> str:
    return format(x % q, "064x")


def scalar_from_hex(value: str) -> int:
    if not is_valid_hex_string(value) or len(value) > SCALAR_HEX_LEN:
        raise ValueError(f"Invalid scalar encoding: {value!r}")
    return int(value, 16) % q


## --- hashing ---------------------------------------------------------------


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_string(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_object(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON encoding of ``obj``."""
    return hash_string(canonical_json(obj))


def hash_to_scalar(*parts: bytes) -> int:
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return int.from_bytes(h.digest(), "big") % q


## --- randomness ------------------------------------------------------------


class RandomSource:
    """Source of randomness for keys, randomizers, nonces and test codes.

    Engines receive an instance instead of reaching for a global PRNG, so
    tests can substitute a seeded source.
    """

    def random_bytes(self, nbytes: int) -> bytes:
        raise NotImplementedError

    def random_scalar(self) -> int:
        """Uniform scalar in [1, q-1]."""
        raise NotImplementedError


class SystemRandomSource(RandomSource):
    def random_bytes(self, nbytes: int) -> bytes:
        return secrets.token_bytes(nbytes)

    def random_scalar(self) -> int:
        return secrets.randbelow(q - 1) + 1


## --- keys, signatures and proofs -------------------------------------------


@dataclass(frozen=True)
class KeyPair:
    private_key: str
    public_key: str

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key!r})"


def generate_key_pair(random_source: RandomSource) -> KeyPair:
    sk = random_source.random_scalar()
    return KeyPair(private_key=scalar_to_hex(sk), public_key=point_to_hex(sk * G))


def _challenge(commitment, public_point, message: bytes) -> int:
    return hash_to_scalar(point_to_bytes(commitment), point_to_bytes(public_point), message)


def prove_knowledge(secret: int, public_point, message: bytes, random_source: RandomSource) -> Tuple[int, int]:
    """Schnorr proof of knowledge of ``secret`` with ``public_point = secret * G``.

    The Fiat-Shamir challenge binds ``message``. Returns (challenge, response).
    """
    k = random_source.random_scalar()
    e = _challenge(k * G, public_point, message)
    s = (k - e * secret) % q
    return e, s


def verify_knowledge(public_point, message: bytes, e: int, s: int) -> bool:
    if is_infinity(public_point) or not (0 <= e < q and 0 <= s < q):
        return False
    commitment = s * G + e * public_point
    if is_infinity(commitment):
        return False
    return _challenge(commitment, public_point, message) == e


def _equal_logs_challenge(a, b, point, other_point, message: bytes) -> int:
    return hash_to_scalar(
        point_to_bytes(a), point_to_bytes(b), point_to_bytes(point), point_to_bytes(other_point), message
    )


def prove_equal_logs(secret: int, point, other_base, other_point, message: bytes,
                     random_source: RandomSource) -> Tuple[int, int]:
    """Chaum-Pedersen proof that ``point = secret * G`` and ``other_point = secret * other_base``."""
    k = random_source.random_scalar()
    e = _equal_logs_challenge(k * G, k * other_base, point, other_point, message)
    s = (k - e * secret) % q
    return e, s


def verify_equal_logs(point, other_base, other_point, message: bytes, e: int, s: int) -> bool:
    if is_infinity(point) or is_infinity(other_base) or is_infinity(other_point):
        return False
    if not (0 <= e < q and 0 <= s < q):
        return False
    a = s * G + e * point
    b = s * other_base + e * other_point
    if is_infinity(a) or is_infinity(b):
        return False
    return _equal_logs_challenge(a, b, point, other_point, message) == e


def encode_proof(e: int, s: int) -> str:
    return f"{scalar_to_hex(e)},{scalar_to_hex(s)}"


def decode_proof(value: str) -> Tuple[int, int]:
    if not isinstance(value, str):
        raise ValueError("proof must be a string")
    parts = value.split(",")
    if len(parts) != 2 or not all(len(part) == SCALAR_HEX_LEN for part in parts):
        raise ValueError(f"Invalid proof encoding: {value!r}")
    return scalar_from_hex(parts[0]), scalar_from_hex(parts[1])


def sign(message_hash: str, private_key: str, random_source: RandomSource) -> str:
    """Schnorr signature over a hex hash value, wire form ``"e,s"``."""
    sk = scalar_from_hex(private_key)
    e, s = prove_knowledge(sk, sk * G, bytes.fromhex(message_hash), random_source)
    return encode_proof(e, s)


def verify_signature(signature: str, message_hash: str, public_key: str) -> bool:
    if not is_valid_hex_string(message_hash):
        return False
    try:
        e, s = decode_proof(signature)
        public_point = point_from_hex(public_key)
    except ValueError:
        return False
    return verify_knowledge(public_point, bytes.fromhex(message_hash), e, s)
