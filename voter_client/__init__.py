"""voter_client - client-side engine for end-to-end verifiable remote voting

The package turns a cast-vote-record into homomorphic ElGamal cryptograms with
correctness proofs, audits them through the spoil path, submits them and
verifies the hash-chained receipt issued by the bulletin board.
"""

from .client import AVClient
from .cryptogram import Cryptogram
from .errors import (
    AVClientError,
    BoardHashCorruptionError,
    BulletinBoardError,
    CommitmentMismatchError,
    CorruptCvrError,
    CryptogramDecodingError,
    DataIntegrityError,
    ErrorKind,
    InvalidConfigError,
    InvalidStateError,
    NetworkError,
    ProofVerificationError,
    ServerSignatureCorruptionError,
)
from .state import SessionState

__all__ = [
    "AVClient",
    "Cryptogram",
    "SessionState",
    "AVClientError",
    "BoardHashCorruptionError",
    "BulletinBoardError",
    "CommitmentMismatchError",
    "CorruptCvrError",
    "CryptogramDecodingError",
    "DataIntegrityError",
    "ErrorKind",
    "InvalidConfigError",
    "InvalidStateError",
    "NetworkError",
    "ProofVerificationError",
    "ServerSignatureCorruptionError",
]
