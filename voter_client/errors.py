"""Error taxonomy for the voter client.

Every failure raised by this package is an ``AVClientError`` carrying an
``ErrorKind`` and a ``context`` dict (contest reference, mismatching hashes,
HTTP status, ...). Callers can either catch the concrete subclasses or
dispatch on ``error.kind``.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    INVALID_STATE = "invalid_state"
    CORRUPT_CVR = "corrupt_cvr"
    INVALID_CONFIG = "invalid_config"
    BULLETIN_BOARD = "bulletin_board"
    COMMITMENT_MISMATCH = "commitment_mismatch"
    DATA_INTEGRITY = "data_integrity"
    BOARD_HASH_CORRUPTION = "board_hash_corruption"
    SERVER_SIGNATURE_CORRUPTION = "server_signature_corruption"
    PROOF_VERIFICATION = "proof_verification"
    CRYPTOGRAM_DECODING = "cryptogram_decoding"


class AVClientError(Exception):
    kind: ErrorKind

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def __str__(self) -> str:
        return self.message


class InvalidStateError(AVClientError):
    """A lifecycle operation was called before its prerequisite."""

    kind = ErrorKind.INVALID_STATE


class CorruptCvrError(AVClientError):
    kind = ErrorKind.CORRUPT_CVR


class InvalidConfigError(AVClientError):
    kind = ErrorKind.INVALID_CONFIG


class BulletinBoardError(AVClientError):
    """Transport, HTTP or application level failure of a collaborator."""

    kind = ErrorKind.BULLETIN_BOARD

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any):
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


NetworkError = BulletinBoardError


class CommitmentMismatchError(AVClientError):
    kind = ErrorKind.COMMITMENT_MISMATCH


class DataIntegrityError(AVClientError):
    kind = ErrorKind.DATA_INTEGRITY


class BoardHashCorruptionError(AVClientError):
    kind = ErrorKind.BOARD_HASH_CORRUPTION


class ServerSignatureCorruptionError(AVClientError):
    kind = ErrorKind.SERVER_SIGNATURE_CORRUPTION


class ProofVerificationError(AVClientError):
    kind = ErrorKind.PROOF_VERIFICATION


class CryptogramDecodingError(AVClientError, ValueError):
    kind = ErrorKind.CRYPTOGRAM_DECODING
