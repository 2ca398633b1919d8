"""Sign and submit encrypted votes, then verify the board's receipt.

1. acknowledge the latest board hash
2. sign the content hash with the voter's private key
3. submit content hash, signature and cryptograms with proofs
4. verify the receipt: recompute the board hash and check the server signature
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping
import logging

from .crypto import RandomSource, hash_object, sign, verify_signature
from .encrypt_votes import ContestEnvelope
from .errors import BoardHashCorruptionError, BulletinBoardError, ServerSignatureCorruptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BallotBoxReceipt:
    previous_board_hash: str
    board_hash: str
    registered_at: str
    server_signature: str
    vote_submission_id: Any

    def to_json(self) -> Dict[str, Any]:
        return {
            "previousBoardHash": self.previous_board_hash,
            "boardHash": self.board_hash,
            "registeredAt": self.registered_at,
            "serverSignature": self.server_signature,
            "voteSubmissionId": self.vote_submission_id,
        }


def board_hash_for(content_hash: str, previous_board_hash: str, registered_at: str) -> str:
    return hash_object(
        {
            "content_hash": content_hash,
            "previous_board_hash": previous_board_hash,
            "registered_at": registered_at,
        }
    )


def receipt_hash_for(board_hash: str, voter_signature: str) -> str:
    return hash_object({"board_hash": board_hash, "signature": voter_signature})


def verify_receipt(content_hash: str, voter_signature: str, receipt: BallotBoxReceipt, signing_public_key: str) -> None:
    computed = board_hash_for(content_hash, receipt.previous_board_hash, receipt.registered_at)
    if computed != receipt.board_hash:
        raise BoardHashCorruptionError(
            "Invalid vote receipt: corrupt board hash",
            expected=computed,
            reported=receipt.board_hash,
        )

    receipt_hash = receipt_hash_for(receipt.board_hash, voter_signature)
    if not verify_signature(receipt.server_signature, receipt_hash, signing_public_key):
        raise ServerSignatureCorruptionError(
            "Invalid vote receipt: corrupt server signature",
            receipt_hash=receipt_hash,
        )


class SubmitVotes:
    def __init__(self, bulletin_board, random_source: RandomSource):
        self.bulletin_board = bulletin_board
        self.random_source = random_source

    def sign_and_submit_votes(
        self,
        voter_identifier: str,
        election_id: Any,
        envelopes: Mapping[str, ContestEnvelope],
        private_key: str,
        signing_public_key: str,
    ) -> BallotBoxReceipt:
        acknowledged = self.acknowledge()

        votes: Dict[str, Any] = {}
        cryptograms_with_proofs: Dict[str, Any] = {}
        for contest_id, envelope in envelopes.items():
            votes[contest_id] = list(envelope.cryptograms)
            cryptograms_with_proofs[contest_id] = {
                "cryptograms": list(envelope.cryptograms),
                "proof": envelope.proof,
            }

        content = {
            "acknowledged_at": acknowledged["currentTime"],
            "acknowledged_board_hash": acknowledged["currentBoardHash"],
            "election_id": election_id,
            "voter_identifier": voter_identifier,
            "votes": votes,
        }
        content_hash = hash_object(content)
        voter_signature = sign(content_hash, private_key, self.random_source)

        receipt = self.submit(content, content_hash, voter_signature, cryptograms_with_proofs)
        verify_receipt(content_hash, voter_signature, receipt, signing_public_key)
        logger.info("vote submission %s accepted, board hash %s", receipt.vote_submission_id, receipt.board_hash)
        return receipt

    def acknowledge(self) -> Dict[str, str]:
        data = self.bulletin_board.get_board_hash()
        if not data.get("currentBoardHash") or not data.get("currentTime"):
            raise BulletinBoardError("Could not get latest board hash")
        return {"currentBoardHash": data["currentBoardHash"], "currentTime": data["currentTime"]}

    def submit(
        self,
        content: Dict[str, Any],
        content_hash: str,
        voter_signature: str,
        cryptograms_with_proofs: Dict[str, Any],
    ) -> BallotBoxReceipt:
        data = self.bulletin_board.submit_votes(content, content_hash, voter_signature, cryptograms_with_proofs)

        error = data.get("error")
        if error:
            description = error.get("description") if isinstance(error, dict) else str(error)
            logger.warning("bulletin board rejected submission: %s", description)
            raise BulletinBoardError(description, code=error.get("code") if isinstance(error, dict) else None)

        missing = [k for k in ("previousBoardHash", "boardHash", "registeredAt", "serverSignature") if not data.get(k)]
        if missing:
            raise BulletinBoardError("Vote receipt is incomplete", missing=missing)

        return BallotBoxReceipt(
            previous_board_hash=data["previousBoardHash"],
            board_hash=data["boardHash"],
            registered_at=data["registeredAt"],
            server_signature=data["serverSignature"],
            vote_submission_id=data.get("voteSubmissionId"),
        )
