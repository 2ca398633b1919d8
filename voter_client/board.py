"""Reference bulletin board for development and tests (Flask).

One app serves the three collaborators the client talks to:
- /board/...       bulletin board: config, registration, board hash, submission, openings
- /authorizer/...  voter authorizer: sessions and public key authorization
- /otp/...         OTP provider: one-time code confirmation

All state lives in memory on a ``BoardState`` stored in ``app.config``.
Protocol rejections are answered with HTTP 200 and
``{"error": {"code": n, "description": "..."}}``; malformed requests get 400.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import hashlib
import hmac
import logging

from flask import Flask, jsonify, request

from .commitments import CommitmentOpening, generate_commitment
from .crypto import (
    G,
    RandomSource,
    SystemRandomSource,
    hash_object,
    point_to_hex,
    q,
    scalar_from_hex,
    scalar_to_hex,
    sign,
    verify_signature,
)
from .cryptogram import Cryptogram
from .election_config import ContestConfig, contest_to_json, parse_contest_config
from .encrypt_votes import prove_empty_cryptograms, verify_envelope_proof
from .errors import CommitmentMismatchError
from .submit_votes import board_hash_for, receipt_hash_for

logger = logging.getLogger(__name__)


DEFAULT_CONTESTS: List[Dict[str, Any]] = [
    {
        "reference": "1",
        "title": "Contest 1",
        "markingType": {
            "minMarks": 1,
            "maxMarks": 1,
            "blankSubmission": "disabled",
            "encoding": {"codeSize": 1, "maxSize": 1, "cryptogramCount": 1},
        },
        "options": [
            {"reference": "option1", "code": 1, "title": "Option 1"},
            {"reference": "option2", "code": 2, "title": "Option 2"},
        ],
    },
    {
        "reference": "2",
        "title": "Contest 2",
        "markingType": {
            "minMarks": 1,
            "maxMarks": 1,
            "blankSubmission": "disabled",
            "encoding": {"codeSize": 1, "maxSize": 1, "cryptogramCount": 1},
        },
        "options": [
            {"reference": "optiona", "code": 1, "title": "Option A"},
            {"reference": "optionb", "code": 2, "title": "Option B"},
        ],
    },
]


class BoardState:
    """In-memory state of the reference services."""

    def __init__(
        self,
        contests: Optional[List[Dict[str, Any]]] = None,
        election_id: int = 1,
        random_source: Optional[RandomSource] = None,
    ):
        self.random_source = random_source or SystemRandomSource()
        self.election_id = election_id
        self.contests: Dict[str, ContestConfig] = {}
        for raw in contests or DEFAULT_CONTESTS:
            contest = parse_contest_config(raw)
            self.contests[contest.reference] = contest

        self.encryption_private_key = self.random_source.random_scalar()
        self.encryption_key = point_to_hex(self.encryption_private_key * G)
        self.signing_private_key = scalar_to_hex(self.random_source.random_scalar())
        self.signing_public_key = point_to_hex(scalar_from_hex(self.signing_private_key) * G)
        self.token_key = self.random_source.random_bytes(32)
        self.election_context_uuid = "00000000-0000-4000-8000-" + self.random_source.random_bytes(6).hex()

        self.sessions: Dict[str, Dict[str, str]] = {}
        self.otp_codes: Dict[str, str] = {}
        self.confirmation_tokens: Dict[str, str] = {}
        self.voters: Dict[str, Dict[str, Any]] = {}
        self.submissions: List[Dict[str, Any]] = []
        self.spoiled: List[Dict[str, Any]] = []
        self.board_hashes = [hash_object({"election_id": election_id})]

    @property
    def current_board_hash(self) -> str:
        return self.board_hashes[-1]

    def token(self) -> str:
        return self.random_source.random_bytes(16).hex()

    def public_key_token(self, registration_token: str, public_key: str) -> str:
        return hmac.new(self.token_key, (registration_token + public_key).encode(), hashlib.sha256).hexdigest()

    def otp_code(self) -> str:
        return "%06d" % (int.from_bytes(self.random_source.random_bytes(4), "big") % 1000000)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _error(code: int, description: str):
    return jsonify({"error": {"code": code, "description": description}})


def create_app(
    contests: Optional[List[Dict[str, Any]]] = None,
    election_id: int = 1,
    random_source: Optional[RandomSource] = None,
) -> Flask:
    app = Flask(__name__)
    state = BoardState(contests=contests, election_id=election_id, random_source=random_source)
    app.config["BOARD_STATE"] = state

    ## --- bulletin board ------------------------------------------------------

    @app.route("/board/config", methods=["GET"])
    def election_config():
        base = request.host_url
        service = {"election_context_uuid": state.election_context_uuid, "public_key": state.signing_public_key}
        return jsonify(
            {
                "election": {"id": state.election_id, "title": "Reference election"},
                "encryptionKey": state.encryption_key,
                "signingPublicKey": state.signing_public_key,
                "contests": [contest_to_json(c) for c in state.contests.values()],
                "services": {
                    "voter_authorizer": dict(service, url=base + "authorizer"),
                    "otp_provider": dict(service, url=base + "otp"),
                },
            }
        )

    @app.route("/board/register", methods=["POST"])
    def register():
        data = request.get_json(silent=True) or {}
        public_key = data.get("publicKey")
        registration_token = data.get("registrationToken")
        public_key_token = data.get("publicKeyToken")
        if not all(isinstance(v, str) for v in (public_key, registration_token, public_key_token)):
            return jsonify({"error": "missing or invalid fields"}), 400
        expected = state.public_key_token(registration_token, public_key)
        if not hmac.compare_digest(expected, public_key_token):
            return jsonify({"error": "public key is not authorized"}), 403

        encryption_point = state.encryption_private_key * G
        empty_cryptograms: Dict[str, List[str]] = {}
        randomizers: Dict[str, List[str]] = {}
        for contest in state.contests.values():
            empty_cryptograms[contest.reference] = []
            randomizers[contest.reference] = []
            for _ in range(contest.cryptogram_count):
                cryptogram, r = Cryptogram.empty_with_randomizer(encryption_point, state.random_source)
                empty_cryptograms[contest.reference].append(cryptogram.to_wire())
                randomizers[contest.reference].append(scalar_to_hex(r))
        commitment, opening = generate_commitment(randomizers, state.random_source)

        voter_identifier = state.token()
        state.voters[voter_identifier] = {
            "public_key": public_key,
            "empty_cryptograms": empty_cryptograms,
            "opening": opening,
            "has_voted": False,
        }
        logger.info("registered voter %s", voter_identifier)
        return jsonify(
            {
                "voterIdentifier": voter_identifier,
                "emptyCryptograms": empty_cryptograms,
                "contestIds": list(empty_cryptograms),
                "boardCommitment": commitment,
            }
        )

    @app.route("/board/challenge_empty_cryptograms", methods=["POST"])
    def challenge_empty_cryptograms():
        data = request.get_json(silent=True) or {}
        voter = state.voters.get(data.get("voterIdentifier"))
        challenge = data.get("challenge")
        if voter is None or not isinstance(challenge, str) or not challenge:
            return jsonify({"error": "unknown voter or missing challenge"}), 400
        randomizers = {
            contest_id: [scalar_from_hex(r) for r in values]
            for contest_id, values in voter["opening"].randomizers.items()
        }
        proofs = prove_empty_cryptograms(
            voter["empty_cryptograms"], randomizers, challenge, state.encryption_key, state.random_source
        )
        return jsonify({"proofs": proofs})

    @app.route("/board/get_latest_board_hash", methods=["GET"])
    def latest_board_hash():
        return jsonify({"currentBoardHash": state.current_board_hash, "currentTime": _now()})

    @app.route("/board/submit_votes", methods=["POST"])
    def submit_votes():
        data = request.get_json(silent=True) or {}
        content = data.get("content")
        content_hash = data.get("contentHash")
        signature = data.get("signature")
        cryptograms_with_proofs = data.get("cryptogramsWithProofs")
        if not isinstance(content, dict) or not isinstance(cryptograms_with_proofs, dict) \
                or not isinstance(content_hash, str) or not isinstance(signature, str):
            return jsonify({"error": "missing or invalid fields"}), 400

        voter = state.voters.get(content.get("voter_identifier"))
        if voter is None:
            return _error(1, "Voter is not registered.")
        if voter["has_voted"]:
            return _error(2, "Voter has already submitted a ballot.")
        if content.get("acknowledged_board_hash") not in state.board_hashes:
            return _error(3, "Acknowledged board hash is unknown.")
        votes = content.get("votes") or {}
        if set(votes) != set(voter["empty_cryptograms"]) or set(votes) != set(cryptograms_with_proofs):
            return _error(4, "Ballot ids do not correspond.")
        if not verify_signature(signature, content_hash, voter["public_key"]):
            return _error(5, "Digital signature did not validate.")
        if hash_object(content) != content_hash or content.get("election_id") != state.election_id:
            return _error(6, "Content hash does not correspond.")
        for contest_id, entry in cryptograms_with_proofs.items():
            envelope = {"reference": contest_id, "cryptograms": entry.get("cryptograms"), "proof": entry.get("proof")}
            if entry.get("cryptograms") != votes[contest_id] or not verify_envelope_proof(
                envelope, voter["empty_cryptograms"][contest_id], state.encryption_key
            ):
                return _error(7, f"Proof of correct encryption failed for ballot #{contest_id}.")

        previous_board_hash = state.current_board_hash
        registered_at = _now()
        board_hash = board_hash_for(content_hash, previous_board_hash, registered_at)
        server_signature = sign(receipt_hash_for(board_hash, signature), state.signing_private_key, state.random_source)

        voter["has_voted"] = True
        state.board_hashes.append(board_hash)
        state.submissions.append({"content": content, "cryptograms": cryptograms_with_proofs, "board_hash": board_hash})
        submission_id = len(state.submissions)
        logger.info("accepted vote submission %d, board hash %s", submission_id, board_hash)
        return jsonify(
            {
                "previousBoardHash": previous_board_hash,
                "boardHash": board_hash,
                "registeredAt": registered_at,
                "serverSignature": server_signature,
                "voteSubmissionId": submission_id,
            }
        )

    @app.route("/board/get_commitment_opening", methods=["POST"])
    def commitment_opening():
        data = request.get_json(silent=True) or {}
        voter = state.voters.get(data.get("voterIdentifier"))
        cryptograms = data.get("cryptograms")
        if voter is None or not isinstance(cryptograms, dict):
            return jsonify({"error": "unknown voter or missing cryptograms"}), 400
        try:
            voter_opening = CommitmentOpening.from_json(data.get("voterCommitmentOpening"))
            _check_voter_opening(voter, cryptograms, voter_opening)
        except (CommitmentMismatchError, ValueError) as e:
            return _error(8, str(e))

        state.spoiled.append(
            {"voter_identifier": data["voterIdentifier"], "cryptograms": cryptograms, "opening": voter_opening.to_json()}
        )
        logger.info("opened board commitment for spoiled ballot of %s", data["voterIdentifier"])
        return jsonify({"commitmentOpening": voter["opening"].to_json()})

    ## --- voter authorizer ----------------------------------------------------

    @app.route("/authorizer/create_session", methods=["POST"])
    def create_session():
        data = request.get_json(silent=True) or {}
        voter_id = data.get("voterId")
        email = data.get("email")
        if not isinstance(voter_id, str) or not isinstance(email, str):
            return jsonify({"error": "missing voterId or email"}), 400
        session_id = state.token()
        state.sessions[session_id] = {"voter_id": voter_id, "email": email}
        state.otp_codes[email] = state.otp_code()
        # stands in for sending the code by email
        logger.info("one-time code for %s: %s", email, state.otp_codes[email])
        return jsonify({"sessionId": session_id})

    @app.route("/authorizer/request_authorization", methods=["POST"])
    def request_authorization():
        data = request.get_json(silent=True) or {}
        session = state.sessions.get(data.get("sessionId"))
        token = data.get("emailConfirmationToken")
        public_key = data.get("publicKey")
        if session is None or not isinstance(public_key, str):
            return jsonify({"error": "unknown session"}), 400
        if state.confirmation_tokens.get(token) != session["email"]:
            return jsonify({"error": "identity not confirmed"}), 403
        registration_token = state.token()
        return jsonify(
            {
                "registrationToken": registration_token,
                "publicKeyToken": state.public_key_token(registration_token, public_key),
            }
        )

    ## --- OTP provider --------------------------------------------------------

    @app.route("/otp/authorize", methods=["POST"])
    def authorize_otp():
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        code = data.get("otpCode")
        expected = state.otp_codes.get(email)
        if expected is None or not isinstance(code, str) or not hmac.compare_digest(expected, code):
            return jsonify({"error": "invalid one-time code"}), 403
        del state.otp_codes[email]
        token = state.token()
        state.confirmation_tokens[token] = email
        return jsonify({"emailConfirmationToken": token})

    return app


def _check_voter_opening(voter: Dict[str, Any], cryptograms: Dict[str, Any], opening: CommitmentOpening) -> None:
    """Each audit cryptogram must have c1 = (r_board + r_voter) * G."""
    board_randomizers = voter["opening"].randomizers
    for contest_id, wires in cryptograms.items():
        board = board_randomizers.get(contest_id)
        own = opening.randomizers.get(contest_id)
        if board is None or own is None or not isinstance(wires, list) or not (len(wires) == len(board) == len(own)):
            raise CommitmentMismatchError("Voter commitment opening does not cover the cryptograms", contest=contest_id)
        for wire, r_board, r_voter in zip(wires, board, own):
            r = (scalar_from_hex(r_board) + scalar_from_hex(r_voter)) % q
            if Cryptogram.from_wire(wire).c1 != r * G:
                raise CommitmentMismatchError(
                    "Voter commitment opening does not match the cryptograms", contest=contest_id
                )


if __name__ == "__main__":
    from .config import Settings, configure_logging

    configure_logging(Settings.from_env())
    create_app().run(debug=True)
