"""Voter session client.

Expected call sequence:
- initialize (optional, done lazily)
- request_access_code -> validate_access_code -> register_voter
- construct_ballot_cryptograms
- generate_test_code + spoil_ballot_cryptograms (optional, repeatable)
- submit_ballot_cryptograms

Each lifecycle call is checked against the transition table in ``state`` before
any network access, and the session is only updated once the call succeeded.
"""

from functools import wraps
from typing import Any, Dict, List, Mapping, Optional
import logging
import threading

import requests

from .commitments import CommitmentOpening, generate_commitment
from .connectors import DEFAULT_TIMEOUT, BulletinBoard, OTPProvider, VoterAuthorizer
from .crypto import KeyPair, RandomSource, SystemRandomSource, generate_key_pair
from .cryptogram import Cryptogram
from .decrypt_contest_selections import decrypt_contest_selections, validate_board_opening
from .election_config import ElectionConfig, parse_election_config
from .encrypt_votes import (
    ContestEnvelope,
    ContestSelection,
    encrypt_votes,
    generate_test_code,
    rerandomize_envelopes,
    verify_empty_cryptograms,
    verify_envelopes,
)
from .errors import BulletinBoardError, DataIntegrityError
from .state import SessionState, require
from .submit_votes import BallotBoxReceipt, SubmitVotes

logger = logging.getLogger(__name__)


def lifecycle(operation: str):
    """Serialise the call, check the session state and advance it on success."""

    def decorator(method):
        @wraps(method)
        def wrapper(self, *args, **kwargs):
            with self._lock:
                transition = require(self._state, operation)
                result = method(self, *args, **kwargs)
                if transition.target is not None:
                    logger.debug("session %s -> %s", self._state.value, transition.target.value)
                    self._state = transition.target
                return result

        return wrapper

    return decorator


def _required(data: Mapping[str, Any], key: str, service: str) -> Any:
    value = data.get(key)
    if value in (None, ""):
        raise BulletinBoardError(f"Response from {service} is missing {key}", service=service)
    return value


class AVClient:
    def __init__(
        self,
        bulletin_board_url: str,
        session: Optional[requests.Session] = None,
        random_source: Optional[RandomSource] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._http = session or requests.Session()
        self._timeout = timeout
        self.bulletin_board = BulletinBoard(bulletin_board_url, session=self._http, timeout=timeout)
        self.random_source = random_source or SystemRandomSource()
        self._lock = threading.Lock()
        self._state = SessionState.UNSTARTED

        self._election_config: Optional[ElectionConfig] = None
        self._voter_authorizer: Optional[VoterAuthorizer] = None
        self._otp_provider: Optional[OTPProvider] = None

        self._voter_id: Optional[str] = None
        self._email: Optional[str] = None
        self._authorization_session_id: Optional[str] = None
        self._identity_confirmation_token: Optional[str] = None
        self._key_pair: Optional[KeyPair] = None
        self._voter_identifier: Optional[str] = None
        self._empty_cryptograms: Dict[str, List[str]] = {}
        self._board_commitment: Optional[str] = None
        self._contest_ids: List[str] = []
        self._envelopes: Dict[str, ContestEnvelope] = {}
        self._selections: Dict[str, ContestSelection] = {}
        self._tracking_code: Optional[str] = None
        self._test_code: Optional[str] = None
        self._receipt: Optional[BallotBoxReceipt] = None

    ## --- read-only views -----------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def election_config(self) -> Optional[ElectionConfig]:
        return self._election_config

    @property
    def voter_identifier(self) -> Optional[str]:
        return self._voter_identifier

    @property
    def tracking_code(self) -> Optional[str]:
        return self._tracking_code

    @property
    def test_code(self) -> Optional[str]:
        return self._test_code

    @property
    def envelopes(self) -> Dict[str, ContestEnvelope]:
        return dict(self._envelopes)

    @property
    def receipt(self) -> Optional[BallotBoxReceipt]:
        return self._receipt

    ## --- configuration -------------------------------------------------------

    def initialize(self) -> ElectionConfig:
        """Fetch and validate the election configuration."""
        with self._lock:
            return self._ensure_config()

    def _ensure_config(self) -> ElectionConfig:
        if self._election_config is None:
            config = parse_election_config(self.bulletin_board.get_election_config())
            authorizer = config.voter_authorizer
            otp = config.otp_provider
            self._voter_authorizer = VoterAuthorizer(
                authorizer.url, authorizer.election_context_uuid, session=self._http, timeout=self._timeout
            )
            self._otp_provider = OTPProvider(
                otp.url, otp.election_context_uuid, session=self._http, timeout=self._timeout
            )
            self._election_config = config
            logger.info("loaded configuration of election %s (%d contests)", config.election_id, len(config.contests))
        return self._election_config

    ## --- access and registration --------------------------------------------

    @lifecycle("request_access_code")
    def request_access_code(self, voter_id: str, email: str) -> None:
        """Ask the voter authorizer to send a one-time code to ``email``."""
        self._ensure_config()
        data = self._voter_authorizer.create_session(voter_id, email)
        session_id = _required(data, "sessionId", "voter_authorizer")

        self._voter_id = voter_id
        self._email = email
        self._authorization_session_id = session_id

    @lifecycle("validate_access_code")
    def validate_access_code(self, code: str) -> None:
        data = self._otp_provider.request_otp_authorization(code, self._email)
        self._identity_confirmation_token = _required(data, "emailConfirmationToken", "otp_provider")

    @lifecycle("register_voter")
    def register_voter(self) -> None:
        """Generate a key pair, get it authorized and register on the board."""
        config = self._ensure_config()
        key_pair = generate_key_pair(self.random_source)

        authorization = self._voter_authorizer.request_public_key_authorization(
            self._authorization_session_id, self._identity_confirmation_token, key_pair.public_key
        )
        registration_token = _required(authorization, "registrationToken", "voter_authorizer")
        public_key_token = _required(authorization, "publicKeyToken", "voter_authorizer")

        data = self.bulletin_board.register_voter(key_pair.public_key, registration_token, public_key_token)
        voter_identifier = _required(data, "voterIdentifier", "bulletin_board")
        contest_ids = list(_required(data, "contestIds", "bulletin_board"))
        empty_cryptograms = _required(data, "emptyCryptograms", "bulletin_board")
        board_commitment = _required(data, "boardCommitment", "bulletin_board")
        self._check_empty_cryptograms(config, contest_ids, empty_cryptograms)
        empty_cryptograms = {cid: list(empty_cryptograms[cid]) for cid in contest_ids}

        challenge = self.random_source.random_bytes(32).hex()
        response = self.bulletin_board.challenge_empty_cryptograms(voter_identifier, challenge)
        proofs = _required(response, "proofs", "bulletin_board")
        verify_empty_cryptograms(empty_cryptograms, proofs, challenge, config.encryption_key)

        self._key_pair = key_pair
        self._voter_identifier = voter_identifier
        self._contest_ids = contest_ids
        self._empty_cryptograms = empty_cryptograms
        self._board_commitment = board_commitment
        logger.info("registered voter %s for contests %s", voter_identifier, ", ".join(contest_ids))

    @staticmethod
    def _check_empty_cryptograms(config: ElectionConfig, contest_ids: List[str], empty_cryptograms: Any) -> None:
        if not isinstance(empty_cryptograms, Mapping):
            raise BulletinBoardError("Registration returned malformed empty cryptograms")
        for contest_id in contest_ids:
            contest = config.contests.get(contest_id)
            cryptograms = empty_cryptograms.get(contest_id)
            if contest is None:
                raise BulletinBoardError(f"Registration returned unknown contest {contest_id}", contest=contest_id)
            if not isinstance(cryptograms, list) or len(cryptograms) != contest.cryptogram_count:
                raise BulletinBoardError(
                    f"Registration returned wrong number of empty cryptograms for contest {contest_id}",
                    contest=contest_id,
                )
            for wire in cryptograms:
                Cryptogram.from_wire(wire)

    ## --- ballot ----------------------------------------------------------------

    @lifecycle("construct_ballot_cryptograms")
    def construct_ballot_cryptograms(self, cvr: Mapping[str, Any]) -> str:
        """Encrypt the CVR and return the ballot tracking code."""
        config = self._election_config
        result = encrypt_votes(
            cvr,
            config.contests,
            self._empty_cryptograms,
            config.encryption_key,
            self.random_source,
            contest_ids=self._contest_ids,
        )
        verify_envelopes(result.envelopes, self._empty_cryptograms, config.encryption_key)
        self._envelopes = result.envelopes
        self._selections = result.selections
        self._tracking_code = result.tracking_code
        self._test_code = None
        return result.tracking_code

    @lifecycle("generate_test_code")
    def generate_test_code(self) -> str:
        self._test_code = generate_test_code(self.random_source)
        return self._test_code

    @lifecycle("spoil_ballot_cryptograms")
    def spoil_ballot_cryptograms(self) -> List[Dict[str, Any]]:
        """Open an audit copy of the ballot with the board and decrypt it.

        Returns the decrypted contest selections after checking they match
        the CVR the ballot was constructed from.
        """
        config = self._election_config
        test_code = self._test_code or generate_test_code(self.random_source)
        audit = rerandomize_envelopes(self._envelopes, test_code, self._voter_identifier, config.encryption_key)
        voter_commitment, voter_opening = generate_commitment(
            {cid: envelope.randomizers for cid, envelope in audit.items()}, self.random_source
        )
        cryptograms = {cid: envelope.cryptograms for cid, envelope in audit.items()}

        data = self.bulletin_board.get_commitment_opening(
            self._voter_identifier, voter_opening.to_json(), cryptograms
        )
        board_opening = CommitmentOpening.from_json(_required(data, "commitmentOpening", "bulletin_board"))

        validate_board_opening(
            {cid: self._empty_cryptograms[cid] for cid in audit}, board_opening, config.encryption_key
        )
        selections = decrypt_contest_selections(
            config.contests,
            config.encryption_key,
            cryptograms,
            board_opening,
            voter_opening,
            board_commitment=self._board_commitment,
            voter_commitment=voter_commitment,
        )
        self._check_against_cvr(selections)

        self._test_code = test_code
        logger.info("spoiled ballot of voter %s verified", self._voter_identifier)
        return selections

    def _check_against_cvr(self, selections: List[Dict[str, Any]]) -> None:
        for decrypted in selections:
            expected = self._selections[decrypted["reference"]]
            options = decrypted["optionSelections"]
            if expected.option is None:
                matches = options == []
            else:
                matches = len(options) == 1 and options[0]["reference"] == expected.option
                if matches and "text" in options[0]:
                    matches = options[0]["text"] == (expected.text or "")
            if not matches:
                raise DataIntegrityError(
                    f"Spoiled ballot does not match the CVR for contest {decrypted['reference']}",
                    contest=decrypted["reference"],
                )

    @lifecycle("submit_ballot_cryptograms")
    def submit_ballot_cryptograms(self) -> BallotBoxReceipt:
        """Sign and submit the envelopes; returns the verified receipt."""
        config = self._election_config
        receipt = SubmitVotes(self.bulletin_board, self.random_source).sign_and_submit_votes(
            voter_identifier=self._voter_identifier,
            election_id=config.election_id,
            envelopes=self._envelopes,
            private_key=self._key_pair.private_key,
            signing_public_key=config.signing_public_key,
        )
        self._receipt = receipt
        return receipt
