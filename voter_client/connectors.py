"""HTTP connectors for the bulletin board, voter authorizer and OTP provider.

Each connector wraps a ``requests.Session``; HTTP status failures are raised
as ``BulletinBoardError("Request failed with status code <n>")`` and
transport failures as ``BulletinBoardError`` with the transport message.
Application-level errors in a 200 response are left to the caller.
"""

from typing import Any, Dict, Optional
import logging

import requests

from .errors import BulletinBoardError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class _Connector:
    name = "service"

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/") + "/"
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._url(path)
        logger.debug("%s %s %s", self.name, method, url)
        try:
            if method == "GET":
                response = self.session.get(url, timeout=self.timeout)
            else:
                response = self.session.post(url, json=payload or {}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s %s failed: %s", self.name, method, url, e)
            raise BulletinBoardError(str(e), service=self.name, url=url) from e

        if not 200 <= response.status_code < 300:
            logger.warning("%s %s %s returned %s", self.name, method, url, response.status_code)
            raise BulletinBoardError(
                f"Request failed with status code {response.status_code}",
                status_code=response.status_code,
                service=self.name,
                url=url,
            )
        try:
            data = response.json()
        except ValueError:
            raise BulletinBoardError("Response is not valid JSON", service=self.name, url=url) from None
        if not isinstance(data, dict):
            raise BulletinBoardError("Response is not a JSON object", service=self.name, url=url)
        return data

    def _get(self, path: str) -> Dict[str, Any]:
        return self._request("GET", path)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", path, payload)


class BulletinBoard(_Connector):
    name = "bulletin_board"

    def get_election_config(self) -> Dict[str, Any]:
        return self._get("config")

    def register_voter(self, public_key: str, registration_token: str, public_key_token: str) -> Dict[str, Any]:
        return self._post(
            "register",
            {
                "publicKey": public_key,
                "registrationToken": registration_token,
                "publicKeyToken": public_key_token,
            },
        )

    def challenge_empty_cryptograms(self, voter_identifier: str, challenge: str) -> Dict[str, Any]:
        return self._post(
            "challenge_empty_cryptograms",
            {"voterIdentifier": voter_identifier, "challenge": challenge},
        )

    def get_board_hash(self) -> Dict[str, Any]:
        return self._get("get_latest_board_hash")

    def submit_votes(
        self,
        content: Dict[str, Any],
        content_hash: str,
        signature: str,
        cryptograms_with_proofs: Dict[str, Any],
    ) -> Dict[str, Any]:
        return self._post(
            "submit_votes",
            {
                "content": content,
                "contentHash": content_hash,
                "signature": signature,
                "cryptogramsWithProofs": cryptograms_with_proofs,
            },
        )

    def get_commitment_opening(
        self,
        voter_identifier: str,
        voter_commitment_opening: Dict[str, Any],
        cryptograms: Dict[str, Any],
    ) -> Dict[str, Any]:
        return self._post(
            "get_commitment_opening",
            {
                "voterIdentifier": voter_identifier,
                "voterCommitmentOpening": voter_commitment_opening,
                "cryptograms": cryptograms,
            },
        )


class VoterAuthorizer(_Connector):
    name = "voter_authorizer"

    def __init__(self, base_url: str, election_context_uuid: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.election_context_uuid = election_context_uuid

    def create_session(self, voter_id: str, email: str) -> Dict[str, Any]:
        return self._post(
            "create_session",
            {"electionContextUuid": self.election_context_uuid, "voterId": voter_id, "email": email},
        )

    def request_public_key_authorization(
        self, session_id: str, identity_confirmation_token: str, public_key: str
    ) -> Dict[str, Any]:
        return self._post(
            "request_authorization",
            {
                "electionContextUuid": self.election_context_uuid,
                "sessionId": session_id,
                "emailConfirmationToken": identity_confirmation_token,
                "publicKey": public_key,
            },
        )


class OTPProvider(_Connector):
    name = "otp_provider"

    def __init__(self, base_url: str, election_context_uuid: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.election_context_uuid = election_context_uuid

    def request_otp_authorization(self, code: str, email: str) -> Dict[str, Any]:
        return self._post(
            "authorize",
            {"electionContextUuid": self.election_context_uuid, "otpCode": code, "email": email},
        )
