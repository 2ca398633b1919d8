import pytest

from voter_client import (
    BoardHashCorruptionError,
    BulletinBoardError,
    CorruptCvrError,
    InvalidConfigError,
    ProofVerificationError,
    SessionState,
)
from voter_client.board import create_app
from voter_client.crypto import G, is_valid_hex_string
from voter_client.cryptogram import Cryptogram

CVR = {"1": "option1", "2": "optiona"}

EXPECTED_SELECTIONS = [
    {"reference": "1", "optionSelections": [{"reference": "option1"}]},
    {"reference": "2", "optionSelections": [{"reference": "optiona"}]},
]


def test_registration(registered_client, board_state):
    assert registered_client.state is SessionState.REGISTERED
    assert registered_client.voter_identifier in board_state.voters
    assert board_state.otp_codes == {}


def test_registration_challenges_empty_cryptograms(client, adapter, board_app, register_voter):
    register_voter(client, board_app)
    assert ("POST", "/board/challenge_empty_cryptograms") in adapter.calls


def test_registration_rejects_tampered_empty_cryptogram(client, board_state, monkeypatch):
    original = Cryptogram.empty_with_randomizer

    def tampered(public_key, random_source):
        cryptogram, r = original(public_key, random_source)
        # no longer an encryption of the identity
        return Cryptogram(cryptogram.c1, cryptogram.c2 + G), r

    monkeypatch.setattr(Cryptogram, "empty_with_randomizer", staticmethod(tampered))
    client.request_access_code("voter123", "voter@foo.bar")
    client.validate_access_code(board_state.otp_codes["voter@foo.bar"])
    with pytest.raises(ProofVerificationError) as exc:
        client.register_voter()
    assert str(exc.value) == "Empty cryptogram proof failed for contest 1."
    assert client.state is SessionState.ACCESS_VALIDATED
    assert client.voter_identifier is None


def test_registration_without_proofs(client, adapter, board_state):
    adapter.overrides[("POST", "/board/challenge_empty_cryptograms")] = (200, {})
    client.request_access_code("voter123", "voter@foo.bar")
    client.validate_access_code(board_state.otp_codes["voter@foo.bar"])
    with pytest.raises(BulletinBoardError):
        client.register_voter()
    assert client.state is SessionState.ACCESS_VALIDATED


def test_construct_rejects_invalid_encryption_proof(registered_client, monkeypatch):
    monkeypatch.setattr("voter_client.encrypt_votes.prove_knowledge", lambda *args: (1, 1))
    with pytest.raises(ProofVerificationError) as exc:
        registered_client.construct_ballot_cryptograms(CVR)
    assert str(exc.value) == "Proof of correct encryption failed for ballot #1."
    assert registered_client.state is SessionState.REGISTERED
    assert registered_client.tracking_code is None


def test_construct_and_submit(registered_client, board_state):
    genesis = board_state.current_board_hash

    tracking_code = registered_client.construct_ballot_cryptograms(CVR)
    assert len(tracking_code) == 64 and is_valid_hex_string(tracking_code)
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED
    assert list(registered_client.envelopes) == ["1", "2"]

    receipt = registered_client.submit_ballot_cryptograms()
    assert registered_client.state is SessionState.SUBMITTED
    assert registered_client.receipt == receipt
    assert receipt.previous_board_hash == genesis
    assert board_state.board_hashes[-1] == receipt.board_hash
    assert len(board_state.submissions) == 1
    assert board_state.voters[registered_client.voter_identifier]["has_voted"] is True


def test_spoil_then_submit(registered_client, board_state):
    registered_client.construct_ballot_cryptograms(CVR)
    test_code = registered_client.generate_test_code()
    assert len(test_code) == 64
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED

    selections = registered_client.spoil_ballot_cryptograms()
    assert selections == EXPECTED_SELECTIONS
    assert registered_client.state is SessionState.SPOILED
    assert registered_client.test_code == test_code
    assert len(board_state.spoiled) == 1
    # the audit copy never equals the ballot that gets submitted
    spoiled = board_state.spoiled[0]["cryptograms"]
    assert spoiled["1"] != registered_client.envelopes["1"].cryptograms

    receipt = registered_client.submit_ballot_cryptograms()
    assert registered_client.state is SessionState.SUBMITTED
    assert board_state.board_hashes[-1] == receipt.board_hash


def test_spoil_without_test_code(registered_client):
    registered_client.construct_ballot_cryptograms(CVR)
    assert registered_client.spoil_ballot_cryptograms() == EXPECTED_SELECTIONS
    assert len(registered_client.test_code) == 64


def test_spoil_twice_and_reconstruct(registered_client):
    first = registered_client.construct_ballot_cryptograms(CVR)
    registered_client.spoil_ballot_cryptograms()
    registered_client.spoil_ballot_cryptograms()

    second = registered_client.construct_ballot_cryptograms({"1": "option2", "2": "optionb"})
    assert second != first
    assert registered_client.test_code is None
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED
    assert registered_client.spoil_ballot_cryptograms() == [
        {"reference": "1", "optionSelections": [{"reference": "option2"}]},
        {"reference": "2", "optionSelections": [{"reference": "optionb"}]},
    ]


def test_spoil_write_in(client_factory, register_voter, write_in_contest, seeded):
    app = create_app(contests=[write_in_contest], random_source=seeded(1))
    client, _ = client_factory(app)
    register_voter(client, app)

    client.construct_ballot_cryptograms({"big-contest": {"reference": "option-1", "text": "this is a write in text"}})
    assert client.spoil_ballot_cryptograms() == [
        {
            "reference": "big-contest",
            "optionSelections": [{"reference": "option-1", "text": "this is a write in text"}],
        }
    ]
    client.submit_ballot_cryptograms()


def test_same_seeds_give_same_ballot(client_factory, register_voter, seeded):
    ballots = []
    for _ in range(2):
        app = create_app(random_source=seeded(1))
        client, _ = client_factory(app, seed=5)
        register_voter(client, app)
        tracking_code = client.construct_ballot_cryptograms(CVR)
        ballots.append((tracking_code, {cid: e.to_json() for cid, e in client.envelopes.items()}))
    assert ballots[0] == ballots[1]


## --- CVR errors ---


@pytest.mark.parametrize(
    "cvr, message",
    [
        ({"3": "option1"}, "Corrupt CVR: Contains invalid contest"),
        ({"1": "option3"}, "Corrupt CVR: Contains invalid option"),
    ],
)
def test_corrupt_cvr(registered_client, adapter, cvr, message):
    adapter.calls.clear()
    with pytest.raises(CorruptCvrError) as exc:
        registered_client.construct_ballot_cryptograms(cvr)
    assert str(exc.value) == message
    assert adapter.calls == []
    assert registered_client.state is SessionState.REGISTERED
    assert registered_client.tracking_code is None


## --- collaborator failures ---


def test_invalid_access_code(client, adapter):
    client.request_access_code("voter123", "voter@foo.bar")
    with pytest.raises(BulletinBoardError) as exc:
        client.validate_access_code("not-the-code")
    assert str(exc.value) == "Request failed with status code 403"
    assert exc.value.status_code == 403
    assert client.state is SessionState.ACCESS_REQUESTED


def test_spoil_fails_on_http_error(registered_client, adapter):
    registered_client.construct_ballot_cryptograms(CVR)
    adapter.overrides[("POST", "/board/get_commitment_opening")] = (404, None)
    with pytest.raises(BulletinBoardError) as exc:
        registered_client.spoil_ballot_cryptograms()
    assert str(exc.value) == "Request failed with status code 404"
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED
    assert registered_client.test_code is None


def test_submit_fails_on_server_error(registered_client, adapter, board_state):
    registered_client.construct_ballot_cryptograms(CVR)
    adapter.overrides[("GET", "/board/get_latest_board_hash")] = (500, None)
    with pytest.raises(BulletinBoardError) as exc:
        registered_client.submit_ballot_cryptograms()
    assert str(exc.value) == "Request failed with status code 500"
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED
    assert board_state.submissions == []

    # the session is still usable once the board recovers
    del adapter.overrides[("GET", "/board/get_latest_board_hash")]
    registered_client.submit_ballot_cryptograms()
    assert registered_client.state is SessionState.SUBMITTED


def test_submit_without_board_hash(registered_client, adapter):
    registered_client.construct_ballot_cryptograms(CVR)
    adapter.overrides[("GET", "/board/get_latest_board_hash")] = (200, {})
    with pytest.raises(BulletinBoardError) as exc:
        registered_client.submit_ballot_cryptograms()
    assert str(exc.value) == "Could not get latest board hash"


def test_board_rejects_partial_ballot(registered_client):
    registered_client.construct_ballot_cryptograms({"1": "option1"})
    with pytest.raises(BulletinBoardError) as exc:
        registered_client.submit_ballot_cryptograms()
    assert str(exc.value) == "Ballot ids do not correspond."
    assert registered_client.state is SessionState.BALLOT_CONSTRUCTED


def test_corrupt_receipt(registered_client, adapter):
    registered_client.construct_ballot_cryptograms(CVR)
    adapter.overrides[("POST", "/board/submit_votes")] = (
        200,
        {
            "previousBoardHash": "11" * 32,
            "boardHash": "22" * 32,
            "registeredAt": "2026-10-17T09:30:00.000+00:00",
            "serverSignature": "33" * 32 + "," + "44" * 32,
            "voteSubmissionId": 1,
        },
    )
    with pytest.raises(BoardHashCorruptionError) as exc:
        registered_client.submit_ballot_cryptograms()
    assert str(exc.value) == "Invalid vote receipt: corrupt board hash"
    assert registered_client.receipt is None


def test_invalid_election_config(client_and_adapter):
    client, adapter = client_and_adapter
    adapter.overrides[("GET", "/board/config")] = (200, {"election": {"id": 1}})
    with pytest.raises(InvalidConfigError) as exc:
        client.initialize()
    assert str(exc.value).startswith("Received invalid election configuration. Errors: ")
    assert "Configuration is missing OTP Provider URL" in exc.value.context["errors"]
    assert "Configuration is missing Voter Authorizer public key" in exc.value.context["errors"]
    assert client.election_config is None
