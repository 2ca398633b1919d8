import pytest

from voter_client import InvalidStateError, SessionState

CVR = {"1": "option1", "2": "optiona"}


def assert_rejected(call, message, adapter):
    adapter.calls.clear()
    with pytest.raises(InvalidStateError) as exc:
        call()
    assert str(exc.value) == message
    # rejected before touching the network
    assert adapter.calls == []


def test_validate_access_code_before_request(client, adapter):
    assert_rejected(
        lambda: client.validate_access_code("123456"),
        "Cannot validate access code. Access code was not requested.",
        adapter,
    )
    assert client.state is SessionState.UNSTARTED


def test_request_access_code_twice(client, adapter):
    client.request_access_code("voter123", "voter@foo.bar")
    assert_rejected(
        lambda: client.request_access_code("voter123", "voter@foo.bar"),
        "Cannot request access code. Access code was already requested.",
        adapter,
    )
    assert client.state is SessionState.ACCESS_REQUESTED


def test_register_without_identity_confirmation(client, adapter):
    client.request_access_code("voter123", "voter@foo.bar")
    assert_rejected(
        client.register_voter,
        "Cannot register voter without identity confirmation. User has not validated access code.",
        adapter,
    )


def test_construct_before_registration(client, adapter):
    assert_rejected(
        lambda: client.construct_ballot_cryptograms(CVR),
        "Cannot construct ballot cryptograms. Voter registration not completed successfully",
        adapter,
    )


def test_generate_test_code_before_construct(registered_client, adapter):
    assert_rejected(
        registered_client.generate_test_code,
        "Cannot generate test code. Ballot cryptograms have not been constructed",
        adapter,
    )


def test_spoil_before_construct(registered_client, adapter):
    assert_rejected(
        registered_client.spoil_ballot_cryptograms,
        "Cannot spoil ballot cryptograms. Ballot cryptograms have not been constructed",
        adapter,
    )


def test_submit_before_construct(registered_client, adapter):
    assert_rejected(
        registered_client.submit_ballot_cryptograms,
        "Cannot submit cryptograms. Voter identity unknown or no open envelopes",
        adapter,
    )
    assert registered_client.state is SessionState.REGISTERED


def test_nothing_allowed_after_submission(registered_client, adapter):
    registered_client.construct_ballot_cryptograms(CVR)
    registered_client.submit_ballot_cryptograms()

    assert_rejected(
        lambda: registered_client.construct_ballot_cryptograms(CVR),
        "Cannot construct ballot cryptograms. Voter registration not completed successfully",
        adapter,
    )
    assert_rejected(
        registered_client.submit_ballot_cryptograms,
        "Cannot submit cryptograms. Voter identity unknown or no open envelopes",
        adapter,
    )
    assert registered_client.state is SessionState.SUBMITTED


def test_uninitialized_client_rejects_without_fetching_config(client_and_adapter):
    client, adapter = client_and_adapter
    assert_rejected(
        client.spoil_ballot_cryptograms,
        "Cannot spoil ballot cryptograms. Ballot cryptograms have not been constructed",
        adapter,
    )
    assert client.election_config is None
