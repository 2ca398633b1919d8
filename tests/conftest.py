import json
import os
import random
import sys
from types import SimpleNamespace
from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict


# Ensure repository root is on sys.path for tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from voter_client import AVClient  # noqa: E402
from voter_client.board import DEFAULT_CONTESTS, create_app  # noqa: E402
from voter_client.commitments import generate_commitment  # noqa: E402
from voter_client.crypto import G, RandomSource, point_to_hex, q, scalar_to_hex  # noqa: E402
from voter_client.cryptogram import Cryptogram  # noqa: E402
from voter_client.election_config import parse_contest_config  # noqa: E402


BOARD_HOST = "http://board.test"
BOARD_URL = BOARD_HOST + "/board"
EMAIL = "voter@foo.bar"

WRITE_IN_CONTEST = {
    "reference": "big-contest",
    "title": "Contest 1",
    "markingType": {
        "minMarks": 1,
        "maxMarks": 1,
        "blankSubmission": "disabled",
        "encoding": {"codeSize": 1, "maxSize": 41, "cryptogramCount": 2},
    },
    "options": [
        {"reference": "option-1", "code": 1, "title": "Option 1", "writeIn": {"maxSize": 40, "encoding": "utf8"}},
        {"reference": "option-2", "code": 2, "title": "Option 2"},
    ],
}


class DeterministicRandomSource(RandomSource):
    """Seeded randomness; only for tests."""

    def __init__(self, seed=0):
        self._rng = random.Random(seed)

    def random_bytes(self, nbytes):
        return bytes(self._rng.getrandbits(8) for _ in range(nbytes))

    def random_scalar(self):
        return self._rng.randrange(1, q)


class FlaskAdapter(BaseAdapter):
    """Routes requests made through a ``requests.Session`` into a Flask test client.

    ``calls`` records (method, path) of every request; ``overrides`` maps
    (method, path) to a canned (status, body) reply.
    """

    def __init__(self, app):
        super().__init__()
        self.client = app.test_client()
        self.calls = []
        self.overrides = {}

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        url = urlsplit(request.url)
        self.calls.append((request.method, url.path))
        override = self.overrides.get((request.method, url.path))
        if override is not None:
            status, body = override
            content = json.dumps(body).encode() if body is not None else b""
        else:
            rv = self.client.open(
                url.path,
                method=request.method,
                data=request.body,
                headers=dict(request.headers),
                base_url=f"{url.scheme}://{url.netloc}",
            )
            status, content = rv.status_code, rv.get_data()

        response = requests.Response()
        response.status_code = status
        response._content = content
        response.headers = CaseInsensitiveDict({"Content-Type": "application/json"})
        response.encoding = "utf-8"
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


def make_client(app, seed=2):
    adapter = FlaskAdapter(app)
    session = requests.Session()
    session.mount(BOARD_HOST + "/", adapter)
    client = AVClient(BOARD_URL, session=session, random_source=DeterministicRandomSource(seed))
    return client, adapter


def register(client, app, voter_id="voter123", email=EMAIL):
    state = app.config["BOARD_STATE"]
    client.request_access_code(voter_id, email)
    client.validate_access_code(state.otp_codes[email])
    client.register_voter()


@pytest.fixture
def random_source():
    return DeterministicRandomSource(7)


@pytest.fixture
def seeded():
    return DeterministicRandomSource


@pytest.fixture
def write_in_contest():
    return WRITE_IN_CONTEST


@pytest.fixture
def client_factory():
    return make_client


@pytest.fixture
def register_voter():
    return register


@pytest.fixture
def election(random_source):
    """Contest configs, election key and the board's empty cryptograms for one voter."""
    contests = {}
    for raw in DEFAULT_CONTESTS + [WRITE_IN_CONTEST]:
        contest = parse_contest_config(raw)
        contests[contest.reference] = contest

    private_key = random_source.random_scalar()
    public_key = private_key * G
    empty_cryptograms, randomizers = {}, {}
    for reference, contest in contests.items():
        empty_cryptograms[reference], randomizers[reference] = [], []
        for _ in range(contest.cryptogram_count):
            cryptogram, r = Cryptogram.empty_with_randomizer(public_key, random_source)
            empty_cryptograms[reference].append(cryptogram.to_wire())
            randomizers[reference].append(scalar_to_hex(r))
    board_commitment, board_opening = generate_commitment(randomizers, random_source)

    return SimpleNamespace(
        contests=contests,
        private_key=private_key,
        encryption_key=point_to_hex(public_key),
        empty_cryptograms=empty_cryptograms,
        board_commitment=board_commitment,
        board_opening=board_opening,
        randomizers=randomizers,
    )


@pytest.fixture
def board_app():
    return create_app(random_source=DeterministicRandomSource(1))


@pytest.fixture
def board_state(board_app):
    return board_app.config["BOARD_STATE"]


@pytest.fixture
def client_and_adapter(board_app):
    return make_client(board_app)


@pytest.fixture
def client(client_and_adapter):
    client, _ = client_and_adapter
    client.initialize()
    return client


@pytest.fixture
def adapter(client_and_adapter):
    return client_and_adapter[1]


@pytest.fixture
def registered_client(client, board_app):
    register(client, board_app)
    return client
