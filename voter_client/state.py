"""Session states and the transition table guarding the client API."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidStateError


class SessionState(Enum):
    UNSTARTED = "unstarted"
    ACCESS_REQUESTED = "access_requested"
    ACCESS_VALIDATED = "access_validated"
    REGISTERED = "registered"
    BALLOT_CONSTRUCTED = "ballot_constructed"
    SPOILED = "spoiled"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class Transition:
    allowed: FrozenSet[SessionState]
    # None keeps the current state
    target: Optional[SessionState]
    error: str


_S = SessionState
_OPEN_BALLOT = frozenset({_S.BALLOT_CONSTRUCTED, _S.SPOILED})

TRANSITIONS: Dict[str, Transition] = {
    "request_access_code": Transition(
        frozenset({_S.UNSTARTED}),
        _S.ACCESS_REQUESTED,
        "Cannot request access code. Access code was already requested.",
    ),
    "validate_access_code": Transition(
        frozenset({_S.ACCESS_REQUESTED}),
        _S.ACCESS_VALIDATED,
        "Cannot validate access code. Access code was not requested.",
    ),
    "register_voter": Transition(
        frozenset({_S.ACCESS_VALIDATED}),
        _S.REGISTERED,
        "Cannot register voter without identity confirmation. User has not validated access code.",
    ),
    "construct_ballot_cryptograms": Transition(
        frozenset({_S.REGISTERED}) | _OPEN_BALLOT,
        _S.BALLOT_CONSTRUCTED,
        "Cannot construct ballot cryptograms. Voter registration not completed successfully",
    ),
    "generate_test_code": Transition(
        _OPEN_BALLOT,
        None,
        "Cannot generate test code. Ballot cryptograms have not been constructed",
    ),
    "spoil_ballot_cryptograms": Transition(
        _OPEN_BALLOT,
        _S.SPOILED,
        "Cannot spoil ballot cryptograms. Ballot cryptograms have not been constructed",
    ),
    "submit_ballot_cryptograms": Transition(
        _OPEN_BALLOT,
        _S.SUBMITTED,
        "Cannot submit cryptograms. Voter identity unknown or no open envelopes",
    ),
}


def require(state: SessionState, operation: str) -> Transition:
    """Return the transition for ``operation`` or raise ``InvalidStateError``."""
    transition = TRANSITIONS[operation]
    if state not in transition.allowed:
        raise InvalidStateError(transition.error, operation=operation, state=state.value)
    return transition
