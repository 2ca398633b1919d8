"""Vote encryption: CVR -> per-contest envelopes, tracking code and test code.

Per contest in the CVR:
1. validate the selection against the contest configuration (no crypto yet)
2. encode it into ``cryptogram_count`` message points
3. encrypt each point and add it onto the matching empty cryptogram
4. prove knowledge of the summed randomness (Schnorr-style, Fiat-Shamir)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
import hashlib
import logging

from .crypto import (
    G,
    RandomSource,
    decode_proof,
    encode_proof,
    hash_to_scalar,
    is_valid_hex_string,
    point_from_hex,
    prove_equal_logs,
    prove_knowledge,
    q,
    scalar_from_hex,
    scalar_to_hex,
    subtract,
    verify_equal_logs,
    verify_knowledge,
)
from .cryptogram import Cryptogram
from .election_config import ContestConfig
from .encoding import encode_selection
from .errors import CorruptCvrError, InvalidConfigError, ProofVerificationError

logger = logging.getLogger(__name__)

BLANK_CODE = 0


@dataclass(frozen=True)
class ContestSelection:
    """A validated selection for one contest."""

    contest: str
    option: Optional[str]
    code: int
    text: Optional[str] = None
    payload: bytes = b""


@dataclass
class ContestEnvelope:
    reference: str
    cryptograms: List[str]
    randomizers: List[str]
    proof: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "cryptograms": list(self.cryptograms),
            "randomizers": list(self.randomizers),
            "proof": self.proof,
        }


@dataclass
class EncryptionResult:
    envelopes: Dict[str, ContestEnvelope]
    tracking_code: str
    selections: Dict[str, ContestSelection] = field(default_factory=dict)


## --- CVR validation ---------------------------------------------------------


def _invalid_option(contest: str, option: Any) -> CorruptCvrError:
    return CorruptCvrError("Corrupt CVR: Contains invalid option", contest=contest, option=option)


def _selection_for(contest: ContestConfig, value: Any) -> ContestSelection:
    reference = contest.reference

    if value is None:
        if not contest.allows_blank:
            raise _invalid_option(reference, value)
        return ContestSelection(contest=reference, option=None, code=BLANK_CODE)
    # a selection marks exactly one option
    if contest.min_marks > 1:
        raise _invalid_option(reference, value)

    text = None
    if isinstance(value, Mapping):
        option_reference = value.get("reference")
        text = value.get("text")
    else:
        option_reference = value

    if not isinstance(option_reference, str):
        raise _invalid_option(reference, option_reference)
    option = contest.option_by_reference(option_reference)
    if option is None:
        raise _invalid_option(reference, option_reference)

    payload = b""
    if text is not None:
        if option.write_in is None or not isinstance(text, str):
            raise _invalid_option(reference, option_reference)
        try:
            payload = text.encode(option.write_in.encoding)
        except UnicodeEncodeError:
            raise _invalid_option(reference, option_reference) from None
        if len(payload) > option.write_in.max_size or b"\x00" in payload:
            raise _invalid_option(reference, option_reference)

    return ContestSelection(
        contest=reference,
        option=option.reference,
        code=option.code,
        text=text if option.write_in is not None else None,
        payload=payload,
    )


def validate_cvr(
    cvr: Mapping[str, Any],
    contest_configs: Mapping[str, ContestConfig],
    contest_ids: Optional[Iterable[str]] = None,
) -> Dict[str, ContestSelection]:
    """Check every contest and option of the CVR, in CVR order.

    ``contest_ids`` restricts the contests to those the voter is eligible for.
    """
    if not isinstance(cvr, Mapping) or not cvr:
        raise CorruptCvrError("Corrupt CVR: Contains invalid contest", contest=None)
    eligible = set(contest_ids) if contest_ids is not None else None

    selections: Dict[str, ContestSelection] = {}
    for contest_id, value in cvr.items():
        contest = contest_configs.get(contest_id)
        if contest is None or (eligible is not None and contest_id not in eligible):
            raise CorruptCvrError("Corrupt CVR: Contains invalid contest", contest=contest_id)
        selections[contest_id] = _selection_for(contest, value)
    return selections


## --- proofs -----------------------------------------------------------------


def _proof_message(encryption_key: str, reference: str, cryptograms: List[str]) -> bytes:
    h = hashlib.sha256()
    h.update(bytes.fromhex(encryption_key))
    h.update(reference.encode("utf-8"))
    for cryptogram in cryptograms:
        h.update(b"|")
        h.update(cryptogram.encode("ascii"))
    return h.digest()


def _randomness_commitment(cryptograms: List[str], empty_cryptograms: List[str]):
    """Sum of (c1 - empty.c1) over the slots, i.e. (sum of r) * G."""
    total = None
    for cryptogram, empty in zip(cryptograms, empty_cryptograms):
        delta = subtract(Cryptogram.from_wire(cryptogram).c1, Cryptogram.from_wire(empty).c1)
        total = delta if total is None else total + delta
    return total


def verify_envelope_proof(
    envelope: Mapping[str, Any],
    empty_cryptograms: List[str],
    encryption_key: str,
) -> bool:
    """Check a contest proof against the empty cryptograms it was built on.

    ``envelope`` is anything with ``reference``, ``cryptograms`` and ``proof``
    keys (a ``ContestEnvelope.to_json()`` or a submitted cryptogram entry).
    """
    cryptograms = list(envelope.get("cryptograms") or [])
    if not cryptograms or len(cryptograms) != len(empty_cryptograms):
        return False
    try:
        e, s = decode_proof(envelope.get("proof"))
        statement = _randomness_commitment(cryptograms, empty_cryptograms)
    except ValueError:
        return False
    message = _proof_message(encryption_key, envelope.get("reference", ""), cryptograms)
    return verify_knowledge(statement, message, e, s)


def verify_envelopes(
    envelopes: Mapping[str, ContestEnvelope],
    empty_cryptograms: Mapping[str, List[str]],
    encryption_key: str,
) -> None:
    for contest_id, envelope in envelopes.items():
        if not verify_envelope_proof(envelope.to_json(), empty_cryptograms.get(contest_id, []), encryption_key):
            raise ProofVerificationError(
                f"Proof of correct encryption failed for ballot #{contest_id}.", contest=contest_id
            )


def _empty_proof_message(challenge: str, reference: str, index: int, cryptogram: str) -> bytes:
    h = hashlib.sha256()
    for part in (challenge, reference, str(index), cryptogram):
        h.update(part.encode("utf-8"))
        h.update(b"|")
    return h.digest()


def prove_empty_cryptograms(
    empty_cryptograms: Mapping[str, List[str]],
    randomizers: Mapping[str, List[int]],
    challenge: str,
    encryption_key: str,
    random_source: RandomSource,
) -> Dict[str, List[str]]:
    """Board side: show each empty cryptogram is (r*G, r*pk) for the voter's challenge."""
    public_key = point_from_hex(encryption_key)
    proofs: Dict[str, List[str]] = {}
    for contest_id, cryptograms in empty_cryptograms.items():
        proofs[contest_id] = []
        for index, (wire, r) in enumerate(zip(cryptograms, randomizers[contest_id])):
            cryptogram = Cryptogram.from_wire(wire)
            message = _empty_proof_message(challenge, contest_id, index, wire)
            e, s = prove_equal_logs(r, cryptogram.c1, public_key, cryptogram.c2, message, random_source)
            proofs[contest_id].append(encode_proof(e, s))
    return proofs


def verify_empty_cryptograms(
    empty_cryptograms: Mapping[str, List[str]],
    proofs: Mapping[str, Any],
    challenge: str,
    encryption_key: str,
) -> None:
    """Raise ``ProofVerificationError`` unless every empty cryptogram encrypts the identity."""
    public_key = point_from_hex(encryption_key)
    for contest_id, cryptograms in empty_cryptograms.items():
        contest_proofs = proofs.get(contest_id) if isinstance(proofs, Mapping) else None
        if not isinstance(contest_proofs, list) or len(contest_proofs) != len(cryptograms):
            raise ProofVerificationError(f"Empty cryptogram proof failed for contest {contest_id}.", contest=contest_id)
        for index, (wire, proof) in enumerate(zip(cryptograms, contest_proofs)):
            try:
                cryptogram = Cryptogram.from_wire(wire)
                e, s = decode_proof(proof)
            except ValueError:
                valid = False
            else:
                message = _empty_proof_message(challenge, contest_id, index, wire)
                valid = verify_equal_logs(cryptogram.c1, public_key, cryptogram.c2, message, e, s)
            if not valid:
                raise ProofVerificationError(
                    f"Empty cryptogram proof failed for contest {contest_id}.", contest=contest_id
                )


## --- encryption -------------------------------------------------------------


def encrypt_selection(
    selection: ContestSelection,
    contest: ContestConfig,
    empty_cryptograms: List[str],
    encryption_key: str,
    random_source: RandomSource,
) -> ContestEnvelope:
    if len(empty_cryptograms) != contest.cryptogram_count:
        raise InvalidConfigError(
            f"Contest {contest.reference} expects {contest.cryptogram_count} empty cryptograms, "
            f"got {len(empty_cryptograms)}",
            contest=contest.reference,
        )
    public_key = point_from_hex(encryption_key)
    points = encode_selection(selection.code, contest.code_size, selection.payload, contest.cryptogram_count)

    cryptograms: List[str] = []
    randomizers: List[int] = []
    for point, empty in zip(points, empty_cryptograms):
        r = random_source.random_scalar()
        encrypted = Cryptogram.from_wire(empty) + Cryptogram.encrypt(point, public_key, r)
        cryptograms.append(encrypted.to_wire())
        randomizers.append(r)

    total = sum(randomizers) % q
    message = _proof_message(encryption_key, contest.reference, cryptograms)
    e, s = prove_knowledge(total, total * G, message, random_source)

    return ContestEnvelope(
        reference=contest.reference,
        cryptograms=cryptograms,
        randomizers=[scalar_to_hex(r) for r in randomizers],
        proof=encode_proof(e, s),
    )


def encrypt_votes(
    cvr: Mapping[str, Any],
    contest_configs: Mapping[str, ContestConfig],
    empty_cryptograms: Mapping[str, List[str]],
    encryption_key: str,
    random_source: RandomSource,
    contest_ids: Optional[Iterable[str]] = None,
) -> EncryptionResult:
    """Encrypt a CVR into one envelope per contest, in CVR order."""
    selections = validate_cvr(cvr, contest_configs, contest_ids)

    envelopes: Dict[str, ContestEnvelope] = {}
    for contest_id, selection in selections.items():
        if contest_id not in empty_cryptograms:
            raise InvalidConfigError(f"No empty cryptograms issued for contest {contest_id}", contest=contest_id)
        envelopes[contest_id] = encrypt_selection(
            selection,
            contest_configs[contest_id],
            list(empty_cryptograms[contest_id]),
            encryption_key,
            random_source,
        )
    tracking_code = fingerprint(envelopes)
    logger.debug("encrypted %d contest(s), tracking code %s", len(envelopes), tracking_code)
    return EncryptionResult(envelopes=envelopes, tracking_code=tracking_code, selections=selections)


## --- tracking code, test code and audit copies -----------------------------


def fingerprint(envelopes: Mapping[str, ContestEnvelope]) -> str:
    """Tracking code: SHA-256 over the cryptogram wire forms, in envelope order."""
    h = hashlib.sha256()
    for envelope in envelopes.values():
        for cryptogram in envelope.cryptograms:
            h.update(cryptogram.encode("ascii"))
            h.update(b"|")
    return h.hexdigest()


def generate_test_code(random_source: RandomSource) -> str:
    return random_source.random_bytes(32).hex()


def derive_audit_key(test_code: str, ballot_id: str, index: int) -> int:
    """k = sha256(test_code bytes | ballot_id utf-8 | index as uint32 BE) mod q."""
    if not is_valid_hex_string(test_code):
        raise ValueError("test code must be a hex string")
    k = hash_to_scalar(
        bytes.fromhex(test_code), b"|", ballot_id.encode("utf-8"), b"|", index.to_bytes(4, "big")
    )
    # a zero key would leave the cryptogram untouched
    return k or 1


def rerandomize_envelopes(
    envelopes: Mapping[str, ContestEnvelope],
    test_code: str,
    ballot_id: str,
    encryption_key: str,
) -> Dict[str, ContestEnvelope]:
    """Audit copy of the envelopes, re-encrypted under keys derived from the test code.

    Each cryptogram gets ``(k*G, k*pk)`` added and its randomizer becomes
    ``r + k``; ``index`` runs over all cryptograms in envelope order.
    """
    public_key = point_from_hex(encryption_key)
    audit: Dict[str, ContestEnvelope] = {}
    index = 0
    for contest_id, envelope in envelopes.items():
        cryptograms: List[str] = []
        randomizers: List[str] = []
        for cryptogram, randomizer in zip(envelope.cryptograms, envelope.randomizers):
            k = derive_audit_key(test_code, ballot_id, index)
            cryptograms.append(Cryptogram.from_wire(cryptogram).rerandomize(public_key, k).to_wire())
            randomizers.append(scalar_to_hex(scalar_from_hex(randomizer) + k))
            index += 1
        audit[contest_id] = ContestEnvelope(
            reference=envelope.reference, cryptograms=cryptograms, randomizers=randomizers
        )
    return audit
