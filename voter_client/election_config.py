"""Election configuration: typed contest/option records and validation.

The bulletin board serves the configuration as JSON. ``parse_election_config``
turns it into ``ElectionConfig`` and raises ``InvalidConfigError`` with every
problem found, so a broken configuration is rejected at initialization rather
than in the middle of a ballot.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .crypto import is_valid_hex_string, point_from_hex
from .encoding import BLOCK_SIZE
from .errors import InvalidConfigError


SUPPORTED_TEXT_ENCODINGS = ("utf8", "utf-8", "ascii", "latin1")


@dataclass(frozen=True)
class WriteInConfig:
    max_size: int
    encoding: str = "utf8"


@dataclass(frozen=True)
class OptionConfig:
    reference: str
    code: int
    title: str = ""
    write_in: Optional[WriteInConfig] = None


@dataclass(frozen=True)
class ContestConfig:
    reference: str
    options: List[OptionConfig]
    code_size: int = 1
    max_size: int = 1
    cryptogram_count: int = 1
    min_marks: int = 1
    max_marks: int = 1
    blank_submission: bool = False
    title: str = ""

    @property
    def allows_blank(self) -> bool:
        return self.blank_submission or self.min_marks == 0

    def option_by_reference(self, reference: str) -> Optional[OptionConfig]:
        return next((o for o in self.options if o.reference == reference), None)

    def option_by_code(self, code: int) -> Optional[OptionConfig]:
        return next((o for o in self.options if o.code == code), None)


@dataclass(frozen=True)
class ServiceConfig:
    url: str
    election_context_uuid: str
    public_key: str


@dataclass
class ElectionConfig:
    election_id: Any
    encryption_key: str
    signing_public_key: str
    contests: Dict[str, ContestConfig]
    services: Dict[str, ServiceConfig] = field(default_factory=dict)
    title: str = ""

    @property
    def voter_authorizer(self) -> ServiceConfig:
        return self.services["voter_authorizer"]

    @property
    def otp_provider(self) -> ServiceConfig:
        return self.services["otp_provider"]


## --- parsing ---------------------------------------------------------------


def _title(value: Any) -> str:
    # titles come either as plain strings or as {locale: text}
    if isinstance(value, dict):
        return next(iter(value.values()), "")
    return value if isinstance(value, str) else ""


def _is_int(value: Any, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


def parse_contest_config(data: Dict[str, Any]) -> ContestConfig:
    if not isinstance(data, dict):
        raise InvalidConfigError("Contest configuration must be an object")
    content = data.get("content", data)
    if not isinstance(content, dict):
        raise InvalidConfigError("Contest configuration must be an object")
    errors: List[str] = []

    reference = content.get("reference")
    if not isinstance(reference, str) or not reference:
        raise InvalidConfigError("Contest configuration is missing a reference")

    marking = content.get("markingType")
    if not isinstance(marking, dict):
        raise InvalidConfigError(f"Contest {reference}: markingType must be an object", contest=reference)
    encoding = marking.get("encoding")
    if not isinstance(encoding, dict):
        raise InvalidConfigError(f"Contest {reference}: encoding must be an object", contest=reference)
    code_size = encoding.get("codeSize")
    max_size = encoding.get("maxSize")
    cryptogram_count = encoding.get("cryptogramCount")
    for name, value in (("codeSize", code_size), ("maxSize", max_size), ("cryptogramCount", cryptogram_count)):
        if not _is_int(value, 1):
            errors.append(f"Contest {reference}: encoding {name} must be a positive integer")
    min_marks = marking.get("minMarks", 1)
    max_marks = marking.get("maxMarks", 1)
    if not _is_int(min_marks, 0) or not _is_int(max_marks, 1) or min_marks > max_marks:
        errors.append(f"Contest {reference}: invalid minMarks/maxMarks")
    if errors:
        raise InvalidConfigError("; ".join(errors), contest=reference)

    if code_size > max_size:
        errors.append(f"Contest {reference}: codeSize exceeds maxSize")
    if cryptogram_count * BLOCK_SIZE < max_size:
        errors.append(f"Contest {reference}: cryptogramCount cannot hold maxSize bytes")

    raw_options = content.get("options")
    if not isinstance(raw_options, list):
        raw_options = []
    options: List[OptionConfig] = []
    seen_codes = set()
    for raw in raw_options:
        if not isinstance(raw, dict):
            errors.append(f"Contest {reference}: option must be an object")
            continue
        option_reference = raw.get("reference")
        code = raw.get("code")
        if not isinstance(option_reference, str) or not option_reference:
            errors.append(f"Contest {reference}: option without reference")
            continue
        if not isinstance(code, int) or isinstance(code, bool) or code < 1 or code >= 256 ** code_size:
            errors.append(f"Contest {reference}: option {option_reference} has an invalid code")
            continue
        if code in seen_codes:
            errors.append(f"Contest {reference}: duplicate option code {code}")
            continue
        seen_codes.add(code)

        write_in = None
        raw_write_in = raw.get("writeIn")
        if raw_write_in and not isinstance(raw_write_in, dict):
            errors.append(f"Contest {reference}: option {option_reference} writeIn must be an object")
            continue
        if raw_write_in:
            write_in = WriteInConfig(
                max_size=raw_write_in.get("maxSize", 0),
                encoding=raw_write_in.get("encoding", "utf8"),
            )
            if write_in.encoding not in SUPPORTED_TEXT_ENCODINGS:
                errors.append(f"Contest {reference}: unsupported write-in encoding {write_in.encoding}")
            if not isinstance(write_in.max_size, int) or write_in.max_size < 1 \
                    or write_in.max_size + code_size > max_size:
                errors.append(f"Contest {reference}: write-in maxSize does not fit the contest encoding")
        options.append(
            OptionConfig(
                reference=option_reference,
                code=code,
                title=_title(raw.get("title")),
                write_in=write_in,
            )
        )
    if not options:
        errors.append(f"Contest {reference}: no options configured")

    if errors:
        raise InvalidConfigError("; ".join(errors), contest=reference)

    return ContestConfig(
        reference=reference,
        options=options,
        code_size=code_size,
        max_size=max_size,
        cryptogram_count=cryptogram_count,
        min_marks=min_marks,
        max_marks=max_marks,
        blank_submission=marking.get("blankSubmission") in (True, "enabled", "active_choice"),
        title=_title(content.get("title")),
    )


def _missing_service_fields(services: Dict[str, Any]) -> List[str]:
    labels = {"otp_provider": "OTP Provider", "voter_authorizer": "Voter Authorizer"}
    fields = (("url", "URL"), ("election_context_uuid", "election context uuid"), ("public_key", "public key"))
    errors = []
    for service, label in labels.items():
        entry = services.get(service)
        if not isinstance(entry, dict):
            entry = {}
        for key, name in fields:
            value = entry.get(key)
            if not isinstance(value, str) or not value:
                errors.append(f"Configuration is missing {label} {name}")
    return errors


def parse_election_config(data: Dict[str, Any]) -> ElectionConfig:
    """Build and validate an ``ElectionConfig`` from the board's JSON."""
    if not isinstance(data, dict):
        raise InvalidConfigError("Received invalid election configuration. Errors: not an object")

    errors: List[str] = []
    election = data.get("election")
    if not isinstance(election, dict):
        election = {}
    if election.get("id") is None:
        errors.append("Configuration is missing election id")

    for key, label in (("encryptionKey", "encryption key"), ("signingPublicKey", "signing public key")):
        value = data.get(key)
        if not is_valid_hex_string(value):
            errors.append(f"Configuration has an invalid {label}")
            continue
        try:
            point_from_hex(value)
        except ValueError:
            errors.append(f"Configuration has an invalid {label}")

    services = data.get("services")
    if not isinstance(services, dict):
        services = {}
    errors.extend(_missing_service_fields(services))

    raw_contests = data.get("contests")
    if raw_contests is not None and not isinstance(raw_contests, list):
        errors.append("Configuration contests must be a list")
        raw_contests = []
    contests: Dict[str, ContestConfig] = {}
    for raw in raw_contests or []:
        try:
            contest = parse_contest_config(raw)
        except InvalidConfigError as e:
            errors.append(e.message)
            continue
        contests[contest.reference] = contest
    if not contests and not errors:
        errors.append("Configuration has no contests")

    if errors:
        raise InvalidConfigError(
            "Received invalid election configuration. Errors: " + ",\n".join(errors),
            errors=errors,
        )

    return ElectionConfig(
        election_id=election["id"],
        encryption_key=data["encryptionKey"],
        signing_public_key=data["signingPublicKey"],
        contests=contests,
        services={
            name: ServiceConfig(
                url=entry["url"],
                election_context_uuid=entry["election_context_uuid"],
                public_key=entry["public_key"],
            )
            for name, entry in services.items()
            if name in ("otp_provider", "voter_authorizer")
        },
        title=_title(election.get("title")),
    )


def contest_to_json(contest: ContestConfig) -> Dict[str, Any]:
    """Inverse of ``parse_contest_config`` (used by the reference board)."""
    options = []
    for option in contest.options:
        entry: Dict[str, Any] = {"reference": option.reference, "code": option.code, "title": option.title}
        if option.write_in is not None:
            entry["writeIn"] = {"maxSize": option.write_in.max_size, "encoding": option.write_in.encoding}
        options.append(entry)
    return {
        "reference": contest.reference,
        "title": contest.title,
        "markingType": {
            "minMarks": contest.min_marks,
            "maxMarks": contest.max_marks,
            "blankSubmission": "enabled" if contest.blank_submission else "disabled",
            "encoding": {
                "codeSize": contest.code_size,
                "maxSize": contest.max_size,
                "cryptogramCount": contest.cryptogram_count,
            },
        },
        "options": options,
    }
