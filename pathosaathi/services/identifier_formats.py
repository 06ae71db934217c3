"""
Identifier Formats

Pure functions for the human-readable identifiers every entity carries:

    PS_USR_241129_0001
    |  |   |      |
    |  |   |      +-- counter, zero padded to counter_length
    |  |   +--------- {DATE_FORMAT}
    |  +------------- format literal
    +---------------- prefix + separator

No database access here; the generator and the configuration store build
on these.
"""
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
import re

DATE_PLACEHOLDER = "{DATE_FORMAT}"
COUNTER_PLACEHOLDERS = ("{TODAYS_ENTRY}", "{COUNTER}")

PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")
SEPARATOR_PATTERN = re.compile(r"^[_\-.]?$")
MAX_FORMAT_LENGTH = 50
ALL_TIME = "all-time"


class DateFormat(str, Enum):
    YYYYMMDD = "YYYYMMDD"
    YYMMDD = "YYMMDD"
    DDMMYYYY = "DDMMYYYY"
    MMDDYYYY = "MMDDYYYY"
    YY = "YY"
    YYYY = "YYYY"


class ResetFrequency(str, Enum):
    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    NEVER = "NEVER"


DATE_STRFTIME = {
    DateFormat.YYYYMMDD.value: "%Y%m%d",
    DateFormat.YYMMDD.value: "%y%m%d",
    DateFormat.DDMMYYYY.value: "%d%m%Y",
    DateFormat.MMDDYYYY.value: "%m%d%Y",
    DateFormat.YY.value: "%y",
    DateFormat.YYYY.value: "%Y",
}
FALLBACK_DATE_FORMAT = DateFormat.YYMMDD.value


@dataclass(frozen=True)
class IdentifierConfig:
    prefix: str
    format: str
    separator: str = "_"
    date_format: str = DateFormat.YYMMDD.value
    counter_length: int = 4
    reset_frequency: str = ResetFrequency.DAILY.value

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["IdentifierConfig"] = None) -> "IdentifierConfig":
        """Build a config from stored JSON, filling gaps from `base`."""
        base = base or DEFAULT_CONFIG
        values = {key: data[key] for key in asdict(base) if data.get(key) is not None}
        return replace(base, **values)

    def merged(self, changes: Mapping[str, Any]) -> "IdentifierConfig":
        return IdentifierConfig.from_dict(changes, base=self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _date_body(code: str) -> str:
    return f"{code}_{DATE_PLACEHOLDER}_{{TODAYS_ENTRY}}"


# Entity -> (format, reset frequency). Separator "_", YYMMDD, length 4.
DEFAULT_MODEL_FORMATS = {
    "User": (_date_body("USR"), ResetFrequency.DAILY),
    "Partner": (_date_body("PTR"), ResetFrequency.DAILY),
    "Lab": (_date_body("LAB"), ResetFrequency.DAILY),
    "Patient": (_date_body("PAT"), ResetFrequency.DAILY),
    "Test": (_date_body("TST"), ResetFrequency.DAILY),
    "TestOrder": (_date_body("ORD"), ResetFrequency.DAILY),
    "LabSubscription": (_date_body("SUB"), ResetFrequency.DAILY),
    "Plan": (_date_body("PLN"), ResetFrequency.DAILY),
    "PlanType": (_date_body("PLT"), ResetFrequency.DAILY),
    "Branding": (_date_body("BRD"), ResetFrequency.DAILY),
    "Theme": ("THM_{COUNTER}", ResetFrequency.NEVER),
    "Font": ("FNT_{COUNTER}", ResetFrequency.NEVER),
    "PartnerIdentifierConfiguration": (_date_body("IDC"), ResetFrequency.DAILY),
}

# Configuration records are platform-owned and always use the platform prefix
FIXED_PREFIX_MODELS = {"PartnerIdentifierConfiguration": "PS"}

DEFAULT_CONFIG = IdentifierConfig(prefix="PS", format=DEFAULT_MODEL_FORMATS["User"][0])


def default_identifier_config(model_name: str, prefix: str = "PS") -> IdentifierConfig:
    """Built-in config for a model; unknown models get the User format."""
    fmt, reset = DEFAULT_MODEL_FORMATS.get(model_name, DEFAULT_MODEL_FORMATS["User"])
    return IdentifierConfig(
        prefix=FIXED_PREFIX_MODELS.get(model_name, prefix),
        format=fmt,
        reset_frequency=reset.value,
    )


def derive_tenant_identifier_prefix(tenant_prefix: str) -> str:
    """
    Identifier prefix for a tenant without a configuration record.

    "APOLLO_1A2B" -> "APOLLO"; "PS_APOLLO_1A2B" and "PS_ROOT" -> "PS".
    """
    parts = (tenant_prefix or "").split("_")
    if len(parts) >= 2 and parts[0] and parts[0] != "PS":
        return parts[0]
    return "PS"


def format_date(date_format: str, moment: datetime) -> str:
    pattern = DATE_STRFTIME.get(date_format, DATE_STRFTIME[FALLBACK_DATE_FORMAT])
    return moment.strftime(pattern)


def get_reset_key(reset_frequency: str, moment: datetime) -> str:
    """Counter bucket for a moment. Unknown frequencies reset daily."""
    if reset_frequency == ResetFrequency.NEVER.value:
        return ALL_TIME
    if reset_frequency == ResetFrequency.YEARLY.value:
        return moment.strftime("%Y")
    if reset_frequency == ResetFrequency.MONTHLY.value:
        return moment.strftime("%Y-%m")
    return moment.strftime("%Y-%m-%d")


def format_identifier(config: IdentifierConfig, counter: int, moment: datetime) -> str:
    padded = str(counter).zfill(config.counter_length)
    body = config.format.replace(DATE_PLACEHOLDER, format_date(config.date_format, moment), 1)
    for placeholder in COUNTER_PLACEHOLDERS:
        body = body.replace(placeholder, padded, 1)
    if config.prefix:
        return f"{config.prefix}{config.separator}{body}"
    return body


def identifier_pattern(config: IdentifierConfig) -> "re.Pattern[str]":
    """Regex matching identifiers rendered from `config`, capturing the counter."""
    date_length = len(format_date(config.date_format, datetime(2000, 1, 1)))
    body = re.escape(config.format).replace(re.escape(DATE_PLACEHOLDER), rf"\d{{{date_length}}}", 1)

    captured = False
    for placeholder in COUNTER_PLACEHOLDERS:
        escaped = re.escape(placeholder)
        if escaped not in body:
            continue
        digits = rf"\d{{{config.counter_length},}}"
        body = body.replace(escaped, digits if captured else f"(?P<counter>{digits})", 1)
        captured = True

    head = re.escape(f"{config.prefix}{config.separator}") if config.prefix else ""
    return re.compile(f"^{head}{body}$")


def parse_counter(config: IdentifierConfig, identifier: str) -> Optional[int]:
    """Recover the counter from an identifier rendered with `config`."""
    match = identifier_pattern(config).match(identifier or "")
    if not match or match.groupdict().get("counter") is None:
        return None
    return int(match.group("counter"))


def validate_identifier_config(config: IdentifierConfig) -> List[str]:
    """Field-level problems with a config. Empty list when valid."""
    errors = []
    if not config.prefix:
        errors.append("Prefix is required")
    elif not PREFIX_PATTERN.match(config.prefix):
        errors.append("Prefix must be 1-10 uppercase letters or digits")
    if not config.format or not any(p in config.format for p in COUNTER_PLACEHOLDERS):
        errors.append("Format must include {COUNTER} or {TODAYS_ENTRY}")
    elif len(config.format) > MAX_FORMAT_LENGTH:
        errors.append(f"Format cannot exceed {MAX_FORMAT_LENGTH} characters")
    if not SEPARATOR_PATTERN.match(config.separator or ""):
        errors.append("Separator must be empty, '_', '-' or '.'")
    if config.date_format not in DATE_STRFTIME:
        errors.append(f"Unknown date format: {config.date_format}")
    if not isinstance(config.counter_length, int) or not 1 <= config.counter_length <= 10:
        errors.append("Counter length must be between 1 and 10")
    if config.reset_frequency not in {f.value for f in ResetFrequency}:
        errors.append(f"Unknown reset frequency: {config.reset_frequency}")
    return errors


def _template(fmt: str, date_format: str, length: int, reset: ResetFrequency, separator: str = "_") -> Dict[str, Any]:
    return {
        "format": fmt,
        "separator": separator,
        "date_format": date_format,
        "counter_length": length,
        "reset_frequency": reset.value,
    }


# Templates carry no prefix; the tenant's global prefix is applied on use
IDENTIFIER_TEMPLATES: Dict[str, Dict[str, Dict[str, Any]]] = {
    "MEDICAL_STANDARD": {
        "User": _template(_date_body("USR"), "YYMMDD", 4, ResetFrequency.DAILY),
        "Patient": _template(_date_body("PAT"), "YYMMDD", 4, ResetFrequency.DAILY),
        "TestOrder": _template(_date_body("ORD"), "YYMMDD", 4, ResetFrequency.DAILY),
    },
    "APOLLO_STYLE": {
        "User": _template(_date_body("U"), "DDMMYYYY", 4, ResetFrequency.DAILY),
        "Patient": _template(_date_body("P"), "DDMMYYYY", 5, ResetFrequency.DAILY),
        "TestOrder": _template(_date_body("R"), "DDMMYYYY", 5, ResetFrequency.DAILY),
    },
    "SIMPLE_NUMERIC": {
        "User": _template("USR{COUNTER}", "YYMMDD", 6, ResetFrequency.NEVER, separator=""),
        "Patient": _template("PAT{COUNTER}", "YYMMDD", 6, ResetFrequency.NEVER, separator=""),
        "TestOrder": _template("ORD{COUNTER}", "YYMMDD", 6, ResetFrequency.NEVER, separator=""),
    },
}
