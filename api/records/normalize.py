"""
Field normalisers: client values -> values the `record` table accepts.

Nothing here rejects odd input outright. Values that cannot be stored are
blanked, and where that would lose information (TRS codes) the raw value is
preserved in the locale text instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from core.errors import ValidationError

# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

_LEADING_NUMBER_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value).strip()


def as_float(value: Any, default: float = 0.0) -> float:
    """
    Lenient numeric coercion: "12.5F" -> 12.5, junk -> default.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    if not match:
        return default
    try:
        return float(match.group(1))
    except ValueError:
        return default


def as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    return int(as_float(value, float(default)))


def is_numeric_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def as_flag(value: Any) -> int:
    if isinstance(value, str):
        return 0 if value.strip().lower() in {"", "0", "false", "no", "off"} else 1
    return 1 if value else 0


# ---------------------------------------------------------------------------
# Units and enums
# ---------------------------------------------------------------------------


def normalize_temp_units(value: Any) -> str:
    """
    "F", "fahrenheit", "C", "Celcius", ... -> "F" / "C"; anything else -> "".
    """
    s = as_text(value).upper()
    if not s:
        return ""
    if s[0] in ("F", "C"):
        return s[0]
    return ""


MOON_PHASES = (
    "New Moon",
    "Waxing Crescent",
    "First Quarter",
    "Waxing Gibbous",
    "Full Moon",
    "Waning Gibbous",
    "Last Quarter",
    "Waning Crescent",
    "Unknown",
)

_MOON_SYNONYMS: dict[str, str] = {
    **{phase.lower(): phase for phase in MOON_PHASES},
    "new": "New Moon",
    "full": "Full Moon",
    "third quarter": "Last Quarter",
    "3rd quarter": "Last Quarter",
    "1st quarter": "First Quarter",
    "first qtr": "First Quarter",
    "last qtr": "Last Quarter",
    "unknown moon": "Unknown",
}


def normalize_moon(value: Any) -> str:
    """
    Map free text onto a canonical phase label; unknown text passes through.
    """
    s = as_text(value)
    if not s:
        return ""
    key = " ".join(s.lower().split())
    return _MOON_SYNONYMS.get(key, s)


# ---------------------------------------------------------------------------
# Township / Range / Section
# ---------------------------------------------------------------------------

_TOWNSHIP_RE = re.compile(r"^(\d{1,2})([NS])$")
_RANGE_RE = re.compile(r"^(\d{1,2})([EW])$")
_SECTION_RE = re.compile(r"^(?:[1-9]|[12]\d|3[0-6])$")

# Survey grid bounds of the stored enums (1N..68S, 1E..49W).
MAX_TOWNSHIP = 68
MAX_RANGE = 49


def normalize_township(value: Any) -> str:
    s = as_text(value).upper()
    match = _TOWNSHIP_RE.match(s)
    if match and 1 <= int(match.group(1)) <= MAX_TOWNSHIP:
        return f"{int(match.group(1))}{match.group(2)}"
    return ""


def normalize_range(value: Any) -> str:
    s = as_text(value).upper()
    match = _RANGE_RE.match(s)
    if match and 1 <= int(match.group(1)) <= MAX_RANGE:
        return f"{int(match.group(1))}{match.group(2)}"
    return ""


def normalize_section(value: Any) -> str:
    s = as_text(value)
    return s if _SECTION_RE.match(s) else ""


@dataclass(frozen=True)
class TrsFields:
    township: str
    range: str
    section: str
    locale: str


def append_locale(locale: str, label: str, raw: str) -> str:
    return f"{locale}\n{label}: {raw}".strip()


def normalize_trs(township: Any, range_: Any, section: Any, *, locale: str = "") -> TrsFields:
    """
    Validate TRS codes; invalid non-empty input moves into the locale text.
    """
    out_locale = as_text(locale)
    normalized: dict[str, str] = {}
    for label, raw_value, normalizer in (
        ("Township", township, normalize_township),
        ("Range", range_, normalize_range),
        ("Section", section, normalize_section),
    ):
        raw = as_text(raw_value)
        value = normalizer(raw)
        if not value and raw:
            out_locale = append_locale(out_locale, label, raw)
        normalized[label] = value

    return TrsFields(
        township=normalized["Township"],
        range=normalized["Range"],
        section=normalized["Section"],
        locale=out_locale,
    )


# ---------------------------------------------------------------------------
# Date / time
# ---------------------------------------------------------------------------

_HH_MM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time(value: str) -> str:
    match = _HH_MM_RE.match(value)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}:00"
    return value


def build_datetime(date_value: Any, time_value: Any) -> str | None:
    """
    Join separate date ("YYYY-MM-DD") and time ("HH:MM[:SS]") parts.

    - neither part -> None
    - time without a date -> None
    - date without a time -> midnight
    """
    date = as_text(date_value)
    time = as_text(time_value)

    if not date:
        return None
    if not time:
        return f"{date} 00:00:00"
    return f"{date} {normalize_time(time)}"


def combined_datetime(value: Any) -> str | None:
    """
    Accept a combined datetime only when it carries both a date and a time.

    Clients also send a bare time in the datetime field; that is not enough.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if "-" in s and ":" in s:
        return s
    return None


def observation_time(datetime_value: Any, date_value: Any, time_value: Any) -> str | None:
    return combined_datetime(datetime_value) or build_datetime(date_value, time_value)


def parse_datetime(value: str | None) -> datetime | None:
    """
    Parse a normalised datetime string for storage.

    Offsets are dropped, keeping the observer's wall-clock time.
    """
    if value is None:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid observation date/time: {value}",
            code="invalid_datetime",
        ) from exc
    return parsed.replace(tzinfo=None)
