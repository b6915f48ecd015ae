"""
Template Helpers
================

Filters and tests registered on the Jinja2 environment used for PDF templates.
All of them are pure functions of their arguments.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

import jinja2

MISSING_DATE = "—"

DATE_PATTERNS = {
    "d/m/Y H:i": "%d/%m/%Y %H:%M",
    "d/m/Y": "%d/%m/%Y",
}


def to_datetime(value: Any) -> Optional[datetime]:
    """Best-effort conversion of template data to a datetime; None when impossible."""
    if value is None or isinstance(value, (jinja2.Undefined, bool)):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as JSON clients usually send them
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def to_iso(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-03-05T14:07:00.000Z."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def format_date(value: Any, pattern: Optional[str] = None) -> str:
    """
    Format a date for display.

    ``d/m/Y H:i`` and ``d/m/Y`` are supported explicitly; any other pattern
    yields the ISO representation. Missing or unparsable dates render as an
    em dash.
    """
    parsed = to_datetime(value)
    if parsed is None:
        return MISSING_DATE
    strftime_pattern = DATE_PATTERNS.get(pattern or "")
    if strftime_pattern is None:
        return to_iso(parsed)
    return parsed.strftime(strftime_pattern)


def default(value: Any, default_value: Any = "", boolean: bool = True) -> Any:
    """Substitute ``default_value`` for undefined values and, by default, any falsy value."""
    if isinstance(value, jinja2.Undefined) or (boolean and not value):
        return default_value
    return value


def is_present(value: Any) -> bool:
    """True for defined, truthy values."""
    return not isinstance(value, jinja2.Undefined) and bool(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def equals(value: Any, other: Any) -> bool:
    """
    Loose equality: a number equals a string holding the same number,
    so ``1`` from JSON data matches the literal ``'1'`` in a template.
    """
    if value == other:
        return True
    for number, text in ((value, other), (other, value)):
        if _is_number(number) and isinstance(text, str):
            try:
                return float(text) == number
            except ValueError:
                return False
    return False


def register_helpers(env: jinja2.Environment) -> None:
    """Install the helpers on a Jinja2 environment."""
    env.filters["format_date"] = format_date
    env.filters["default"] = default
    env.filters["d"] = default
    env.tests["present"] = is_present
    env.tests["equals"] = equals
