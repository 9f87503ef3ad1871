"""Shared parsing helpers used by services and blueprints.

parse_date:        lenient, returns None on bad input (query-string filters)
parse_date_input:  strict, raises ValidationError on bad input (payload fields)
parse_bool:        "true"/"1"/"yes" style flags from query strings
"""
import logging
from datetime import date, datetime

from qms.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def parse_date(value):
    """Parse an ISO date or datetime string to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str):
    """Same as parse_date() but raises ValidationError instead of returning None."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"Invalid date for {field}: {value!r}. Use YYYY-MM-DD.",
            details={field: value},
        )
    return parsed


def parse_bool(value):
    """Parse a tri-state flag: True, False or None when absent/unrecognised."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None
