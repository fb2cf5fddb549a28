"""Shared utility functions for ServiceNow date handling and query args.

parse_sn_datetime:   ServiceNow 'YYYY-MM-DD HH:MM:SS' or ISO-8601 → aware UTC datetime
format_sn_datetime:  aware datetime → ServiceNow 'YYYY-MM-DD HH:MM:SS' (UTC)
to_iso:              datetime → ISO-8601 string for JSON, None-safe
int_arg:             query-string integer with fallback
"""
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SN_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_sn_datetime(value):
    """Parse a ServiceNow or ISO date-time string to an aware UTC datetime.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD HH:MM:SS (ServiceNow glide_date_time, treated as UTC)
    - YYYY-MM-DDTHH:MM:SS[.fff][Z|+hh:mm] (ISO format)
    - YYYY-MM-DD
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.strptime(text, SN_DATETIME_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable date-time value: %r", value)
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_sn_datetime(dt=None):
    """Format as ServiceNow 'YYYY-MM-DD HH:MM:SS' in UTC (default: now)."""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(SN_DATETIME_FORMAT)


def to_iso(dt):
    """ISO-8601 string with 'Z' suffix for aware UTC datetimes, None-safe."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def int_arg(raw, default, *, minimum=None, maximum=None):
    """Parse an integer query parameter, falling back to ``default``.

    Non-numeric input falls back to ``default`` instead of raising.
    """
    try:
        number = int(raw) if raw not in (None, "") else default
    except (ValueError, TypeError):
        number = default
    if minimum is not None:
        number = max(number, minimum)
    if maximum is not None:
        number = min(number, maximum)
    return number
