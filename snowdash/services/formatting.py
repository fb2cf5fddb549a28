"""Display formatting for ServiceNow priority and state values."""

import re

from snowdash.models.fields import display, value

_PRIORITY_LABELS = {
    "1": "Critical", "critical": "Critical",
    "2": "High", "high": "High",
    "3": "Medium", "medium": "Medium",
}

_STATE_LABELS = {
    "new": "New", "1": "New",
    "in progress": "In Progress", "assigned": "In Progress", "2": "In Progress", "3": "In Progress",
    "resolved": "Resolved", "4": "Resolved",
    "closed": "Closed", "6": "Closed", "7": "Closed",
    "cancelled": "Cancelled", "5": "Cancelled",
}

_PRIORITY_COLOURS = {
    "1": "danger", "critical": "danger", "high": "danger",
    "2": "warning", "medium": "warning",
    "3": "success", "low": "success",
}

# display_value=all labels choices as "1 - Critical"
_CODE_PREFIX_RE = re.compile(r"^\d+\s*-\s*")


def _keys(field):
    """Raw choice code first, then the label without a leading "N - "."""
    label = _CODE_PREFIX_RE.sub("", display(field))
    return [str(k).strip().lower() for k in (value(field), label) if k]


def _lookup(table, field, default):
    for key in _keys(field):
        if key in table:
            return table[key]
    return default


def priority_label(field):
    """1/critical → Critical, 2/high → High, 3/medium → Medium, anything else → Low."""
    return _lookup(_PRIORITY_LABELS, field, "Low")


def state_label(field):
    """Known RITM states map to a label; unknown states are shown as-is."""
    return _lookup(_STATE_LABELS, field, display(field))


def priority_colour(field):
    """Colour bucket for list widgets; note 'high' is red here, unlike priority_label."""
    return _lookup(_PRIORITY_COLOURS, field, "muted")


def column_header(name):
    """short_description → Short Description"""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name.replace("_", " "))
