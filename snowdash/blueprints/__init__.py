"""
ServiceNow Dashboard
Blueprint registry.
"""

import re

from flask import current_app, g, request

from snowdash.core.exceptions import ValidationError
from snowdash.utils.helpers import int_arg


def page_args(default_limit=50, max_limit=1000):
    """Read limit/offset pagination from the query string.

    Query params:
        limit  — max records (default ``default_limit``, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    limit = int_arg(request.args.get("limit"), default_limit, minimum=1, maximum=max_limit)
    offset = int_arg(request.args.get("offset"), 0, minimum=0)
    return limit, offset


def json_object(optional=False):
    """The request body as a dict; ValidationError (400) for any other JSON.

    With ``optional`` a missing or unparseable body reads as ``{}``.
    """
    data = request.get_json(silent=True)
    if data is None and optional:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def instance_url():
    """Configured instance URL as echoed back to the UI ("" when unset)."""
    return current_app.config.get("SERVICENOW_INSTANCE_URL") or ""


_SYS_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def preference_user():
    """The session's sys_user sys_id, when the session carries one.

    Sessions issued without a sys_user lookup carry the user name in ``sub``;
    those are not usable as a ``user=`` reference.
    """
    session = getattr(g, "sn_session", None)
    user_id = session.user_id if session else None
    return user_id if user_id and _SYS_ID_RE.match(user_id) else None
