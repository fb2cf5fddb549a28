"""JSON error bodies for the dashboard API.

Every error the UI sees has the shape ``{"error": <message>, "code": <E.*>}``,
optionally extended with extra keys (``details`` carries upstream ServiceNow
text, ``allowed`` lists valid enum values).

    from snowdash.utils.errors import E, api_error, upstream_error

    return api_error(E.VALIDATION_REQUIRED, "Missing sysId")
    return upstream_error("Failed to fetch RITMs", exc)
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes, grouped by the HTTP status they map to."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 401 / 403 / 404
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"

    # 500
    UPSTREAM = "ERR_UPSTREAM"
    CONFIGURATION = "ERR_CONFIGURATION"
    INTERNAL = "ERR_INTERNAL"


STATUS_FOR_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.UPSTREAM: 500,
    E.CONFIGURATION: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for a view to return.

    ``status`` overrides the code's usual status; unknown codes fall back
    to 400. ``details`` keys are merged into the top level of the body.
    """
    body = {"error": message, "code": code, **(details or {})}
    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)


def upstream_error(message: str, exc, *, passthrough: tuple[int, ...] = ()):
    """Shape a ServiceNowError into a response.

    The upstream message is attached verbatim under ``details``. The status
    is 500 unless the upstream status is listed in ``passthrough``.
    """
    status = exc.status_code if exc.status_code in passthrough else 500
    return api_error(E.UPSTREAM, message, status=status, details={"details": exc.message})
