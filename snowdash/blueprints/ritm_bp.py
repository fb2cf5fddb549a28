"""
RITM Blueprint — request items and the Discovery Onboarding workflow.

Endpoints:
  GET   /api/ritms                          — page of sc_req_item records
  GET   /api/ritms/discovery                — workflow rows, stats, due dates
  PATCH /api/ritms/<sys_id>                 — update allow-listed u_* fields
  PATCH /api/ritms                          — same, sys_id in the body
  PUT   /api/ritms/<sys_id>/host-info       — "Enter IP" action
  POST  /api/ritms/<sys_id>/send-email      — send Discovery email 1/2/3
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from snowdash.auth import require_session
from snowdash.blueprints import instance_url, json_object, page_args
from snowdash.core.exceptions import ServiceNowError
from snowdash.services import ritm_service
from snowdash.services.discovery_service import STATUS_FILTERS
from snowdash.utils.errors import E, api_error, upstream_error
from snowdash.utils.helpers import int_arg

logger = logging.getLogger(__name__)

ritm_bp = Blueprint("ritms", __name__, url_prefix="/api/ritms")

_TRUTHY = {"1", "true", "yes", "on"}


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════

@ritm_bp.route("", methods=["GET"])
@require_session
def list_ritms():
    """List request items. Query params: limit, offset, query, fields."""
    limit, offset = page_args(default_limit=50)
    try:
        result = ritm_service.list_ritms(
            g.sn_credential,
            limit=limit,
            offset=offset,
            query=request.args.get("query", ""),
            fields=request.args.get("fields") or None,
        )
    except ServiceNowError as exc:
        logger.error("RITM list failed user=%s: %s", g.current_username, exc.message)
        return upstream_error("Failed to fetch RITMs", exc)
    result["instanceUrl"] = instance_url()
    return jsonify(result), 200


@ritm_bp.route("/discovery", methods=["GET"])
@require_session
def discovery():
    """
    Discovery Onboarding view.

    Query params: limit (default 100), query, search, status, demo.
    Demo mode is view-only: it replaces workflow state with fixtures and
    never writes to ServiceNow.
    """
    status_filter = request.args.get("status", "all") or "all"
    if status_filter not in STATUS_FILTERS:
        return api_error(E.VALIDATION_INVALID, f"Invalid status filter: {status_filter}")

    demo = bool(current_app.config.get("DISCOVERY_DEMO_MODE")) or (
        request.args.get("demo", "").lower() in _TRUTHY
    )
    try:
        view = ritm_service.discovery_view(
            g.sn_credential,
            instance_url=instance_url(),
            limit=int_arg(request.args.get("limit"), 100, minimum=1, maximum=1000),
            query=request.args.get("query", ""),
            search=request.args.get("search", ""),
            status_filter=status_filter,
            demo=demo,
            poll_seconds=current_app.config.get("RITM_POLL_SECONDS", 45),
        )
    except ServiceNowError as exc:
        logger.error("Discovery view failed user=%s: %s", g.current_username, exc.message)
        return upstream_error("Failed to fetch RITMs", exc)
    return jsonify(view), 200


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════

def _patch(sys_id, body):
    try:
        updated = ritm_service.patch_ritm(g.sn_credential, sys_id, body)
    except ServiceNowError as exc:
        logger.error("RITM %s update failed: %s", sys_id, exc.message)
        return upstream_error("Failed to update RITM", exc)
    return jsonify(updated), 200


@ritm_bp.route("/<sys_id>", methods=["PATCH"])
@require_session
def patch_ritm(sys_id):
    """Update workflow fields. Body keys outside the allow-list are ignored."""
    return _patch(sys_id, json_object(optional=True))


@ritm_bp.route("", methods=["PATCH"])
@require_session
def patch_ritm_by_body():
    """Same as PATCH /<sys_id> with ``sys_id`` (or ``sysId``) in the body."""
    body = json_object(optional=True)
    sys_id = body.get("sys_id") or body.get("sysId") or ""
    return _patch(sys_id, body)


@ritm_bp.route("/<sys_id>/host-info", methods=["PUT"])
@require_session
def host_info(sys_id):
    """
    Record the host to be discovered.

    Body: { "hostIP": "10.0.0.1", "networkType": "N" | "F", "notes": "..." }
    """
    data = json_object(optional=True)
    try:
        updated = ritm_service.set_host_info(
            g.sn_credential,
            sys_id,
            host_ip=str(data.get("hostIP") or ""),
            network_type=str(data.get("networkType") or "N"),
            notes=data.get("notes") if isinstance(data.get("notes"), str) else None,
        )
    except ServiceNowError as exc:
        logger.error("RITM %s host info failed: %s", sys_id, exc.message)
        return upstream_error("Failed to update RITM", exc)
    return jsonify(updated), 200


@ritm_bp.route("/<sys_id>/send-email", methods=["POST"])
@require_session
def send_email(sys_id):
    """
    Send Discovery Onboarding email N to the RITM's requester.

    Body: { "emailNum": 1 | 2 | 3 }
    """
    data = json_object(optional=True)
    try:
        result = ritm_service.send_workflow_email(g.sn_credential, sys_id, data.get("emailNum"))
    except ServiceNowError as exc:
        logger.error("Discovery email for RITM %s failed: %s", sys_id, exc.message)
        return upstream_error("Failed to send email", exc)
    logger.info("Discovery email %s sent for RITM %s by %s",
                data.get("emailNum"), sys_id, g.current_username)
    return jsonify(result), 200
