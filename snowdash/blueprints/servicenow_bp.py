"""
ServiceNow proxy Blueprint — read-only Table API passthrough.

Endpoints:
  GET /api/servicenow/request-items   — latest request items
  GET /api/servicenow/users           — sys_user rows
  GET /api/servicenow/mid-servers     — active MID servers (ecc_agent)
  GET /api/servicenow/itom            — ITOM summary cards
  GET /api/servicenow/<table>         — any table by name
"""

import logging

from flask import Blueprint, g, jsonify, request

from snowdash.auth import require_session
from snowdash.blueprints import instance_url, page_args
from snowdash.core.exceptions import ServiceNowError
from snowdash.services import itom_service, table_service
from snowdash.utils.errors import upstream_error

logger = logging.getLogger(__name__)

servicenow_bp = Blueprint("servicenow", __name__, url_prefix="/api/servicenow")


@servicenow_bp.route("/request-items", methods=["GET"])
@require_session
def request_items():
    limit, offset = page_args(default_limit=10)
    try:
        rows = table_service.get_request_items(
            g.sn_credential, limit=limit, offset=offset,
            query=request.args.get("query", ""),
            fields=request.args.get("fields") or None,
        )
    except ServiceNowError as exc:
        logger.error("Request items fetch failed: %s", exc.message)
        return upstream_error("Failed to fetch request items", exc)
    return jsonify({"requestItems": rows, "instanceUrl": instance_url()}), 200


@servicenow_bp.route("/users", methods=["GET"])
@require_session
def users():
    limit, offset = page_args(default_limit=10)
    try:
        rows = table_service.get_users(
            g.sn_credential, limit=limit, offset=offset,
            query=request.args.get("query", ""),
            fields=request.args.get("fields") or None,
        )
    except ServiceNowError as exc:
        logger.error("User fetch failed: %s", exc.message)
        return upstream_error("Failed to fetch users", exc)
    return jsonify({"users": rows}), 200


@servicenow_bp.route("/mid-servers", methods=["GET"])
@require_session
def mid_servers():
    """Query params: host_ip (prefix of host name or IP), name (substring)."""
    try:
        result = table_service.get_mid_servers(
            g.sn_credential,
            host_ip=request.args.get("host_ip", "").strip() or None,
            name=request.args.get("name", "").strip() or None,
        )
    except ServiceNowError as exc:
        logger.error("MID server fetch failed: %s", exc.message)
        return upstream_error("Failed to fetch MID servers", exc)
    return jsonify(result), 200


@servicenow_bp.route("/itom", methods=["GET"])
@require_session
def itom():
    """Best-effort ITOM summary; a missing table leaves its metric at 0."""
    summary = itom_service.get_itom_summary(g.sn_credential)
    summary["instanceUrl"] = instance_url()
    return jsonify(summary), 200


# Registered last so the fixed paths above win.
@servicenow_bp.route("/<table>", methods=["GET"])
@require_session
def table_data(table):
    """Query params: limit (50), offset, query, fields, order."""
    limit, offset = page_args(default_limit=50)
    try:
        result = table_service.get_table_data(
            g.sn_credential, table,
            limit=limit, offset=offset,
            query=request.args.get("query", ""),
            fields=request.args.get("fields") or None,
            order=request.args.get("order") or None,
        )
    except ServiceNowError as exc:
        logger.error("Table %s fetch failed: %s", table, exc.message)
        return upstream_error("Failed to fetch data", exc)
    return jsonify(result), 200
