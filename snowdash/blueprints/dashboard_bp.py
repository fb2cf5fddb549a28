"""
Dashboard Blueprints — ServiceNow dashboards and the synced dashboard config.

dashboard_bp (/api/servicenow/dashboards):
  GET    /list             — par_dashboard records
  POST   /create           — create a par_dashboard
  DELETE /delete?sys_id=   — delete a par_dashboard
  GET    ""                — load the custom_dashboard_config preference
  POST   ""                — merge + save the preference (or create, see below)
  DELETE ""?preferenceId=  — delete the preference

dashboard_config_bp (/api/dashboards/config):
  GET|PUT                                   — whole document
  GET|POST   /dashboards                    — list / create
  GET|PATCH|DELETE /dashboards/<id>
  PUT        /dashboards/<id>/active
  GET|POST   /dashboards/<id>/widgets
  GET|PATCH|DELETE /dashboards/<id>/widgets/<wid>
"""

import functools
import logging

from flask import Blueprint, g, jsonify, request

from snowdash.auth import require_session
from snowdash.blueprints import instance_url, json_object, preference_user
from snowdash.core.exceptions import ServiceNowError
from snowdash.services import dashboard_service, dashboard_store
from snowdash.utils.errors import E, api_error, upstream_error

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboards", __name__, url_prefix="/api/servicenow/dashboards")
dashboard_config_bp = Blueprint("dashboard_config", __name__, url_prefix="/api/dashboards/config")

# Keys of a saved document; anything else in a save body is dropped.
_DOCUMENT_KEYS = ("dashboards", "widgets", "snFavorites", "activeDashboardId",
                  "version", "savedAt", "tombstones")


# ═════════════════════════════════════════════════════════════════════════════
# par_dashboard
# ═════════════════════════════════════════════════════════════════════════════

@dashboard_bp.route("/list", methods=["GET"])
@require_session
def list_dashboards():
    try:
        dashboards = dashboard_service.list_sn_dashboards(g.sn_credential)
    except ServiceNowError as exc:
        logger.error("par_dashboard list failed: %s", exc.message)
        return upstream_error("Failed to list dashboards", exc)
    return jsonify({
        "success": True,
        "dashboards": dashboards,
        "total": len(dashboards),
        "source": dashboard_service.PAR_DASHBOARD_TABLE,
        "instanceUrl": instance_url(),
    }), 200


def _create_sn_dashboard(data):
    try:
        created = dashboard_service.create_sn_dashboard(
            g.sn_credential, data.get("name"), data.get("description"),
        )
    except ServiceNowError as exc:
        logger.error("par_dashboard create failed status=%s: %s", exc.status_code, exc.message)
        if exc.status_code == 403:
            return api_error(E.FORBIDDEN, "Permission denied. You may not have access to create dashboards.")
        return upstream_error("Failed to create dashboard", exc)
    return jsonify({"success": True, "dashboard": created}), 200


@dashboard_bp.route("/create", methods=["POST"])
@require_session
def create_dashboard():
    """Body: { "name": "...", "description": "..." }"""
    return _create_sn_dashboard(json_object(optional=True))


@dashboard_bp.route("/delete", methods=["DELETE"])
@require_session
def delete_dashboard():
    sys_id = request.args.get("sys_id", "").strip()
    try:
        dashboard_service.delete_sn_dashboard(g.sn_credential, sys_id)
    except ServiceNowError as exc:
        logger.error("par_dashboard delete failed status=%s: %s", exc.status_code, exc.message)
        if exc.status_code == 403:
            return api_error(E.FORBIDDEN, "Permission denied. You may not have access to delete this dashboard.")
        if exc.status_code == 404:
            return api_error(E.NOT_FOUND, "Dashboard not found")
        return upstream_error("Failed to delete dashboard", exc)
    return jsonify({"success": True, "message": "Dashboard deleted successfully"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# custom_dashboard_config preference
# ═════════════════════════════════════════════════════════════════════════════

@dashboard_bp.route("", methods=["GET"])
@require_session
def load_preference():
    try:
        data, pref_id = dashboard_service.load_preference(g.sn_credential, preference_user())
    except ServiceNowError as exc:
        logger.error("Dashboard preference load failed: %s", exc.message)
        return upstream_error("Failed to load dashboards", exc)
    body = {"success": True, "data": data}
    if pref_id:
        body["preferenceId"] = pref_id
    return jsonify(body), 200


def _save(data):
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    incoming = {k: data[k] for k in _DOCUMENT_KEYS if k in data}
    try:
        saved = dashboard_service.save_preference(
            g.sn_credential, incoming,
            user_id=preference_user(),
            preference_id=data.get("preferenceId") or None,
        )
    except ServiceNowError as exc:
        logger.error("Dashboard preference save failed: %s", exc.message)
        return upstream_error("Failed to save dashboards", exc)
    return jsonify({"success": True, "message": "Dashboards saved to ServiceNow", **saved}), 200


@dashboard_bp.route("", methods=["POST"])
@require_session
def save_preference():
    """
    Save the dashboard document.

    Body: { dashboards, widgets, snFavorites, preferenceId?, version?,
            savedAt?, tombstones? }
    A body with ``name`` and no ``dashboards`` creates a par_dashboard.
    """
    data = request.get_json(silent=True)
    if isinstance(data, dict) and "name" in data and "dashboards" not in data:
        return _create_sn_dashboard(data)
    return _save(data)


@dashboard_bp.route("", methods=["DELETE"])
@require_session
def delete_preference():
    preference_id = request.args.get("preferenceId", "").strip()
    try:
        dashboard_service.delete_preference(g.sn_credential, preference_id)
    except ServiceNowError as exc:
        logger.error("Dashboard preference delete failed: %s", exc.message)
        return upstream_error("Failed to delete preference", exc)
    return jsonify({"success": True, "message": "Dashboard preference deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Server-side config edits
# ═════════════════════════════════════════════════════════════════════════════

def _config_route(f):
    """require_session + translate upstream failures for config edits."""
    @functools.wraps(f)
    @require_session
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ServiceNowError as exc:
            logger.error("Dashboard config %s failed: %s", request.method, exc.message)
            return upstream_error("Failed to sync dashboard config", exc)
    return wrapper


def _change(change, status=200):
    """Apply a dashboard_store mutation and save; respond with the entity."""
    result, saved = dashboard_service.apply_config_change(
        g.sn_credential, change, user_id=preference_user(),
    )
    return jsonify({
        "success": True,
        "result": result,
        "preferenceId": saved["preferenceId"],
        "version": saved["version"],
    }), status


@dashboard_config_bp.route("", methods=["GET"])
@_config_route
def get_config():
    doc, pref_id = dashboard_service.load_config(g.sn_credential, preference_user())
    return jsonify({"success": True, "data": doc, "preferenceId": pref_id}), 200


@dashboard_config_bp.route("", methods=["PUT"])
@_config_route
def put_config():
    data = json_object()
    data.pop("name", None)
    return _save(data)


@dashboard_config_bp.route("/dashboards", methods=["GET"])
@_config_route
def config_dashboards():
    doc, _ = dashboard_service.load_config(g.sn_credential, preference_user())
    return jsonify({
        "dashboards": doc["dashboards"],
        "activeDashboardId": doc["activeDashboardId"],
        "active": dashboard_store.get_active(doc),
    }), 200


@dashboard_config_bp.route("/dashboards", methods=["POST"])
@_config_route
def config_create_dashboard():
    data = json_object()
    return _change(lambda doc: dashboard_store.create_dashboard(doc, data), status=201)


@dashboard_config_bp.route("/dashboards/<dashboard_id>", methods=["GET"])
@_config_route
def config_get_dashboard(dashboard_id):
    doc, _ = dashboard_service.load_config(g.sn_credential, preference_user())
    return jsonify(dashboard_store.find_dashboard(doc, dashboard_id)), 200


@dashboard_config_bp.route("/dashboards/<dashboard_id>", methods=["PATCH", "PUT"])
@_config_route
def config_update_dashboard(dashboard_id):
    data = json_object()
    return _change(lambda doc: dashboard_store.update_dashboard(doc, dashboard_id, data))


@dashboard_config_bp.route("/dashboards/<dashboard_id>", methods=["DELETE"])
@_config_route
def config_delete_dashboard(dashboard_id):
    return _change(lambda doc: dashboard_store.delete_dashboard(doc, dashboard_id))


@dashboard_config_bp.route("/dashboards/<dashboard_id>/active", methods=["PUT"])
@_config_route
def config_set_active(dashboard_id):
    return _change(lambda doc: dashboard_store.set_active(doc, dashboard_id))


@dashboard_config_bp.route("/dashboards/<dashboard_id>/widgets", methods=["GET"])
@_config_route
def config_widgets(dashboard_id):
    doc, _ = dashboard_service.load_config(g.sn_credential, preference_user())
    return jsonify({"widgets": dashboard_store.widgets_for(doc, dashboard_id)}), 200


@dashboard_config_bp.route("/dashboards/<dashboard_id>/widgets", methods=["POST"])
@_config_route
def config_add_widget(dashboard_id):
    data = json_object()
    return _change(lambda doc: dashboard_store.add_widget(doc, dashboard_id, data), status=201)


@dashboard_config_bp.route("/dashboards/<dashboard_id>/widgets/<widget_id>", methods=["GET"])
@_config_route
def config_get_widget(dashboard_id, widget_id):
    doc, _ = dashboard_service.load_config(g.sn_credential, preference_user())
    return jsonify(dashboard_store.find_widget(doc, dashboard_id, widget_id)), 200


@dashboard_config_bp.route("/dashboards/<dashboard_id>/widgets/<widget_id>", methods=["PATCH", "PUT"])
@_config_route
def config_update_widget(dashboard_id, widget_id):
    data = json_object()
    return _change(lambda doc: dashboard_store.update_widget(doc, dashboard_id, widget_id, data))


@dashboard_config_bp.route("/dashboards/<dashboard_id>/widgets/<widget_id>", methods=["DELETE"])
@_config_route
def config_delete_widget(dashboard_id, widget_id):
    return _change(lambda doc: dashboard_store.delete_widget(doc, dashboard_id, widget_id))
