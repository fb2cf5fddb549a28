"""
Widget Blueprint — server-side widget data.

  POST /api/widgets/render                             — body: {widget}
  GET  /api/widgets/<dashboard_id>/<widget_id>/data    — widget from the saved config
"""

import logging

from flask import Blueprint, g, jsonify, request

from snowdash.auth import require_session
from snowdash.blueprints import preference_user
from snowdash.core.exceptions import ServiceNowError
from snowdash.services import dashboard_service, dashboard_store, widget_service
from snowdash.utils.errors import E, api_error, upstream_error

logger = logging.getLogger(__name__)

widget_bp = Blueprint("widgets", __name__, url_prefix="/api/widgets")


def _render(widget):
    try:
        payload = widget_service.render_widget(g.sn_credential, widget)
    except ServiceNowError as exc:
        logger.error("Widget %s data fetch failed: %s", widget.get("id"), exc.message)
        return upstream_error("Failed to fetch widget data", exc)
    return jsonify(payload), 200


@widget_bp.route("/render", methods=["POST"])
@require_session
def render():
    """Render an unsaved widget definition (e.g. a config-modal preview)."""
    data = request.get_json(silent=True)
    widget = data.get("widget") if isinstance(data, dict) else None
    if not isinstance(widget, dict):
        return api_error(E.VALIDATION_REQUIRED, "widget is required")
    return _render(widget)


@widget_bp.route("/<dashboard_id>/<widget_id>/data", methods=["GET"])
@require_session
def widget_data(dashboard_id, widget_id):
    """Render a widget stored in the user's dashboard config."""
    try:
        doc, _ = dashboard_service.load_config(g.sn_credential, preference_user())
    except ServiceNowError as exc:
        logger.error("Dashboard config load failed: %s", exc.message)
        return upstream_error("Failed to load dashboards", exc)
    widget = dashboard_store.find_widget(doc, dashboard_id, widget_id)
    return _render(widget)
