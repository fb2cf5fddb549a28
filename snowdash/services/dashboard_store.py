"""
Dashboard Store — pure operations over the dashboard/widget document.

The document shape is described in ``snowdash.models.dashboard``. Every
mutating function here edits the document passed in and returns the entity
it touched; callers load a fresh copy, mutate it, then save it.

Deletions leave a tombstone ``{id: deletedAt}`` so that ``merge_documents``
can tell "deleted here" apart from "never seen here".
"""

import logging
import time
import uuid
from datetime import datetime, timezone

from snowdash.core.exceptions import NotFoundError, ValidationError
from snowdash.models.dashboard import (
    AGGREGATIONS,
    CHART_TYPES,
    DASHBOARD_LAYOUTS,
    DASHBOARD_TYPES,
    DATA_SOURCE_FIELDS,
    DATA_SOURCES,
    DEFAULT_DASHBOARD_ID,
    WIDGET_DEFAULTS,
    WIDGET_LAYOUTS,
    WIDGET_SIZES,
    WIDGET_TYPES,
    coerce_store,
)
from snowdash.utils.helpers import parse_sn_datetime, to_iso

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Keys a caller may never overwrite through update_*.
_IMMUTABLE_KEYS = {"id", "createdAt", "updatedAt"}


def _now_iso(now=None):
    return to_iso(now or datetime.now(timezone.utc))


def _stamp(value):
    return parse_sn_datetime(value) or _EPOCH


# ═════════════════════════════════════════════════════════════════════════════
# Dashboards
# ═════════════════════════════════════════════════════════════════════════════

def find_dashboard(doc, dashboard_id):
    for dashboard in doc["dashboards"]:
        if dashboard.get("id") == dashboard_id:
            return dashboard
    raise NotFoundError("Dashboard", dashboard_id)


def _validate_dashboard(data):
    if "name" in data and not str(data.get("name") or "").strip():
        raise ValidationError("Dashboard name is required")
    dtype = data.get("type")
    if dtype is not None and dtype not in DASHBOARD_TYPES:
        raise ValidationError(f"Invalid dashboard type: {dtype}",
                              details={"allowed": sorted(DASHBOARD_TYPES)})
    settings = data.get("settings")
    if settings is not None:
        if not isinstance(settings, dict):
            raise ValidationError("Dashboard settings must be an object")
        layout = settings.get("layout")
        if layout is not None and layout not in DASHBOARD_LAYOUTS:
            raise ValidationError(f"Invalid dashboard layout: {layout}",
                                  details={"allowed": sorted(DASHBOARD_LAYOUTS)})


def create_dashboard(doc, data, now=None):
    if not str(data.get("name") or "").strip():
        raise ValidationError("Dashboard name is required")
    _validate_dashboard(data)
    stamp = _now_iso(now)
    dashboard = {
        "description": "",
        "type": "custom",
        "settings": {},
        **{k: v for k, v in data.items() if k not in _IMMUTABLE_KEYS},
        "id": f"dashboard-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
        "name": str(data["name"]).strip(),
        "createdAt": stamp,
        "updatedAt": stamp,
    }
    doc["dashboards"].append(dashboard)
    return dashboard


def update_dashboard(doc, dashboard_id, updates, now=None):
    dashboard = find_dashboard(doc, dashboard_id)
    _validate_dashboard(updates)
    for key, val in updates.items():
        if key not in _IMMUTABLE_KEYS:
            dashboard[key] = val
    if "name" in updates:
        dashboard["name"] = str(updates["name"]).strip()
    dashboard["updatedAt"] = _now_iso(now)
    return dashboard


def delete_dashboard(doc, dashboard_id, now=None):
    """Remove a dashboard and its widgets. The default dashboard stays."""
    if dashboard_id == DEFAULT_DASHBOARD_ID:
        raise ValidationError("Cannot delete the default dashboard")
    dashboard = find_dashboard(doc, dashboard_id)
    stamp = _now_iso(now)
    doc["dashboards"] = [d for d in doc["dashboards"] if d.get("id") != dashboard_id]
    for widget in doc["widgets"].pop(dashboard_id, []):
        doc["tombstones"]["widgets"][widget["id"]] = stamp
    doc["tombstones"]["dashboards"][dashboard_id] = stamp
    if doc.get("activeDashboardId") == dashboard_id:
        doc["activeDashboardId"] = DEFAULT_DASHBOARD_ID
    return dashboard


def set_active(doc, dashboard_id):
    find_dashboard(doc, dashboard_id)
    doc["activeDashboardId"] = dashboard_id
    return dashboard_id


def get_active(doc):
    active = doc.get("activeDashboardId")
    for dashboard in doc["dashboards"]:
        if dashboard.get("id") == active:
            return dashboard
    return None


# ═════════════════════════════════════════════════════════════════════════════
# Widgets
# ═════════════════════════════════════════════════════════════════════════════

def validate_widget(widget):
    """Check every enum-valued key that is present."""
    checks = (
        ("type", WIDGET_TYPES),
        ("chartType", CHART_TYPES),
        ("size", WIDGET_SIZES),
        ("layout", WIDGET_LAYOUTS),
        ("dataSource", DATA_SOURCES),
        ("aggregation", AGGREGATIONS),
    )
    for key, allowed in checks:
        val = widget.get(key)
        if val is not None and val not in allowed:
            raise ValidationError(f"Invalid widget {key}: {val}", details={"allowed": sorted(allowed)})

    group_by = widget.get("groupBy")
    source = widget.get("dataSource")
    if widget.get("type") == "chart" and group_by and source and group_by not in DATA_SOURCE_FIELDS[source]:
        raise ValidationError(
            f"Field '{group_by}' cannot be grouped for {source}",
            details={"allowed": DATA_SOURCE_FIELDS[source]},
        )

    limit = widget.get("limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        raise ValidationError("Widget limit must be a positive integer")

    columns = widget.get("columns")
    if columns is not None and not (isinstance(columns, list) and all(isinstance(c, str) for c in columns)):
        raise ValidationError("Widget columns must be a list of field names")


def widgets_for(doc, dashboard_id):
    find_dashboard(doc, dashboard_id)
    return doc["widgets"].get(dashboard_id, [])


def find_widget(doc, dashboard_id, widget_id):
    for widget in widgets_for(doc, dashboard_id):
        if widget.get("id") == widget_id:
            return widget
    raise NotFoundError("Widget", widget_id)


def add_widget(doc, dashboard_id, data, now=None):
    find_dashboard(doc, dashboard_id)
    stamp = _now_iso(now)
    widget = {
        **WIDGET_DEFAULTS,
        **{k: v for k, v in (data or {}).items() if k not in ("createdAt", "updatedAt")},
    }
    widget["id"] = widget.get("id") or str(uuid.uuid4())
    widget["createdAt"] = stamp
    widget["updatedAt"] = stamp
    validate_widget(widget)
    doc["widgets"].setdefault(dashboard_id, []).append(widget)
    doc["tombstones"]["widgets"].pop(widget["id"], None)
    return widget


def update_widget(doc, dashboard_id, widget_id, updates, now=None):
    widget = find_widget(doc, dashboard_id, widget_id)
    candidate = {**widget, **{k: v for k, v in updates.items() if k not in _IMMUTABLE_KEYS}}
    validate_widget(candidate)
    widget.clear()
    widget.update(candidate)
    widget["updatedAt"] = _now_iso(now)
    return widget


def delete_widget(doc, dashboard_id, widget_id, now=None):
    widget = find_widget(doc, dashboard_id, widget_id)
    doc["widgets"][dashboard_id] = [w for w in doc["widgets"][dashboard_id] if w.get("id") != widget_id]
    doc["tombstones"]["widgets"][widget_id] = _now_iso(now)
    return widget


# ═════════════════════════════════════════════════════════════════════════════
# Merge
# ═════════════════════════════════════════════════════════════════════════════

def _merge_tombstones(a, b):
    out = dict(a)
    for key, stamp in b.items():
        if key not in out or _stamp(stamp) > _stamp(out[key]):
            out[key] = stamp
    return out


def _pick(stored, incoming):
    """Last writer wins on updatedAt; on a tie the incoming copy wins.

    Returns (winner, stored_won_over_a_different_copy).
    """
    if stored is None:
        return incoming, False
    if incoming is None:
        return stored, False
    if _stamp(stored.get("updatedAt")) > _stamp(incoming.get("updatedAt")):
        return stored, stored != incoming
    return incoming, False


def _merge_entities(stored_items, incoming_items, tombstones, conflicts):
    """Merge two {id: entity} maps, preserving incoming order first."""
    order = list(incoming_items) + [k for k in stored_items if k not in incoming_items]
    merged = {}
    for key in order:
        winner, stored_won = _pick(stored_items.get(key), incoming_items.get(key))
        deleted_at = tombstones.get(key)
        if deleted_at is not None and _stamp(deleted_at) >= _stamp(winner.get("updatedAt")):
            continue
        if stored_won:
            conflicts.append(key)
        merged[key] = winner
    return merged


def merge_documents(stored, incoming):
    """Last-writer-wins merge of two dashboard documents.

    Dashboards and widgets are merged per id by ``updatedAt``; a tombstone
    removes any copy not updated after the deletion. The returned document
    carries ``version = max(stored, incoming)``; the caller bumps it.

    Returns:
        (merged_doc, conflicts) where conflicts lists ids whose stored copy
        won over a different incoming copy.
    """
    stored = coerce_store(stored)
    incoming_raw = incoming if isinstance(incoming, dict) else {}
    incoming = coerce_store(incoming_raw)
    conflicts = []

    tomb_d = _merge_tombstones(stored["tombstones"]["dashboards"], incoming["tombstones"]["dashboards"])
    tomb_w = _merge_tombstones(stored["tombstones"]["widgets"], incoming["tombstones"]["widgets"])
    tomb_d.pop(DEFAULT_DASHBOARD_ID, None)

    dashboards = _merge_entities(
        {d["id"]: d for d in stored["dashboards"]},
        {d["id"]: d for d in incoming["dashboards"]},
        tomb_d, conflicts,
    )

    def flatten(doc):
        return {
            w["id"]: {**w, "_dashboardId": dash_id}
            for dash_id, widgets in doc["widgets"].items()
            for w in widgets
        }

    widgets = _merge_entities(flatten(stored), flatten(incoming), tomb_w, conflicts)
    grouped = {}
    for widget in widgets.values():
        dash_id = widget.pop("_dashboardId")
        if dash_id in dashboards:
            grouped.setdefault(dash_id, []).append(widget)

    active = incoming.get("activeDashboardId")
    if active not in dashboards:
        active = stored.get("activeDashboardId")
    if active not in dashboards:
        active = DEFAULT_DASHBOARD_ID

    merged = {
        "dashboards": list(dashboards.values()),
        "activeDashboardId": active,
        "widgets": grouped,
        "snFavorites": incoming["snFavorites"] if "snFavorites" in incoming_raw else stored["snFavorites"],
        "version": max(stored["version"], incoming["version"]),
        "savedAt": stored.get("savedAt"),
        "tombstones": {"dashboards": tomb_d, "widgets": tomb_w},
    }
    if conflicts:
        logger.info("Dashboard merge kept stored copy for %d item(s)", len(conflicts))
    return merged, conflicts
