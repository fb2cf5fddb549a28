"""
Dashboard & widget configuration documents.

These are plain JSON documents (camelCase keys, as the browser stores them)
synced to one sys_user_preference record. The shape:

    {
        "dashboards": [DashboardConfig, ...],
        "activeDashboardId": str | None,
        "widgets": {dashboardId: [Widget, ...]},
        "snFavorites": [...],
        "version": int,
        "savedAt": ISO-8601 str | None,
        "tombstones": {"dashboards": {id: deletedAt}, "widgets": {id: deletedAt}}
    }

A widget belongs to exactly one dashboard, by id.
"""

import copy

# ── Dashboards ───────────────────────────────────────────────────────────────

DEFAULT_DASHBOARD_ID = "default-ritms"
UNSTAMPED = "1970-01-01T00:00:00Z"

DASHBOARD_TYPES = {"ritms", "incidents", "users", "custom"}
DASHBOARD_LAYOUTS = {"grid", "list", "table"}

# ── Widgets ──────────────────────────────────────────────────────────────────

WIDGET_TYPES = {"chart", "table", "metric", "list"}
CHART_TYPES = {"pie", "donut", "bar", "line"}
WIDGET_SIZES = {"small", "medium", "large", "full"}
WIDGET_LAYOUTS = {"card", "table", "list", "compact"}
AGGREGATIONS = {"count", "sum", "avg"}

DATA_SOURCE_LABELS = {
    "sc_req_item": "Request Items (RITMs)",
    "incident": "Incidents",
    "change_request": "Change Requests",
    "sys_user": "Users",
    "problem": "Problems",
    "task": "Tasks",
}

# Groupable fields per data source.
DATA_SOURCE_FIELDS = {
    "sc_req_item": ["state", "priority", "assigned_to", "category", "request"],
    "incident": ["state", "priority", "assigned_to", "category", "severity"],
    "change_request": ["state", "priority", "assigned_to", "type", "risk"],
    "sys_user": ["department", "location", "active", "title"],
    "problem": ["state", "priority", "assigned_to", "category"],
    "task": ["state", "priority", "assigned_to", "task_type"],
}

DATA_SOURCES = set(DATA_SOURCE_LABELS)

WIDGET_DEFAULTS = {
    "type": "chart",
    "title": "Untitled Widget",
    "dataSource": "sc_req_item",
    "chartType": "pie",
    "groupBy": "state",
    "limit": 100,
}


def default_dashboard(now_iso):
    return {
        "id": DEFAULT_DASHBOARD_ID,
        "name": "Team Dashboard",
        "description": "",
        "type": "ritms",
        "createdAt": now_iso,
        "updatedAt": now_iso,
        "settings": {"limit": 50, "layout": "grid", "filters": {}},
    }


def empty_store(now_iso):
    """A fresh document holding only the default dashboard."""
    return {
        "dashboards": [default_dashboard(now_iso)],
        "activeDashboardId": DEFAULT_DASHBOARD_ID,
        "widgets": {},
        "snFavorites": [],
        "version": 0,
        "savedAt": None,
        "tombstones": {"dashboards": {}, "widgets": {}},
    }


def coerce_store(doc):
    """Fill missing keys on a stored or incoming document.

    Returns a deep copy; the input is never mutated. Unknown keys are kept.
    A default dashboard filled in here is stamped at the epoch so it never
    wins a merge against a real copy.
    """
    base = empty_store(UNSTAMPED)
    if not isinstance(doc, dict):
        return base
    out = copy.deepcopy(doc)
    dashboards = out.get("dashboards")
    out["dashboards"] = [d for d in dashboards if isinstance(d, dict) and d.get("id")] \
        if isinstance(dashboards, list) else base["dashboards"]
    if not any(d["id"] == DEFAULT_DASHBOARD_ID for d in out["dashboards"]):
        out["dashboards"].insert(0, default_dashboard(UNSTAMPED))
    widgets = out.get("widgets")
    out["widgets"] = {
        k: [w for w in v if isinstance(w, dict) and w.get("id")]
        for k, v in widgets.items() if isinstance(v, list)
    } if isinstance(widgets, dict) else {}
    if not isinstance(out.get("snFavorites"), list):
        out["snFavorites"] = []
    try:
        out["version"] = int(out.get("version") or 0)
    except (TypeError, ValueError):
        out["version"] = 0
    out.setdefault("savedAt", None)
    out.setdefault("activeDashboardId", DEFAULT_DASHBOARD_ID)
    tombstones = out.get("tombstones") if isinstance(out.get("tombstones"), dict) else {}
    out["tombstones"] = {
        "dashboards": dict(tombstones.get("dashboards") or {}),
        "widgets": dict(tombstones.get("widgets") or {}),
    }
    return out
