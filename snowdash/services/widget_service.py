"""
Widget Service — server-side data for chart, metric, table and list widgets.

Each widget names a data source (a ServiceNow table), an optional encoded
query filter and a limit. Records are fetched with both display and raw
values: grouping and cells show the label a ServiceNow user would see,
while priority and state buckets key on the raw choice code.
"""

import logging
from collections import Counter

from snowdash.models.dashboard import DATA_SOURCE_LABELS, WIDGET_DEFAULTS
from snowdash.models.fields import display, record_field, sys_id
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.services import dashboard_store, formatting

logger = logging.getLogger(__name__)

DEFAULT_TABLE_COLUMNS = ["number", "short_description", "state", "priority"]
DEFAULT_CHART_LIMIT = 100
DEFAULT_ROWS_LIMIT = 10
METRIC_LIMIT = 1000
UNKNOWN = "Unknown"
EMPTY_CELL = "-"


def _fetch(credential, widget, limit, fields=None):
    return gw_module.servicenow_gateway.get_records(
        credential, widget.get("dataSource") or WIDGET_DEFAULTS["dataSource"],
        limit=limit, query=widget.get("filter") or "", fields=fields, display_value="all",
    )


def group_counts(records, group_by):
    """[{name, value, count}] in first-seen order; empty keys count as 'Unknown'."""
    counts = Counter(display(r.get(group_by)) or UNKNOWN for r in records)
    return [{"name": name, "value": n, "count": n} for name, n in counts.items()]


def render_chart(credential, widget):
    group_by = widget.get("groupBy") or "state"
    records = _fetch(credential, widget, widget.get("limit") or DEFAULT_CHART_LIMIT)
    return {
        "chartType": widget.get("chartType") or "pie",
        "groupBy": group_by,
        "data": group_counts(records, group_by),
    }


def render_metric(credential, widget):
    source = widget.get("dataSource") or WIDGET_DEFAULTS["dataSource"]
    records = _fetch(credential, widget, METRIC_LIMIT, fields="sys_id")
    return {
        "count": len(records),
        "label": DATA_SOURCE_LABELS.get(source, source),
        "filter": widget.get("filter") or None,
    }


def render_table(credential, widget):
    columns = widget.get("columns") or DEFAULT_TABLE_COLUMNS
    records = _fetch(credential, widget, widget.get("limit") or DEFAULT_ROWS_LIMIT)
    return {
        "columns": [{"field": c, "header": formatting.column_header(c)} for c in columns],
        "rows": [
            {c: (display(r.get(c)) or EMPTY_CELL) for c in columns}
            for r in records
        ],
        "total": len(records),
    }


def render_list(credential, widget):
    records = _fetch(credential, widget, widget.get("limit") or DEFAULT_ROWS_LIMIT)
    items = []
    for idx, r in enumerate(records):
        state = record_field(r, "state")
        items.append({
            "sysId": sys_id(r.get("sys_id")),
            "title": record_field(r, "number") or record_field(r, "user_name") or f"Item {idx + 1}",
            "subtitle": (record_field(r, "short_description") or record_field(r, "email")
                         or state or EMPTY_CELL),
            "state": state or None,
            "stateLabel": formatting.state_label(r.get("state")) if state else None,
            "priorityLabel": formatting.priority_label(r.get("priority")),
            "priorityColour": formatting.priority_colour(r.get("priority")),
        })
    return {"items": items, "total": len(items)}


_RENDERERS = {
    "chart": render_chart,
    "metric": render_metric,
    "table": render_table,
    "list": render_list,
}


def render_widget(credential, widget):
    """Validate a widget definition and return its data payload.

    Raises ValidationError for a malformed widget and ServiceNowError when
    the data fetch fails.
    """
    widget = dict(widget or {})
    widget["type"] = widget.get("type") or WIDGET_DEFAULTS["type"]
    widget["dataSource"] = widget.get("dataSource") or WIDGET_DEFAULTS["dataSource"]
    dashboard_store.validate_widget(widget)
    payload = _RENDERERS[widget["type"]](credential, widget)
    logger.debug("Rendered %s widget source=%s", widget["type"], widget["dataSource"])
    return {"widgetId": widget.get("id"), "type": widget["type"], "title": widget.get("title"), **payload}
