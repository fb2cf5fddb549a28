"""Widget rendering tests — renderers, label formatting and the widget API."""

import json
from unittest.mock import patch

import pytest

from snowdash.core.exceptions import ServiceNowError, ValidationError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.models.dashboard import DEFAULT_DASHBOARD_ID, empty_store
from snowdash.services import formatting, widget_service

GATEWAY = gw_module.servicenow_gateway

RECORDS = [
    {"sys_id": "r1", "number": "RITM001", "short_description": "Laptop", "state": "Open", "priority": "1"},
    {"sys_id": "r2", "number": "RITM002", "short_description": "", "state": "Closed", "priority": "3"},
    {"sys_id": "r3", "number": "RITM003", "state": "Open", "priority": "high"},
    {"sys_id": "r4", "number": "RITM004", "state": ""},
]


class TestFormatting:
    @pytest.mark.parametrize("raw,label", [
        ("1", "Critical"), ("Critical", "Critical"), ("2", "High"), ("high", "High"),
        ("3", "Medium"), ("4", "Low"), ("", "Low"), (None, "Low"),
        ("1 - Critical", "Critical"), ("2 - High", "High"), ("4 - Low", "Low"),
        ({"value": "1", "display_value": "1 - Critical"}, "Critical"),
        ({"value": "3", "display_value": "3 - Moderate"}, "Medium"),
    ])
    def test_priority_label(self, raw, label):
        assert formatting.priority_label(raw) == label

    @pytest.mark.parametrize("raw,label", [
        ("1", "New"), ("Assigned", "In Progress"), ("3", "In Progress"),
        ("4", "Resolved"), ("7", "Closed"), ("5", "Cancelled"), ("Awaiting Info", "Awaiting Info"),
    ])
    def test_state_label(self, raw, label):
        assert formatting.state_label(raw) == label

    def test_priority_colour(self):
        assert formatting.priority_colour("1") == "danger"
        assert formatting.priority_colour("high") == "danger"
        assert formatting.priority_colour("2") == "warning"
        assert formatting.priority_colour("3") == "success"
        assert formatting.priority_colour("5") == "muted"
        assert formatting.priority_colour("1 - Critical") == "danger"
        assert formatting.priority_colour({"value": "2", "display_value": "2 - High"}) == "warning"

    def test_state_label_prefers_choice_code(self):
        assert formatting.state_label({"value": "2", "display_value": "Work in Progress"}) == "In Progress"
        assert formatting.state_label({"value": "-5", "display_value": "Pending"}) == "Pending"

    def test_column_header(self):
        assert formatting.column_header("short_description") == "Short Description"
        assert formatting.column_header("number") == "Number"


class TestRenderers:
    def test_chart_groups_by_display_value(self, credential):
        with patch.object(GATEWAY, "get_records", return_value=RECORDS) as get_records:
            payload = widget_service.render_widget(credential, {
                "id": "w1", "type": "chart", "chartType": "bar", "dataSource": "incident",
                "groupBy": "state", "filter": "active=true",
            })
        assert payload["widgetId"] == "w1"
        assert payload["chartType"] == "bar"
        assert payload["data"] == [
            {"name": "Open", "value": 2, "count": 2},
            {"name": "Closed", "value": 1, "count": 1},
            {"name": "Unknown", "value": 1, "count": 1},
        ]
        args, kwargs = get_records.call_args
        assert args[1] == "incident"
        assert kwargs["query"] == "active=true"
        assert kwargs["limit"] == 100
        assert kwargs["display_value"] == "all"

    def test_metric_counts_records(self, credential):
        with patch.object(GATEWAY, "get_records", return_value=RECORDS) as get_records:
            payload = widget_service.render_widget(credential, {"type": "metric"})
        assert payload["count"] == 4
        assert payload["label"] == "Request Items (RITMs)"
        assert payload["filter"] is None
        assert get_records.call_args.kwargs["fields"] == "sys_id"
        assert get_records.call_args.kwargs["limit"] == 1000

    def test_table_rows_and_headers(self, credential):
        with patch.object(GATEWAY, "get_records", return_value=RECORDS[:2]) as get_records:
            payload = widget_service.render_widget(credential, {
                "type": "table", "columns": ["number", "short_description"],
            })
        assert payload["columns"] == [
            {"field": "number", "header": "Number"},
            {"field": "short_description", "header": "Short Description"},
        ]
        assert payload["rows"] == [
            {"number": "RITM001", "short_description": "Laptop"},
            {"number": "RITM002", "short_description": "-"},
        ]
        assert payload["total"] == 2
        assert get_records.call_args.kwargs["limit"] == 10

    def test_table_default_columns(self, credential):
        with patch.object(GATEWAY, "get_records", return_value=[]):
            payload = widget_service.render_widget(credential, {"type": "table"})
        assert [c["field"] for c in payload["columns"]] == widget_service.DEFAULT_TABLE_COLUMNS

    def test_list_items(self, credential):
        users = [{"sys_id": "u1", "user_name": "jdoe", "email": "j@example.com"}]
        with patch.object(GATEWAY, "get_records", return_value=RECORDS[:1] + users):
            payload = widget_service.render_widget(credential, {"type": "list", "limit": 5})
        first, second = payload["items"]
        assert first == {
            "sysId": "r1", "title": "RITM001", "subtitle": "Laptop", "state": "Open",
            "stateLabel": "Open", "priorityLabel": "Critical", "priorityColour": "danger",
        }
        assert second["title"] == "jdoe"
        assert second["subtitle"] == "j@example.com"
        assert second["state"] is None
        assert second["priorityLabel"] == "Low"

    def test_list_items_from_display_value_all_rows(self, credential):
        rows = [
            {
                "sys_id": {"display_value": "a" * 32, "value": "a" * 32},
                "number": {"display_value": "RITM0010001", "value": "RITM0010001"},
                "short_description": {"display_value": "New laptop", "value": "New laptop"},
                "state": {"display_value": "Work in Progress", "value": "2"},
                "priority": {"display_value": "1 - Critical", "value": "1"},
            },
            {
                "sys_id": {"display_value": "b" * 32, "value": "b" * 32},
                "number": {"display_value": "RITM0010002", "value": "RITM0010002"},
                "state": {"display_value": "Open", "value": "1"},
                "priority": {"display_value": "2 - High", "value": "2"},
            },
        ]
        with patch.object(GATEWAY, "get_records", return_value=rows):
            payload = widget_service.render_widget(credential, {"type": "list"})
        first, second = payload["items"]
        assert first["sysId"] == "a" * 32
        assert first["state"] == "Work in Progress"
        assert first["stateLabel"] == "In Progress"
        assert (first["priorityLabel"], first["priorityColour"]) == ("Critical", "danger")
        assert second["subtitle"] == "Open"
        assert second["stateLabel"] == "New"
        assert (second["priorityLabel"], second["priorityColour"]) == ("High", "warning")

    def test_chart_groups_display_value_all_rows_by_label(self, credential):
        rows = [
            {"priority": {"display_value": "1 - Critical", "value": "1"}},
            {"priority": {"display_value": "1 - Critical", "value": "1"}},
            {"priority": {"display_value": "", "value": ""}},
        ]
        with patch.object(GATEWAY, "get_records", return_value=rows):
            payload = widget_service.render_widget(credential, {"type": "chart", "groupBy": "priority"})
        assert payload["data"] == [
            {"name": "1 - Critical", "value": 2, "count": 2},
            {"name": "Unknown", "value": 1, "count": 1},
        ]

    def test_invalid_widget_is_rejected_before_fetch(self, credential):
        with patch.object(GATEWAY, "get_records") as get_records:
            with pytest.raises(ValidationError):
                widget_service.render_widget(credential, {"type": "gauge"})
        get_records.assert_not_called()


class TestWidgetApi:
    def test_render_preview(self, auth_client):
        with patch.object(GATEWAY, "get_records", return_value=RECORDS):
            res = auth_client.post("/api/widgets/render", json={"widget": {"type": "metric"}})
        assert res.status_code == 200
        assert res.get_json()["count"] == 4

    def test_render_requires_widget(self, auth_client):
        res = auth_client.post("/api/widgets/render", json={"widget": "metric"})
        assert res.status_code == 400
        assert res.get_json()["error"] == "widget is required"

    def test_render_upstream_failure(self, auth_client):
        with patch.object(GATEWAY, "get_records", side_effect=ServiceNowError("down", None)):
            res = auth_client.post("/api/widgets/render", json={"widget": {"type": "metric"}})
        assert res.status_code == 500
        assert res.get_json()["error"] == "Failed to fetch widget data"

    def test_saved_widget_data(self, auth_client):
        doc = empty_store("2024-06-01T10:00:00Z")
        doc["widgets"][DEFAULT_DASHBOARD_ID] = [{"id": "w1", "type": "metric", "dataSource": "incident"}]
        preference = [{"sys_id": "p1", "value": json.dumps(doc)}]

        def get_records(credential, table, **kwargs):
            return preference if table == "sys_user_preference" else RECORDS

        with patch.object(GATEWAY, "get_records", side_effect=get_records):
            res = auth_client.get(f"/api/widgets/{DEFAULT_DASHBOARD_ID}/w1/data")
        assert res.status_code == 200
        body = res.get_json()
        assert body["widgetId"] == "w1"
        assert body["label"] == "Incidents"

    def test_unknown_saved_widget(self, auth_client):
        with patch.object(GATEWAY, "get_records", return_value=[]):
            res = auth_client.get(f"/api/widgets/{DEFAULT_DASHBOARD_ID}/nope/data")
        assert res.status_code == 404
