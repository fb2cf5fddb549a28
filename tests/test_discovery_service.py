"""
Discovery Onboarding workflow tests.

Block 1: Phase reconstruction from u_* fields
Block 2: Due-date calculator (7 / 7 / 3 day schedule)
Block 3: Discovery / pending / overdue classification
Block 4: Demo mode fixtures
Block 5: View assembly — rows, stats, filters
"""

from datetime import datetime, timedelta, timezone

import pytest

from snowdash.models.workflow import Phase, WorkflowState
from snowdash.services import discovery_service as svc

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def _sn(dt):
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _item(sys_id="r1", number="RITM0010001", cat_item="Initiate Discovery Process",
          state="Open", status=None, last_email=None, created=None, **extra):
    """sc_req_item row as returned with sysparm_display_value=all."""
    item = {
        "sys_id": {"value": sys_id, "display_value": sys_id},
        "number": {"value": number, "display_value": number},
        "cat_item": {"value": "c1", "display_value": cat_item},
        "state": {"value": "1", "display_value": state},
        "requested_for": {"value": "u1", "display_value": "Jane Doe"},
        "sys_created_on": {"value": _sn(created or NOW - timedelta(days=20)),
                           "display_value": "x"},
    }
    if status is not None:
        item["u_discovery_status"] = {"value": status, "display_value": status}
    if last_email is not None:
        item["u_last_email_date"] = {"value": _sn(last_email), "display_value": "x"}
    item.update(extra)
    return item


# ═════════════════════════════════════════════════════════════════════════════
# Block 1: Phase reconstruction
# ═════════════════════════════════════════════════════════════════════════════

class TestPhaseReconstruction:
    @pytest.mark.parametrize("status,phase", [
        ("email_1_sent", Phase.EMAIL_1),
        ("EMAIL_2_SENT", Phase.EMAIL_2),
        ("email_3_sent", Phase.EMAIL_3),
        ("escalated", Phase.ESCALATION),
        ("response_received", Phase.RESPONSE_RECEIVED),
        ("completed", Phase.COMPLETED),
        ("", Phase.NEW),
        ("something_else", Phase.NEW),
    ])
    def test_phase_from_status(self, status, phase):
        assert svc.phase_from_status(status) == phase

    def test_new_item_starts_at_created_date(self):
        created = NOW - timedelta(days=3)
        state = svc.build_workflow_state(_item(created=created), NOW)
        assert state.phase == Phase.NEW
        assert state.start_date == created

    def test_last_email_date_lands_on_current_phase(self):
        sent = NOW - timedelta(days=2)
        state = svc.build_workflow_state(_item(status="email_2_sent", last_email=sent), NOW)
        assert state.phase == Phase.EMAIL_2
        assert state.email2_date == sent
        assert state.email1_date is None

    def test_host_fields_are_read(self):
        item = _item(
            status="response_received",
            u_host_ip={"value": "10.1.2.3"},
            u_network_type={"value": "F"},
            u_notes={"value": "rack 4"},
        )
        state = svc.build_workflow_state(item, NOW)
        assert (state.host_ip, state.network_type, state.notes) == ("10.1.2.3", "F", "rack 4")

    def test_unknown_network_type_defaults_to_n(self):
        item = _item(status="email_1_sent", u_network_type={"value": "X"})
        assert svc.build_workflow_state(item, NOW).network_type == "N"


# ═════════════════════════════════════════════════════════════════════════════
# Block 2: Due-date calculator
# ═════════════════════════════════════════════════════════════════════════════

class TestActionDueInfo:
    def test_email_2_sent_ten_days_ago_is_three_days_overdue(self):
        """
        Given Email 2 was sent 10 days ago
        When the due info is computed
        Then the next action is Email 3, due 3 days ago
        """
        sent = NOW - timedelta(days=10)
        state = WorkflowState(phase=Phase.EMAIL_2, start_date=sent, email2_date=sent)

        info = svc.get_action_due_info(state, NOW)

        assert info.days_overdue == 3
        assert info.next_action == "Send Email 3"
        assert info.due_date == sent + timedelta(days=7)

    def test_email_3_due_after_three_days(self):
        sent = NOW - timedelta(days=2)
        state = WorkflowState(phase=Phase.EMAIL_3, start_date=sent, email3_date=sent)
        info = svc.get_action_due_info(state, NOW)
        assert info.due_date == sent + timedelta(days=3)
        assert info.days_overdue == 0
        assert info.next_action == "Escalate"

    def test_partial_day_is_not_overdue(self):
        sent = NOW - timedelta(days=7, hours=23)
        state = WorkflowState(phase=Phase.EMAIL_1, start_date=sent, email1_date=sent)
        assert svc.get_action_due_info(state, NOW).days_overdue == 0

    def test_email_phase_without_date_is_not_due(self):
        state = WorkflowState(phase=Phase.EMAIL_1, start_date=NOW)
        info = svc.get_action_due_info(state, NOW)
        assert info.due_date is None
        assert info.next_action == "Send Email 2"

    def test_new_is_due_at_start(self):
        start = NOW - timedelta(days=30)
        info = svc.get_action_due_info(WorkflowState(phase=Phase.NEW, start_date=start), NOW)
        assert info.due_date == start
        assert info.days_overdue == 0
        assert info.next_action == "Send Email 1"

    def test_response_received_has_no_due_date(self):
        info = svc.get_action_due_info(WorkflowState(phase=Phase.RESPONSE_RECEIVED, start_date=NOW), NOW)
        assert info.due_date is None
        assert info.next_action == "Schedule TEM / Complete"

    def test_completed_has_no_next_action(self):
        info = svc.get_action_due_info(WorkflowState(phase=Phase.COMPLETED, start_date=NOW), NOW)
        assert info.next_action == ""


# ═════════════════════════════════════════════════════════════════════════════
# Block 3: Classification
# ═════════════════════════════════════════════════════════════════════════════

class TestClassification:
    @pytest.mark.parametrize("name,expected", [
        ("Initiate Discovery Process", True),
        ("Network DISCOVERY PROCESS request", True),
        ("Laptop refresh", False),
    ])
    def test_is_discovery_item(self, name, expected):
        assert svc.is_discovery_item(_item(cat_item=name)) is expected

    def test_escalated_means_discovery_and_pending(self):
        assert svc.is_escalated(_item(state="Pending Approval")) is True
        assert svc.is_escalated(_item(state="Open")) is False
        assert svc.is_escalated(_item(cat_item="Laptop", state="Pending")) is False

    def test_overdue_requires_discovery_item(self):
        sent = NOW - timedelta(days=30)
        state = WorkflowState(phase=Phase.EMAIL_1, start_date=sent, email1_date=sent)
        assert svc.is_overdue(_item(), state, NOW) is True
        assert svc.is_overdue(_item(cat_item="Laptop"), state, NOW) is False

    def test_phase_badges(self):
        assert svc.phase_badge(Phase.COMPLETED) == "success"
        assert svc.phase_badge(Phase.NEW) == "danger"
        assert svc.phase_badge(Phase.RESPONSE_RECEIVED) == "positive"
        assert svc.phase_badge("email_2") == "info"

    def test_new_phase_is_labelled_escalated(self):
        assert svc.phase_label(Phase.NEW) == "Escalated"


# ═════════════════════════════════════════════════════════════════════════════
# Block 4: Demo mode
# ═════════════════════════════════════════════════════════════════════════════

class TestDemoMode:
    def test_first_three_discovery_items_get_fixture_states(self):
        items = [
            _item(sys_id="a"),
            _item(sys_id="skip", cat_item="Laptop"),
            _item(sys_id="b"),
            _item(sys_id="c"),
            _item(sys_id="d"),
        ]
        states = svc.build_states(items, NOW, demo=True)

        assert states["a"].phase == Phase.RESPONSE_RECEIVED
        assert states["b"].phase == Phase.EMAIL_1
        assert states["b"].email1_date == NOW - timedelta(days=10)
        assert states["c"].phase == Phase.EMAIL_2
        assert svc.get_action_due_info(states["c"], NOW).days_overdue == 1
        assert states["d"].phase == Phase.NEW
        assert states["skip"].phase == Phase.NEW

    def test_demo_ignores_stored_status(self):
        states = svc.build_states([_item(sys_id="a", status="completed")], NOW, demo=True)
        assert states["a"].phase == Phase.RESPONSE_RECEIVED


# ═════════════════════════════════════════════════════════════════════════════
# Block 5: View assembly
# ═════════════════════════════════════════════════════════════════════════════

class TestDiscoveryView:
    def _items(self):
        return [
            _item(sys_id="r1", number="RITM0000001", state="Work in Progress",
                  status="email_2_sent", last_email=NOW - timedelta(days=10)),
            _item(sys_id="r2", number="RITM0000002", state="Pending", status="email_1_sent",
                  last_email=NOW - timedelta(days=1)),
            _item(sys_id="r3", number="RITM0000003", state="Open", status="completed"),
            _item(sys_id="r4", number="RITM0000004", cat_item="Laptop refresh", state="Open"),
        ]

    def test_rows_carry_due_info_and_both_escalation_flags(self):
        view = svc.build_discovery_view(
            self._items(), instance_url="https://test.service-now.com", now=NOW,
        )
        rows = {r["sysId"]: r for r in view["rows"]}

        overdue = rows["r1"]
        assert overdue["overdue"] is True
        assert overdue["escalated"] is False
        assert overdue["escalationMismatch"] is True
        assert overdue["due"]["daysOverdue"] == 3
        assert overdue["due"]["nextAction"] == "Send Email 3"
        assert overdue["expandable"] is True
        assert overdue["url"] == (
            "https://test.service-now.com/nav_to.do?uri=sc_req_item.do?sys_id=r1"
        )

        pending = rows["r2"]
        assert pending["overdue"] is False
        assert pending["escalated"] is True
        assert pending["escalationMismatch"] is True

        assert rows["r4"]["isDiscovery"] is False
        assert rows["r4"]["escalationMismatch"] is False

    def test_stats(self):
        view = svc.build_discovery_view(self._items(), now=NOW)
        assert view["stats"] == {
            "total": 3,
            "open": 2,
            "pending": 1,
            "inProgress": 1,
            "escalated": 1,
            "completed": 1,
            "overdue": 1,
        }

    def test_search_matches_number_case_insensitively(self):
        view = svc.build_discovery_view(self._items(), now=NOW, search="ritm0000002")
        assert [r["sysId"] for r in view["rows"]] == ["r2"]

    def test_search_matches_requester(self):
        view = svc.build_discovery_view(self._items(), now=NOW, search="jane")
        assert len(view["rows"]) == 4

    @pytest.mark.parametrize("status_filter,expected", [
        ("discovery", ["r1", "r2", "r3"]),
        ("escalation", ["r2"]),
        ("email_2", ["r1"]),
        ("completed", ["r3"]),
        ("all", ["r1", "r2", "r3", "r4"]),
    ])
    def test_status_filters(self, status_filter, expected):
        view = svc.build_discovery_view(self._items(), now=NOW, status_filter=status_filter)
        assert [r["sysId"] for r in view["rows"]] == expected

    def test_stats_ignore_filters(self):
        view = svc.build_discovery_view(self._items(), now=NOW, status_filter="completed")
        assert view["stats"]["total"] == 3

    def test_view_metadata(self):
        view = svc.build_discovery_view([], now=NOW, demo=True, poll_seconds=45)
        assert view["rows"] == []
        assert view["demo"] is True
        assert view["pollSeconds"] == 45
        assert view["generatedAt"] == "2024-06-15T12:00:00Z"
