"""
Discovery Onboarding Service — phase reconstruction, due dates, escalation.

Everything here is pure: inputs are Table API rows (raw or display_value=all)
and an explicit ``now``; nothing calls ServiceNow.

Two notions of "escalated" exist and are reported side by side:
  - overdue:    discovery item whose next action is past due by ≥ 1 day
                (fixed 7 / 7 / 3 day schedule after emails 1 / 2 / 3)
  - escalated:  discovery item whose RITM state text contains "pending"
Rows where the two disagree carry ``escalationMismatch: true``.
"""

import logging
import math
from datetime import datetime, timedelta, timezone

from snowdash.models.fields import display, sys_id, value
from snowdash.models.workflow import (
    EMAIL_PHASES,
    NEXT_ACTIONS,
    PHASE_LABELS,
    STATUS_TO_PHASE,
    ActionDueInfo,
    Phase,
    WorkflowState,
    offset_for,
)
from snowdash.utils.helpers import parse_sn_datetime, to_iso

logger = logging.getLogger(__name__)

DISCOVERY_CATALOG_MARKERS = ("initiate discovery", "discovery process")
_DAY_SECONDS = 86400
_PLACEHOLDER = "—"

STATUS_FILTERS = {"all", "discovery", "escalation"} | {p.value for p in Phase}


def _now(now=None):
    return now or datetime.now(timezone.utc)


def item_sys_id(item):
    return sys_id(item.get("sys_id")) or ""


# ═════════════════════════════════════════════════════════════════════════════
# Phase & state reconstruction
# ═════════════════════════════════════════════════════════════════════════════

def phase_from_status(text):
    """Map u_discovery_status text to a Phase (case-insensitive, default NEW)."""
    return STATUS_TO_PHASE.get((text or "").strip().lower(), Phase.NEW)


def build_workflow_state(item, now=None):
    """Rebuild the workflow state of one RITM from its custom fields."""
    now = _now(now)
    start = parse_sn_datetime(value(item.get("sys_created_on"))) or now
    phase = phase_from_status(value(item.get("u_discovery_status")))
    if phase == Phase.NEW:
        return WorkflowState(phase=Phase.NEW, start_date=start)

    last_email = parse_sn_datetime(value(item.get("u_last_email_date")))
    dates = {}
    if phase in EMAIL_PHASES and last_email:
        dates[f"email{phase.value[-1]}_date"] = last_email
    return WorkflowState(
        phase=phase,
        start_date=start,
        host_ip=value(item.get("u_host_ip")) or None,
        network_type="F" if value(item.get("u_network_type")) == "F" else "N",
        notes=value(item.get("u_notes")) or None,
        **dates,
    )


def demo_state(index, item, now=None):
    """Synthetic state for the index-th discovery item in demo mode."""
    now = _now(now)
    ten_days_ago = now - timedelta(days=10)
    if index == 0:
        return WorkflowState(phase=Phase.RESPONSE_RECEIVED, start_date=ten_days_ago)
    if index == 1:
        return WorkflowState(phase=Phase.EMAIL_1, start_date=ten_days_ago, email1_date=ten_days_ago)
    if index == 2:
        eight_days_ago = now - timedelta(days=8)
        return WorkflowState(
            phase=Phase.EMAIL_2,
            start_date=eight_days_ago,
            email1_date=eight_days_ago - timedelta(days=7),
            email2_date=eight_days_ago,
        )
    start = parse_sn_datetime(value(item.get("sys_created_on"))) or now
    return WorkflowState(phase=Phase.NEW, start_date=start)


def build_states(items, now=None, demo=False):
    """sys_id → WorkflowState for every item. Demo states never persist."""
    now = _now(now)
    states = {}
    discovery_index = 0
    for item in items:
        key = item_sys_id(item)
        if demo and is_discovery_item(item):
            states[key] = demo_state(discovery_index, item, now)
            discovery_index += 1
        else:
            states[key] = build_workflow_state(item, now)
    return states


# ═════════════════════════════════════════════════════════════════════════════
# Due-date calculator
# ═════════════════════════════════════════════════════════════════════════════

def get_action_due_info(state, now=None):
    """Next action, due date and whole days overdue for a workflow state.

    new                 → due = start date, never overdue here
    email_N with date   → due = date + 7 / 7 / 3 days
    email_N, no date    → not yet due
    response_received   → no due date
    """
    now = _now(now)
    phase = state.phase
    if phase == Phase.NEW:
        return ActionDueInfo(state.start_date, 0, NEXT_ACTIONS[Phase.NEW])
    if phase in EMAIL_PHASES:
        sent = state.email_date(phase)
        if not sent:
            return ActionDueInfo(None, 0, NEXT_ACTIONS[phase])
        due = sent + offset_for(phase)
        days = math.floor((now - due).total_seconds() / _DAY_SECONDS)
        return ActionDueInfo(due, max(0, days), NEXT_ACTIONS[phase])
    if phase == Phase.RESPONSE_RECEIVED:
        return ActionDueInfo(None, 0, NEXT_ACTIONS[phase])
    return ActionDueInfo(None, 0, "")


# ═════════════════════════════════════════════════════════════════════════════
# Classification
# ═════════════════════════════════════════════════════════════════════════════

def catalog_item(item):
    return display(item.get("cat_item"), _PLACEHOLDER)


def ritm_state_text(item):
    return display(item.get("state"), _PLACEHOLDER).strip().lower()


def is_discovery_item(item):
    name = catalog_item(item).lower()
    return any(marker in name for marker in DISCOVERY_CATALOG_MARKERS)


def is_pending(item):
    return "pending" in ritm_state_text(item)


def is_overdue(item, state, now=None):
    if not is_discovery_item(item):
        return False
    return get_action_due_info(state, now).days_overdue > 0


def is_escalated(item):
    """Discovery item whose RITM state is Pending."""
    return is_discovery_item(item) and is_pending(item)


def phase_label(phase):
    return PHASE_LABELS.get(Phase(phase), str(phase))


def phase_badge(phase):
    """Colour bucket for the phase badge."""
    phase = Phase(phase)
    if phase == Phase.COMPLETED:
        return "success"
    if phase in (Phase.NEW, Phase.ESCALATION):
        return "danger"
    if phase == Phase.RESPONSE_RECEIVED:
        return "positive"
    if phase in EMAIL_PHASES:
        return "info"
    return "muted"


# ═════════════════════════════════════════════════════════════════════════════
# Aggregates
# ═════════════════════════════════════════════════════════════════════════════

def _state_for(states, item):
    return states.get(item_sys_id(item)) or WorkflowState(
        phase=Phase.NEW, start_date=datetime.now(timezone.utc)
    )


def summarize(items, states, now=None):
    """Stats cards. open / pending / inProgress count every item."""
    now = _now(now)
    discovery = [i for i in items if is_discovery_item(i)]
    return {
        "total": len(discovery),
        "open": sum(1 for i in items if "open" in ritm_state_text(i)),
        "pending": sum(1 for i in items if "pending" in ritm_state_text(i)),
        "inProgress": sum(1 for i in items if "progress" in ritm_state_text(i)),
        "escalated": sum(1 for i in discovery if is_pending(i)),
        "completed": sum(1 for i in discovery if _state_for(states, i).phase == Phase.COMPLETED),
        "overdue": sum(1 for i in discovery if is_overdue(i, _state_for(states, i), now)),
    }


def filter_items(items, states, search="", status_filter="all"):
    """Search number / catalog item / requester, then apply the status filter."""
    term = (search or "").strip().lower()
    status_filter = status_filter or "all"

    def matches(item):
        if not term:
            return True
        haystack = (
            display(item.get("number"), _PLACEHOLDER),
            catalog_item(item),
            display(item.get("requested_for"), _PLACEHOLDER),
        )
        return any(term in text.lower() for text in haystack)

    out = []
    for item in items:
        if not matches(item):
            continue
        if status_filter == "all":
            out.append(item)
        elif status_filter == "discovery":
            if is_discovery_item(item):
                out.append(item)
        elif status_filter == "escalation":
            if is_escalated(item):
                out.append(item)
        elif _state_for(states, item).phase.value == status_filter:
            out.append(item)
    return out


def record_url(instance_url, ritm_sys_id):
    if not instance_url or not ritm_sys_id:
        return None
    return f"{instance_url}/nav_to.do?uri=sc_req_item.do?sys_id={ritm_sys_id}"


def build_row(item, state, instance_url, now=None):
    now = _now(now)
    discovery = is_discovery_item(item)
    due = get_action_due_info(state, now)
    overdue = discovery and due.days_overdue > 0
    escalated = discovery and is_pending(item)
    key = item_sys_id(item)
    return {
        "sysId": key,
        "number": display(item.get("number"), _PLACEHOLDER),
        "catalogItem": catalog_item(item),
        "requester": display(item.get("requested_for"), _PLACEHOLDER),
        "state": display(item.get("state"), _PLACEHOLDER),
        "shortDescription": display(item.get("short_description")),
        "isDiscovery": discovery,
        "workflow": state.to_dict(),
        "phase": state.phase.value,
        "phaseLabel": phase_label(state.phase),
        "phaseBadge": phase_badge(state.phase),
        "due": due.to_dict(),
        "overdue": overdue,
        "escalated": escalated,
        "escalationMismatch": discovery and overdue != escalated,
        "expandable": discovery and "progress" in ritm_state_text(item),
        "url": record_url(instance_url, key),
    }


def build_discovery_view(
    items,
    *,
    instance_url="",
    now=None,
    demo=False,
    search="",
    status_filter="all",
    poll_seconds=45,
):
    """Rows, stats and polling hint for the Discovery Onboarding table."""
    now = _now(now)
    states = build_states(items, now, demo)
    visible = filter_items(items, states, search, status_filter)
    rows = [build_row(i, states[item_sys_id(i)], instance_url, now) for i in visible]
    mismatches = sum(1 for r in rows if r["escalationMismatch"])
    if mismatches:
        logger.debug("Discovery view: %d rows where overdue and pending disagree", mismatches)
    return {
        "rows": rows,
        "stats": summarize(items, states, now),
        "demo": bool(demo),
        "pollSeconds": poll_seconds,
        "generatedAt": to_iso(now),
        "instanceUrl": instance_url,
    }
