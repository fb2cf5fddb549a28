"""
Discovery Onboarding workflow — phases and per-item state.

A request item's workflow state is never stored by this service. It is
rebuilt on every read from five custom fields on sc_req_item
(u_discovery_status, u_last_email_date, u_host_ip, u_network_type, u_notes).

Phase order for the email sequence:
    new → email_1 → email_2 → email_3
escalation, response_received and completed are set in ServiceNow by people
and only ever read from u_discovery_status.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from snowdash.utils.helpers import to_iso


class Phase(str, Enum):
    NEW = "new"
    EMAIL_1 = "email_1"
    EMAIL_2 = "email_2"
    EMAIL_3 = "email_3"
    ESCALATION = "escalation"
    RESPONSE_RECEIVED = "response_received"
    COMPLETED = "completed"


EMAIL_PHASES = (Phase.EMAIL_1, Phase.EMAIL_2, Phase.EMAIL_3)

# u_discovery_status value → phase
STATUS_TO_PHASE = {
    "email_1_sent": Phase.EMAIL_1,
    "email_2_sent": Phase.EMAIL_2,
    "email_3_sent": Phase.EMAIL_3,
    "escalated": Phase.ESCALATION,
    "response_received": Phase.RESPONSE_RECEIVED,
    "completed": Phase.COMPLETED,
}

PHASE_LABELS = {
    Phase.NEW: "Escalated",
    Phase.EMAIL_1: "Email 1 Sent",
    Phase.EMAIL_2: "Email 2 Sent",
    Phase.EMAIL_3: "Email 3 Sent",
    Phase.ESCALATION: "Escalated",
    Phase.RESPONSE_RECEIVED: "Response received",
    Phase.COMPLETED: "Completed",
}

# Days from the email of a phase until the next action is due.
SCHEDULE = {
    Phase.EMAIL_1: 7,
    Phase.EMAIL_2: 7,
    Phase.EMAIL_3: 3,
}

NEXT_ACTIONS = {
    Phase.NEW: "Send Email 1",
    Phase.EMAIL_1: "Send Email 2",
    Phase.EMAIL_2: "Send Email 3",
    Phase.EMAIL_3: "Escalate",
    Phase.RESPONSE_RECEIVED: "Schedule TEM / Complete",
}

NETWORK_TYPES = {"N", "F"}

# Writable custom fields on sc_req_item.
PATCHABLE_FIELDS = (
    "u_discovery_status",
    "u_last_email_date",
    "u_host_ip",
    "u_network_type",
    "u_notes",
)


@dataclass(frozen=True)
class WorkflowState:
    phase: Phase
    start_date: datetime
    email1_date: datetime | None = None
    email2_date: datetime | None = None
    email3_date: datetime | None = None
    host_ip: str | None = None
    network_type: str | None = None
    notes: str | None = None

    def email_date(self, phase: Phase) -> datetime | None:
        return {
            Phase.EMAIL_1: self.email1_date,
            Phase.EMAIL_2: self.email2_date,
            Phase.EMAIL_3: self.email3_date,
        }.get(phase)

    def to_dict(self):
        return {
            "phase": self.phase.value,
            "startDate": to_iso(self.start_date),
            "email1Date": to_iso(self.email1_date),
            "email2Date": to_iso(self.email2_date),
            "email3Date": to_iso(self.email3_date),
            "hostIP": self.host_ip,
            "networkType": self.network_type,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ActionDueInfo:
    due_date: datetime | None
    days_overdue: int
    next_action: str

    def to_dict(self):
        return {
            "dueDate": to_iso(self.due_date),
            "daysOverdue": self.days_overdue,
            "nextAction": self.next_action,
        }


def offset_for(phase: Phase) -> timedelta:
    return timedelta(days=SCHEDULE[phase])
