"""
ServiceNow Dashboard
Email Service — Discovery Onboarding notices.

Renders the three fixed Discovery Onboarding emails and sends them through
the ServiceNow Email API, attached to the RITM so they show up in
System > Email > Outbound and on the record's activity stream.

Requires the ServiceNow user to hold the email_api_send role and outbound
email to be enabled on the instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.integrations.servicenow_gateway import Credential

logger = logging.getLogger(__name__)

RITM_TABLE = "sc_req_item"


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_TEMPLATES: dict[int, dict[str, str]] = {
    1: {
        "subject": "[Action Required] Discovery Onboarding - {number}",
        "text": (
            "Dear {name},\n\n"
            "We are reaching out regarding your request {number}: \"{description}\".\n\n"
            "To proceed with Discovery onboarding, we need to schedule a Technical "
            "Engagement Meeting (TEM).\n\n"
            "Please respond with your availability and technical contact.\n\n"
            "Best regards,\nDiscovery Team"
        ),
    },
    2: {
        "subject": "[Reminder] Discovery Onboarding - {number}",
        "text": (
            "Dear {name},\n\n"
            "This is a follow-up regarding {number}. We haven't received a response "
            "about Discovery onboarding.\n\n"
            "Please respond with your availability for a TEM meeting.\n\n"
            "Best regards,\nDiscovery Team"
        ),
    },
    3: {
        "subject": "[Final Notice] Discovery Onboarding - {number}",
        "text": (
            "Dear {name},\n\n"
            "FINAL NOTICE for {number}. If we don't receive a response within 3 days, "
            "this request will be escalated.\n\n"
            "Please respond immediately.\n\n"
            "Best regards,\nDiscovery Team"
        ),
    },
}

# u_discovery_status written after email N goes out
STATUS_AFTER_EMAIL = {
    1: "email_1_sent",
    2: "email_2_sent",
    3: "email_3_sent",
}

VALID_EMAIL_NUMBERS = frozenset(_TEMPLATES)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str


class _SafeDict(dict):
    """format_map helper: unknown placeholders stay as-is."""

    def __missing__(self, key):
        return "{" + key + "}"


def render_discovery_email(email_num: int, *, name: str, number: str, description: str) -> RenderedEmail:
    """Render template ``email_num`` (1, 2 or 3).

    Raises:
        KeyError: for any other email number.
    """
    template = _TEMPLATES[email_num]
    context = _SafeDict(name=name, number=number, description=description)
    return RenderedEmail(
        subject=template["subject"].format_map(context),
        text=template["text"].format_map(context),
    )


def send_discovery_email(
    credential: Credential,
    *,
    email_num: int,
    to_email: str,
    ritm_sys_id: str,
    name: str,
    number: str,
    description: str,
) -> RenderedEmail:
    """Render and send email N, attached to the RITM. Raises ServiceNowError on failure."""
    rendered = render_discovery_email(
        email_num, name=name, number=number, description=description,
    )
    gw_module.servicenow_gateway.send_email(
        credential,
        to=[to_email],
        subject=rendered.subject,
        text=rendered.text,
        table_name=RITM_TABLE,
        table_record_id=ritm_sys_id,
    )
    logger.info(
        "Discovery email %d sent: ritm=%s subject='%s'",
        email_num, ritm_sys_id, rendered.subject,
    )
    return rendered
