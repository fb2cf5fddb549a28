"""
RITM Service — request-item reads and the Discovery Onboarding write paths.

Writes to sc_req_item are restricted to the five u_* workflow fields; any
other key in a caller's body is dropped without error.
"""

import logging

from snowdash.core.exceptions import NotFoundError, ValidationError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.models.fields import display, sys_id
from snowdash.models.workflow import NETWORK_TYPES, PATCHABLE_FIELDS
from snowdash.services import discovery_service, email_service
from snowdash.utils.helpers import format_sn_datetime

logger = logging.getLogger(__name__)

RITM_TABLE = "sc_req_item"

DEFAULT_RITM_FIELDS = (
    "sys_id,number,short_description,state,priority,created_on,updated_on,"
    "requested_for,requested_by,description"
)

DISCOVERY_FIELDS = (
    "sys_id,number,short_description,state,cat_item,requested_for,sys_created_on,"
    "u_discovery_status,u_last_email_date,u_host_ip,u_network_type,u_notes"
)

SEND_EMAIL_RITM_FIELDS = "sys_id,number,short_description,requested_for"
REQUESTER_FIELDS = "email,name"

INVALID_EMAIL_NUM = "Invalid emailNum. Must be 1, 2, or 3."
NO_REQUESTER_EMAIL = (
    "Requester has no email. Add an email to the requested_for user in ServiceNow."
)


def list_ritms(credential, *, limit=50, offset=0, query="", fields=None):
    """One page of request items. ``total`` is the page length, not the table count."""
    rows = gw_module.servicenow_gateway.get_records(
        credential, RITM_TABLE,
        limit=limit, offset=offset, query=query,
        fields=fields or DEFAULT_RITM_FIELDS,
    )
    return {"ritms": rows, "total": len(rows), "limit": limit, "offset": offset}


def fetch_discovery_items(credential, *, limit=100, query=""):
    """Request items with the workflow fields, display and raw values both."""
    return gw_module.servicenow_gateway.get_records(
        credential, RITM_TABLE,
        limit=limit, query=query or "ORDERBYDESCsys_created_on",
        fields=DISCOVERY_FIELDS, display_value="all",
    )


def filter_patch(body):
    """Keep only the allow-listed workflow fields (explicit nulls included)."""
    if not isinstance(body, dict):
        return {}
    return {key: body[key] for key in PATCHABLE_FIELDS if key in body}


def patch_ritm(credential, ritm_sys_id, body):
    """PATCH the allow-listed fields of one RITM.

    Raises:
        ValidationError: missing sys_id or nothing left to update.
        ServiceNowError: the update call failed.
    """
    if not ritm_sys_id:
        raise ValidationError("Missing sysId")
    updates = filter_patch(body)
    if not updates:
        raise ValidationError("No valid fields to update")
    dropped = sorted(set(body or {}) - set(updates) - {"sys_id", "sysId"})
    if dropped:
        logger.debug("RITM %s patch ignoring fields: %s", ritm_sys_id, ", ".join(dropped))
    result = gw_module.servicenow_gateway.update_record(credential, RITM_TABLE, ritm_sys_id, updates)
    logger.info("RITM %s patched fields=%s", ritm_sys_id, ",".join(sorted(updates)))
    return result


def set_host_info(credential, ritm_sys_id, *, host_ip, network_type="N", notes=None):
    """The "Enter IP" action: host IP, network type (N/F) and notes."""
    host_ip = (host_ip or "").strip()
    if not host_ip:
        raise ValidationError("Host IP is required")
    network_type = (network_type or "N").strip().upper()
    if network_type not in NETWORK_TYPES:
        raise ValidationError("Network type must be N or F")
    payload = {"u_host_ip": host_ip, "u_network_type": network_type}
    if notes and notes.strip():
        payload["u_notes"] = notes.strip()
    return patch_ritm(credential, ritm_sys_id, payload)


def parse_email_num(raw):
    """Only the JSON integers 1, 2, 3 are accepted (not "1", not 1.0, not true)."""
    if isinstance(raw, bool) or not isinstance(raw, int) or raw not in email_service.VALID_EMAIL_NUMBERS:
        raise ValidationError(INVALID_EMAIL_NUM)
    return raw


def send_workflow_email(credential, ritm_sys_id, email_num):
    """Send Discovery email N for a RITM and record it on the RITM.

    Order: validate → load RITM → resolve requester email → send → patch.
    Nothing is sent unless the requester has an email address.
    """
    if not ritm_sys_id:
        raise ValidationError("Missing sysId")
    email_num = parse_email_num(email_num)
    gateway = gw_module.servicenow_gateway

    ritm = gateway.get_record(credential, RITM_TABLE, ritm_sys_id, fields=SEND_EMAIL_RITM_FIELDS)
    if not ritm:
        raise NotFoundError("RITM", ritm_sys_id)

    number = display(ritm.get("number")) or "RITM"
    description = display(ritm.get("short_description")) or "Discovery request"

    to_email = ""
    name = "Customer"
    requester_id = sys_id(ritm.get("requested_for"))
    if requester_id:
        user = gateway.get_record(credential, "sys_user", requester_id, fields=REQUESTER_FIELDS)
        if user:
            to_email = display(user.get("email"))
            name = display(user.get("name")) or name

    if not to_email:
        logger.info("RITM %s: requester has no email, nothing sent", ritm_sys_id)
        raise ValidationError(NO_REQUESTER_EMAIL)

    email_service.send_discovery_email(
        credential,
        email_num=email_num,
        to_email=to_email,
        ritm_sys_id=ritm_sys_id,
        name=name,
        number=number,
        description=description,
    )
    gateway.update_record(credential, RITM_TABLE, ritm_sys_id, {
        "u_discovery_status": email_service.STATUS_AFTER_EMAIL[email_num],
        "u_last_email_date": format_sn_datetime(),
    })
    return {
        "success": True,
        "message": (
            f"Email {email_num} sent to {to_email}. "
            "Check ServiceNow: System > Email > Outbound."
        ),
    }


def discovery_view(credential, *, instance_url, limit=100, query="", search="",
                   status_filter="all", demo=False, poll_seconds=45):
    items = fetch_discovery_items(credential, limit=limit, query=query)
    return discovery_service.build_discovery_view(
        items,
        instance_url=instance_url,
        demo=demo,
        search=search,
        status_filter=status_filter,
        poll_seconds=poll_seconds,
    )
