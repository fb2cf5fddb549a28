"""
ITOM Service — headline Discovery / CMDB / Event Management metrics.

Each sub-query is optional: instances without Discovery, Event Management
or Service Mapping simply report 0 for that metric. A failing sub-query is
logged and never fails the summary.
"""

import logging
from datetime import datetime, timezone

from snowdash.core.exceptions import ServiceNowError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.models.fields import display, value
from snowdash.utils.helpers import parse_sn_datetime

logger = logging.getLogger(__name__)

MAX_OPERATIONS = 5


def format_time_ago(created, now=None):
    """'N min ago' under an hour, 'N hr ago' under a day, else 'N day(s) ago'."""
    now = now or datetime.now(timezone.utc)
    seconds = (now - created).total_seconds()
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes} min ago"
    hours = int(seconds // 3600)
    if hours < 24:
        return f"{hours} hr ago"
    return f"{int(seconds // 86400)} day(s) ago"


def _operation(prefix, record, op_type, description, status, now):
    created = parse_sn_datetime(value(record.get("sys_created_on"))) or now
    return {
        "id": f"{prefix}-{value(record.get('sys_id'))}",
        "type": op_type,
        "description": description,
        "time": format_time_ago(created, now),
        "status": status,
        "_created": created,
    }


def _count(credential, table):
    return gw_module.servicenow_gateway.get_records_with_count(
        credential, table, limit=1, fields="sys_id",
    )


def get_itom_summary(credential, now=None):
    now = now or datetime.now(timezone.utc)
    gateway = gw_module.servicenow_gateway
    metrics = {"discoveryRuns": 0, "cisDiscovered": 0, "openEvents": 0, "servicesMapped": 0}
    operations = []

    # Discovery runs
    try:
        runs = gateway.get_records(
            credential, "discovery_status",
            limit=100, fields="sys_id,sys_created_on,status", order="sys_created_onDESC",
        )
        metrics["discoveryRuns"] = len(runs)
        for run in runs[:3]:
            operations.append(_operation(
                "discovery", run, "Discovery",
                f"Discovery run – {display(run.get('status'), '—')}", "Success", now,
            ))
    except ServiceNowError as exc:
        logger.info("ITOM: discovery_status unavailable status=%s", exc.status_code)

    # CMDB CIs
    try:
        res = _count(credential, "cmdb_ci")
        metrics["cisDiscovered"] = res.total_count if res.total_count is not None else len(res.records)
    except ServiceNowError as exc:
        logger.info("ITOM: cmdb_ci unavailable status=%s", exc.status_code)

    # Open events
    try:
        res = gateway.get_records_with_count(
            credential, "em_event",
            limit=10, query="state=1^ORstate=2",
            fields="sys_id,description,state,sys_created_on", order="sys_created_onDESC",
        )
        metrics["openEvents"] = res.total_count if res.total_count is not None else len(res.records)
        for event in res.records[:2]:
            operations.append(_operation(
                "event", event, "Event",
                display(event.get("description"), "Event") or "Event", "Open", now,
            ))
    except ServiceNowError as exc:
        logger.info("ITOM: em_event unavailable status=%s", exc.status_code)

    # Services mapped, falling back to the Service Mapping table
    try:
        total = _count(credential, "cmdb_ci_service").total_count
        if total is not None:
            metrics["servicesMapped"] = total
    except ServiceNowError:
        try:
            total = _count(credential, "sa_service").total_count
            if total is not None:
                metrics["servicesMapped"] = total
        except ServiceNowError as exc:
            logger.info("ITOM: no service table available status=%s", exc.status_code)

    operations.sort(key=lambda op: op["_created"], reverse=True)
    recent = [{k: v for k, v in op.items() if k != "_created"} for op in operations[:MAX_OPERATIONS]]
    return {"metrics": metrics, "recentOperations": recent}
