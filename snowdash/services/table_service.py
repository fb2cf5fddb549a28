"""
Table Service — read-only proxies over the ServiceNow Table API.

Encoded queries are forwarded to ServiceNow untouched; only the table name
is validated here.
"""

import logging
import re

from snowdash.core.exceptions import ServiceNowError, ValidationError
from snowdash.integrations import servicenow_gateway as gw_module

logger = logging.getLogger(__name__)

TABLE_NAME_RE = re.compile(r"^[a-z0-9_]+$")

REQUEST_ITEM_FIELDS = (
    "sys_id,number,short_description,state,priority,created_on,updated_on,"
    "requested_for,requested_by,description"
)
USER_FIELDS = "sys_id,user_name,first_name,last_name,email,active"

MID_SERVER_TABLE = "ecc_agent"
MID_SERVER_FIELDS = "sys_id,name,status,host_name,ip,version,last_refreshed,validated"
MID_SERVER_BASE_QUERY = "statusOKAY^ORstatusUP"


def validate_table_name(table):
    if not table or not TABLE_NAME_RE.match(table):
        raise ValidationError("Invalid table name", details={"table": table})
    return table


def get_table_data(credential, table, *, limit=50, offset=0, query="", fields=None, order=None):
    validate_table_name(table)
    rows = gw_module.servicenow_gateway.get_records(
        credential, table,
        limit=limit, offset=offset, query=query, fields=fields, order=order,
    )
    return {"data": rows, "total": len(rows), "table": table}


def get_request_items(credential, *, limit=10, offset=0, query="", fields=None):
    return gw_module.servicenow_gateway.get_records(
        credential, "sc_req_item",
        limit=limit, offset=offset, query=query,
        fields=fields or REQUEST_ITEM_FIELDS,
    )


def get_users(credential, *, limit=10, offset=0, query="", fields=None):
    return gw_module.servicenow_gateway.get_records(
        credential, "sys_user",
        limit=limit, offset=offset, query=query,
        fields=fields or USER_FIELDS,
    )


def mid_server_query(host_ip=None, name=None):
    """Active MID servers, optionally narrowed by host/IP prefix and name."""
    query = MID_SERVER_BASE_QUERY
    if host_ip:
        query += f"^host_nameSTARTSWITH{host_ip}^ORipSTARTSWITH{host_ip}"
    if name:
        query += f"^nameLIKE{name}"
    return query


def get_mid_servers(credential, *, host_ip=None, name=None):
    gateway = gw_module.servicenow_gateway
    query = mid_server_query(host_ip, name)

    total = None
    try:
        total = gateway.get_records_with_count(
            credential, MID_SERVER_TABLE, query=query, fields="sys_id", limit=1,
        ).total_count
    except ServiceNowError as exc:
        logger.info("MID server count unavailable status=%s", exc.status_code)

    servers = gateway.get_records(
        credential, MID_SERVER_TABLE,
        query=query, fields=MID_SERVER_FIELDS, limit=50, display_value="all",
    )
    return {"midServers": servers, "total": total if total is not None else len(servers)}
