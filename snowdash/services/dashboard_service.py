"""
Dashboard Service — ServiceNow dashboards and the synced configuration document.

Two unrelated things share the "dashboard" name:
  - par_dashboard records: Platform Analytics dashboards on the instance
    (list / create / delete, passed straight through).
  - the dashboard/widget configuration document, stored as JSON in the
    sys_user_preference record named ``custom_dashboard_config``.

Saving the document is a versioned write: the incoming copy is merged with
the stored one (last writer wins per dashboard / widget id, tombstones for
deletions), the version is bumped and savedAt stamped.
"""

import json
import logging
from datetime import datetime, timezone

from snowdash.core.exceptions import ValidationError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.models.dashboard import coerce_store
from snowdash.models.fields import display, sys_id as reference_id
from snowdash.services import dashboard_store
from snowdash.utils.helpers import to_iso

logger = logging.getLogger(__name__)

PREFERENCE_NAME = "custom_dashboard_config"
PREFERENCE_TABLE = "sys_user_preference"
PREFERENCE_FIELDS = "sys_id,name,value,user"

PAR_DASHBOARD_TABLE = "par_dashboard"


# ═════════════════════════════════════════════════════════════════════════════
# par_dashboard
# ═════════════════════════════════════════════════════════════════════════════

def normalize_par_dashboard(record):
    active = record.get("active")
    return {
        "sys_id": display(record.get("sys_id")),
        "name": (display(record.get("name")) or display(record.get("title"))
                 or display(record.get("label")) or "Untitled Dashboard"),
        "description": display(record.get("description")) or display(record.get("short_description")),
        "active": active is not False and display(active) != "false",
        "created_on": display(record.get("sys_created_on")) or None,
        "updated_on": display(record.get("sys_updated_on")) or None,
        "owner": display(record.get("owner")),
        "category": display(record.get("category")),
        "source": PAR_DASHBOARD_TABLE,
    }


def list_sn_dashboards(credential):
    rows = gw_module.servicenow_gateway.get_records(
        credential, PAR_DASHBOARD_TABLE,
        limit=200, display_value="true", query="ORDERBYname",
    )
    return [normalize_par_dashboard(r) for r in rows]


def create_sn_dashboard(credential, name, description=None):
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Dashboard name is required")
    created = gw_module.servicenow_gateway.create_record(credential, PAR_DASHBOARD_TABLE, {
        "name": name,
        "description": (description or "").strip(),
        "active": True,
    })
    logger.info("par_dashboard created name='%s' sys_id=%s", name, created.get("sys_id"))
    return {
        "sys_id": created.get("sys_id"),
        "name": created.get("name") or name,
        "description": created.get("description") or "",
    }


def delete_sn_dashboard(credential, sys_id):
    if not sys_id:
        raise ValidationError("Dashboard sys_id is required")
    gw_module.servicenow_gateway.delete_record(credential, PAR_DASHBOARD_TABLE, sys_id)
    logger.info("par_dashboard deleted sys_id=%s", sys_id)


# ═════════════════════════════════════════════════════════════════════════════
# Preference record
# ═════════════════════════════════════════════════════════════════════════════

def _preference_query(user_id=None):
    query = f"name={PREFERENCE_NAME}"
    if user_id:
        query += f"^user={user_id}"
    return query


def _parse_value(raw):
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Dashboard preference value is not valid JSON; ignoring it")
        return None
    return data if isinstance(data, dict) else None


def _owns_config(record, user_id):
    if display(record.get("name")) != PREFERENCE_NAME:
        return False
    return not user_id or reference_id(record.get("user")) == user_id


def find_preference(credential, user_id=None, preference_id=None):
    """The preference record, looked up by id when given, else by name.

    A ``preference_id`` naming some other preference (or another user's)
    is ignored in favour of the name lookup.
    """
    gateway = gw_module.servicenow_gateway
    if preference_id:
        record = gateway.get_record(credential, PREFERENCE_TABLE, preference_id, fields=PREFERENCE_FIELDS)
        if record and _owns_config(record, user_id):
            return record
        if record:
            logger.warning("Preference %s is not a dashboard config; using name lookup", preference_id)
    rows = gateway.get_records(
        credential, PREFERENCE_TABLE,
        query=_preference_query(user_id), limit=1, fields=PREFERENCE_FIELDS,
    )
    return rows[0] if rows else None


def load_preference(credential, user_id=None):
    """Returns (document or None, preference sys_id or None)."""
    record = find_preference(credential, user_id)
    if not record:
        return None, None
    data = _parse_value(record.get("value"))
    if data is None:
        return None, None
    return data, record.get("sys_id")


def save_preference(credential, incoming, *, user_id=None, preference_id=None, now=None):
    """Merge ``incoming`` into the stored document and write it back.

    Returns a dict with preferenceId, version, data (the merged document)
    and conflicts (ids where the stored copy won).
    """
    now = now or datetime.now(timezone.utc)
    gateway = gw_module.servicenow_gateway
    record = find_preference(credential, user_id, preference_id)
    stored = _parse_value(record.get("value")) if record else None

    merged, conflicts = dashboard_store.merge_documents(stored, incoming)
    merged["version"] = (coerce_store(stored)["version"] if stored else 0) + 1
    merged["savedAt"] = to_iso(now)
    value = json.dumps(merged, separators=(",", ":"))

    if record:
        written = gateway.replace_record(credential, PREFERENCE_TABLE, record["sys_id"], {"value": value})
        pref_id = written.get("sys_id") or record["sys_id"]
    else:
        body = {"name": PREFERENCE_NAME, "value": value, "type": "string"}
        if user_id:
            body["user"] = user_id
        written = gateway.create_record(credential, PREFERENCE_TABLE, body)
        pref_id = written.get("sys_id")

    logger.info("Dashboard config saved version=%d conflicts=%d", merged["version"], len(conflicts))
    return {"preferenceId": pref_id, "version": merged["version"], "data": merged, "conflicts": conflicts}


def delete_preference(credential, preference_id):
    if not preference_id:
        raise ValidationError("Preference ID required")
    gw_module.servicenow_gateway.delete_record(credential, PREFERENCE_TABLE, preference_id)
    logger.info("Dashboard preference deleted sys_id=%s", preference_id)


# ═════════════════════════════════════════════════════════════════════════════
# Server-side document edits
# ═════════════════════════════════════════════════════════════════════════════

def load_config(credential, user_id=None):
    """The stored document with every key filled in, plus its preference id."""
    data, pref_id = load_preference(credential, user_id)
    return coerce_store(data), pref_id


def apply_config_change(credential, change, *, user_id=None, now=None):
    """Load the document, apply ``change(doc)``, save it.

    ``change`` is one of the dashboard_store mutators bound to its
    arguments; its return value is passed back with the save result.
    """
    doc, pref_id = load_config(credential, user_id)
    result = change(doc)
    saved = save_preference(credential, doc, user_id=user_id, preference_id=pref_id, now=now)
    return result, saved
