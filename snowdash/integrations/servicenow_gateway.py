"""
ServiceNow Integration Gateway.

All outbound HTTP calls to the ServiceNow instance go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

  - Table API:   <instance>/api/now/table/<table>
  - Email API:   <instance>/api/now/email
  - OAuth2:      <instance>/oauth_auth.do, <instance>/oauth_token.do
  - Timeout:     SERVICENOW_TIMEOUT (default 30 s)
  - Failures:    any non-2xx or network error raises ServiceNowError carrying
                 the upstream status and message. No retries.

The instance URL, OAuth client id and secret are read from the Flask app
config at call time, so the singleton works under any app instance.

Testability: pass a mock `session` to ServiceNowGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import base64
import logging
import re
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import requests
from flask import current_app

from snowdash.core.exceptions import ConfigurationError, ServiceNowError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_ERROR_BODY_MAX = 500
_SYS_ID_RE = re.compile(r"^[0-9a-f]{32}$")

USER_LOOKUP_FIELDS = "sys_id,user_name,email,first_name,last_name"


@dataclass(frozen=True)
class Credential:
    """Authorization material for one ServiceNow user.

    ``token`` is an OAuth access token when ``is_oauth`` is true, otherwise
    the base64 ``username:password`` pair for Basic auth.
    """

    token: str
    is_oauth: bool

    @classmethod
    def basic(cls, username: str, password: str) -> "Credential":
        raw = f"{username}:{password}".encode("utf-8")
        return cls(token=base64.b64encode(raw).decode("ascii"), is_oauth=False)

    @classmethod
    def bearer(cls, access_token: str) -> "Credential":
        return cls(token=access_token, is_oauth=True)

    def authorization_header(self) -> str:
        return f"Bearer {self.token}" if self.is_oauth else f"Basic {self.token}"


@dataclass
class TableResult:
    """Records plus the X-Total-Count header (None when absent or garbage)."""

    records: list[dict]
    total_count: int | None


def _parse_total_count(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _extract_error_message(resp: requests.Response) -> str:
    """Pull ServiceNow's ``error.message`` out of the body, else the raw text."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            message = err.get("message") or err.get("detail")
            if message:
                return str(message)
        elif isinstance(err, str) and err:
            desc = body.get("error_description")
            return f"{err}: {desc}" if desc else err
    text = (resp.text or "").strip()
    return text[:_ERROR_BODY_MAX] or f"HTTP {resp.status_code}"


def _table_params(
    *,
    limit: int | None = None,
    offset: int | None = None,
    query: str | None = None,
    fields: str | None = None,
    order: str | None = None,
    display_value: str | bool | None = None,
) -> dict[str, Any]:
    """Map keyword options to sysparm_* params, omitting empty ones."""
    params: dict[str, Any] = {}
    if limit is not None:
        params["sysparm_limit"] = limit
    if offset:
        params["sysparm_offset"] = offset
    if query:
        params["sysparm_query"] = query
    if fields:
        params["sysparm_fields"] = fields
    if order:
        params["sysparm_order"] = order
    if display_value not in (None, "", False):
        params["sysparm_display_value"] = (
            "true" if display_value is True else str(display_value)
        )
    return params


class ServiceNowGateway:
    """ServiceNow REST gateway.

    Instantiate once at module level (module-level singleton pattern).
    Pass a custom `session` in tests to intercept HTTP calls without
    making real network requests.

    Usage:
        from snowdash.integrations.servicenow_gateway import servicenow_gateway
        rows = servicenow_gateway.get_records(cred, "sc_req_item", limit=10)
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session: requests.Session | None = session

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Configuration ────────────────────────────────────────────────────────

    @property
    def instance_url(self) -> str:
        url = (current_app.config.get("SERVICENOW_INSTANCE_URL") or "").rstrip("/")
        if not url:
            raise ConfigurationError("SERVICENOW_INSTANCE_URL is not configured")
        return url

    @property
    def api_base(self) -> str:
        return f"{self.instance_url}/api/now"

    @property
    def oauth_configured(self) -> bool:
        cfg = current_app.config
        return bool(cfg.get("SERVICENOW_CLIENT_ID") and cfg.get("SERVICENOW_CLIENT_SECRET"))

    def _timeout(self) -> int:
        return int(current_app.config.get("SERVICENOW_TIMEOUT") or _DEFAULT_TIMEOUT)

    # ── Core request dispatcher ───────────────────────────────────────────────

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict,
        label: str,
        json_body: dict | list | None = None,
        params: dict | None = None,
        data: dict | None = None,
    ) -> requests.Response:
        """Execute a single HTTP request and raise ServiceNowError on failure."""
        kwargs: dict[str, Any] = {"headers": headers, "timeout": self._timeout()}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        if data is not None:
            kwargs["data"] = data

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("ServiceNow request timed out %s %s", method, label)
            raise ServiceNowError(f"Request timed out after {kwargs['timeout']}s")
        except requests.RequestException as exc:
            message = str(exc)[:_ERROR_BODY_MAX]
            logger.warning("ServiceNow network error %s %s error=%s", method, label, message)
            raise ServiceNowError(message)
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not resp.ok:
            message = _extract_error_message(resp)
            logger.warning(
                "ServiceNow request failed %s %s status=%d duration_ms=%d",
                method, label, resp.status_code, duration_ms,
            )
            raise ServiceNowError(message, status_code=resp.status_code)

        logger.debug(
            "ServiceNow %s %s status=%d duration_ms=%d",
            method, label, resp.status_code, duration_ms,
        )
        return resp

    def request(
        self,
        method: str,
        path: str,
        credential: Credential,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
    ) -> requests.Response:
        """Authenticated request against ``<instance>/api/now<path>``."""
        headers = {
            "Authorization": credential.authorization_header(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        return self._send(
            method, f"{self.api_base}{path}",
            headers=headers, label=path,
            json_body=json_body, params=params,
        )

    @staticmethod
    def _result(resp: requests.Response) -> Any:
        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError:
            return None
        return body.get("result") if isinstance(body, dict) else body

    # ── Table API ─────────────────────────────────────────────────────────────

    def get_records(
        self,
        credential: Credential,
        table: str,
        *,
        limit: int | None = None,
        offset: int | None = None,
        query: str | None = None,
        fields: str | None = None,
        order: str | None = None,
        display_value: str | bool | None = None,
    ) -> list[dict]:
        return self.get_records_with_count(
            credential, table,
            limit=limit, offset=offset, query=query,
            fields=fields, order=order, display_value=display_value,
        ).records

    def get_records_with_count(
        self,
        credential: Credential,
        table: str,
        *,
        limit: int | None = None,
        offset: int | None = None,
        query: str | None = None,
        fields: str | None = None,
        order: str | None = None,
        display_value: str | bool | None = None,
    ) -> TableResult:
        """GET /table/<table>, returning records and the X-Total-Count header.

        The encoded query is forwarded untouched.
        """
        params = _table_params(
            limit=limit, offset=offset, query=query,
            fields=fields, order=order, display_value=display_value,
        )
        resp = self.request("GET", f"/table/{table}", credential, params=params)
        records = self._result(resp) or []
        return TableResult(
            records=list(records),
            total_count=_parse_total_count(resp.headers.get("X-Total-Count")),
        )

    def get_record(
        self,
        credential: Credential,
        table: str,
        sys_id: str,
        fields: str | None = None,
        display_value: str | bool | None = None,
    ) -> dict | None:
        """One record by sys_id; None when absent or the id is not a sys_id.

        Anything but 32 hex characters is rejected without a call.
        """
        if not _SYS_ID_RE.match(sys_id or ""):
            logger.debug("get_record %s: malformed sys_id rejected", table)
            return None
        rows = self.get_records(
            credential, table,
            query=f"sys_id={sys_id}", fields=fields, limit=1,
            display_value=display_value,
        )
        return rows[0] if rows else None

    def create_record(self, credential: Credential, table: str, data: dict) -> dict:
        resp = self.request("POST", f"/table/{table}", credential, json_body=data)
        return self._result(resp) or {}

    def update_record(self, credential: Credential, table: str, sys_id: str, data: dict) -> dict:
        resp = self.request("PATCH", f"/table/{table}/{sys_id}", credential, json_body=data)
        return self._result(resp) or {}

    def replace_record(self, credential: Credential, table: str, sys_id: str, data: dict) -> dict:
        resp = self.request("PUT", f"/table/{table}/{sys_id}", credential, json_body=data)
        return self._result(resp) or {}

    def delete_record(self, credential: Credential, table: str, sys_id: str) -> None:
        self.request("DELETE", f"/table/{table}/{sys_id}", credential)

    # ── Email / user ──────────────────────────────────────────────────────────

    def send_email(
        self,
        credential: Credential,
        *,
        to: list[str],
        subject: str,
        text: str,
        html: str | None = None,
        table_name: str | None = None,
        table_record_id: str | None = None,
    ) -> dict:
        """POST /email. The message lands in System > Email > Outbound."""
        body: dict[str, Any] = {"to": list(to), "subject": subject, "text": text}
        if html:
            body["html"] = html
        if table_name:
            body["table_name"] = table_name
        if table_record_id:
            body["table_record_id"] = table_record_id
        resp = self.request("POST", "/email", credential, json_body=body)
        return self._result(resp) or {}

    def get_user_profile(self, credential: Credential) -> dict:
        """sys_user row of whoever ``credential`` belongs to ({} if not visible)."""
        rows = self.get_records(
            credential, "sys_user",
            query="sys_id=javascript:gs.getUserID()", fields=USER_LOOKUP_FIELDS, limit=1,
        )
        return rows[0] if rows else {}

    def verify_basic_credentials(self, username: str, password: str) -> dict | None:
        """Look the user up in sys_user with Basic auth.

        Returns the sys_user row, or None when the instance rejects the
        credentials or the user does not exist.
        """
        credential = Credential.basic(username, password)
        try:
            rows = self.get_records(
                credential, "sys_user",
                query=f"user_name={username}", fields=USER_LOOKUP_FIELDS,
            )
        except ServiceNowError as exc:
            if exc.status_code in (401, 403):
                return None
            raise
        return rows[0] if rows else None

    # ── OAuth2 ────────────────────────────────────────────────────────────────

    def build_authorize_url(self, state: str) -> str:
        cfg = current_app.config
        params = {
            "response_type": "code",
            "client_id": cfg.get("SERVICENOW_CLIENT_ID") or "",
            "state": state,
        }
        if cfg.get("SERVICENOW_OAUTH_REDIRECT_URI"):
            params["redirect_uri"] = cfg["SERVICENOW_OAUTH_REDIRECT_URI"]
        return f"{self.instance_url}/oauth_auth.do?{urlencode(params)}"

    def _token_request(self, grant: dict) -> dict:
        if not self.oauth_configured:
            raise ConfigurationError("ServiceNow OAuth client is not configured")
        cfg = current_app.config
        data = {
            **grant,
            "client_id": cfg["SERVICENOW_CLIENT_ID"],
            "client_secret": cfg["SERVICENOW_CLIENT_SECRET"],
        }
        resp = self._send(
            "POST", f"{self.instance_url}/oauth_token.do",
            headers={"Accept": "application/json"},
            label=f"oauth_token.do grant={grant['grant_type']}",
            data=data,
        )
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not body.get("access_token"):
            raise ServiceNowError("OAuth token response missing access_token",
                                  status_code=resp.status_code)
        return body

    def exchange_code(self, code: str) -> dict:
        grant = {"grant_type": "authorization_code", "code": code}
        redirect_uri = current_app.config.get("SERVICENOW_OAUTH_REDIRECT_URI")
        if redirect_uri:
            grant["redirect_uri"] = redirect_uri
        return self._token_request(grant)

    def password_grant(self, username: str, password: str) -> dict:
        return self._token_request(
            {"grant_type": "password", "username": username, "password": password}
        )

    def refresh_token(self, refresh_token: str) -> dict:
        return self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )


# Module-level singleton; services import this instance.
# In tests, override via:
#   from snowdash.integrations import servicenow_gateway as gw_module
#   monkeypatch.setattr(gw_module.servicenow_gateway, "_session", fake_session)
servicenow_gateway = ServiceNowGateway()
