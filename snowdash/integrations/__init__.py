"""snowdash.integrations — External service gateway modules.

All outbound HTTP calls to the ServiceNow instance must go through the
gateway in this package, never via bare `requests` calls in services or
blueprints.

Every call is:
  - Authenticated (credential header injected by the gateway)
  - Logged with method, path and duration
  - Raised as ServiceNowError on any non-2xx or network failure

Current gateways:
  servicenow_gateway.ServiceNowGateway — Table, Email and OAuth2 endpoints
"""
