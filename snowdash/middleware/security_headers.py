"""
Security headers middleware.

Applies Content-Security-Policy, X-Content-Type-Options, X-Frame-Options,
Strict-Transport-Security, Referrer-Policy, Permissions-Policy and
Cache-Control headers to every response.

Usage:
    from snowdash.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        # JSON API only; nothing here is meant to render in a browser frame
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
        )

        # Prevent MIME-type sniffing
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        # Clickjacking protection
        response.headers.setdefault("X-Frame-Options", "DENY")

        # HTTPS enforcement (ignored over HTTP, but ready for production)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )

        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")

        response.headers.setdefault(
            "Permissions-Policy",
            "camera=(), microphone=(), geolocation=(), payment=()"
        )

        # Responses carry per-user ServiceNow data
        response.headers.setdefault("Cache-Control", "no-store")

        # Remove server identification
        response.headers.pop("Server", None)

        return response
