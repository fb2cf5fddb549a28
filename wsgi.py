"""
WSGI entry point.

Usage:
    flask --app wsgi run                 # development
    gunicorn wsgi:app                    # production (APP_ENV=production)
"""

from snowdash import create_app

app = create_app()
