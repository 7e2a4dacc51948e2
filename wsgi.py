"""
WSGI and Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-roles
    gunicorn wsgi:app
"""

from village_access import create_app

app = create_app()
