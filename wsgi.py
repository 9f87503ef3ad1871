"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-standard
    gunicorn wsgi:app
"""

from qms import create_app

app = create_app()
