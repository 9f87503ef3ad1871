"""
Model package.

Exposes the shared Flask-SQLAlchemy handle. Model modules import ``db`` from
here; ``qms.create_app`` imports every model module so metadata is complete
before ``db.create_all()`` and Alembic autogenerate run.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
