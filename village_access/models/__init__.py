"""
Village Access — SQLAlchemy models.

All models share the single Flask-SQLAlchemy ``db`` handle defined here.
Import model modules (e.g. ``village_access.models.auth``) after ``db`` so the
metadata is registered before ``db.create_all()``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
