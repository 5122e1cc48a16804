"""Relational persistence for forms and submissions."""

from catalogue_console.db.models import Base, Form, Submission
from catalogue_console.db.session import get_db, get_db_session, init_database, reset_engine

__all__ = [
    "Base",
    "Form",
    "Submission",
    "get_db",
    "get_db_session",
    "init_database",
    "reset_engine",
]
