"""
saml_sso.db - Database helpers.

Provides:
  - insert_ignore_conflict: dialect-aware INSERT ... ON CONFLICT DO NOTHING
  - Re-exports from saml_sso.database:
    Base, init_db, close_db, get_engine, get_db_session
"""

from saml_sso.database import Base, close_db, get_db_session, get_engine, init_db
from saml_sso.db.upsert import insert_ignore_conflict

__all__ = [
    "Base",
    "close_db",
    "get_db_session",
    "get_engine",
    "init_db",
    "insert_ignore_conflict",
]
