"""Persistence layer for the academy core.

This module provides:
- Async PostgreSQL engine and session factory
- SQLAlchemy ORM models exchanged as camelCase JSON documents
- Document repositories with a transaction primitive
- The SQL ordered store used by the sequencer
- Paginated listing queries
"""

from academy.persistence.db import close_db, get_engine, get_session_factory, init_db
from academy.persistence.ordered import SqlOrderedStore
from academy.persistence.query import ListQuery, paginate
from academy.persistence.repositories import DocumentStore, SqlDocumentStore
from academy.persistence.tables import (
    Base,
    CourseContentTable,
    CourseTable,
    GroupTable,
    QuizTable,
    UserGroupTable,
    UserTable,
)

__all__ = [
    # DB
    "get_engine",
    "get_session_factory",
    "init_db",
    "close_db",
    # Tables
    "Base",
    "UserTable",
    "GroupTable",
    "UserGroupTable",
    "CourseTable",
    "CourseContentTable",
    "QuizTable",
    # Repositories
    "DocumentStore",
    "SqlDocumentStore",
    "SqlOrderedStore",
    # Queries
    "ListQuery",
    "paginate",
]
