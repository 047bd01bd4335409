"""SQLAlchemy ORM models.

Rows are exchanged with the rest of the core as JSON documents with
camelCase keys (``Base.to_doc``), which is also the shape stored in the
cache. Ordered tables (course contents, quizzes) carry a nullable
``index``: active rows hold 1..N within their parent scope, soft-deleted
rows hold NULL.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    def to_doc(self) -> dict[str, Any]:
        """Row as a JSON-safe document with camelCase keys."""
        doc: dict[str, Any] = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            doc[to_camel(column.key)] = value
        return doc

    @classmethod
    def column_for(cls, field: str) -> Any:
        """Mapped column for a camelCase or snake_case document field."""
        name = to_snake(field)
        if name not in cls.__table__.columns:
            raise KeyError(field)
        return getattr(cls, name)

    @classmethod
    def values_from_doc(cls, doc: dict[str, Any]) -> dict[str, Any]:
        """Constructor kwargs for the columns present in ``doc``."""
        values = {}
        for field, value in doc.items():
            name = to_snake(field)
            if name in cls.__table__.columns:
                values[name] = value
        return values


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class UserTable(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="USER")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    profile: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_user_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class GroupTable(TimestampMixin, Base):
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserGroupTable(Base):
    """Group membership join."""

    __tablename__ = "user_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )

    __table_args__ = (UniqueConstraint("user_id", "group_id", name="uq_user_groups_pair"),)


class CourseTable(TimestampMixin, Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    instructor_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CourseContentTable(TimestampMixin, Base):
    """Ordered within a course."""

    __tablename__ = "course_contents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    course_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="VIDEO")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # No unique constraint on (course_id, index): shifting a range with one
    # UPDATE passes through transient duplicates.
    __table_args__ = (Index("idx_course_contents_order", "course_id", "is_deleted", "index"),)


class QuizTable(TimestampMixin, Base):
    """Ordered within a course content."""

    __tablename__ = "quizzes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    course_content_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("course_contents.id", ondelete="CASCADE"), nullable=False
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    right_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("idx_quizzes_order", "course_content_id", "is_deleted", "index"),)
