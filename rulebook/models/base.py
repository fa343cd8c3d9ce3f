"""Column types and mixins shared by the rule and quality profile models.

PostgreSQL gets native JSONB and UUID columns. Other dialects (SQLite in
tests and the CLI) store both as text.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, Text, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import Mapped, mapped_column

from rulebook.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_native(dialect: Dialect) -> bool:
    return dialect.name == "postgresql"


class JSONType(TypeDecorator):
    """Lists and dicts such as tags and parameter maps."""

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        return dialect.type_descriptor(JSONB() if _is_native(dialect) else Text())

    def process_bind_param(self, value: Any, dialect: Dialect) -> Optional[Any]:
        if value is None or _is_native(dialect):
            return value
        return json.dumps(value, sort_keys=True)

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[Any]:
        if value is None or _is_native(dialect):
            return value
        return json.loads(value)


class UUIDType(TypeDecorator):
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if _is_native(dialect):
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value: Any, dialect: Dialect) -> Optional[Any]:
        if value is None or _is_native(dialect):
            return value
        return str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[UUID]:
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class TimestampMixin:
    """Audit timestamps, set in Python so they are readable right after a flush."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


class UUIDMixin:
    id: Mapped[UUID] = mapped_column(UUIDType(), primary_key=True, default=uuid4)


class RulebookBase(Base, UUIDMixin, TimestampMixin):
    """Abstract base of every persisted rulebook entity."""

    __abstract__ = True
