"""Async SQLAlchemy engine, declarative base and request-scoped sessions."""

from __future__ import annotations

import enum
from collections.abc import AsyncGenerator
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, MetaData
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from reservations.core.config import get_settings
from reservations.shared.utils import utc_now

# Constraint names are referenced by the migration (e.g. the exclusion constraint).
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class BaseModelMixin:
    """UUID key plus UTC created/updated timestamps."""

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


def enum_type(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    """Non-native enum column type that stores member values.

    Stored values are the lowercase strings the exclusion constraint filters on.
    """
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


settings = get_settings()
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    connect_args={
        "server_settings": {"statement_timeout": str(settings.database_statement_timeout_ms)},
    },
)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Per-request session for reads and pre-checks.

    Mutations run in their own ``reservation_transaction``, so nothing is
    committed here.
    """
    async with SessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


async def close_engine() -> None:
    await engine.dispose()
