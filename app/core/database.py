"""Database setup for async SQLAlchemy 2.0."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, MetaData
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.core.config import get_settings
from app.shared.utils import utc_now

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base class for all ORM models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDMixin:
    """Provide UUID primary key."""

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)


class TimestampMixin:
    """Provide UTC audit timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class BaseModelMixin(UUIDMixin, TimestampMixin):
    """Base mixin used by all scheduling entities."""


settings = get_settings()
logger = logging.getLogger(__name__)

# Postgres deadlock_detected and lock_not_available.
LOCK_CONTENTION_SQLSTATES = frozenset({"40P01", "55P03"})

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    connect_args={"server_settings": {"lock_timeout": f"{settings.database_lock_timeout_ms}ms"}},
)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that wraps each request in one transaction.

    Row locks taken by the request (slot locks during admission) are held
    until this commit or rollback.
    """
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            if is_lock_contention(exc):
                logger.warning("Transaction rolled back on lock contention: %s", exc.orig)
            raise
        except Exception:
            await session.rollback()
            raise


def is_lock_contention(exc: DBAPIError) -> bool:
    """Return True when the driver reports a deadlock or a lock wait timeout."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is None and orig is not None:
        sqlstate = getattr(orig.__cause__, "sqlstate", None)
    if sqlstate in LOCK_CONTENTION_SQLSTATES:
        return True
    return "deadlock detected" in str(exc).lower()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for handlers that manage their own transaction."""
    return SessionLocal


async def close_engine() -> None:
    """Close SQLAlchemy engine."""
    await engine.dispose()
