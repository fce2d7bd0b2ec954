"""
SQLAlchemy OTP Store
====================
Async relational record store (PostgreSQL via asyncpg, SQLite via aiosqlite).
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    case,
    delete,
    or_,
    select,
    text,
    update as sa_update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import structlog

from otp_core.errors import DuplicateKeyError, RecordNotFoundError
from otp_core.otp.models import OTPChannel, OTPRecord, RequestMeta, ensure_aware, utcnow
from .base import BaseOTPStore

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class OTPRecordRow(Base):
    __tablename__ = "otp_records"
    __table_args__ = (
        UniqueConstraint("channel", "context", "session_id", name="uq_otp_session_key"),
        Index("ix_otp_destination_context", "destination", "context", "channel"),
        # at most one open record per destination/context
        Index(
            "uq_otp_open",
            "destination",
            "context",
            "channel",
            unique=True,
            postgresql_where=text("NOT is_used AND NOT is_locked"),
            sqlite_where=text("NOT is_used AND NOT is_locked"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    destination: Mapped[str] = mapped_column(String(320), nullable=False)
    context: Mapped[str] = mapped_column(String(128), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    tag: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    request_meta: Mapped[dict] = mapped_column(JSON, nullable=False)
    meta_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _to_record(row: OTPRecordRow) -> OTPRecord:
    return OTPRecord(
        id=row.id,
        destination=row.destination,
        context=row.context,
        channel=OTPChannel(row.channel),
        session_id=row.session_id,
        code_hash=row.code_hash,
        tag=row.tag,
        expires_at=ensure_aware(row.expires_at),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        is_used=row.is_used,
        is_locked=row.is_locked,
        request_meta=RequestMeta.from_dict(row.request_meta),
        meta_fingerprint=row.meta_fingerprint,
        created_at=ensure_aware(row.created_at),
        updated_at=ensure_aware(row.updated_at),
    )


def create_async_engine(
    database_url: str,
    pool_pre_ping: bool = True,
    echo: bool = False,
    **pool_options: Any,
) -> AsyncEngine:
    """
    Create an async engine for the OTP store.

    Args:
        database_url: Async connection string (postgresql+asyncpg://...)
        pool_pre_ping: Enable connection health checks (default: True)
        echo: Log SQL statements (default: False)
        **pool_options: pool_size, max_overflow, ... for pooled drivers

    Returns:
        Configured AsyncEngine instance
    """
    return sa_create_async_engine(
        database_url,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
        **pool_options,
    )


class SQLAlchemyOTPStore(BaseOTPStore):
    """
    Relational OTP store.

    Both the (channel, context, session_id) constraint and the partial
    ``uq_otp_open`` index surface as DuplicateKeyError. Consuming a record
    and counting a failed attempt are single conditional UPDATEs, so
    concurrent callers cannot both win.

    Example:
        store = SQLAlchemyOTPStore.from_url("postgresql+asyncpg://...")
        await store.create_tables()
    """

    name = "sqlalchemy"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._sessions: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, database_url: str, **engine_options: Any) -> "SQLAlchemyOTPStore":
        return cls(create_async_engine(database_url, **engine_options))

    async def create_tables(self) -> None:
        """Create the otp_records table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("OTP tables ready", table=OTPRecordRow.__tablename__)

    async def create(self, record: OTPRecord) -> OTPRecord:
        now = utcnow()
        row = OTPRecordRow(
            id=uuid.uuid4().hex,
            destination=record.destination,
            context=record.context,
            channel=record.channel.value,
            session_id=record.session_id,
            code_hash=record.code_hash,
            tag=record.tag,
            expires_at=record.expires_at,
            attempts=record.attempts,
            max_attempts=record.max_attempts,
            is_used=record.is_used,
            is_locked=record.is_locked,
            request_meta=record.request_meta.to_dict(),
            meta_fingerprint=record.meta_fingerprint,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
        except IntegrityError as e:
            raise DuplicateKeyError(record.key) from e
        return _to_record(row)

    async def find_by_session_key(
        self,
        destination: str,
        context: str,
        session_id: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        stmt = select(OTPRecordRow).where(
            OTPRecordRow.destination == destination,
            OTPRecordRow.context == context,
            OTPRecordRow.session_id == session_id,
            OTPRecordRow.channel == channel.value,
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _to_record(row) if row else None

    async def find_active(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> Optional[OTPRecord]:
        stmt = (
            select(OTPRecordRow)
            .where(
                OTPRecordRow.destination == destination,
                OTPRecordRow.context == context,
                OTPRecordRow.channel == channel.value,
                OTPRecordRow.is_used.is_(False),
                OTPRecordRow.is_locked.is_(False),
                OTPRecordRow.expires_at > utcnow(),
            )
            .order_by(OTPRecordRow.created_at.desc())
            .limit(1)
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _to_record(row) if row else None

    async def update(self, record_id: str, **changes: Any) -> OTPRecord:
        async with self._sessions() as session:
            async with session.begin():
                row = await session.get(OTPRecordRow, record_id)
                if row is None:
                    raise RecordNotFoundError(record_id)
                for name, value in changes.items():
                    if name == "request_meta" and isinstance(value, RequestMeta):
                        value = value.to_dict()
                    elif name == "channel" and isinstance(value, OTPChannel):
                        value = value.value
                    setattr(row, name, value)
                row.updated_at = utcnow()
        return _to_record(row)

    async def mark_used(self, record_id: str) -> bool:
        stmt = (
            sa_update(OTPRecordRow)
            .where(
                OTPRecordRow.id == record_id,
                OTPRecordRow.is_used.is_(False),
                OTPRecordRow.is_locked.is_(False),
            )
            .values(is_used=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return (result.rowcount or 0) == 1

    async def record_failed_attempt(self, record_id: str) -> Optional[OTPRecord]:
        next_attempt = OTPRecordRow.attempts + 1
        stmt = (
            sa_update(OTPRecordRow)
            .where(
                OTPRecordRow.id == record_id,
                OTPRecordRow.is_used.is_(False),
                OTPRecordRow.is_locked.is_(False),
            )
            .values(
                attempts=case(
                    (next_attempt >= OTPRecordRow.max_attempts, OTPRecordRow.max_attempts),
                    else_=next_attempt,
                ),
                is_locked=next_attempt >= OTPRecordRow.max_attempts,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if (result.rowcount or 0) != 1:
                    return None
                row = await session.get(OTPRecordRow, record_id)
        return _to_record(row) if row else None

    async def retire_open(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        stmt = (
            sa_update(OTPRecordRow)
            .where(
                OTPRecordRow.destination == destination,
                OTPRecordRow.context == context,
                OTPRecordRow.channel == channel.value,
                OTPRecordRow.is_used.is_(False),
                OTPRecordRow.is_locked.is_(False),
            )
            .values(is_used=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, record_id: str) -> None:
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(delete(OTPRecordRow).where(OTPRecordRow.id == record_id))

    async def delete_expired(self) -> int:
        stmt = delete(OTPRecordRow).where(OTPRecordRow.expires_at < utcnow())
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount or 0

    async def delete_settled(self, older_than: datetime) -> int:
        stmt = delete(OTPRecordRow).where(
            or_(OTPRecordRow.is_used.is_(True), OTPRecordRow.is_locked.is_(True)),
            OTPRecordRow.updated_at < older_than,
        )
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(stmt)
        return result.rowcount or 0

    async def reconcile_duplicates(
        self,
        destination: str,
        context: str,
        channel: OTPChannel = OTPChannel.EMAIL,
    ) -> int:
        stmt = (
            select(OTPRecordRow.id)
            .where(
                OTPRecordRow.destination == destination,
                OTPRecordRow.context == context,
                OTPRecordRow.channel == channel.value,
            )
            .order_by(OTPRecordRow.created_at.desc())
        )
        async with self._sessions() as session:
            async with session.begin():
                ids = list((await session.execute(stmt)).scalars())
                stale = ids[1:]
                if stale:
                    await session.execute(delete(OTPRecordRow).where(OTPRecordRow.id.in_(stale)))
        if stale:
            logger.info("Removed conflicting OTP records", removed=len(stale), context=context)
        return len(stale)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("OTP store ping failed", error=str(e))
            return False

    async def close(self) -> None:
        """Dispose the engine. Call during application shutdown."""
        await self.engine.dispose()
        logger.info("OTP store engine closed")
