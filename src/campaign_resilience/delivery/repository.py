"""Async SQLAlchemy repository for conversion events and destination credentials."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from campaign_resilience.config.schemas.delivery import PostgresConfig
from campaign_resilience.delivery.models import Base, ConversionEventRecord, TrackingDestination
from campaign_resilience.types.delivery_models import (
    ConversionEvent,
    DeliveryState,
    PartitionCredential,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # sqlite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_domain(record: ConversionEventRecord) -> ConversionEvent:
    return ConversionEvent(
        id=record.id,
        partition_key=record.partition_key,
        dedup_key=record.dedup_key,
        event_name=record.event_name,
        occurred_at=_aware(record.occurred_at),
        delivery_state=DeliveryState(record.delivery_state),
        retry_count=record.retry_count,
        created_at=_aware(record.created_at),
        source_url=record.source_url,
        user_data=record.user_data or {},
        custom_data=record.custom_data or {},
    )


class PostgresEventRepository:
    """
    Conversion event persistence backed by PostgreSQL (asyncpg).

    Every bulk update is guarded by ``delivery_state = 'unsent'`` so a row
    that already reached a terminal state is never touched again, even when
    two dispatcher runs overlap.

    Example:
        ```python
        repository = PostgresEventRepository(postgres_config)
        await repository.initialize()
        events = await repository.find_unsent_events(limit=500)
        await repository.mark_sent_batch([e.id for e in events], DeliveryState.SENT)
        await repository.close()
        ```
    """

    def __init__(self, config: Optional[PostgresConfig] = None):
        """Initialize repository.

        Args:
            config: PostgresConfig with connection settings
        """
        self.config = config or PostgresConfig()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def initialized(self) -> bool:
        return self._session_factory is not None

    async def initialize(self, create_tables: bool = True) -> None:
        """Create the engine and session factory. Safe to call more than once."""
        if self.initialized:
            return

        engine_kwargs = {"echo": self.config.echo_sql}
        if not self.config.is_sqlite:
            engine_kwargs.update(
                pool_size=self.config.pool_size,
                max_overflow=self.config.max_overflow,
                pool_timeout=self.config.pool_timeout,
                pool_pre_ping=True,
            )

        try:
            self._engine = create_async_engine(self.config.connection_url, **engine_kwargs)
            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
            if create_tables:
                async with self._engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
        except Exception as e:
            logger.error(f"Failed to initialize event repository: {e}")
            await self.close()
            raise

        logger.info("Event repository initialized")

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Transactional session; commits on success, rolls back on error.

        Raises:
            RuntimeError: If the repository is not initialized
        """
        if self._session_factory is None:
            raise RuntimeError("PostgresEventRepository not initialized. Call initialize() first.")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ==================== Reads ====================

    async def find_unsent_events(self, limit: int) -> List[ConversionEvent]:
        async with self.session() as session:
            result = await session.execute(
                select(ConversionEventRecord)
                .where(ConversionEventRecord.delivery_state == DeliveryState.UNSENT.value)
                .order_by(ConversionEventRecord.created_at)
                .limit(limit)
            )
            return [_to_domain(record) for record in result.scalars().all()]

    async def find_partition_credentials(
        self, partition_keys: Iterable[str]
    ) -> List[PartitionCredential]:
        keys = list(dict.fromkeys(partition_keys))
        if not keys:
            return []

        async with self.session() as session:
            result = await session.execute(
                select(TrackingDestination).where(
                    TrackingDestination.partition_key.in_(keys),
                    TrackingDestination.is_active.is_(True),
                )
            )
            return [
                PartitionCredential(
                    partition_key=row.partition_key,
                    destination_id=row.destination_id,
                    secret=row.access_secret,
                )
                for row in result.scalars().all()
            ]

    async def get_event(self, event_id: str) -> Optional[ConversionEvent]:
        async with self.session() as session:
            record = await session.get(ConversionEventRecord, event_id)
            return _to_domain(record) if record is not None else None

    # ==================== Writes ====================

    async def mark_sent_batch(self, ids: Sequence[str], status: DeliveryState) -> None:
        """Move UNSENT events to SENT or FAILED.

        Raises:
            ValueError: If ``status`` is not SENT or FAILED
        """
        if status not in (DeliveryState.SENT, DeliveryState.FAILED):
            raise ValueError(f"mark_sent_batch expects SENT or FAILED, got {status.value}")
        await self._transition(ids, status)

    async def mark_expired_batch(self, ids: Sequence[str]) -> None:
        await self._transition(ids, DeliveryState.EXPIRED)

    async def increment_retry_batch(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        async with self.session() as session:
            await session.execute(
                update(ConversionEventRecord)
                .where(
                    ConversionEventRecord.id.in_(list(ids)),
                    ConversionEventRecord.delivery_state == DeliveryState.UNSENT.value,
                )
                .values(
                    retry_count=ConversionEventRecord.retry_count + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )

    async def _transition(self, ids: Sequence[str], status: DeliveryState) -> None:
        if not ids:
            return
        async with self.session() as session:
            result = await session.execute(
                update(ConversionEventRecord)
                .where(
                    ConversionEventRecord.id.in_(list(ids)),
                    ConversionEventRecord.delivery_state == DeliveryState.UNSENT.value,
                )
                .values(delivery_state=status.value, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount is not None and result.rowcount < len(ids):
                logger.debug(
                    f"{len(ids) - result.rowcount} of {len(ids)} events already terminal; "
                    f"skipped transition to {status.value}"
                )

    async def add_events(self, events: Sequence[ConversionEvent]) -> None:
        """Insert events (used for seeding and by producers)."""
        async with self.session() as session:
            session.add_all([
                ConversionEventRecord(
                    id=event.id,
                    partition_key=event.partition_key,
                    dedup_key=event.dedup_key,
                    event_name=event.event_name,
                    occurred_at=event.occurred_at,
                    delivery_state=event.delivery_state.value,
                    retry_count=event.retry_count,
                    source_url=event.source_url,
                    user_data=event.user_data,
                    custom_data=event.custom_data,
                    created_at=event.created_at,
                )
                for event in events
            ])

    async def upsert_destination(
        self,
        partition_key: str,
        destination_id: str,
        secret: str,
        is_active: bool = True,
    ) -> None:
        """Create or replace the destination credential for a partition."""
        async with self.session() as session:
            existing = await session.get(TrackingDestination, partition_key)
            if existing is None:
                session.add(TrackingDestination(
                    partition_key=partition_key,
                    destination_id=destination_id,
                    access_secret=secret,
                    is_active=is_active,
                ))
            else:
                existing.destination_id = destination_id
                existing.access_secret = secret
                existing.is_active = is_active
