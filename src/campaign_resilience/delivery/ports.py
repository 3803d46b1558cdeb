"""Narrow interfaces the dispatcher depends on."""

from typing import Iterable, List, Protocol, Sequence, runtime_checkable

from campaign_resilience.types.delivery_models import (
    ConversionEvent,
    DeliveryState,
    IngestionReceipt,
    PartitionCredential,
)


@runtime_checkable
class ConversionEventRepository(Protocol):
    """Persistence port for conversion events and destination credentials."""

    async def find_unsent_events(self, limit: int) -> List[ConversionEvent]:
        """Return at most ``limit`` events still in UNSENT, oldest first."""
        ...

    async def find_partition_credentials(
        self, partition_keys: Iterable[str]
    ) -> List[PartitionCredential]:
        """Resolve credentials for the given partition keys; unknown keys are omitted."""
        ...

    async def mark_sent_batch(self, ids: Sequence[str], status: DeliveryState) -> None:
        """Move UNSENT events to SENT or FAILED."""
        ...

    async def mark_expired_batch(self, ids: Sequence[str]) -> None:
        """Move UNSENT events to EXPIRED."""
        ...

    async def increment_retry_batch(self, ids: Sequence[str]) -> None:
        """Increment retry_count of events that are still UNSENT."""
        ...


@runtime_checkable
class IngestionClient(Protocol):
    """External bulk ingestion API."""

    async def send_events(
        self, events: Sequence[ConversionEvent], credential: PartitionCredential
    ) -> IngestionReceipt:
        """Deliver ``events`` in one logical bulk call; raise on any failure."""
        ...
