"""
Conversion event dispatcher.

A batch job invoked periodically by an external scheduler. Each run:

1. loads UNSENT events (bounded page),
2. expires events older than the destination's acceptance window,
3. fails events whose retry count already exceeds the ceiling,
4. groups the rest by partition key and resolves credentials once,
5. issues one bulk send per partition, marking the whole group SENT on
   success or incrementing its retry count on failure.

Partitions are isolated from each other: one partition's failure is counted
in the summary and never aborts the run. A partition rejected by an open
circuit breaker is counted as failed for the run but keeps its retry count.
Runs are safe to overlap because every state other than UNSENT is terminal.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from loguru import logger

from campaign_resilience.config.schemas.delivery import DispatchConfig
from campaign_resilience.delivery.ports import ConversionEventRepository, IngestionClient
from campaign_resilience.logging_config import run_context
from campaign_resilience.types.delivery_models import (
    ConversionEvent,
    DeliveryState,
    DispatchSummary,
    PartitionCredential,
)
from campaign_resilience.types.error_types import PermanentRejectionError
from campaign_resilience.types.resilience_types import CircuitOpenError

STALE = "stale"
RETRY_CEILING = "retry_ceiling"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _PartitionOutcome:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class ConversionEventDispatcher:
    """Drive bulk delivery of pending conversion events, one send per partition."""

    def __init__(
        self,
        repository: ConversionEventRepository,
        ingestion_client: IngestionClient,
        config: Optional[DispatchConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.ingestion_client = ingestion_client
        self.config = config or DispatchConfig()
        self._clock = clock

    async def run(self) -> DispatchSummary:
        """
        Execute one dispatch pass.

        Returns:
            Counts of processed, sent, expired and failed events plus error messages

        Raises:
            Exception: Only when loading events or credentials fails; per-partition
                failures are reported in the summary instead
        """
        with run_context(f"dispatch_{uuid4().hex[:12]}"):
            return await self._run()

    async def _run(self) -> DispatchSummary:
        summary = DispatchSummary()

        events = await self.repository.find_unsent_events(self.config.batch_limit)
        if not events:
            logger.debug("No unsent conversion events")
            return summary
        summary.processed = len(events)

        sendable, rejections = self.screen(events, self._clock())
        for rejection in rejections:
            await self._apply_rejection(rejection)
            if rejection.reason == STALE:
                summary.expired += len(rejection.event_ids)
            else:
                summary.failed += len(rejection.event_ids)

        if sendable:
            groups = self.group_by_partition(sendable)
            credentials = await self.repository.find_partition_credentials(list(groups))
            by_key = {credential.partition_key: credential for credential in credentials}

            semaphore = asyncio.Semaphore(self.config.max_concurrent_partitions)
            outcomes = await asyncio.gather(*(
                self._dispatch_partition(key, group, by_key.get(key), semaphore)
                for key, group in groups.items()
            ))
            for outcome in outcomes:
                summary.sent += outcome.sent
                summary.failed += outcome.failed
                summary.errors.extend(outcome.errors)

        logger.info(
            f"Dispatch run finished | processed={summary.processed} | sent={summary.sent} | "
            f"expired={summary.expired} | failed={summary.failed}"
        )
        return summary

    def screen(
        self, events: Sequence[ConversionEvent], now: datetime
    ) -> Tuple[List[ConversionEvent], List[PermanentRejectionError]]:
        """
        Split events into those worth sending and permanent rejections.

        Stale events are rejected first, so an event that is both stale and
        over the retry ceiling ends up EXPIRED.
        """
        window = timedelta(days=self.config.stale_after_days)
        stale: List[str] = []
        exhausted: List[str] = []
        sendable: List[ConversionEvent] = []

        for event in events:
            if event.is_stale(now, window):
                stale.append(event.id)
            elif event.retry_count > self.config.max_retry_count:
                exhausted.append(event.id)
            else:
                sendable.append(event)

        rejections = []
        if stale:
            rejections.append(PermanentRejectionError(stale, STALE))
        if exhausted:
            rejections.append(PermanentRejectionError(exhausted, RETRY_CEILING))
        return sendable, rejections

    @staticmethod
    def group_by_partition(events: Sequence[ConversionEvent]) -> Dict[str, List[ConversionEvent]]:
        groups: Dict[str, List[ConversionEvent]] = {}
        for event in events:
            groups.setdefault(event.partition_key, []).append(event)
        return groups

    async def _apply_rejection(self, rejection: PermanentRejectionError) -> None:
        logger.info(str(rejection))
        if rejection.reason == STALE:
            await self.repository.mark_expired_batch(rejection.event_ids)
        else:
            await self.repository.mark_sent_batch(rejection.event_ids, DeliveryState.FAILED)

    async def _dispatch_partition(
        self,
        partition_key: str,
        events: List[ConversionEvent],
        credential: Optional[PartitionCredential],
        semaphore: asyncio.Semaphore,
    ) -> _PartitionOutcome:
        outcome = _PartitionOutcome()
        ids = [event.id for event in events]

        async with semaphore:
            if credential is None:
                logger.warning(f"No credential for partition {partition_key}; {len(ids)} events deferred")
                outcome.failed = len(ids)
                outcome.errors.append(f"Credential not found: {partition_key}")
                await self._increment_retries(partition_key, ids, outcome)
                return outcome

            try:
                receipt = await self.ingestion_client.send_events(events, credential)
            except CircuitOpenError as e:
                # Destination never reached; retry count unchanged
                logger.info(f"Partition {partition_key}: {len(ids)} events deferred, {e}")
                outcome.failed = len(ids)
                outcome.errors.append(f"Partition {partition_key}: {e}")
                return outcome
            except Exception as e:
                logger.warning(f"Partition {partition_key} send failed for {len(ids)} events: {e}")
                outcome.failed = len(ids)
                outcome.errors.append(f"Partition {partition_key}: {e}")
                await self._increment_retries(partition_key, ids, outcome)
                return outcome

            if receipt.events_received != len(ids):
                # Acknowledgement is treated as all-or-nothing per bulk call
                logger.warning(
                    f"Partition {partition_key}: destination acknowledged "
                    f"{receipt.events_received}/{len(ids)} events (trace_id={receipt.trace_id})"
                )

            try:
                await self.repository.mark_sent_batch(ids, DeliveryState.SENT)
            except Exception as e:
                # Events stay UNSENT; the next run re-sends them under the same dedup keys
                logger.error(f"Partition {partition_key}: delivered but could not mark SENT: {e}")
                outcome.failed = len(ids)
                outcome.errors.append(f"Partition {partition_key}: mark sent failed: {e}")
                return outcome

            outcome.sent = len(ids)
            logger.debug(f"Partition {partition_key}: sent {len(ids)} events (trace_id={receipt.trace_id})")
            return outcome

    async def _increment_retries(
        self, partition_key: str, ids: List[str], outcome: _PartitionOutcome
    ) -> None:
        try:
            await self.repository.increment_retry_batch(ids)
        except Exception as e:
            logger.error(f"Partition {partition_key}: could not increment retry count: {e}")
            outcome.errors.append(f"Partition {partition_key}: retry increment failed: {e}")
