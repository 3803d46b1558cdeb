"""Async HTTP client for the conversion ingestion API."""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from campaign_resilience.config.schemas.delivery import IngestionConfig
from campaign_resilience.delivery.ports import IngestionClient
from campaign_resilience.resilience.circuit_breaker import CircuitBreaker
from campaign_resilience.types.delivery_models import (
    ConversionEvent,
    IngestionReceipt,
    PartitionCredential,
)
from campaign_resilience.types.error_types import IngestionError

HASHED_USER_FIELDS = ("em", "ph", "fn", "ln", "ct", "st", "zp", "country", "external_id")
PASSTHROUGH_USER_FIELDS = ("client_ip_address", "client_user_agent", "fbc", "fbp")


def hash_value(value: Any) -> str:
    """SHA-256 of the lowercased, trimmed value."""
    return hashlib.sha256(str(value).strip().lower().encode("utf-8")).hexdigest()


def hash_user_data(user_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Hash PII fields and keep server-collected fields as-is; unknown keys are dropped."""
    result: Dict[str, Any] = {}
    for key in HASHED_USER_FIELDS:
        if user_data.get(key):
            result[key] = hash_value(user_data[key])
    for key in PASSTHROUGH_USER_FIELDS:
        if user_data.get(key):
            result[key] = user_data[key]
    return result or None


class HttpIngestionClient:
    """Bulk sender for conversion events.

    One ``send_events`` call is one logical bulk send; batches larger than
    ``max_batch_size`` are split into sequential requests. Any failure raises
    ``IngestionError`` and the caller treats the whole group as undelivered.
    """

    def __init__(
        self,
        config: Optional[IngestionConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize ingestion client.

        Args:
            config: Ingestion API settings
            client: Pre-built httpx client (tests pass one with a MockTransport)
        """
        self.config = config or IngestionConfig()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> HttpIngestionClient:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.config.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def format_event(self, event: ConversionEvent) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event_name": event.event_name,
            "event_time": int(event.occurred_at.timestamp()),
            "event_id": event.dedup_key,
            "action_source": self.config.action_source,
        }
        if event.source_url:
            payload["event_source_url"] = event.source_url
        user_data = hash_user_data(event.user_data)
        if user_data:
            payload["user_data"] = user_data
        if event.custom_data:
            payload["custom_data"] = event.custom_data
        return payload

    async def send_events(
        self, events: Sequence[ConversionEvent], credential: PartitionCredential
    ) -> IngestionReceipt:
        """Send events to the credential's destination.

        Returns:
            Receipt with ``events_received`` summed across chunks

        Raises:
            IngestionError: On transport failure, non-2xx status or an error body
        """
        if not events:
            return IngestionReceipt()

        size = self.config.max_batch_size
        chunks = [events[i:i + size] for i in range(0, len(events), size)]

        total = 0
        messages: List[str] = []
        trace_id: Optional[str] = None
        for chunk in chunks:
            receipt = await self._send_chunk(chunk, credential)
            total += receipt.events_received
            messages.extend(receipt.messages)
            trace_id = receipt.trace_id or trace_id

        return IngestionReceipt(events_received=total, trace_id=trace_id, messages=messages)

    async def _send_chunk(
        self, events: Sequence[ConversionEvent], credential: PartitionCredential
    ) -> IngestionReceipt:
        client = self._ensure_client()
        path = f"/{self.config.api_version}/{credential.destination_id}/events"
        body = {
            "data": [self.format_event(event) for event in events],
            "access_token": credential.secret,
        }

        logger.debug(f"POST {path} with {len(events)} events")
        try:
            response = await client.post(path, json=body)
        except httpx.HTTPError as e:
            raise IngestionError(f"Request to ingestion API failed: {e}", original_error=e) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        error = data.get("error") if isinstance(data, dict) else None
        if response.is_error or error:
            error = error if isinstance(error, dict) else {}
            raise IngestionError(
                error.get("message") or f"Ingestion API returned HTTP {response.status_code}",
                status_code=response.status_code,
                error_code=error.get("code"),
                error_subcode=error.get("error_subcode"),
                trace_id=error.get("fbtrace_id"),
            )

        if not isinstance(data, dict):
            raise IngestionError(
                f"Ingestion API returned an unexpected body: {type(data).__name__}",
                status_code=response.status_code,
            )

        return IngestionReceipt(
            events_received=int(data.get("events_received", 0)),
            trace_id=data.get("fbtrace_id"),
            messages=list(data.get("messages") or []),
        )


class GuardedIngestionClient:
    """Ingestion client behind the ingestion API's circuit breaker.

    Each bulk send is a single delivery attempt; the dispatcher's per-event
    retry count is the only retry budget. Once the breaker opens, remaining
    partitions fail fast with ``CircuitOpenError`` and stay pending for the
    next run.
    """

    def __init__(self, inner: IngestionClient, breaker: CircuitBreaker):
        self.inner = inner
        self.breaker = breaker

    async def send_events(
        self, events: Sequence[ConversionEvent], credential: PartitionCredential
    ) -> IngestionReceipt:
        return await self.breaker.execute(lambda: self.inner.send_events(events, credential))
