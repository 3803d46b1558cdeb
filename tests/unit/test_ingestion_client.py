"""Unit tests for HttpIngestionClient and GuardedIngestionClient."""

import hashlib
import json

import httpx
import pytest

from campaign_resilience.config.schemas.delivery import IngestionConfig
from campaign_resilience.delivery import GuardedIngestionClient, HttpIngestionClient, hash_user_data
from campaign_resilience.resilience import CircuitBreaker
from campaign_resilience.types import (
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    IngestionError,
    IngestionReceipt,
)

from conftest import make_credential, make_event


def sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def mock_client(handler, config: IngestionConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))


class TestHashing:
    """Test PII hashing rules."""

    def test_pii_is_normalized_and_hashed(self):
        result = hash_user_data({"em": "  Alice@Example.COM ", "ph": "821012345678"})

        assert result["em"] == sha256("alice@example.com")
        assert result["ph"] == sha256("821012345678")

    def test_server_fields_pass_through(self):
        result = hash_user_data({"client_ip_address": "10.0.0.1", "fbp": "fb.1.123"})
        assert result == {"client_ip_address": "10.0.0.1", "fbp": "fb.1.123"}

    def test_empty_and_unknown_fields_dropped(self):
        assert hash_user_data({"em": "", "favourite_colour": "blue"}) is None


class TestFormatEvent:
    """Test event payload formatting."""

    def test_format_event(self):
        client = HttpIngestionClient(IngestionConfig())
        event = make_event(
            "e1",
            "P1",
            source_url="https://shop.example.com/checkout",
            user_data={"em": "a@b.com"},
            custom_data={"value": 12.5, "currency": "KRW"},
        )

        payload = client.format_event(event)

        assert payload["event_name"] == "Purchase"
        assert payload["event_id"] == "dedup-e1"
        assert payload["event_time"] == int(event.occurred_at.timestamp())
        assert payload["event_source_url"] == "https://shop.example.com/checkout"
        assert payload["action_source"] == "website"
        assert payload["user_data"] == {"em": sha256("a@b.com")}
        assert payload["custom_data"] == {"value": 12.5, "currency": "KRW"}

    def test_optional_sections_omitted(self):
        payload = HttpIngestionClient().format_event(make_event("e1"))
        assert "user_data" not in payload
        assert "custom_data" not in payload
        assert "event_source_url" not in payload


class TestSendEvents:
    """Test HTTP exchange with a mocked transport."""

    @pytest.mark.asyncio
    async def test_posts_to_destination_endpoint(self):
        config = IngestionConfig(api_version="v18.0")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"events_received": 2, "fbtrace_id": "trace-1"})

        async with HttpIngestionClient(config, client=mock_client(handler, config)) as client:
            receipt = await client.send_events(
                [make_event("e1"), make_event("e2")], make_credential("P1", "pixel-9")
            )

        assert receipt == IngestionReceipt(events_received=2, trace_id="trace-1", messages=[])
        assert len(seen) == 1
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/v18.0/pixel-9/events"
        body = json.loads(seen[0].content)
        assert body["access_token"] == "secret-P1"
        assert [item["event_id"] for item in body["data"]] == ["dedup-e1", "dedup-e2"]

    @pytest.mark.asyncio
    async def test_large_batches_are_chunked(self):
        config = IngestionConfig(max_batch_size=2)
        sizes = []

        def handler(request: httpx.Request) -> httpx.Response:
            count = len(json.loads(request.content)["data"])
            sizes.append(count)
            return httpx.Response(200, json={"events_received": count, "messages": [f"ok {count}"]})

        client = HttpIngestionClient(config, client=mock_client(handler, config))
        events = [make_event(f"e{i}") for i in range(5)]

        receipt = await client.send_events(events, make_credential("P1"))

        assert sizes == [2, 2, 1]
        assert receipt.events_received == 5
        assert receipt.messages == ["ok 2", "ok 2", "ok 1"]

    @pytest.mark.asyncio
    async def test_empty_send_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        receipt = await client.send_events([], make_credential("P1"))
        assert receipt.events_received == 0

    @pytest.mark.asyncio
    async def test_error_status_raises_ingestion_error(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"error": {"message": "Invalid parameter", "code": 100, "error_subcode": 2804003,
                                "fbtrace_id": "trace-err"}},
            )

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        with pytest.raises(IngestionError) as exc_info:
            await client.send_events([make_event("e1")], make_credential("P1"))

        error = exc_info.value
        assert str(error) == "Invalid parameter"
        assert error.status_code == 400
        assert error.error_code == 100
        assert error.error_subcode == 2804003
        assert error.trace_id == "trace-err"
        assert error.dependency == "ingestion-api"

    @pytest.mark.asyncio
    async def test_error_body_with_200_raises(self):
        def handler(request):
            return httpx.Response(200, json={"error": {"message": "Token expired", "code": 190}})

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        with pytest.raises(IngestionError, match="Token expired"):
            await client.send_events([make_event("e1")], make_credential("P1"))

    @pytest.mark.asyncio
    async def test_non_json_error_response(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        with pytest.raises(IngestionError, match="HTTP 502"):
            await client.send_events([make_event("e1")], make_credential("P1"))

    @pytest.mark.asyncio
    async def test_success_with_non_object_body_raises(self):
        def handler(request):
            return httpx.Response(200, json=[])

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        with pytest.raises(IngestionError, match="unexpected body: list") as exc_info:
            await client.send_events([make_event("e1")], make_credential("P1"))
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_transport_error_raises_ingestion_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        config = IngestionConfig()
        client = HttpIngestionClient(config, client=mock_client(handler, config))

        with pytest.raises(IngestionError) as exc_info:
            await client.send_events([make_event("e1")], make_credential("P1"))
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)


class TestGuardedIngestionClient:
    """Circuit breaker around the ingestion client."""

    class Flaky:
        def __init__(self, failures):
            self.failures = failures
            self.calls = 0

        async def send_events(self, events, credential):
            self.calls += 1
            if self.calls <= self.failures:
                raise IngestionError("temporarily unavailable", status_code=503)
            return IngestionReceipt(events_received=len(events))

    @pytest.mark.asyncio
    async def test_single_attempt_per_send(self, clock):
        inner = self.Flaky(failures=1)
        guarded = GuardedIngestionClient(inner, CircuitBreaker("ingestion-api", clock=clock))

        with pytest.raises(IngestionError):
            await guarded.send_events([make_event("e1")], make_credential("P1"))
        assert inner.calls == 1

        receipt = await guarded.send_events([make_event("e1")], make_credential("P1"))
        assert receipt.events_received == 1
        assert inner.calls == 2

    @pytest.mark.asyncio
    async def test_failures_open_breaker_and_fail_fast(self, clock):
        inner = self.Flaky(failures=100)
        breaker = CircuitBreaker("ingestion-api", CircuitBreakerConfig(failure_threshold=2), clock=clock)
        guarded = GuardedIngestionClient(inner, breaker)

        for _ in range(2):
            with pytest.raises(IngestionError):
                await guarded.send_events([make_event("e1")], make_credential("P1"))

        assert breaker.state is CircuitState.OPEN
        assert inner.calls == 2

        with pytest.raises(CircuitOpenError):
            await guarded.send_events([make_event("e1")], make_credential("P1"))
        assert inner.calls == 2
