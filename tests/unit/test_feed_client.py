"""
Tests del ResoFeedClient sobre httpx.MockTransport (sin red).
"""
from datetime import datetime, timezone

import httpx
import pytest

from listing_sync.infrastructure.external.reso_sync.feed_client import (
    FeedCredentials,
    ResoFeedClient,
    build_cursor_filter,
    combine_filters,
    quote_odata_literal,
)
from listing_sync.infrastructure.external.reso_sync.types import SyncCursor
from listing_sync.shared.constants.sync_constants import FeedType
from listing_sync.shared.exceptions.sync import TransportError


BASE_URL = "https://feed.example.com/odata"


def _client(handler, sleeps=None, **kwargs):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return ResoFeedClient(
        FeedCredentials(access_token="tok", vow_token="vow-tok"),
        base_url=BASE_URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=fake_sleep,
        **kwargs,
    )


# ============================================================================
# Filtros
# ============================================================================


def test_cursor_filter_includes_same_timestamp_with_greater_key():
    cursor = SyncCursor("property", datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc), "X'1")

    result = build_cursor_filter("ModificationTimestamp", "ListingKey", cursor)

    assert result == (
        "ModificationTimestamp gt 2025-03-01T12:00:00Z or "
        "(ModificationTimestamp eq 2025-03-01T12:00:00Z and ListingKey gt 'X''1')"
    )


def test_cursor_filter_keeps_milliseconds():
    cursor = SyncCursor("media", datetime(2025, 3, 1, 12, 0, 0, 250000, tzinfo=timezone.utc), "")

    assert "2025-03-01T12:00:00.250Z" in build_cursor_filter("Ts", "Key", cursor)


def test_combine_filters_wraps_each_part():
    assert combine_filters(None, "") is None
    assert combine_filters("A eq 1") == "A eq 1"
    assert combine_filters("A eq 1 or B eq 2", "C eq 3") == "(A eq 1 or B eq 2) and (C eq 3)"


def test_quote_odata_literal_escapes_quotes():
    assert quote_odata_literal("O'Brien") == "'O''Brien'"


# ============================================================================
# Requests
# ============================================================================


@pytest.mark.asyncio
async def test_fetch_page_sends_paging_params_and_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"value": [{"ListingKey": "X1"}]})

    client = _client(handler)
    records = await client.fetch_page(
        "Property",
        top=100,
        skip=200,
        order_by="ModificationTimestamp,ListingKey",
        filter="City eq 'Toronto'",
    )

    assert records == [{"ListingKey": "X1"}]
    request = seen[0]
    assert request.url.path == "/odata/Property"
    assert request.url.params["$top"] == "100"
    assert request.url.params["$skip"] == "200"
    assert request.url.params["$orderby"] == "ModificationTimestamp,ListingKey"
    assert request.url.params["$filter"] == "City eq 'Toronto'"
    assert request.headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_vow_feed_uses_its_own_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"value": []})

    await _client(handler).fetch_page("Property", top=1, feed_type=FeedType.VOW)

    assert seen[0].headers["Authorization"] == "Bearer vow-tok"


@pytest.mark.asyncio
async def test_count_reads_odata_count():
    def handler(request):
        assert request.url.params["$count"] == "true"
        assert request.url.params["$top"] == "0"
        return httpx.Response(200, json={"@odata.count": 1234, "value": []})

    assert await _client(handler).count("Media") == 1234


@pytest.mark.asyncio
async def test_fetch_one_returns_none_on_404():
    def handler(request):
        return httpx.Response(404, json={"error": "not found"})

    assert await _client(handler).fetch_one("Property", "X404") is None


@pytest.mark.asyncio
async def test_fetch_one_addresses_record_by_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ListingKey": "X1"})

    record = await _client(handler).fetch_one("Property", "X1")

    assert record == {"ListingKey": "X1"}
    assert seen[0].url.path == "/odata/Property('X1')"


@pytest.mark.asyncio
async def test_retries_on_429_respecting_retry_after():
    responses = [
        httpx.Response(429, headers={"Retry-After": "2"}),
        httpx.Response(503),
        httpx.Response(200, json={"value": []}),
    ]
    sleeps = []

    def handler(request):
        return responses.pop(0)

    records = await _client(handler, sleeps=sleeps, max_retries=3).fetch_page("Property", top=10)

    assert records == []
    assert len(sleeps) == 2
    assert sleeps[0] == 2.0


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    with pytest.raises(TransportError) as exc_info:
        await _client(handler, max_retries=2).fetch_page("Property", top=10)

    assert len(calls) == 3
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, text="bad token")

    with pytest.raises(TransportError):
        await _client(handler).fetch_page("Property", top=10)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_network_error_is_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        await _client(handler, max_retries=1).fetch_page("Property", top=10)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_missing_value_is_a_transport_error():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(TransportError):
        await _client(handler).fetch_page("Property", top=10)


@pytest.mark.asyncio
async def test_non_object_body_is_a_transport_error():
    def handler(request):
        return httpx.Response(200, json=[{"ListingKey": "X1"}])

    client = _client(handler)

    with pytest.raises(TransportError):
        await client.fetch_page("Property", top=10)
    with pytest.raises(TransportError):
        await client.count("Property")
    with pytest.raises(TransportError):
        await client.fetch_one("Property", "X1")
