"""Tests for RemoteIndexClient."""

import json
from typing import Any

import httpx
import pytest
import respx

from chord_catalog.exceptions import (
    NotFound,
    PermissionDenied,
    RemoteRateLimited,
    RemoteRequestError,
    RemoteUnavailable,
)
from chord_catalog.records import CatalogRecord, stamp_for_write
from chord_catalog.remote.client import RemoteIndexClient, mask
from chord_catalog.remote.models import ConnectStatus, SearchOptions

READ_BASE = "https://app123-dsn.algolia.net/1/indexes/irish_music_songs"
WRITE_BASE = "https://app123.algolia.net/1/indexes/irish_music_songs"


def _client(**kwargs: Any) -> RemoteIndexClient:
    kwargs.setdefault("task_poll_interval", 0)
    return RemoteIndexClient("APP123", **kwargs)


def _hit(title: str = "The Kesh Jig", **overrides: object) -> dict[str, object]:
    record = stamp_for_write(
        CatalogRecord(title=title, key="G", time_signature="6/8", style_type="Jig", sections={"A Part": "G | C"}),
        now=1000,
    )
    wire = record.to_wire()
    wire.update(overrides)
    return wire


def _search_json(*hits: dict[str, object]) -> dict[str, object]:
    return {"hits": list(hits), "nbHits": len(hits), "hitsPerPage": 100}


async def _connected(**kwargs: Any) -> RemoteIndexClient:
    client = _client(**kwargs)
    assert await client.connect("search-key") is ConnectStatus.CONNECTED
    return client


# ------------------------------------------------------------------
# connect
# ------------------------------------------------------------------


@respx.mock
async def test_connect_success_sends_read_credentials() -> None:
    """A 1-hit query with the search-only key marks the index reachable."""
    route = respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(200, json=_search_json()))

    client = _client()
    status = await client.connect("search-key")

    assert status is ConnectStatus.CONNECTED
    request = route.calls[0].request
    assert request.headers["X-Algolia-Application-Id"] == "APP123"
    assert request.headers["X-Algolia-API-Key"] == "search-key"
    assert json.loads(request.content) == {"query": "", "hitsPerPage": 1}
    await client.close()


@respx.mock
async def test_connect_missing_key_is_unreachable_without_network() -> None:
    client = _client()
    assert await client.connect("") is ConnectStatus.UNREACHABLE
    await client.close()


@respx.mock
async def test_connect_server_error_is_unreachable() -> None:
    respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(500, json={"message": "boom"}))

    client = _client()
    assert await client.connect("search-key") is ConnectStatus.UNREACHABLE
    await client.close()


@respx.mock
async def test_connect_transport_error_is_unreachable() -> None:
    respx.post(f"{READ_BASE}/query").mock(side_effect=httpx.ConnectError("connection refused"))

    client = _client()
    assert await client.connect("search-key") is ConnectStatus.UNREACHABLE
    await client.close()


@respx.mock
async def test_base_url_overrides_both_hosts() -> None:
    route = respx.post("http://localhost:9999/1/indexes/songs/query").mock(
        return_value=httpx.Response(200, json=_search_json())
    )

    client = RemoteIndexClient("APP123", "songs", base_url="http://localhost:9999/")
    assert await client.connect("search-key") is ConnectStatus.CONNECTED
    assert route.called
    await client.close()


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


@respx.mock
async def test_search_text_query_defaults_to_100_hits() -> None:
    route = respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(200, json=_search_json(_hit())),
        ]
    )

    client = await _connected()
    hits = await client.search("jig")

    assert [hit.id for hit in hits] == ["the-kesh-jig"]
    assert json.loads(route.calls[1].request.content) == {"query": "jig", "hitsPerPage": 100}
    await client.close()


@respx.mock
async def test_search_empty_query_returns_whole_index_page() -> None:
    route = respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(200, json=_search_json()))

    client = await _connected()
    await client.search("", SearchOptions(filters="hidden:false"))

    assert json.loads(route.calls[1].request.content) == {
        "query": "",
        "hitsPerPage": 1000,
        "filters": "hidden:false",
    }
    await client.close()


@respx.mock
async def test_search_hits_per_page_is_capped() -> None:
    route = respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(200, json=_search_json()))

    client = await _connected()
    await client.search("reel", SearchOptions(hits_per_page=5000))

    assert json.loads(route.calls[1].request.content)["hitsPerPage"] == 1000
    await client.close()


async def test_search_before_connect_is_unavailable() -> None:
    client = _client()
    with pytest.raises(RemoteUnavailable, match="not connected"):
        await client.search("jig")
    await client.close()


@respx.mock
async def test_get_by_id_returns_record() -> None:
    respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(200, json=_search_json()))
    respx.get(f"{READ_BASE}/the-kesh-jig").mock(return_value=httpx.Response(200, json=_hit(hidden=True)))

    client = await _connected()
    record = await client.get_by_id("the-kesh-jig")

    assert record is not None
    assert record.title == "The Kesh Jig"
    assert record.hidden is True
    await client.close()


@respx.mock
async def test_get_by_id_missing_returns_none() -> None:
    respx.post(f"{READ_BASE}/query").mock(return_value=httpx.Response(200, json=_search_json()))
    respx.get(f"{READ_BASE}/nope").mock(return_value=httpx.Response(404, json={"message": "ObjectID does not exist"}))

    client = await _connected()
    assert await client.get_by_id("nope") is None
    await client.close()


# ------------------------------------------------------------------
# Status mapping and retries
# ------------------------------------------------------------------


@respx.mock
async def test_403_raises_permission_denied() -> None:
    respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(403, json={"message": "Method not allowed with this API key"}),
        ]
    )

    client = await _connected()
    with pytest.raises(PermissionDenied, match="403"):
        await client.search("jig")
    await client.close()


@respx.mock
async def test_429_without_retries_raises_rate_limited() -> None:
    respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(429, headers={"Retry-After": "7"}),
        ]
    )

    client = await _connected()
    with pytest.raises(RemoteRateLimited) as exc_info:
        await client.search("jig")
    assert exc_info.value.retry_after == 7.0
    assert exc_info.value.status_code == 429
    await client.close()


@respx.mock
async def test_503_raises_unavailable_with_status() -> None:
    respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(503, json={"message": "Service Unavailable"}),
        ]
    )

    client = await _connected()
    with pytest.raises(RemoteUnavailable) as exc_info:
        await client.search("jig")
    assert exc_info.value.status_code == 503
    assert "Service Unavailable" in str(exc_info.value)
    await client.close()


@respx.mock
async def test_other_4xx_raises_request_error() -> None:
    respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(400, json={"message": "Invalid filters"}),
        ]
    )

    client = await _connected()
    with pytest.raises(RemoteRequestError, match="Invalid filters"):
        await client.search("jig", SearchOptions(filters="broken:"))
    await client.close()


@respx.mock
async def test_server_error_is_retried_when_configured() -> None:
    route = respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(502),
            httpx.Response(200, json=_search_json(_hit())),
        ]
    )

    client = await _connected(max_retries=1, retry_base_delay=0)
    hits = await client.search("jig")

    assert len(hits) == 1
    assert route.call_count == 3
    await client.close()


@respx.mock
async def test_rate_limit_is_retried_after_header_delay() -> None:
    route = respx.post(f"{READ_BASE}/query").mock(
        side_effect=[
            httpx.Response(200, json=_search_json()),
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json=_search_json()),
        ]
    )

    client = await _connected(max_retries=2, retry_base_delay=0)
    assert await client.search("jig") == []
    assert route.call_count == 3
    await client.close()


# ------------------------------------------------------------------
# Elevated scope
# ------------------------------------------------------------------


@respx.mock
async def test_write_without_session_raises_before_network() -> None:
    """No routes are mocked: any request would fail the test with a different error."""
    client = _client()
    with pytest.raises(PermissionDenied, match="elevated session"):
        await client.write(stamp_for_write(CatalogRecord(title="Danny Boy", sections={"V": "C"})), None)
    with pytest.raises(PermissionDenied):
        await client.delete("danny-boy", None)
    with pytest.raises(PermissionDenied):
        await client.batch_write([], None)
    await client.close()


async def test_elevate_empty_key_raises() -> None:
    client = _client()
    with pytest.raises(PermissionDenied, match="empty"):
        client.elevate("   ")
    await client.close()


@respx.mock
async def test_write_uses_admin_key_on_write_host() -> None:
    route = respx.put(f"{WRITE_BASE}/the-kesh-jig").mock(
        return_value=httpx.Response(200, json={"taskID": 42, "objectID": "the-kesh-jig"})
    )
    record = stamp_for_write(
        CatalogRecord(title="The Kesh Jig", key="G", sections={"A Part": "G | C"}),
        now=1000,
    )

    client = _client()
    async with client.elevated("admin-key") as session:
        saved = await client.write(record, session)

    assert saved == record
    assert saved is not record
    request = route.calls[0].request
    assert request.headers["X-Algolia-API-Key"] == "admin-key"
    body = json.loads(request.content)
    assert body["objectID"] == "the-kesh-jig"
    assert body["chords"] == {"A Part": "G | C"}
    assert session.released
    await client.close()


@respx.mock
async def test_elevated_scope_releases_on_error() -> None:
    respx.delete(f"{WRITE_BASE}/danny-boy").mock(return_value=httpx.Response(401, json={"message": "Invalid"}))

    client = _client()
    with pytest.raises(PermissionDenied):
        async with client.elevated("wrong-key") as session:
            await client.delete("danny-boy", session)

    assert session.released
    with pytest.raises(PermissionDenied, match="released"):
        session.credential()
    await client.close()


@respx.mock
async def test_delete_missing_record_raises_not_found() -> None:
    respx.delete(f"{WRITE_BASE}/ghost").mock(return_value=httpx.Response(404, json={"message": "not found"}))

    client = _client()
    async with client.elevated("admin-key") as session:
        with pytest.raises(NotFound) as exc_info:
            await client.delete("ghost", session)
    assert exc_info.value.record_id == "ghost"
    await client.close()


@respx.mock
async def test_batch_write_waits_for_task() -> None:
    batch_route = respx.post(f"{WRITE_BASE}/batch").mock(
        return_value=httpx.Response(200, json={"taskID": 7, "objectIDs": ["the-kesh-jig", "danny-boy"]})
    )
    task_route = respx.get(f"{WRITE_BASE}/task/7").mock(
        side_effect=[
            httpx.Response(200, json={"status": "notPublished"}),
            httpx.Response(200, json={"status": "published"}),
        ]
    )
    records = [
        stamp_for_write(CatalogRecord(title="The Kesh Jig", sections={"A": "G"})),
        stamp_for_write(CatalogRecord(title="Danny Boy", sections={"V": "C"})),
    ]

    client = _client()
    async with client.elevated("admin-key") as session:
        saved = await client.batch_write(records, session, wait=True)

    assert [record.id for record in saved] == ["the-kesh-jig", "danny-boy"]
    body = json.loads(batch_route.calls[0].request.content)
    assert [request["action"] for request in body["requests"]] == ["updateObject", "updateObject"]
    assert body["requests"][1]["body"]["objectID"] == "danny-boy"
    assert task_route.call_count == 2
    await client.close()


@respx.mock
async def test_batch_write_is_chunked() -> None:
    route = respx.post(f"{WRITE_BASE}/batch").mock(return_value=httpx.Response(200, json={"taskID": 1}))
    records = [stamp_for_write(CatalogRecord(title=f"Tune {i}", sections={"A": "G"})) for i in range(1001)]

    client = _client()
    async with client.elevated("admin-key") as session:
        await client.batch_write(records, session)

    assert route.call_count == 2
    assert len(json.loads(route.calls[0].request.content)["requests"]) == 1000
    assert len(json.loads(route.calls[1].request.content)["requests"]) == 1
    await client.close()


@respx.mock
async def test_wait_for_task_gives_up() -> None:
    respx.get(f"{WRITE_BASE}/task/3").mock(return_value=httpx.Response(200, json={"status": "notPublished"}))

    client = _client(task_poll_attempts=2)
    async with client.elevated("admin-key") as session:
        assert await client.wait_for_task(3, session) is False
    await client.close()


def test_mask_hides_secret() -> None:
    assert mask("abcdef123456") == "abcdef..."
    assert mask("") == "MISSING"
