"""Async client for the hosted search index, with two credential scopes."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Self
from urllib.parse import quote

import httpx

from chord_catalog.constants import (
    ALGOLIA_API_PREFIX,
    ALGOLIA_READ_HOST_TEMPLATE,
    ALGOLIA_WRITE_HOST_TEMPLATE,
    API_KEY_HEADER,
    APP_ID_HEADER,
    BATCH_CHUNK_SIZE,
    DEFAULT_ELEVATED_SESSION_TTL_SECONDS,
    DEFAULT_HITS_PER_PAGE,
    DEFAULT_INDEX_NAME,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TASK_POLL_ATTEMPTS,
    DEFAULT_TASK_POLL_INTERVAL,
    MASKED_PREFIX_LENGTH,
    MAX_HITS_PER_PAGE,
    TASK_PUBLISHED,
)
from chord_catalog.exceptions import (
    NotFound,
    PermissionDenied,
    RemoteIndexError,
    RemoteRateLimited,
    RemoteRequestError,
    RemoteUnavailable,
)
from chord_catalog.records import CatalogRecord
from chord_catalog.remote.models import (
    BatchResponse,
    ConnectStatus,
    SearchOptions,
    SearchResponse,
    TaskStatusResponse,
    WriteTaskResponse,
)
from chord_catalog.remote.session import ElevatedSession
from chord_catalog.settings import CatalogSettings

logger = logging.getLogger(__name__)


def mask(value: str) -> str:
    """Show only the first few characters of a configuration secret."""
    return f"{value[:MASKED_PREFIX_LENGTH]}..." if value else "MISSING"


class RemoteIndexClient:
    """Typed access to one hosted index under a read-only or an elevated credential.

    Reads use the search-only key bound by :meth:`connect`. Writes require an
    :class:`ElevatedSession` from :meth:`elevate` (or the :meth:`elevated`
    context manager, which always releases it). Called without one, writes
    raise :class:`PermissionDenied` before any network traffic.

    Status mapping: transport errors and 5xx -> RemoteUnavailable, 429 ->
    RemoteRateLimited, 401/403 -> PermissionDenied, 404 -> NotFound, other
    4xx -> RemoteRequestError. 429/5xx/transport failures are retried only
    when ``max_retries`` > 0.
    """

    def __init__(
        self,
        app_id: str,
        index_name: str = DEFAULT_INDEX_NAME,
        *,
        base_url: str = "",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        task_poll_attempts: int = DEFAULT_TASK_POLL_ATTEMPTS,
        task_poll_interval: float = DEFAULT_TASK_POLL_INTERVAL,
        session_ttl_seconds: float = DEFAULT_ELEVATED_SESSION_TTL_SECONDS,
    ) -> None:
        self._app_id = app_id
        self._index_name = index_name
        base = base_url.rstrip("/")
        self._read_host = base or ALGOLIA_READ_HOST_TEMPLATE.format(app_id=app_id.lower())
        self._write_host = base or ALGOLIA_WRITE_HOST_TEMPLATE.format(app_id=app_id.lower())
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._task_poll_attempts = task_poll_attempts
        self._task_poll_interval = task_poll_interval
        self._session_ttl_seconds = session_ttl_seconds
        self._read_key = ""
        self._client = httpx.AsyncClient(timeout=request_timeout)

    @classmethod
    def from_settings(cls, settings: CatalogSettings) -> Self:
        """Build a client from catalog settings (the read key is bound by connect)."""
        return cls(
            settings.ALGOLIA_APP_ID,
            settings.ALGOLIA_INDEX_NAME,
            base_url=settings.ALGOLIA_BASE_URL,
            max_retries=settings.ALGOLIA_MAX_RETRIES,
            retry_base_delay=settings.ALGOLIA_RETRY_BASE_DELAY,
            request_timeout=settings.ALGOLIA_REQUEST_TIMEOUT,
            task_poll_attempts=settings.ALGOLIA_TASK_POLL_ATTEMPTS,
            task_poll_interval=settings.ALGOLIA_TASK_POLL_INTERVAL,
            session_ttl_seconds=settings.ELEVATED_SESSION_TTL_SECONDS,
        )

    @property
    def index_name(self) -> str:
        return self._index_name

    async def close(self) -> None:
        """Close underlying HTTP client."""
        await self._client.aclose()

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        api_key: str,
        *,
        json_body: dict[str, Any] | None = None,
        record_id: str = "",
    ) -> httpx.Response:
        """Send a request and map failures onto the catalog error taxonomy.

        Retry loop (only while attempts remain):
        1. Transport error: sleep(exponential backoff), continue
        2. 429: sleep(Retry-After header or exponential backoff), continue
        3. 5xx: sleep(exponential backoff), continue
        401/403, 404 and other 4xx raise immediately.
        """
        last_status: int | None = None
        last_detail = ""
        last_retry_after: float | None = None

        for attempt in range(self._max_retries + 1):
            can_retry = attempt < self._max_retries
            try:
                response = await self._client.request(
                    method,
                    url,
                    json=json_body,
                    headers={APP_ID_HEADER: self._app_id, API_KEY_HEADER: api_key},
                )
            except httpx.TransportError as exc:
                last_status = None
                last_detail = f"{type(exc).__name__}: {exc}"
                if can_retry:
                    await self._backoff(attempt, f"transport error ({last_detail})")
                    continue
                raise RemoteUnavailable(last_detail) from exc

            status = response.status_code
            last_status = status

            if 200 <= status < 300:
                return response

            detail = self._error_detail(response)

            if status in (401, 403):
                raise PermissionDenied(f"Remote index rejected the API key: HTTP {status} ({detail})")

            if status == 404:
                raise NotFound(record_id or url)

            if status == 429:
                retry_after_header = response.headers.get("Retry-After")
                delay = float(retry_after_header) if retry_after_header else self._retry_base_delay * (2**attempt)
                last_retry_after = delay
                if can_retry:
                    await self._backoff(attempt, "rate limited (429)", delay=delay)
                    continue
                raise RemoteRateLimited(retry_after=last_retry_after)

            if status >= 500:
                last_detail = detail
                if can_retry:
                    await self._backoff(attempt, f"server error {status}")
                    continue
                raise RemoteUnavailable(detail, status_code=status)

            raise RemoteRequestError(status_code=status, detail=detail)

        raise RemoteUnavailable(last_detail or "max retries exhausted", status_code=last_status)

    async def _backoff(self, attempt: int, reason: str, *, delay: float | None = None) -> None:
        wait = delay if delay is not None else self._retry_base_delay * (2**attempt)
        logger.warning(
            "Remote index %s, sleeping %.1fs (attempt %d/%d)",
            reason,
            wait,
            attempt + 1,
            self._max_retries,
        )
        await asyncio.sleep(wait)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        detail = f"HTTP {response.status_code}"
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = str(body.get("message", detail))
        except ValueError:
            if response.text:
                detail = response.text[:200]
        return detail

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteUnavailable("invalid JSON response", status_code=response.status_code) from exc

    def _index_url(self, host: str) -> str:
        return f"{host}{ALGOLIA_API_PREFIX}/{quote(self._index_name, safe='')}"

    def _object_url(self, host: str, record_id: str) -> str:
        return f"{self._index_url(host)}/{quote(record_id, safe='')}"

    def _require_read_key(self) -> str:
        if not self._read_key:
            raise RemoteUnavailable("not connected; call connect() first")
        return self._read_key

    @staticmethod
    def _require_session(session: ElevatedSession | None) -> str:
        if session is None:
            raise PermissionDenied("Write operations require an elevated session")
        return session.credential()

    # -------------------------------------------------------------------
    # Read-only scope
    # -------------------------------------------------------------------

    async def connect(self, read_key: str) -> ConnectStatus:
        """Bind the search-only key and check reachability with a 1-hit search.

        Never raises: configuration, network and HTTP failures all yield
        ``ConnectStatus.UNREACHABLE``.
        """
        logger.info(
            "Remote index config: app_id=%s, api_key=%s, index=%s",
            mask(self._app_id),
            mask(read_key),
            self._index_name,
        )
        if not self._app_id or not read_key:
            logger.warning(
                "Missing remote index configuration: app_id=%s, api_key=%s",
                bool(self._app_id),
                bool(read_key),
            )
            return ConnectStatus.UNREACHABLE

        self._read_key = read_key
        try:
            await self._query("", hits_per_page=1, filters="")
        except (RemoteIndexError, NotFound) as exc:
            logger.warning("Remote index connection failed, using fallback: %s", exc)
            return ConnectStatus.UNREACHABLE

        logger.info("Remote index connection established")
        return ConnectStatus.CONNECTED

    async def search(self, query: str, options: SearchOptions | None = None) -> list[CatalogRecord]:
        """POST /1/indexes/{index}/query. An empty query returns the whole index up to 1000 hits."""
        options = options or SearchOptions()
        if options.hits_per_page is None:
            hits_per_page = DEFAULT_HITS_PER_PAGE if query else MAX_HITS_PER_PAGE
        else:
            hits_per_page = min(max(options.hits_per_page, 1), MAX_HITS_PER_PAGE)
        result = await self._query(query, hits_per_page=hits_per_page, filters=options.filters)
        return result.hits

    async def _query(self, query: str, *, hits_per_page: int, filters: str) -> SearchResponse:
        body: dict[str, Any] = {"query": query, "hitsPerPage": hits_per_page}
        if filters:
            body["filters"] = filters
        response = await self._request(
            "POST",
            f"{self._index_url(self._read_host)}/query",
            self._require_read_key(),
            json_body=body,
        )
        return SearchResponse.model_validate(self._json(response))

    async def get_by_id(self, record_id: str) -> CatalogRecord | None:
        """GET /1/indexes/{index}/{objectID}; ``None`` when the record does not exist."""
        try:
            response = await self._request(
                "GET",
                self._object_url(self._read_host, record_id),
                self._require_read_key(),
                record_id=record_id,
            )
        except NotFound:
            return None
        return CatalogRecord.model_validate(self._json(response))

    # -------------------------------------------------------------------
    # Elevated scope
    # -------------------------------------------------------------------

    def elevate(self, write_key: str) -> ElevatedSession:
        """Bind an admin key to an in-memory session. The key is never stored elsewhere.

        Raises:
            PermissionDenied: If the key is empty.
        """
        if not write_key or not write_key.strip():
            raise PermissionDenied("Write credential is empty")
        logger.info("Elevated session opened for index %s", self._index_name)
        return ElevatedSession(write_key.strip(), ttl_seconds=self._session_ttl_seconds)

    def release(self, session: ElevatedSession) -> None:
        """Discard an elevated session and its credential."""
        if not session.released:
            session.release()
            logger.info("Elevated session released")

    @asynccontextmanager
    async def elevated(self, write_key: str) -> AsyncGenerator[ElevatedSession, None]:
        """Scoped elevation: the session is released on every exit path."""
        session = self.elevate(write_key)
        try:
            yield session
        finally:
            self.release(session)

    async def write(self, record: CatalogRecord, session: ElevatedSession | None) -> CatalogRecord:
        """PUT /1/indexes/{index}/{objectID} (saveObject)."""
        api_key = self._require_session(session)
        response = await self._request(
            "PUT",
            self._object_url(self._write_host, record.id),
            api_key,
            json_body=record.to_wire(),
            record_id=record.id,
        )
        task = WriteTaskResponse.model_validate(self._json(response))
        logger.info("Record saved to remote index: %s (task %s)", record.id, task.task_id)
        return record.model_copy(deep=True)

    async def delete(self, record_id: str, session: ElevatedSession | None) -> None:
        """DELETE /1/indexes/{index}/{objectID} (deleteObject)."""
        api_key = self._require_session(session)
        await self._request(
            "DELETE",
            self._object_url(self._write_host, record_id),
            api_key,
            record_id=record_id,
        )
        logger.info("Record deleted from remote index: %s", record_id)

    async def batch_write(
        self,
        records: Sequence[CatalogRecord],
        session: ElevatedSession | None,
        *,
        wait: bool = False,
    ) -> list[CatalogRecord]:
        """POST /1/indexes/{index}/batch (saveObjects), chunked.

        Args:
            records: Records to upsert.
            session: Live elevated session.
            wait: Block until the index reports every batch task as published.
        """
        api_key = self._require_session(session)
        task_ids: list[int] = []
        for start in range(0, len(records), BATCH_CHUNK_SIZE):
            chunk = records[start : start + BATCH_CHUNK_SIZE]
            body = {"requests": [{"action": "updateObject", "body": record.to_wire()} for record in chunk]}
            response = await self._request(
                "POST",
                f"{self._index_url(self._write_host)}/batch",
                api_key,
                json_body=body,
            )
            batch = BatchResponse.model_validate(self._json(response))
            if batch.task_id is not None:
                task_ids.append(batch.task_id)
        logger.info("Batch saved %d records to remote index", len(records))

        if wait:
            for task_id in task_ids:
                await self.wait_for_task(task_id, session)
        return [record.model_copy(deep=True) for record in records]

    async def wait_for_task(self, task_id: int, session: ElevatedSession | None) -> bool:
        """Poll a write task until the index publishes it.

        Returns ``True`` once published, ``False`` if polling gave up first.
        """
        api_key = self._require_session(session)
        url = f"{self._index_url(self._write_host)}/task/{task_id}"
        for attempt in range(self._task_poll_attempts):
            response = await self._request("GET", url, api_key)
            status = TaskStatusResponse.model_validate(self._json(response))
            if status.status == TASK_PUBLISHED:
                return True
            if attempt + 1 < self._task_poll_attempts:
                await asyncio.sleep(self._task_poll_interval)
        logger.warning("Remote index task %d not published after %d polls", task_id, self._task_poll_attempts)
        return False
