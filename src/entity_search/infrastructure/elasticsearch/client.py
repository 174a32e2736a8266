"""
Elasticsearch Gateway

Async ``SearchGateway`` implementation over the backend's REST API with:
- Connection pooling via httpx
- Automatic retry with exponential backoff (tenacity) for 429, 5xx and
  transport failures; ``Retry-After`` is honoured on 429
- Typed errors: RateLimitError, ServiceUnavailableError, NetworkError,
  GatewayError (other 4xx, not retried), ParseError (undecodable body)

Endpoints:
    execute        POST /{index}[/{doc_type}]/_search
    execute_batch  POST /_msearch (NDJSON, responses in submission order)
    fetch_by_id    GET  /{index}/{doc_type}/{id}
    explain        POST /{index}/{doc_type}/{id}/_explain
    term_vectors   GET  /{index}/{doc_type}/{id}/_termvectors
    scroll_all     POST …/_search?scroll=…, then POST /_search/scroll until exhausted
    intent         POST /{intent_index}/_intent

Example:
    gateway = ElasticsearchGateway("http://localhost:9200", max_retries=2)
    response = await gateway.execute(query)
    await gateway.close()
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from entity_search.domain.entities import CompiledQuery
from entity_search.domain.gateway import PageCallback
from entity_search.shared.exceptions import (
    GatewayError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    is_retryable_error,
)

logger = logging.getLogger(__name__)

DEFAULT_DOC_TYPE = "_doc"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


def _retry_after(response: httpx.Response) -> float:
    try:
        return max(float(response.headers.get("Retry-After", 1.0)), 0.0)
    except ValueError:
        return 1.0


class ElasticsearchGateway:
    """
    Async client for the search backend.

    Features:
    - Single queries and batched multi-search
    - Document fetch, explain and term vectors
    - Scroll export with page callback
    - Entity-recognition (intent) lookups

    Example:
        gateway = ElasticsearchGateway("http://es:9200")
        responses = await gateway.execute_batch([car_query, dealer_query])
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_MAX_RETRIES = 2
    DEFAULT_RETRY_DELAY = 0.5
    SCROLL_KEEP_ALIVE = "1m"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_connections: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Backend root URL
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt for retryable failures
            retry_delay: Base delay of the exponential backoff, in seconds
            max_connections: Connection pool size
            transport: Custom httpx transport (tests use ``httpx.MockTransport``)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._max_connections = max_connections
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._backoff = wait_exponential(multiplier=retry_delay, min=retry_delay, max=retry_delay * 8)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=5.0),
                limits=httpx.Limits(
                    max_connections=self._max_connections,
                    max_keepalive_connections=self._max_connections // 2,
                ),
                headers={"User-Agent": "entity-search/1.0"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # =====================================================================
    # Transport
    # =====================================================================

    @staticmethod
    def _path(*parts: str | None) -> str:
        return "/" + "/".join(quote(str(part), safe=":,") for part in parts if part)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitError):
            return error.retry_after
        return self._backoff(retry_state)

    @staticmethod
    def _raise_for_status(response: httpx.Response, method: str, path: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            raise RateLimitError(retry_after=_retry_after(response))
        if status >= 500:
            raise ServiceUnavailableError(f"{method} {path} failed with HTTP {status}", status_code=status)
        raise GatewayError(
            f"{method} {path} rejected with HTTP {status}",
            code="BACKEND_REQUEST_FAILED",
            details={"status_code": status, "body": response.text[:500]},
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        content: str | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                path,
                json=body if content is None else None,
                content=content,
                headers=headers,
                params=params,
            )
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path}: {e}") from e

        if allow_missing and response.status_code == 404:
            return None
        self._raise_for_status(response, method, path)

        try:
            return response.json()
        except ValueError as e:
            raise ParseError(str(e), source=path) from e

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any] | None:
        """
        Send one request, retrying retryable failures.

        Raises:
            GatewayError: Backend rejected the request (after retries for retryable kinds)
            ParseError: Response body is not JSON
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, **kwargs)
        return None

    # =====================================================================
    # Search
    # =====================================================================

    async def execute(self, query: CompiledQuery) -> dict[str, Any]:
        path = self._path(query.index, query.doc_type, "_search")
        logger.debug(f"POST {path}")
        return await self._request("POST", path, body=query.body) or {}

    async def execute_batch(self, queries: list[CompiledQuery]) -> list[dict[str, Any]]:
        """
        Run queries in one multi-search round trip.

        Returns:
            One response per query, in submission order

        Raises:
            GatewayError: BATCH_SIZE_MISMATCH or BATCH_QUERY_FAILED; a failing
                sub-query fails the whole batch
        """
        if not queries:
            return []

        lines = []
        for query in queries:
            header: dict[str, Any] = {"index": query.index}
            if query.doc_type:
                header["type"] = query.doc_type
            lines.append(json.dumps(header))
            lines.append(json.dumps(query.body))
        payload = "\n".join(lines) + "\n"

        logger.debug(f"POST /_msearch with {len(queries)} queries")
        data = await self._request(
            "POST",
            "/_msearch",
            content=payload,
            headers={"Content-Type": NDJSON_CONTENT_TYPE},
        )
        responses = (data or {}).get("responses") or []

        if len(responses) != len(queries):
            raise GatewayError(
                f"Multi-search returned {len(responses)} responses for {len(queries)} queries",
                code="BATCH_SIZE_MISMATCH",
            )
        for position, response in enumerate(responses):
            if response.get("error"):
                raise GatewayError(
                    f"Query {position} of batch failed on '{queries[position].index}'",
                    code="BATCH_QUERY_FAILED",
                    details={"position": position, "error": response["error"]},
                )
        return responses

    # =====================================================================
    # Documents
    # =====================================================================

    async def fetch_by_id(self, index: str, doc_type: str | None, doc_id: str) -> dict[str, Any] | None:
        """Document envelope (``_id``, ``_source``, …) or ``None`` when absent."""
        doc = await self._request("GET", self._path(index, doc_type or DEFAULT_DOC_TYPE, doc_id), allow_missing=True)
        if doc is None or doc.get("found") is False:
            return None
        return doc

    async def explain(self, query: CompiledQuery, doc_id: str) -> dict[str, Any] | None:
        path = self._path(query.index, query.doc_type or DEFAULT_DOC_TYPE, doc_id, "_explain")
        return await self._request("POST", path, body={"query": query.body.get("query")}, allow_missing=True)

    async def term_vectors(self, index: str, doc_type: str | None, doc_id: str) -> dict[str, Any] | None:
        path = self._path(index, doc_type or DEFAULT_DOC_TYPE, doc_id, "_termvectors")
        return await self._request("GET", path, allow_missing=True)

    async def scroll_all(
        self,
        index: str,
        doc_type: str | None,
        body: dict[str, Any],
        page_size: int,
        on_page: PageCallback,
    ) -> None:
        """
        Scroll through every matching document.

        Args:
            index: Index to scroll
            doc_type: Document type, if any
            body: Query body (``query`` and optional ``sort``)
            page_size: Documents per page
            on_page: Called with each non-empty page response
        """
        page = await self._request(
            "POST",
            self._path(index, doc_type, "_search"),
            body={**body, "size": page_size},
            params={"scroll": self.SCROLL_KEEP_ALIVE},
        )
        scroll_id = (page or {}).get("_scroll_id")
        pages = 0
        try:
            while page and (page.get("hits") or {}).get("hits"):
                on_page(page)
                pages += 1
                if not scroll_id:
                    break
                page = await self._request(
                    "POST",
                    "/_search/scroll",
                    body={"scroll": self.SCROLL_KEEP_ALIVE, "scroll_id": scroll_id},
                )
                scroll_id = (page or {}).get("_scroll_id") or scroll_id
        finally:
            if scroll_id:
                await self._clear_scroll(scroll_id)
        logger.debug(f"Scrolled {pages} pages from '{index}'")

    async def _clear_scroll(self, scroll_id: str) -> None:
        try:
            await self._send("DELETE", "/_search/scroll", body={"scroll_id": [scroll_id]}, allow_missing=True)
        except GatewayError as e:
            logger.warning(f"Failed to clear scroll context: {e}")

    # =====================================================================
    # Entity recognition
    # =====================================================================

    async def intent(self, intent_index: str, intent_query: dict[str, Any]) -> dict[str, Any]:
        """Entity-recognition lookup against the intent index."""
        return await self._request("POST", self._path(intent_index, "_intent"), body=intent_query) or {}
