"""
Backend Gateway contract.

The search core never talks to the network itself. Whatever implements this
protocol owns transport, retries and timeouts; the core only relies on
``execute_batch`` returning responses in submission order.

Response shape: ``{"hits": {"total": n, "hits": [{"_id", "_score", "_type",
"_source", ...}]}, "aggregations": {...}, "took": ms}``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from entity_search.domain.entities.query import CompiledQuery

PageCallback = Callable[[dict[str, Any]], None]


class SearchGateway(Protocol):
    async def execute(self, query: CompiledQuery) -> dict[str, Any]: ...

    async def execute_batch(self, queries: list[CompiledQuery]) -> list[dict[str, Any]]: ...

    async def fetch_by_id(self, index: str, doc_type: str | None, doc_id: str) -> dict[str, Any] | None: ...

    async def explain(self, query: CompiledQuery, doc_id: str) -> dict[str, Any] | None: ...

    async def term_vectors(self, index: str, doc_type: str | None, doc_id: str) -> dict[str, Any] | None: ...

    async def scroll_all(
        self,
        index: str,
        doc_type: str | None,
        body: dict[str, Any],
        page_size: int,
        on_page: PageCallback,
    ) -> None: ...

    async def intent(self, intent_index: str, intent_query: dict[str, Any]) -> dict[str, Any]: ...

    async def close(self) -> None: ...
