"""
Compiled backend queries.

The clause documents inside are opaque to everything except the compiler;
the gateway only needs the index, document type and body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CompiledQuery:
    """One backend query envelope."""

    index: str
    doc_type: str | None
    body: dict[str, Any] = field(default_factory=dict)
    type_id: str | None = None

    @property
    def page_from(self) -> int:
        return int(self.body.get("from", 0))

    @property
    def size(self) -> int | None:
        return self.body.get("size")

    def without_paging(self) -> CompiledQuery:
        """Same query minus from/size/sort, as used by explain."""
        body = {k: v for k, v in self.body.items() if k not in ("from", "size", "sort")}
        return CompiledQuery(index=self.index, doc_type=self.doc_type, body=body, type_id=self.type_id)
