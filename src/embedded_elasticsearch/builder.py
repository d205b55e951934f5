"""
Embedded Elasticsearch Bulk Builder
===================================

Assembly of ``_bulk`` request bodies.

The bulk endpoint reads newline-delimited JSON, two lines per document:

    {"index": {"_index": "orders", "_id": "1", "routing": "eu"}}
    {"customer": "...", "total": 10}

Lines are sanitized by replacing CR and LF with spaces, so a pretty-printed
document still occupies exactly one line. Legacy servers (before 7.x) expect
the routing key as ``_routing``.
"""

import json
from typing import Iterable, List

from .index import IndexRequest

MODERN_MAJOR_VERSION = 7


def is_modern_version(number: str) -> bool:
    """
    Whether a server version string uses the un-prefixed ``routing`` key.

    Args:
        number: ``version.number`` of the root endpoint, e.g. "7.10.2"
    """
    major = number.strip().split(".", 1)[0]
    return int(major) >= MODERN_MAJOR_VERSION


def sanitize_line(line: str) -> str:
    return line.replace("\n", " ").replace("\r", " ")


class BulkRequestBuilder:
    """
    Collects index requests and renders the bulk body.

    Example:
        builder = BulkRequestBuilder(modern_routing=True)
        builder.add_all(requests)
        payload = builder.build()
    """

    def __init__(self, modern_routing: bool = True):
        self.routing_field = "routing" if modern_routing else "_routing"
        self._lines: List[str] = []

    def metadata_line(self, request: IndexRequest) -> str:
        metadata = {}
        if request.index_name is not None:
            metadata["_index"] = request.index_name
        if request.id is not None:
            metadata["_id"] = request.id
        if request.routing is not None:
            metadata[self.routing_field] = request.routing
        return json.dumps({"index": metadata})

    def add(self, request: IndexRequest) -> "BulkRequestBuilder":
        self._lines.append(sanitize_line(self.metadata_line(request)))
        self._lines.append(sanitize_line(request.json))
        return self

    def add_all(self, requests: Iterable[IndexRequest]) -> "BulkRequestBuilder":
        for request in requests:
            self.add(request)
        return self

    def __len__(self) -> int:
        return len(self._lines) // 2

    def build(self) -> str:
        return "\n".join(self._lines) + "\n"


def needs_routing(requests: Iterable[IndexRequest]) -> bool:
    return any(request.routing is not None for request in requests)


def bulk_body(requests: Iterable[IndexRequest], modern_routing: bool = True) -> str:
    """Render ``requests`` as a bulk body in one call."""
    return BulkRequestBuilder(modern_routing=modern_routing).add_all(requests).build()
