"""
Embedded Elasticsearch Search Helpers
=====================================

Building ``_search`` targets and pulling document sources out of search
responses.
"""

import json
from typing import List, Optional
from urllib.parse import quote

from .errors import MalformedResponse


def search_path(index: Optional[str] = None, routing: Optional[str] = None) -> str:
    """
    Examples:
        >>> search_path()
        '/_search'
        >>> search_path("orders", routing="eu")
        '/orders/_search?routing=eu'
    """
    path = "/_search"
    if index is not None:
        path = f"/{quote(index, safe=',*')}{path}"
    if routing is not None:
        path += f"?routing={quote(routing, safe='')}"
    return path


def parse_json(body: bytes, what: str):
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedResponse(f"Could not parse {what}: {e}") from e


def document_sources(body: bytes) -> List[str]:
    """
    Extract ``hits.hits[]._source`` of a search response, each re-serialized
    as compact JSON, in the order the server returned them.

    Raises:
        MalformedResponse: body is not JSON or lacks the hits array
    """
    response = parse_json(body, "search response")
    try:
        hits = response["hits"]["hits"]
        return [
            json.dumps(hit["_source"], separators=(",", ":"), ensure_ascii=False)
            for hit in hits
        ]
    except (KeyError, TypeError) as e:
        raise MalformedResponse(f"Unexpected search response shape: {e!r}") from e
