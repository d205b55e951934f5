import json

import pytest

from embedded_elasticsearch.errors import MalformedResponse
from embedded_elasticsearch.search import document_sources, search_path


def test_search_paths():
    assert search_path() == "/_search"
    assert search_path("orders") == "/orders/_search"
    assert search_path(routing="eu") == "/_search?routing=eu"
    assert search_path("orders", routing="eu west") == "/orders/_search?routing=eu%20west"


def test_sources_keep_server_order():
    body = json.dumps({"hits": {"hits": [
        {"_id": "2", "_source": {"n": 2}},
        {"_id": "1", "_source": {"n": 1, "tags": ["a", "b"]}},
    ]}}).encode()
    assert document_sources(body) == ['{"n":2}', '{"n":1,"tags":["a","b"]}']


def test_empty_result():
    assert document_sources(b'{"hits": {"hits": []}}') == []


@pytest.mark.parametrize("body", [b"<html>", b'{"error": "x"}', b'{"hits": {"hits": [{}]}}'])
def test_malformed_responses(body):
    with pytest.raises(MalformedResponse):
        document_sources(body)
