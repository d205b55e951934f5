import json
import os
import stat
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from embedded_elasticsearch.exit_hooks import CleanupRegistry

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_elasticsearch.py"


def make_script(directory: Path, name: str, mode: str) -> Path:
    """Executable wrapper running the fake console in ``mode``."""
    script = directory / name
    script.write_text(
        "#!/bin/sh\n"
        f"FAKE_ES_MODE={mode}\n"
        "export FAKE_ES_MODE\n"
        f'exec "{sys.executable}" "{FAKE_SERVER}" "$@"\n'
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def es_home(tmp_path):
    home = tmp_path / "elasticsearch-7.17.0"
    (home / "bin").mkdir(parents=True)
    (home / "data").mkdir()
    (home / "data" / "node.lock").write_text("")
    return home


@pytest.fixture
def fake_executable(es_home):
    def build(mode: str = "ready") -> Path:
        return make_script(es_home / "bin", f"elasticsearch-{mode}", mode)
    return build


@pytest.fixture
def cleanups():
    registry = CleanupRegistry()
    yield registry
    registry.run_pending()


class FakeElasticsearch:
    """
    In-memory stand-in for the HTTP API of a single node.

    Implements ``send`` with the same contract as ``HttpClient`` and records
    every call as (method, path, headers, body).
    """

    def __init__(self, version: str = "7.17.0"):
        self.version = version
        self.indices = {}
        self.templates = {}
        self.documents = {}
        self.calls = []
        self.overrides = {}
        self.closed = False

    def paths(self, method=None):
        return [(m, p) for m, p, _, _ in self.calls if method is None or m == method]

    def count(self, method, path):
        return self.paths().count((method, path))

    def send(self, method, path, headers=None, body=None):
        self.calls.append((method, path, headers, body))
        if (method, path) in self.overrides:
            status, payload = self.overrides[(method, path)]
            return status, payload
        return self._handle(method, path, body)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _handle(self, method, path, body):
        route, _, query = path.partition("?")
        parts = [p for p in route.split("/") if p]

        if method == "GET" and not parts:
            return self._json(200, {"version": {"number": self.version}})
        if parts == ["_cluster", "health"]:
            return self._json(200, {"status": "green"})
        if parts == ["_refresh"]:
            return self._json(200, {"_shards": {}})
        if parts == ["_bulk"]:
            return self._bulk(body)
        if parts and parts[0] == "_template":
            return self._resource(self.templates, method, parts[1], body)
        if parts and parts[-1] == "_search":
            return self._search(parts[0] if len(parts) == 2 else None, query)
        if len(parts) == 1:
            status, payload = self._resource(self.indices, method, parts[0], body)
            if method == "PUT" and status == 200:
                self.documents.setdefault(parts[0], [])
            if method == "DELETE" and status == 200:
                self.documents.pop(parts[0], None)
            return status, payload
        return self._json(400, {"error": f"unsupported {method} {path}"})

    def _resource(self, store, method, name, body):
        if method == "HEAD":
            return (200 if name in store else 404), b""
        if method == "PUT":
            if name in store:
                return self._json(400, {"error": "resource_already_exists_exception"})
            store[name] = json.loads(body) if body else None
            return self._json(200, {"acknowledged": True})
        if method == "DELETE":
            if name not in store:
                return self._json(404, {"error": "not found"})
            del store[name]
            return self._json(200, {"acknowledged": True})
        return self._json(400, {"error": "unsupported"})

    def _bulk(self, body):
        lines = body.decode("utf-8").split("\n")
        assert lines[-1] == "", "bulk body must end with a newline"
        lines = lines[:-1]
        for metadata_line, source_line in zip(lines[::2], lines[1::2]):
            metadata = json.loads(metadata_line)["index"]
            source = json.loads(source_line)
            self.documents.setdefault(metadata["_index"], []).append(
                {"meta": metadata, "_source": source}
            )
        return self._json(200, {"errors": False, "items": []})

    def _search(self, index, query):
        indices = [index] if index is not None else list(self.documents)
        hits = [
            {"_index": name, "_source": doc["_source"]}
            for name in indices
            for doc in self.documents.get(name, [])
        ]
        return self._json(200, {"hits": {"total": {"value": len(hits)}, "hits": hits}})

    @staticmethod
    def _json(status, payload):
        return status, json.dumps(payload).encode("utf-8")


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


class StubServer:
    """Supervisor double for facade tests."""

    def __init__(self, http_port=9201, transport_port=9301, passwords=None):
        self.http_port = http_port
        self.transport_port = transport_port
        self.passwords = passwords or {"elastic": "s3cr3t"}
        self.started = False
        self.starts = 0
        self.stops = 0

    def is_started(self):
        return self.started

    def start(self):
        self.starts += 1
        self.started = True

    def stop(self):
        self.stops += 1
        self.started = False

    def get_http_port(self):
        return self.http_port

    def get_transport_tcp_port(self):
        return self.transport_port

    def get_password(self, user):
        return self.passwords.get(user)


@pytest.fixture
def stub_server():
    return StubServer()


def node_response(status, body=b""):
    return SimpleNamespace(meta=SimpleNamespace(status=status), body=body)
