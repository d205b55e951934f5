import json

import pytest

from embedded_elasticsearch import cli
from embedded_elasticsearch.cli import executable_in, index_settings, main, parse_java_home
from embedded_elasticsearch.cluster import HEALTH_PATH
from embedded_elasticsearch.index import IndexRequest
from embedded_elasticsearch.java_home import JavaHome


@pytest.fixture
def cli_http(monkeypatch, fake_es):
    monkeypatch.setattr(cli, "HttpClient", lambda *args, **kwargs: fake_es)
    return fake_es


def test_health(cli_http, capsys):
    assert main(["health", "--port", "9201"]) == 0
    assert cli_http.paths() == [("GET", HEALTH_PATH)]
    assert "is healthy" in capsys.readouterr().out


def test_health_failure(cli_http, capsys):
    cli_http.overrides[("GET", HEALTH_PATH)] = (408, b"timed out")
    assert main(["health"]) == 1
    assert "yellow" in capsys.readouterr().err


def test_documents(cli_http, capsys):
    from embedded_elasticsearch.cluster import ElasticRestClient

    ElasticRestClient(cli_http).bulk_index([IndexRequest("orders", '{"total": 1}')])

    assert main(["documents", "orders"]) == 0
    out = capsys.readouterr()
    assert out.out.splitlines()[0] == '{"total":1}'
    assert "1 documents" in out.err


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_parse_java_home():
    assert parse_java_home(None) == JavaHome.use_system()
    assert parse_java_home("inherit") == JavaHome.inherit()
    assert parse_java_home("java_home") == JavaHome.use_java_home()
    assert parse_java_home("/opt/jdk") == JavaHome.path("/opt/jdk")


def test_executable_in(tmp_path):
    assert executable_in(str(tmp_path), "elasticsearch").parent == tmp_path / "bin"


def test_index_settings_from_create_body():
    settings = index_settings(json.dumps({
        "settings": {"number_of_shards": 1},
        "mappings": {"properties": {}},
    }))
    assert settings.to_dict() == {
        "settings": {"number_of_shards": 1},
        "aliases": {},
        "mappings": {"properties": {}},
    }


def test_passwords(es_home, monkeypatch, capsys):
    from tests.conftest import make_script

    make_script(es_home / "bin", "elasticsearch-setup-passwords", "passwords")
    assert main(["passwords", str(es_home)]) == 0
    out = capsys.readouterr().out
    assert "apm-secret" in out
    assert "s3cr3t=with=equals" in out


def test_run_until_interrupted(es_home, monkeypatch, fake_es, capsys):
    from embedded_elasticsearch import core as core_module
    from tests.conftest import make_script

    def interrupt(seconds):
        raise KeyboardInterrupt

    make_script(es_home / "bin", "elasticsearch", "ready")
    mapping = es_home.parent / "orders.json"
    mapping.write_text('{"mappings": {"properties": {"total": {"type": "long"}}}}')
    monkeypatch.setattr(core_module, "HttpClient", lambda *args, **kwargs: fake_es)
    monkeypatch.setattr(cli.time, "sleep", interrupt)

    assert main(["run", str(es_home), "--index", f"orders={mapping}", "--index", "customers"]) == 0

    out = capsys.readouterr().out
    assert "HTTP port: 9201" in out
    assert "Transport port: 9301" in out
    assert fake_es.indices["orders"]["mappings"] == {"properties": {"total": {"type": "long"}}}
    assert "customers" in fake_es.indices
    assert es_home.exists()
