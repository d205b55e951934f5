import re

import pytest

from embedded_elasticsearch.errors import LogContractViolation
from embedded_elasticsearch.log_parser import (
    HTTP_PORT,
    PID,
    STARTED,
    TRANSPORT_PORT,
    LogEvent,
    LogLineClassifier,
    LogRule,
)


@pytest.fixture
def classifier():
    return LogLineClassifier()


def test_pid_line(classifier):
    line = "[2024][INFO ][o.e.n.Node] [node-1] version[7.10.2], pid[1234], build[default/tar]"
    assert classifier.classify(line) == LogEvent(PID, 1234)


@pytest.mark.parametrize("line", [
    "[o.e.h.AbstractHttpServerTransport] [node-1] publish_address {1.2.3.4:9200}, bound_addresses {[::1]:9200}",
    "[o.e.h.n.Netty4HttpServerTransport] [node-1] publish_address {127.0.0.1:9200}",
    "[INFO ][http                     ] [node-1] publish_address {1.2.3.4:9200}, bound_addresses {...}",
])
def test_http_port_lines(classifier, line):
    assert classifier.classify(line) == LogEvent(HTTP_PORT, 9200)


@pytest.mark.parametrize("line", [
    "[o.e.t.TransportService] [node-1] publish_address {127.0.0.1:9300}, bound_addresses {[::1]:9300}",
    "[INFO ][transport                ] [node-1] publish_address {127.0.0.1:9300}, bound_addresses {...}",
])
def test_transport_port_lines(classifier, line):
    assert classifier.classify(line) == LogEvent(TRANSPORT_PORT, 9300)


def test_publish_address_with_host_name(classifier):
    line = "[o.e.t.TransportService] publish_address {es-node/10.0.0.7:9305}, bound_addresses {0.0.0.0:9305}"
    assert classifier.classify(line) == LogEvent(TRANSPORT_PORT, 9305)


def test_started_line(classifier):
    assert classifier.classify("[o.e.n.Node] [node-1] started") == LogEvent(STARTED)


def test_started_wins_over_other_markers(classifier):
    line = "[node-1] started, pid[77], publish_address {127.0.0.1:9200} HttpServer"
    assert classifier.classify(line).kind == STARTED


def test_unrelated_lines_are_ignored(classifier):
    assert classifier.classify("[o.e.p.PluginsService] loaded module [x-pack-core]") is None
    assert classifier.classify("publish_address {127.0.0.1:9200} without a role") is None
    assert classifier.classify("") is None


def test_pid_marker_without_digits_breaks_contract(classifier):
    with pytest.raises(LogContractViolation) as excinfo:
        classifier.classify("version[7.10.2], pid[], build[default]")
    assert "pid[]" in excinfo.value.line


def test_publish_address_without_port_breaks_contract(classifier):
    with pytest.raises(LogContractViolation):
        classifier.classify("[o.e.h.AbstractHttpServerTransport] publish_address {localhost}")


def test_custom_rules():
    classifier = LogLineClassifier([
        LogRule("ready", ("cluster ready",)),
        LogRule(HTTP_PORT, ("listening on",), pattern=re.compile(r"port (\d+)")),
    ])
    assert classifier.classify("cluster ready") == LogEvent("ready")
    assert classifier.classify("listening on port 8080") == LogEvent(HTTP_PORT, 8080)
    assert classifier.classify("[node-1] started") is None
