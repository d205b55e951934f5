"""
Embedded Elasticsearch — Local Elasticsearch for Test Suites
============================================================

Runs an installed Elasticsearch distribution as a child process of the test
run and provisions it over HTTP.

Key Features:
- Readiness detection from the server console, no port guessing
- Discovery of the pid, http port and transport port the server bound
- Idempotent creation and deletion of indices and index templates
- Bulk document loading with automatic refresh
- Teardown on stop or at interpreter exit, optional data directory purge
- Password bootstrap for security-enabled installations

Components:
    ElasticServer       →  child process, console reader, readiness wait
    ElasticRestClient   →  indices, templates, bulk loading, searches
    EmbeddedElastic     →  both of the above behind start()/stop()

Usage:
    from embedded_elasticsearch import EmbeddedElastic

    es = EmbeddedElastic(
        "/opt/elasticsearch-7.17.0/bin/elasticsearch",
        indices={"orders": None}
    ).start()

    es.index("orders", {"1": '{"total": 10}'})
    print(es.fetch_all_documents("orders"))
    es.stop()

License: MIT
"""

__version__ = "0.1.0"

from .cluster import ElasticRestClient
from .core import EmbeddedElastic
from .errors import (
    CleanupFailed,
    ClusterNotHealthy,
    EmbeddedElasticError,
    LogContractViolation,
    MalformedResponse,
    RequestFailed,
    SecurityBootstrapFailed,
    StartupFailed,
    StartupTimeout,
    TransportError,
)
from .index import IndexRequest, IndexSettings, IndicesDescription, TemplatesDescription
from .java_home import JavaHome
from .server import ElasticServer

__all__ = [
    "EmbeddedElastic",
    "ElasticServer",
    "ElasticRestClient",
    "IndexRequest",
    "IndexSettings",
    "IndicesDescription",
    "TemplatesDescription",
    "JavaHome",
    "EmbeddedElasticError",
    "StartupTimeout",
    "StartupFailed",
    "SecurityBootstrapFailed",
    "LogContractViolation",
    "CleanupFailed",
    "RequestFailed",
    "ClusterNotHealthy",
    "TransportError",
    "MalformedResponse",
]
