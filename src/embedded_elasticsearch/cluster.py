"""
Embedded Elasticsearch Cluster — Control-Plane Client
=====================================================

Idempotent provisioning of the declared indices and templates, bulk
document loading and whole-index fetches against a single local node.

Every mutating call is followed by a cluster health wait, so reads issued
afterwards see a cluster that is at least yellow. Calls are synchronous and
one at a time; an instance should be driven by one thread at a time.
"""

import logging
from typing import Iterable, List, Optional

from .builder import bulk_body, is_modern_version, needs_routing
from .errors import ClusterNotHealthy, MalformedResponse, RequestFailed
from .index import IndexRequest, IndexSettings, IndicesDescription, TemplatesDescription
from .search import document_sources, parse_json, search_path
from .transport import HttpClient

logger = logging.getLogger(__name__)

OK = 200
JSON_HEADERS = {"Content-Type": "application/json"}
HEALTH_PATH = "/_cluster/health?wait_for_status=yellow&timeout=60s"


def _text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class ElasticRestClient:
    """
    Control-plane client for the embedded server.

    Example:
        client = ElasticRestClient(
            HttpClient(9200),
            IndicesDescription({"orders": None}),
            TemplatesDescription()
        )
        client.create_indices()
        client.bulk_index([IndexRequest("orders", '{"total": 10}')])
        print(client.fetch_all_documents("orders"))
    """

    def __init__(
        self,
        http_client: HttpClient,
        indices: Optional[IndicesDescription] = None,
        templates: Optional[TemplatesDescription] = None
    ):
        """
        Args:
            http_client: Transport bound to the server's http port
            indices: Indices that may be created by name
            templates: Templates that may be created by name
        """
        self._http = http_client
        self.indices = indices or IndicesDescription()
        self.templates = templates or TemplatesDescription()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def wait_for_cluster_yellow(self):
        """
        Block until the cluster is at least yellow (server-side, 60s).

        Raises:
            ClusterNotHealthy: the health call did not succeed
        """
        status, body = self._http.send("GET", HEALTH_PATH)
        if not _is_success(status):
            raise ClusterNotHealthy(
                "Cluster does not reached yellow status in specified timeout",
                status,
                _text(body)
            )

    # ------------------------------------------------------------------
    # Indices
    # ------------------------------------------------------------------

    def create_indices(self):
        self.wait_for_cluster_yellow()
        for name in self.indices.names():
            self.create_index(name)

    def create_index(self, name: str):
        """
        Create an index unless it already exists, with its declared
        settings if any.

        Raises:
            RequestFailed: the create call was rejected
        """
        if self._exists(f"/{name}"):
            return

        settings = self.indices.settings_for(name) or IndexSettings()
        logger.info("Creating index %s", name)
        self._send_ok(
            "PUT",
            f"/{name}",
            "Call to elasticsearch resulted in error",
            JSON_HEADERS,
            settings.to_json().encode("utf-8")
        )
        self.wait_for_cluster_yellow()

    def delete_indices(self):
        for name in self.indices.names():
            self.delete_index(name)

    def delete_index(self, name: str):
        if not self._exists(f"/{name}"):
            logger.warning("Index: %s does not exists so cannot be removed", name)
            return
        logger.info("Deleting index %s", name)
        self._send_ok("DELETE", f"/{name}", "Delete request resulted in error")
        self.wait_for_cluster_yellow()

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def create_templates(self):
        for name in self.templates.names():
            self.create_template(name)

    def create_template(self, name: str):
        """
        Create a declared index template unless it already exists.

        Raises:
            KeyError: the template was not declared
            RequestFailed: the create call was rejected
        """
        template = self.templates.template_for(name)
        if self._exists(f"/_template/{name}"):
            return

        logger.info("Creating template %s", name)
        self._send_ok(
            "PUT",
            f"/_template/{name}",
            "Call to elasticsearch resulted in error",
            JSON_HEADERS,
            template.encode("utf-8")
        )
        self.wait_for_cluster_yellow()

    def delete_templates(self):
        for name in self.templates.names():
            self.delete_template(name)

    def delete_template(self, name: str):
        if not self._exists(f"/_template/{name}"):
            logger.warning("Template: %s does not exists so cannot be removed", name)
            return
        logger.info("Deleting template %s", name)
        self._send_ok("DELETE", f"/_template/{name}", "Delete request resulted in error")
        self.wait_for_cluster_yellow()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def bulk_index(self, requests: Iterable[IndexRequest]):
        """
        Index documents through ``_bulk`` and refresh so they are searchable.

        Raises:
            RequestFailed: the bulk call was rejected
        """
        requests = list(requests)
        if not requests:
            return
        modern_routing = self.is_new_es_version() if needs_routing(requests) else True
        payload = bulk_body(requests, modern_routing)

        logger.info("Indexing %d documents", len(requests))
        self._send_ok(
            "POST",
            "/_bulk",
            "Request finished with error",
            JSON_HEADERS,
            payload.encode("utf-8")
        )
        self.refresh()

    def refresh(self):
        """Refresh all indices. Failures are logged, not raised."""
        status, body = self._http.send("POST", "/_refresh")
        if not _is_success(status):
            logger.warning("Refresh returned %s: %s", status, _text(body))

    def server_version(self) -> str:
        """
        Raises:
            RequestFailed: the root endpoint did not answer 200
            MalformedResponse: no ``version.number`` in the answer
        """
        body = self._send_ok("GET", "/", "Could not read server info")
        info = parse_json(body, "server info")
        try:
            return info["version"]["number"]
        except (KeyError, TypeError) as e:
            raise MalformedResponse(f"No version number in server info: {e!r}") from e

    def is_new_es_version(self) -> bool:
        """Whether the server is 7.x or newer. Probed on every call."""
        number = self.server_version()
        try:
            return is_modern_version(number)
        except ValueError as e:
            raise MalformedResponse(f"Unparseable version number {number!r}") from e

    def fetch_all_documents(self, *indices: str, routing: Optional[str] = None) -> List[str]:
        """
        Sources of all documents returned by ``_search`` for each index, in
        argument order. Without indices the whole cluster is searched.

        Returns:
            List of document sources as JSON text
        """
        if not indices:
            return self._search_for_documents(None, routing)
        documents: List[str] = []
        for index in indices:
            documents.extend(self._search_for_documents(index, routing))
        return documents

    def _search_for_documents(self, index: Optional[str], routing: Optional[str]) -> List[str]:
        path = search_path(index, routing)
        body = self._send_ok("GET", path, f"Error during search ({path})")
        return document_sources(body)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _exists(self, path: str) -> bool:
        status, _ = self._http.send("HEAD", path)
        return status == OK

    def _send_ok(self, method: str, path: str, message: str, headers=None, body=None) -> bytes:
        status, response = self._http.send(method, path, headers, body)
        if not _is_success(status):
            raise RequestFailed(message, status, _text(response))
        return response
