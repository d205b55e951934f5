"""
Embedded Elasticsearch Core — Test-Suite Facade
===============================================

One object to start a local Elasticsearch, provision it and load data
into it from a test suite:

    start()  → launch the server, wait for readiness, discover its ports
             → bind a control-plane client to the discovered http port
             → create the declared templates, then the declared indices
    index()  → bulk-load documents and refresh
    stop()   → terminate the server, purge its directory if configured

Example:
    es = EmbeddedElastic(
        executable="/opt/es/bin/elasticsearch",
        installation_directory="/opt/es",
        indices={"orders": IndexSettings(mapping=ORDERS_MAPPING)}
    )
    with es.start():
        es.index("orders", ['{"total": 10}', '{"total": 20}'])
        assert len(es.fetch_all_documents("orders")) == 2
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from elasticsearch import Elasticsearch

from .cluster import ElasticRestClient
from .exit_hooks import CleanupRegistry
from .index import (
    IndexRequest,
    IndexSettings,
    IndicesDescription,
    TemplatesDescription,
)
from .java_home import JavaHome
from .server import ElasticServer
from .transport import HttpClient

logger = logging.getLogger(__name__)

SUPERUSER = "elastic"


class EmbeddedElastic:
    """
    Elasticsearch instance owned by a test suite.

    ``start()`` and ``stop()`` are idempotent; the process is also stopped
    at interpreter exit if ``stop()`` was never called.
    """

    def __init__(
        self,
        executable: Union[str, Path],
        installation_directory: Optional[Union[str, Path]] = None,
        setup_passwords_executable: Optional[Union[str, Path]] = None,
        indices: Union[None, IndicesDescription, Mapping[str, Optional[IndexSettings]]] = None,
        templates: Union[None, TemplatesDescription, Mapping[str, Any]] = None,
        es_java_opts: str = "",
        start_timeout: float = 15.0,
        clean_installation_directory_on_stop: bool = True,
        java_home: Optional[JavaHome] = None,
        with_security: bool = False,
        host: str = "localhost",
        cleanups: Optional[CleanupRegistry] = None,
        server: Optional[ElasticServer] = None
    ):
        """
        Args:
            executable: The ``bin/elasticsearch`` start script of an installed distribution
            installation_directory: Directory of the installed distribution
            setup_passwords_executable: The ``bin/elasticsearch-setup-passwords``
                script, defaults to the sibling of ``executable``
            indices: Indices created on start, name → settings (or None)
            templates: Templates created on start, name → JSON body
            es_java_opts: Extra JVM options (``ES_JAVA_OPTS``)
            start_timeout: Seconds to wait for the server to report readiness
            clean_installation_directory_on_stop: Delete ``installation_directory`` on stop
            java_home: Java runtime policy, defaults to the system one
            with_security: Authenticate as ``elastic`` with a bootstrapped password
            host: Host name the control-plane client connects to
            cleanups: Registry that stops the server at interpreter exit
            server: Pre-built supervisor, overrides the process options above
        """
        if not isinstance(indices, IndicesDescription):
            indices = IndicesDescription(indices)
        if not isinstance(templates, TemplatesDescription):
            templates = TemplatesDescription(templates)
        self.indices = indices
        self.templates = templates
        self.with_security = with_security
        self.host = host

        if server is None:
            executable = Path(executable)
            if setup_passwords_executable is None:
                setup_passwords_executable = executable.parent / "elasticsearch-setup-passwords"
            server = ElasticServer(
                executable,
                installation_directory=installation_directory,
                setup_passwords_executable=setup_passwords_executable,
                es_java_opts=es_java_opts,
                start_timeout=start_timeout,
                clean_installation_directory_on_stop=clean_installation_directory_on_stop,
                java_home=java_home,
                cleanups=cleanups
            )
        self._server = server
        self._http: Optional[HttpClient] = None
        self._rest: Optional[ElasticRestClient] = None
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "EmbeddedElastic":
        """Start the server and create the declared templates and indices."""
        if self._started:
            return self
        logger.info("Starting embedded Elastic.")
        try:
            if not self._server.is_started():
                self._server.start()
            self._create_rest_client()
            self.create_templates()
            self.create_indices()
        except Exception:
            # A running server is kept so a retry only repeats provisioning.
            self._close_rest_client()
            raise
        self._started = True
        return self

    def stop(self):
        """Stop the server and remove its data if configured."""
        if not self._started and not self._server.is_started():
            return
        self._started = False
        try:
            self._close_rest_client()
        finally:
            self._server.stop()

    def _close_rest_client(self):
        try:
            if self._http is not None:
                self._http.close()
        finally:
            self._http = None
            self._rest = None

    def _create_rest_client(self):
        username = password = None
        if self.with_security:
            username = SUPERUSER
            password = self._server.get_password(SUPERUSER)
        self._http = HttpClient(
            self._server.get_http_port(),
            host=self.host,
            username=username,
            password=password
        )
        self._rest = ElasticRestClient(self._http, self.indices, self.templates)

    @property
    def rest(self) -> ElasticRestClient:
        if self._rest is None:
            raise RuntimeError("Embedded Elastic is not started")
        return self._rest

    def get_http_port(self) -> int:
        return self._server.get_http_port()

    def get_transport_tcp_port(self) -> int:
        return self._server.get_transport_tcp_port()

    def get_password(self, user: str) -> Optional[str]:
        return self._server.get_password(user)

    def client(self, **kwargs) -> Elasticsearch:
        """
        High level ``elasticsearch`` client bound to the running server.

        Args:
            **kwargs: Extra arguments passed to ``Elasticsearch``

        Returns:
            A new client; the caller closes it
        """
        if not self._started:
            raise RuntimeError("Embedded Elastic is not started")

        conn_kwargs: Dict[str, Any] = {
            "hosts": [f"http://{self.host}:{self.get_http_port()}"]
        }
        if self.with_security:
            conn_kwargs["basic_auth"] = (SUPERUSER, self.get_password(SUPERUSER))
        conn_kwargs.update(kwargs)

        return Elasticsearch(**conn_kwargs)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def index(self, index_name: str, documents: Union[Mapping[str, str], Iterable[str]]):
        """
        Index documents into ``index_name``.

        Args:
            index_name: Target index
            documents: Mapping of document id → JSON text, or JSON texts
                to index with server-assigned ids
        """
        if isinstance(documents, Mapping):
            requests = [
                IndexRequest(index_name, str(json), id=str(doc_id))
                for doc_id, json in documents.items()
            ]
        elif isinstance(documents, str):
            requests = [IndexRequest(index_name, documents)]
        else:
            requests = [IndexRequest(index_name, str(json)) for json in documents]
        self.index_requests(requests)

    def index_requests(self, requests: Iterable[IndexRequest]):
        """Index documents along with their index, id and routing metadata."""
        self.rest.bulk_index(requests)

    def refresh_indices(self):
        """Refresh all indices. Useful in tests that write from several threads."""
        self.rest.refresh()

    def fetch_all_documents(self, *indices: str, routing: Optional[str] = None) -> List[str]:
        """
        Fetch the sources of all documents in ``indices`` (all indices when
        none are given). Useful for logging and debugging.
        """
        return self.rest.fetch_all_documents(*indices, routing=routing)

    # ------------------------------------------------------------------
    # Indices and templates
    # ------------------------------------------------------------------

    def create_indices(self):
        self.rest.create_indices()

    def create_index(self, index_name: str):
        self.rest.create_index(index_name)

    def delete_indices(self):
        self.rest.delete_indices()

    def delete_index(self, index_name: str):
        self.rest.delete_index(index_name)

    def recreate_indices(self):
        """Delete and create again all declared indices."""
        self.delete_indices()
        self.create_indices()

    def recreate_index(self, index_name: str):
        self.delete_index(index_name)
        self.create_index(index_name)

    def create_templates(self):
        self.rest.create_templates()

    def create_template(self, template_name: str):
        self.rest.create_template(template_name)

    def delete_templates(self):
        self.rest.delete_templates()

    def delete_template(self, template_name: str):
        self.rest.delete_template(template_name)

    def recreate_templates(self):
        """Delete and create again all declared templates."""
        self.delete_templates()
        self.create_templates()

    def recreate_template(self, template_name: str):
        self.delete_template(template_name)
        self.create_template(template_name)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
