"""
Embedded Elasticsearch Transport
================================

Minimal HTTP exchange used by the control-plane client: send a request,
get back the status code and the raw body bytes. Connection pooling and
socket handling are delegated to ``elastic_transport``'s urllib3 node.
"""

import base64
import logging
from typing import Dict, Optional, Tuple

from elastic_transport import HttpHeaders, NodeConfig, Urllib3HttpNode
from elastic_transport import TransportError as NodeTransportError

from .errors import TransportError

logger = logging.getLogger(__name__)


class HttpClient:
    """
    HTTP client bound to a single local Elasticsearch node.

    Example:
        http = HttpClient(9200)
        status, body = http.send("GET", "/")
    """

    def __init__(
        self,
        port: int,
        host: str = "localhost",
        username: Optional[str] = None,
        password: Optional[str] = None,
        request_timeout: float = 90.0,
        node=None
    ):
        """
        Args:
            port: HTTP port of the node
            host: Host name of the node
            username: Basic auth user, enables the Authorization header
            password: Basic auth password
            request_timeout: Read timeout in seconds, must exceed the
                server-side cluster health wait
            node: Pre-built node exposing ``perform_request`` (tests)
        """
        self.port = port
        self.host = host
        self._token: Optional[str] = None
        if username is not None:
            credentials = f"{username}:{password or ''}".encode("utf-8")
            self._token = base64.b64encode(credentials).decode("ascii")

        if node is None:
            node = Urllib3HttpNode(
                NodeConfig(
                    scheme="http",
                    host=host,
                    port=port,
                    request_timeout=request_timeout
                )
            )
        self._node = node

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[bytes] = None
    ) -> Tuple[int, bytes]:
        """
        Perform one request.

        Args:
            method: HTTP method
            path: Request target, including any query string
            headers: Extra request headers
            body: Request body

        Returns:
            Tuple of (status, body bytes). Non-2xx statuses are returned,
            not raised.

        Raises:
            TransportError: the request could not be delivered
        """
        request_headers = HttpHeaders(headers or {})
        if self._token is not None:
            request_headers["Authorization"] = f"Basic {self._token}"

        try:
            response = self._node.perform_request(
                method, path, body=body, headers=request_headers
            )
        except NodeTransportError as e:
            raise TransportError(
                f"{method} http://{self.host}:{self.port}{path} failed: {e}", e
            ) from e

        logger.debug("%s %s -> %s", method, path, response.meta.status)
        return response.meta.status, response.body or b""

    def close(self):
        """Release pooled connections."""
        self._node.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
