"""
Embedded Elasticsearch Errors
=============================

Every failure raised by the supervisor and the control-plane client derives
from ``EmbeddedElasticError``. None of them are retried internally; the
caller decides whether to retry the whole start or operation.
"""

from typing import Optional


class EmbeddedElasticError(Exception):
    """Base class for all embedded Elasticsearch failures."""


class StartupTimeout(EmbeddedElasticError):
    """The server did not report readiness within the start timeout."""


class StartupFailed(EmbeddedElasticError):
    """The server process exited before it reported readiness."""


class SecurityBootstrapFailed(StartupFailed):
    """Running the password bootstrap command failed."""


class LogContractViolation(EmbeddedElasticError):
    """A console line carried a known marker but could not be parsed."""

    def __init__(self, message: str, line: str):
        super().__init__(f"{message}: {line!r}")
        self.line = line


class CleanupFailed(EmbeddedElasticError):
    """The installation directory could not be removed on stop."""


class RequestFailed(EmbeddedElasticError):
    """
    Elasticsearch answered a required call with a non-success status.

    Attributes:
        status: HTTP status code of the response
        body: Response body decoded as text, for diagnostics
    """

    def __init__(self, message: str, status: int, body: str = ""):
        super().__init__(f"{message} (status {status})\nResponse body:\n{body}")
        self.status = status
        self.body = body


class ClusterNotHealthy(RequestFailed):
    """The cluster did not reach yellow status in the server-side timeout."""


class TransportError(EmbeddedElasticError):
    """The HTTP request could not be delivered (connection, timeout, TLS)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class MalformedResponse(EmbeddedElasticError):
    """A response body was expected to be JSON of a known shape but was not."""
