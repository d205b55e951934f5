"""
Embedded Elasticsearch Console Parser
=====================================

Elasticsearch announces its pid, its bound ports and its readiness only on
its console. This module turns console lines into events:

    "... version[7.10.2], pid[1234], build[...]"                → pid 1234
    "... [o.e.h.AbstractHttpServerTransport] ... publish_address
         {127.0.0.1:9200}, bound_addresses {...}"                → http port 9200
    "... [o.e.t.TransportService] ... publish_address {...:9300}" → transport port 9300
    "... [o.e.n.Node] [node-1] started"                          → started

A line that carries a rule's markers but not its pattern means the server
build no longer follows the console format, and is reported as a
``LogContractViolation`` instead of being skipped.
"""

import re
from typing import NamedTuple, Optional, Pattern, Sequence, Tuple

from .errors import LogContractViolation

STARTED = "started"
PID = "pid"
HTTP_PORT = "http_port"
TRANSPORT_PORT = "transport_port"

PUBLISH_ADDRESS_PATTERN = re.compile(r"publish_address \{.*?:(\d+).?\}")


class LogEvent(NamedTuple):
    kind: str
    value: Optional[int] = None


class LogRule(NamedTuple):
    """
    One marker → event mapping.

    Attributes:
        kind: Event kind emitted on match
        required: Substrings that must all be present
        any_of: Substrings of which at least one must be present (empty = no constraint)
        pattern: Regex whose first group holds the integer value, None for
            events without a value
    """

    kind: str
    required: Tuple[str, ...]
    any_of: Tuple[str, ...] = ()
    pattern: Optional[Pattern] = None

    def matches(self, line: str) -> bool:
        if not all(marker in line for marker in self.required):
            return False
        return not self.any_of or any(marker in line for marker in self.any_of)

    def extract(self, line: str) -> LogEvent:
        if self.pattern is None:
            return LogEvent(self.kind)
        match = self.pattern.search(line)
        if match is None:
            raise LogContractViolation(f"Could not extract {self.kind}", line)
        return LogEvent(self.kind, int(match.group(1)))


DEFAULT_RULES: Tuple[LogRule, ...] = (
    LogRule(STARTED, ("] started",)),
    LogRule(PID, (", pid[",), pattern=re.compile(r"pid\[(\d+)\]")),
    LogRule(
        HTTP_PORT,
        ("publish_address",),
        ("[http", "HttpServer"),
        PUBLISH_ADDRESS_PATTERN
    ),
    LogRule(
        TRANSPORT_PORT,
        ("publish_address",),
        ("[transport", "TransportService"),
        PUBLISH_ADDRESS_PATTERN
    ),
)


class LogLineClassifier:
    """
    Classify console lines with an ordered list of rules.

    Only the first matching rule fires for a given line.
    """

    def __init__(self, rules: Sequence[LogRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def classify(self, line: str) -> Optional[LogEvent]:
        """
        Args:
            line: One console line

        Returns:
            The event of the first matching rule, or None

        Raises:
            LogContractViolation: a rule matched but its value was missing
        """
        for rule in self.rules:
            if rule.matches(line):
                return rule.extract(line)
        return None

