"""
Embedded Elasticsearch Exit Hooks
=================================

Servers left running when the interpreter exits are stopped by a registry
of pending cleanups. Each supervisor registers one callback on start and
cancels it on explicit stop, so the exit path never stops an instance twice.
"""

import atexit
import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class CleanupHandle:
    """Cancellable registration returned by ``CleanupRegistry.register``."""

    def __init__(self, registry: "CleanupRegistry", callback: Callable[[], None]):
        self._registry = registry
        self.callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self):
        self.cancelled = True
        self._registry._discard(self)

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.done)


class CleanupRegistry:
    """
    Ordered list of cleanups run at most once.

    Example:
        registry = CleanupRegistry()
        handle = registry.register(server.stop)
        ...
        handle.cancel()          # explicit stop happened
        registry.run_pending()   # no-op for cancelled handles
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: List[CleanupHandle] = []

    def register(self, callback: Callable[[], None]) -> CleanupHandle:
        handle = CleanupHandle(self, callback)
        with self._lock:
            self._handles.append(handle)
        return handle

    def _discard(self, handle: CleanupHandle):
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)

    def pending(self) -> List[CleanupHandle]:
        with self._lock:
            return [h for h in self._handles if h.pending]

    def run_pending(self):
        """Run every pending cleanup, most recent first."""
        with self._lock:
            handles = list(reversed(self._handles))
            self._handles.clear()

        for handle in handles:
            if not handle.pending:
                continue
            handle.done = True
            try:
                handle.callback()
            except Exception:
                logger.exception("Cleanup %r failed", handle.callback)


_default_registry: Optional[CleanupRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> CleanupRegistry:
    """Process-wide registry, run by ``atexit`` when the interpreter exits."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = CleanupRegistry()
            atexit.register(_default_registry.run_pending)
        return _default_registry
