"""Selection of the Java runtime used to launch Elasticsearch."""

import os
import shutil
from pathlib import Path
from typing import NamedTuple, Optional

JAVA_HOME_VARIABLE = "ES_JAVA_HOME"
JAVA_OPTS_VARIABLE = "ES_JAVA_OPTS"

SYSTEM = "system"
JAVA_HOME = "java_home"
INHERIT = "inherit"
PATH = "path"


class JavaHome(NamedTuple):
    """
    Which Java home, if any, to export as ``ES_JAVA_HOME``.

    Kinds:
        system: let the startup script pick its bundled or default JDK
        java_home: use the JDK referenced by ``JAVA_HOME``
        inherit: use the JDK of the ``java`` executable found on ``PATH``
        path: use the given directory
    """

    kind: str
    value: Optional[str] = None

    @classmethod
    def use_system(cls) -> "JavaHome":
        return cls(SYSTEM)

    @classmethod
    def use_java_home(cls) -> "JavaHome":
        return cls(JAVA_HOME)

    @classmethod
    def inherit(cls) -> "JavaHome":
        return cls(INHERIT)

    @classmethod
    def path(cls, path: str) -> "JavaHome":
        return cls(PATH, str(path))

    def resolve(self) -> Optional[str]:
        """Return the override for ``ES_JAVA_HOME``, or None to leave it unset."""
        if self.kind == SYSTEM:
            return None
        if self.kind == JAVA_HOME:
            return os.environ.get("JAVA_HOME")
        if self.kind == INHERIT:
            java = shutil.which("java")
            if java is None:
                return None
            # <home>/bin/java
            return str(Path(java).resolve().parent.parent)
        if self.kind == PATH:
            return self.value
        raise ValueError(f"Unknown Java home kind: {self.kind}")
