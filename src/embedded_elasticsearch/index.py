"""
Embedded Elasticsearch Index Descriptions
=========================================

Value objects describing what gets provisioned on the server:

    IndexSettings         → body of ``PUT /<index>`` (settings, aliases, mappings)
    IndexRequest          → one document of a bulk request
    IndicesDescription    → indices declared up front, in declaration order
    TemplatesDescription  → templates declared up front, in declaration order
"""

import json
from typing import IO, Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

JsonSource = Union[str, bytes, Mapping[str, Any], IO[str], IO[bytes]]


def _read_json(source: Optional[JsonSource], what: str) -> Optional[dict]:
    """Accept JSON text, a readable stream or an already parsed mapping."""
    if source is None:
        return None
    if isinstance(source, Mapping):
        return dict(source)
    if hasattr(source, "read"):
        source = source.read()
    if isinstance(source, bytes):
        source = source.decode("utf-8")
    try:
        return json.loads(source)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Problem with provided {what} for index: {e}") from e


class IndexSettings:
    """
    Settings, aliases and mappings an index is created with.

    Each part is optional; missing parts serialize as empty objects.

    Example:
        settings = IndexSettings(
            mapping='{"properties": {"title": {"type": "text"}}}',
            settings={"number_of_shards": 1}
        )
    """

    def __init__(
        self,
        mapping: Optional[JsonSource] = None,
        settings: Optional[JsonSource] = None,
        aliases: Optional[JsonSource] = None
    ):
        self.mappings = _read_json(mapping, "mapping")
        self.settings = _read_json(settings, "settings")
        self.aliases = _read_json(aliases, "aliases")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settings": self.settings or {},
            "aliases": self.aliases or {},
            "mappings": self.mappings or {}
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def __repr__(self):
        return f"IndexSettings({self.to_json()})"


class IndexRequest(NamedTuple):
    """
    A single document to index.

    Attributes:
        index_name: Target index, None lets the bulk endpoint decide
        json: Document source as JSON text
        id: Document id, None lets the server assign one
        routing: Routing key
    """

    index_name: Optional[str]
    json: str
    id: Optional[str] = None
    routing: Optional[str] = None


class IndicesDescription:
    """Indices declared at configuration time, keyed by name."""

    def __init__(
        self,
        indices: Union[
            None,
            Mapping[str, Optional[IndexSettings]],
            Iterable[Tuple[str, Optional[IndexSettings]]]
        ] = None
    ):
        if indices is None:
            indices = {}
        if isinstance(indices, Mapping):
            indices = indices.items()
        self._indices: Dict[str, Optional[IndexSettings]] = dict(indices)

    def names(self) -> List[str]:
        return list(self._indices)

    def settings_for(self, name: str) -> Optional[IndexSettings]:
        """Settings of a declared index; None when declared without or undeclared."""
        return self._indices.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._indices

    def __len__(self) -> int:
        return len(self._indices)


class TemplatesDescription:
    """Templates declared at configuration time: name → raw JSON body."""

    def __init__(
        self,
        templates: Union[None, Mapping[str, JsonSource], Iterable[Tuple[str, JsonSource]]] = None
    ):
        if templates is None:
            templates = {}
        if isinstance(templates, Mapping):
            templates = templates.items()
        self._templates: Dict[str, str] = {}
        for name, body in templates:
            if isinstance(body, Mapping):
                body = json.dumps(dict(body))
            elif hasattr(body, "read"):
                body = body.read()
            if isinstance(body, bytes):
                body = body.decode("utf-8")
            self._templates[name] = body

    def names(self) -> List[str]:
        return list(self._templates)

    def template_for(self, name: str) -> str:
        """
        Raises:
            KeyError: the template was not declared
        """
        if name not in self._templates:
            raise KeyError(f"Template {name!r} was not declared")
        return self._templates[name]

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)
