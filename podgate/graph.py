# podgate/graph.py
"""
Typed wrapper around an rdflib graph.

Every remote document (container listing, offer, notification, profile,
permission document) is handled as a GraphDocument: the parsed triples
plus the URL they were fetched from, so relative identifiers such as
<#Transaction> resolve against the document itself.

Literal decoding happens here and nowhere else.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from rdflib import Graph, Literal, URIRef
from rdflib.compare import isomorphic
from rdflib.term import Node

from .errors import ParseFailure
from .vocab import PREFIXES


@dataclass(frozen=True)
class LiteralValue:
    """Decoded literal: lexical value plus datatype IRI (if any)."""
    value: str
    datatype: Optional[str] = None


def _bind_prefixes(graph: Graph) -> Graph:
    for prefix, namespace in PREFIXES.items():
        graph.bind(prefix, namespace, override=True)
    return graph


def parse_instant(lexical: str) -> datetime:
    """
    Decode an instant literal.

    Accepts ISO-8601 timestamps (trailing "Z" or explicit offset) and the
    epoch-milliseconds integers written by older clients. The result is
    always timezone-aware UTC.
    """
    text = lexical.strip()
    if not text:
        raise ParseFailure("Empty instant literal")

    if text.lstrip("-").isdigit():
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)

    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        instant = datetime.fromisoformat(text)
    except ValueError as e:
        raise ParseFailure(f"Invalid instant literal: {lexical!r}") from e

    if instant.tzinfo is None:
        raise ParseFailure(f"Instant literal has no timezone: {lexical!r}")
    return instant.astimezone(timezone.utc)


def format_instant(instant: datetime) -> str:
    """Encode an aware datetime as an xsd:dateTimeStamp lexical form."""
    if instant.tzinfo is None:
        raise ValueError("Instants must be timezone-aware")
    return instant.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GraphDocument:
    """
    A graph fetched from (or destined for) a single URL.

    Args:
        url: The document URL, used as base for relative identifiers
        graph: Backing rdflib graph (a new empty graph when omitted)
    """

    def __init__(self, url: str, graph: Optional[Graph] = None):
        self.url = url
        self.graph = _bind_prefixes(graph if graph is not None else Graph())

    @classmethod
    def parse(cls, url: str, text: str, format: str = "turtle") -> "GraphDocument":
        """Parse a serialized document; raises ParseFailure on bad input."""
        graph = Graph()
        try:
            graph.parse(data=text, format=format, publicID=url)
        except Exception as e:
            raise ParseFailure(f"Cannot parse {url}: {e}") from e
        return cls(url, graph)

    def serialize(self, format: str = "turtle") -> str:
        return self.graph.serialize(format=format)

    def fragment(self, name: str) -> URIRef:
        """Identifier for a fragment of this document (e.g. #Transaction)."""
        return URIRef(f"{self.url.split('#', 1)[0]}#{name}")

    # Triple access

    def objects(self, subject: Optional[Node], predicate: Node) -> Iterator[Node]:
        return self.graph.objects(subject, predicate)

    def subjects(self, predicate: Node, obj: Optional[Node] = None) -> Iterator[Node]:
        return self.graph.subjects(predicate, obj)

    def value(self, subject: Optional[Node], predicate: Node) -> Optional[Node]:
        """First object for (subject, predicate); subject=None matches any."""
        return next(iter(self.graph.objects(subject, predicate)), None)

    def add(self, subject: Node, predicate: Node, obj: Node) -> None:
        self.graph.add((subject, predicate, obj))

    def remove(self, subject: Node) -> int:
        """Remove every triple with the given subject. Returns count removed."""
        triples = list(self.graph.triples((subject, None, None)))
        for triple in triples:
            self.graph.remove(triple)
        return len(triples)

    def has_subject(self, subject: Node) -> bool:
        return (subject, None, None) in self.graph

    # Typed accessors

    def get_literal(self, subject: Optional[Node], predicate: Node) -> Optional[LiteralValue]:
        """
        Decode the first literal object of (subject, predicate).

        Returns None when there is no such triple or the object is not
        a literal.
        """
        node = self.value(subject, predicate)
        if not isinstance(node, Literal):
            return None
        datatype = str(node.datatype) if node.datatype is not None else None
        return LiteralValue(str(node), datatype)

    def get_iri(self, subject: Optional[Node], predicate: Node) -> Optional[str]:
        """First IRI object of (subject, predicate) as a string."""
        node = self.value(subject, predicate)
        if isinstance(node, URIRef):
            return str(node)
        return None

    def instant(self, subject: Node, predicate: Node) -> Optional[datetime]:
        """Decode a timestamp literal; None when absent."""
        literal = self.get_literal(subject, predicate)
        if literal is None:
            return None
        return parse_instant(literal.value)

    def is_equivalent(self, other: "GraphDocument") -> bool:
        """Graph equality up to blank node renaming."""
        return isomorphic(self.graph, other.graph)

    def copy(self) -> "GraphDocument":
        graph = Graph()
        for triple in self.graph:
            graph.add(triple)
        return GraphDocument(self.url, graph)

    def __len__(self) -> int:
        return len(self.graph)

    def __contains__(self, triple) -> bool:
        return triple in self.graph

    def __repr__(self) -> str:
        return f"GraphDocument({self.url!r}, {len(self)} triples)"
