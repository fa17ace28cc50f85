# tests/test_graph.py
"""Tests for the graph document adapter."""

from datetime import datetime, timedelta, timezone

import pytest
from rdflib import Literal, URIRef

from podgate.errors import ParseFailure
from podgate.graph import GraphDocument, format_instant, parse_instant
from podgate.vocab import ETHON, SCHEMA, TIME, XSD


DOC_URL = "https://x/payable/offer.ttl"

OFFER_TTL = """@prefix : <#> .
@prefix schema: <https://schema.org/> .
@prefix ethon: <http://ethon.consensys.net/> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .

:Offer schema:price 0.25; schema:priceCurrency "ETH"; schema:url <https://x/private/a.txt> .
:Account ethon:address "0xABCDEF"^^xsd:hexBinary .
"""


@pytest.fixture
def doc():
    return GraphDocument.parse(DOC_URL, OFFER_TTL)


class TestParsing:
    """Tests for parsing and serialization."""

    def test_relative_identifiers_resolve_against_document(self, doc):
        """<#Offer> should resolve to the document URL plus fragment."""
        assert doc.has_subject(URIRef(DOC_URL + "#Offer"))
        assert doc.fragment("Offer") == URIRef(DOC_URL + "#Offer")

    def test_malformed_turtle_raises_parse_failure(self):
        """Unparseable text should raise ParseFailure, not an rdflib error."""
        with pytest.raises(ParseFailure):
            GraphDocument.parse(DOC_URL, "this is <not turtle")

    def test_serialize_round_trip(self, doc):
        """Serializing and re-parsing should give an equivalent graph."""
        again = GraphDocument.parse(DOC_URL, doc.serialize())
        assert again.is_equivalent(doc)
        assert len(again) == len(doc)


class TestAccessors:
    """Tests for typed accessors."""

    def test_get_literal_decodes_value_and_datatype(self, doc):
        literal = doc.get_literal(doc.fragment("Account"), ETHON.address)
        assert literal.value == "0xABCDEF"
        assert literal.datatype == str(XSD.hexBinary)

    def test_get_literal_with_any_subject(self, doc):
        """subject=None should match the first subject carrying the predicate."""
        assert doc.get_literal(None, SCHEMA.price).value == "0.25"

    def test_get_literal_missing(self, doc):
        assert doc.get_literal(None, TIME.numericDuration) is None

    def test_get_literal_on_iri_object_is_none(self, doc):
        """An IRI object is not a literal."""
        assert doc.get_literal(None, SCHEMA.url) is None
        assert doc.get_iri(None, SCHEMA.url) == "https://x/private/a.txt"

    def test_remove_subject(self, doc):
        """remove() should drop every triple of a subject and report the count."""
        removed = doc.remove(doc.fragment("Offer"))
        assert removed == 3
        assert not doc.has_subject(doc.fragment("Offer"))
        assert len(doc) == 1

    def test_instant_accessor(self):
        d = GraphDocument("https://x/a.acl")
        node = d.fragment("end")
        d.add(node, TIME.inXSDDateTimeStamp, Literal("2024-05-01T12:05:00Z", datatype=XSD.dateTimeStamp))
        assert d.instant(node, TIME.inXSDDateTimeStamp) == datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc)
        assert d.instant(d.fragment("other"), TIME.inXSDDateTimeStamp) is None


class TestInstants:
    """Tests for instant literal encoding."""

    def test_iso_with_z(self):
        assert parse_instant("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    def test_iso_with_offset_is_normalised_to_utc(self):
        instant = parse_instant("2024-05-01T14:00:00+02:00")
        assert instant == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
        assert instant.utcoffset() == timedelta(0)

    def test_epoch_milliseconds(self):
        """Older clients wrote instants as epoch milliseconds."""
        assert parse_instant("1714564800000") == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    def test_naive_iso_rejected(self):
        with pytest.raises(ParseFailure):
            parse_instant("2024-05-01T12:00:00")

    def test_garbage_rejected(self):
        with pytest.raises(ParseFailure):
            parse_instant("next tuesday")

    def test_format_requires_aware_datetime(self):
        with pytest.raises(ValueError):
            format_instant(datetime(2024, 5, 1, 12))

    def test_format_round_trip(self):
        instant = datetime(2024, 5, 1, 12, 30, 15, tzinfo=timezone.utc)
        assert format_instant(instant) == "2024-05-01T12:30:15Z"
        assert parse_instant(format_instant(instant)) == instant
