# podgate/vocab.py
"""
Protocol constants shared by offers, notifications and permission documents.

The predicate IRIs are fixed by the browser client that authors offers and
notifications; changing them breaks interoperability with existing pods.
"""

from rdflib import Namespace
from rdflib.namespace import RDF, XSD

ACL = Namespace("http://www.w3.org/ns/auth/acl#")
TIME = Namespace("http://www.w3.org/2006/time#")
SCHEMA = Namespace("https://schema.org/")
ETHON = Namespace("http://ethon.consensys.net/")
SOLID = Namespace("http://www.w3.org/ns/solid/terms#")
LDP = Namespace("http://www.w3.org/ns/ldp#")

PREFIXES = {
    "acl": ACL,
    "time": TIME,
    "xsd": XSD,
    "schema": SCHEMA,
    "ethon": ETHON,
    "solid": SOLID,
    "ldp": LDP,
}

TURTLE = "text/turtle"
ACL_SUFFIX = ".acl"
ACL_LINK_HEADER = '<.acl>; rel="acl"'

# First field of the comma-separated transaction input
PAYLOAD_MARKER = "SOLIDBLOCKCHAIN_TX_DATA"

# Offer durations are expressed in minutes internally
UNIT_MINUTES = {
    TIME.unitMinute: 1,
    TIME.unitHour: 60,
    TIME.unitDay: 60 * 24,
    TIME.unitWeek: 60 * 24 * 7,
}

__all__ = [
    "ACL",
    "TIME",
    "SCHEMA",
    "ETHON",
    "SOLID",
    "LDP",
    "RDF",
    "XSD",
    "PREFIXES",
    "TURTLE",
    "ACL_SUFFIX",
    "ACL_LINK_HEADER",
    "PAYLOAD_MARKER",
    "UNIT_MINUTES",
]
