# podgate/grants.py
"""
Time-bounded read grants in permission documents.

A grant is an acl:Authorization that is also a time:TemporalEntity:

    <#KEY> a acl:Authorization, time:TemporalEntity;
        acl:accessTo <resource>;
        acl:agent <grantee>;
        acl:mode acl:Read;
        time:hasBeginning <#KEY-beginning>;
        time:hasEnd <#KEY-end> .
    <#KEY-beginning> a time:Instant; time:inXSDDateTimeStamp "..."^^xsd:dateTimeStamp .
    <#KEY-end> a time:Instant; time:inXSDDateTimeStamp "..."^^xsd:dateTimeStamp .

KEY is derived from (grantee, resource), so a repeated purchase replaces
the previous grant instead of piling up entries. Authorizations without
time:hasEnd (the owner's own, public grants, ...) are never touched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from Crypto.Hash import keccak
from rdflib import Literal, URIRef
from rdflib.term import Node

from .errors import ParseFailure
from .graph import GraphDocument, format_instant
from .vocab import ACL, RDF, TIME, XSD

logger = logging.getLogger(__name__)


def keccak_hex(text: str) -> str:
    """
    Keccak-256 of UTF-8 text as 0x-prefixed hex (web3 `sha3`).

    This is the original Keccak padding, not NIST SHA3-256, so
    hashlib.sha3_256 gives a different digest.
    """
    digest = keccak.new(digest_bits=256)
    digest.update(text.encode())
    return "0x" + digest.hexdigest()


def grant_key(grantee_webid: str, resource_url: str) -> str:
    """
    Deterministic grant identifier for a (grantee, resource) pair.

    Keccak-256 of "grantee,resource", matching the identifiers browser
    clients write, so either side replaces the other's grant.
    """
    return keccak_hex(f"{grantee_webid},{resource_url}")


def _require_aware(now: datetime) -> datetime:
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now


@dataclass(frozen=True)
class AuthorizationGrant:
    """
    A time-bounded read grant.

    Attributes:
        identifier: IRI of the authorization in the permission document
        grantee_webid: Agent granted access
        resource_url: Resource the grant applies to
        valid_from: Start of the access window
        valid_until: End of the access window (exclusive)
    """
    identifier: str
    grantee_webid: Optional[str]
    resource_url: Optional[str]
    valid_from: Optional[datetime]
    valid_until: datetime

    @property
    def key(self) -> str:
        return self.identifier.rsplit("#", 1)[-1]

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until <= _require_aware(now)


def _temporal_nodes(doc: GraphDocument, entry: Node) -> List[Node]:
    return list(doc.objects(entry, TIME.hasBeginning)) + list(doc.objects(entry, TIME.hasEnd))


def _remove_entry(doc: GraphDocument, entry: Node) -> None:
    """Remove an authorization together with its temporal sub-entities."""
    for node in _temporal_nodes(doc, entry):
        # Sub-entities shared with another entry stay put
        owners = set(doc.subjects(TIME.hasBeginning, node)) | set(doc.subjects(TIME.hasEnd, node))
        if owners <= {entry}:
            doc.remove(node)
    doc.remove(entry)


def _add_instant(doc: GraphDocument, node: URIRef, instant: datetime) -> None:
    doc.add(node, RDF.type, TIME.Instant)
    doc.add(node, TIME.inXSDDateTimeStamp, Literal(format_instant(instant), datatype=XSD.dateTimeStamp))


def grant_access(
    doc: GraphDocument,
    grantee_webid: str,
    resource_url: str,
    duration_minutes: int,
    now: datetime,
) -> AuthorizationGrant:
    """
    Add a time-bounded read grant to a permission document (in place).

    The window is [now, now + duration_minutes). An existing grant for the
    same (grantee, resource) pair is replaced.

    Returns:
        The AuthorizationGrant written
    """
    _require_aware(now)
    if duration_minutes < 0:
        raise ValueError(f"duration_minutes must be >= 0, got {duration_minutes}")

    key = grant_key(grantee_webid, resource_url)
    entry = doc.fragment(key)
    beginning = doc.fragment(f"{key}-beginning")
    end = doc.fragment(f"{key}-end")
    valid_until = now + timedelta(minutes=duration_minutes)

    if doc.has_subject(entry):
        logger.debug(f"Replacing existing grant {key[:16]}... for {grantee_webid}")
        _remove_entry(doc, entry)

    doc.add(entry, RDF.type, ACL.Authorization)
    doc.add(entry, RDF.type, TIME.TemporalEntity)
    doc.add(entry, ACL.accessTo, URIRef(resource_url))
    doc.add(entry, ACL.agent, URIRef(grantee_webid))
    doc.add(entry, ACL.mode, ACL.Read)
    doc.add(entry, TIME.hasBeginning, beginning)
    doc.add(entry, TIME.hasEnd, end)
    _add_instant(doc, beginning, now)
    _add_instant(doc, end, valid_until)

    logger.info(f"Granted {grantee_webid} read access to {resource_url} until {format_instant(valid_until)}")
    return AuthorizationGrant(
        identifier=str(entry),
        grantee_webid=grantee_webid,
        resource_url=resource_url,
        valid_from=now,
        valid_until=valid_until,
    )


def _end_instant(doc: GraphDocument, entry: Node) -> Optional[datetime]:
    """End of an entry's window; None if absent or unreadable."""
    end = doc.value(entry, TIME.hasEnd)
    if end is None:
        return None
    try:
        return doc.instant(end, TIME.inXSDDateTimeStamp)
    except ParseFailure as e:
        logger.warning(f"Ignoring grant {entry} in {doc.url}: {e}")
        return None


def list_grants(doc: GraphDocument) -> Dict[str, AuthorizationGrant]:
    """
    Return the time-bounded grants of a permission document, keyed by
    grant key (the fragment of the authorization IRI).
    """
    grants: Dict[str, AuthorizationGrant] = {}
    for entry in set(doc.subjects(TIME.hasEnd)):
        valid_until = _end_instant(doc, entry)
        if valid_until is None:
            continue

        beginning = doc.value(entry, TIME.hasBeginning)
        try:
            valid_from = doc.instant(beginning, TIME.inXSDDateTimeStamp) if beginning is not None else None
        except ParseFailure:
            valid_from = None

        grant = AuthorizationGrant(
            identifier=str(entry),
            grantee_webid=doc.get_iri(entry, ACL.agent),
            resource_url=doc.get_iri(entry, ACL.accessTo),
            valid_from=valid_from,
            valid_until=valid_until,
        )
        grants[grant.key] = grant
    return grants


def revoke_expired(doc: GraphDocument, now: datetime) -> Tuple[GraphDocument, int]:
    """
    Remove every grant whose end instant is at or before now (in place).

    Only entries carrying time:hasEnd are candidates. Entries whose end
    instant cannot be read are left alone.

    Returns:
        (doc, number of grants removed)
    """
    _require_aware(now)

    expired = []
    for entry in set(doc.subjects(TIME.hasEnd)):
        valid_until = _end_instant(doc, entry)
        if valid_until is not None and valid_until <= now:
            expired.append(entry)

    for entry in expired:
        _remove_entry(doc, entry)
        logger.debug(f"Revoked expired grant {entry}")

    return doc, len(expired)
