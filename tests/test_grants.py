# tests/test_grants.py
"""Tests for time-bounded grants in permission documents."""

from datetime import datetime, timedelta

import pytest
from rdflib import Literal, URIRef

from podgate.grants import grant_access, grant_key, keccak_hex, list_grants, revoke_expired
from podgate.graph import GraphDocument
from podgate.vocab import ACL, TIME

from .conftest import BUYER_WEBID, OWNER_ACL, OWNER_WEBID, RESOURCE, T0

ACL_URL = RESOURCE + ".acl"


@pytest.fixture
def acl():
    return GraphDocument.parse(ACL_URL, OWNER_ACL)


def grant_entries(doc):
    return set(doc.subjects(TIME.hasEnd))


class TestGrantKey:
    """Tests for grant identifiers."""

    def test_deterministic(self):
        assert grant_key(BUYER_WEBID, RESOURCE) == grant_key(BUYER_WEBID, RESOURCE)
        assert len(grant_key(BUYER_WEBID, RESOURCE)) == 66

    def test_keccak_not_nist_sha3(self):
        """Keys use web3-style Keccak-256, not hashlib.sha3_256."""
        assert keccak_hex("abc") == "0x4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"
        assert keccak_hex("") == "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_key_is_hash_of_pair(self):
        assert grant_key(BUYER_WEBID, RESOURCE) == keccak_hex(f"{BUYER_WEBID},{RESOURCE}")

    def test_depends_on_both_parts(self):
        assert grant_key(BUYER_WEBID, RESOURCE) != grant_key(BUYER_WEBID, RESOURCE + "2")
        assert grant_key(BUYER_WEBID, RESOURCE) != grant_key(OWNER_WEBID, RESOURCE)


class TestGrantAccess:
    """Tests for adding grants."""

    def test_grant_triples(self, acl):
        grant = grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        entry = URIRef(grant.identifier)

        assert grant.valid_from == T0
        assert grant.valid_until == T0 + timedelta(minutes=5)
        assert (entry, ACL.agent, URIRef(BUYER_WEBID)) in acl
        assert (entry, ACL.accessTo, URIRef(RESOURCE)) in acl
        assert (entry, ACL.mode, ACL.Read) in acl
        assert grant.key == grant_key(BUYER_WEBID, RESOURCE)

    def test_owner_entry_untouched(self, acl):
        owner = acl.fragment("owner")
        before = set(acl.graph.triples((owner, None, None)))
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        assert set(acl.graph.triples((owner, None, None))) == before

    def test_repeat_purchase_replaces_grant(self, acl):
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        size = len(acl)
        grant = grant_access(acl, BUYER_WEBID, RESOURCE, 60, now=T0 + timedelta(minutes=1))

        assert len(acl) == size
        assert list(list_grants(acl).values()) == [grant]

    def test_zero_duration_expires_immediately(self, acl):
        grant = grant_access(acl, BUYER_WEBID, RESOURCE, 0, now=T0)
        assert grant.is_expired(T0)

    def test_naive_now_rejected(self, acl):
        with pytest.raises(ValueError):
            grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=datetime(2024, 5, 1, 12))

    def test_negative_duration_rejected(self, acl):
        with pytest.raises(ValueError):
            grant_access(acl, BUYER_WEBID, RESOURCE, -1, now=T0)


class TestRevokeExpired:
    """Tests for removing expired grants."""

    def test_revoke_at_expiry(self, acl):
        """Revoking at valid_until removes exactly that grant and its instants."""
        original = acl.copy()
        grant = grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)

        _, removed = revoke_expired(acl, grant.valid_until)

        assert removed == 1
        assert grant_entries(acl) == set()
        assert not acl.has_subject(acl.fragment(f"{grant.key}-beginning"))
        assert not acl.has_subject(acl.fragment(f"{grant.key}-end"))
        assert acl.is_equivalent(original)

    def test_concrete_window(self, acl):
        """Granted at T0 for 5 minutes: alive at T0+4, gone at T0+5."""
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)

        _, removed = revoke_expired(acl, T0 + timedelta(minutes=4))
        assert removed == 0
        assert len(list_grants(acl)) == 1

        _, removed = revoke_expired(acl, T0 + timedelta(minutes=5))
        assert removed == 1
        assert list_grants(acl) == {}

    def test_idempotent(self, acl):
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        later = T0 + timedelta(hours=1)
        revoke_expired(acl, later)
        snapshot = acl.copy()

        _, removed = revoke_expired(acl, later)
        assert removed == 0
        assert acl.is_equivalent(snapshot)

    def test_only_expired_grants_removed(self, acl):
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        long_grant = grant_access(acl, "https://carol/profile#me", RESOURCE, 60, now=T0)

        _, removed = revoke_expired(acl, T0 + timedelta(minutes=10))
        assert removed == 1
        assert list(list_grants(acl)) == [long_grant.key]

    def test_serialized_round_trip(self, acl):
        """A written and re-read permission document revokes nothing before expiry."""
        grant_access(acl, BUYER_WEBID, RESOURCE, 5, now=T0)
        reread = GraphDocument.parse(ACL_URL, acl.serialize())

        _, removed = revoke_expired(reread, T0 + timedelta(minutes=1))
        assert removed == 0
        assert reread.is_equivalent(GraphDocument.parse(ACL_URL, acl.serialize()))
        assert list_grants(reread)[grant_key(BUYER_WEBID, RESOURCE)].valid_until == T0 + timedelta(minutes=5)

    def test_epoch_millisecond_instants(self, acl):
        """Grants written with epoch-millisecond instants are still revoked."""
        entry = acl.fragment("legacy")
        end = acl.fragment("legacy-end")
        acl.add(entry, ACL.agent, URIRef(BUYER_WEBID))
        acl.add(entry, TIME.hasEnd, end)
        acl.add(end, TIME.inXSDDateTimeStamp, Literal(str(int(T0.timestamp() * 1000))))

        _, removed = revoke_expired(acl, T0)
        assert removed == 1
        assert not acl.has_subject(end)

    def test_unreadable_end_is_left_alone(self, acl):
        entry = acl.fragment("odd")
        end = acl.fragment("odd-end")
        acl.add(entry, TIME.hasEnd, end)
        acl.add(end, TIME.inXSDDateTimeStamp, Literal("whenever"))

        _, removed = revoke_expired(acl, T0)
        assert removed == 0
        assert acl.has_subject(entry)
