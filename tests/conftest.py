"""Shared fixtures: an in-memory pod and ledger."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

import pytest

from podgate.cli import build_services
from podgate.config import Config
from podgate.errors import TransientIOFailure
from podgate.ledger import Transaction, encode_payload, text_to_hex, to_wei
from podgate.notifications import Notification
from podgate.offers import Offer
from podgate.storage import Response

POD = "https://x/"
OWNER_WEBID = "https://x/profile/card#me"
BUYER_WEBID = "https://buyer/profile#me"
RESOURCE = "https://x/private/f.txt"
OWNER_ADDRESS = "0x" + "a1" * 20
BUYER_ADDRESS = "0x" + "b2" * 20
TX_HASH = "0x" + "c3" * 32
T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

OWNER_ACL = f"""@prefix acl: <http://www.w3.org/ns/auth/acl#> .

<#owner>
    a acl:Authorization;
    acl:agent <{OWNER_WEBID}>;
    acl:accessTo <{RESOURCE}>;
    acl:mode acl:Read, acl:Write, acl:Control .
"""

PROFILE = f"""@prefix ethon: <http://ethon.consensys.net/> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .

<#me> ethon:address "{OWNER_ADDRESS}"^^xsd:hexBinary .
"""


class FakeStorage:
    """
    In-memory storage server.

    Documents live in a dict keyed by URL. Containers are registered
    explicitly and list their direct children via ldp:contains.
    """

    def __init__(self):
        self.documents: Dict[str, str] = {}
        self.containers: Set[str] = set()
        self.unreachable: Set[str] = set()
        self.statuses: Dict[str, int] = {}
        self.requests: List[Tuple[str, str]] = []

    def add_container(self, url: str):
        self.containers.add(url)

    def _check(self, method: str, url: str):
        self.requests.append((method, url))
        if url in self.unreachable:
            raise TransientIOFailure(f"{method} {url} failed: unreachable")

    def _members(self, container: str) -> List[str]:
        members = set()
        for url in list(self.documents) + list(self.containers):
            if url == container or not url.startswith(container):
                continue
            rest = url[len(container):]
            if rest.endswith(".acl"):
                continue
            if "/" in rest.rstrip("/"):
                continue
            members.add(rest)
        return sorted(members)

    def _listing(self, container: str) -> str:
        members = self._members(container)
        lines = ["@prefix ldp: <http://www.w3.org/ns/ldp#> .", "", "<> a ldp:BasicContainer"]
        if members:
            lines[-1] += ";"
            lines.append("   ldp:contains " + ", ".join(f"<{m}>" for m in members))
        lines[-1] += " ."
        return "\n".join(lines) + "\n"

    def get(self, url, accept="text/turtle", headers=None):
        self._check("GET", url)
        if url in self.statuses:
            return Response(self.statuses[url], "Server error")
        if url in self.containers:
            return Response(200, self._listing(url))
        if url in self.documents:
            return Response(200, self.documents[url])
        return Response(404, "Not found")

    def head(self, url):
        self._check("HEAD", url)
        if url in self.containers or url in self.documents:
            return Response(200)
        return Response(404)

    def put(self, url, body, content_type="text/turtle", headers=None):
        self._check("PUT", url)
        self.documents[url] = body
        return Response(201)

    def post(self, container_url, body, content_type="text/turtle", slug=None):
        self._check("POST", container_url)
        if container_url not in self.containers:
            return Response(404)
        url = container_url + (slug or f"{uuid.uuid4().hex}.ttl")
        self.documents[url] = body
        return Response(201, headers={"Location": url})

    def delete(self, url):
        self._check("DELETE", url)
        if url in self.documents:
            del self.documents[url]
            return Response(200)
        return Response(404)

    def count(self, method: str, url: Optional[str] = None) -> int:
        return sum(1 for m, u in self.requests if m == method and (url is None or u == url))


class FakeLedger:
    """Ledger holding transactions by hash; records lookups."""

    def __init__(self):
        self.transactions: Dict[str, Transaction] = {}
        self.lookups: List[str] = []

    def add(self, transaction: Transaction):
        self.transactions[transaction.hash] = transaction

    def get_transaction(self, tx_hash):
        self.lookups.append(tx_hash)
        return self.transactions.get(tx_hash)


class ForbiddenLedger:
    """Ledger that fails the test if it is consulted at all."""

    def get_transaction(self, tx_hash):
        pytest.fail(f"ledger must not be consulted (looked up {tx_hash})")


@pytest.fixture
def storage():
    """A pod with inbox, offers and private containers plus one protected file."""
    fake = FakeStorage()
    for name in ("", "inbox/", "payable/", "private/", "profile/"):
        fake.add_container(POD + name)
    fake.documents["https://x/profile/card"] = PROFILE
    fake.documents[RESOURCE] = "secret"
    fake.documents[RESOURCE + ".acl"] = OWNER_ACL
    return fake


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def config():
    return Config.for_owner(OWNER_WEBID, max_workers=2)


@pytest.fixture
def services(config, storage, ledger):
    return build_services(config, storage=storage, ledger=ledger)


@pytest.fixture
def offer():
    return Offer(resource_url=RESOURCE, price=Decimal("0.01"), duration_minutes=5)


@pytest.fixture
def make_transaction():
    """Factory for a mined payment transaction matching the default notification."""
    def factory(
        resource_url=RESOURCE,
        buyer_webid=BUYER_WEBID,
        price="0.01",
        duration=5,
        sender=BUYER_ADDRESS,
        recipient=OWNER_ADDRESS,
        value=None,
        payload=None,
        tx_hash=TX_HASH,
        block_number=100,
    ):
        if payload is None:
            payload = encode_payload(resource_url, buyer_webid, price, duration)
        return Transaction(
            hash=tx_hash,
            sender=sender,
            recipient=recipient,
            value=to_wei(price) if value is None else value,
            input_data=text_to_hex(payload),
            block_number=block_number,
        )
    return factory


@pytest.fixture
def make_notification():
    """Factory for a notification matching the default offer and transaction."""
    def factory(**overrides):
        values = dict(
            notification_url="https://x/inbox/n1.ttl",
            sender_address=BUYER_ADDRESS,
            receiver_address=OWNER_ADDRESS,
            transaction_hash=TX_HASH,
            price_in_wei=to_wei("0.01"),
            sender_webid=BUYER_WEBID,
            resource_url=RESOURCE,
            duration_minutes=5,
        )
        values.update(overrides)
        return Notification(**values)
    return factory
