# podgate/notifications.py
"""
Payment notifications dropped into the owner's inbox.

A buyer who has paid posts a notification describing the transaction:

    :Transaction a ethon:Tx;
        ethon:txHash "0x..."^^xsd:hexBinary;
        ethon:from :Sender;
        ethon:to :Receiver;
        ethon:value 10000000000000000;
        ethon:msgPayload "0x..."^^xsd:hexBinary .     # hex("<resource>,<minutes>")
    :Sender a ethon:Account, solid:Account;
        ethon:address "0x..."^^xsd:hexBinary;
        solid:account <https://bob.example/profile/card#me> .
    :Receiver a ethon:Account;
        ethon:address "0x..."^^xsd:hexBinary .

The notification is only a claim; see verifier.py for how it is checked.
"""

from dataclasses import dataclass
from typing import Optional

from rdflib.term import Node

from .errors import ParseFailure
from .graph import GraphDocument
from .ledger import hex_to_text, text_to_hex
from .vocab import ETHON, RDF, SOLID


def _transaction_node(doc: GraphDocument) -> Optional[Node]:
    typed = next(iter(doc.subjects(RDF.type, ETHON.Tx)), None)
    if typed is not None:
        return typed
    fallback = doc.fragment("Transaction")
    return fallback if doc.has_subject(fallback) else None


def _party_node(doc: GraphDocument, tx: Node, link: Node, fragment: str) -> Node:
    node = doc.value(tx, link)
    return node if node is not None else doc.fragment(fragment)


def _required_literal(doc: GraphDocument, subject: Node, predicate: Node) -> str:
    literal = doc.get_literal(subject, predicate)
    if literal is None or not literal.value:
        raise ParseFailure(f"Notification {doc.url} is missing {predicate}")
    return literal.value


@dataclass(frozen=True)
class Notification:
    """
    A buyer's claim of payment.

    Attributes:
        notification_url: Where the notification lives in the inbox
        sender_address: Buyer's Ethereum address
        receiver_address: Owner's Ethereum address as claimed by the buyer
        transaction_hash: Hash of the payment transaction
        price_in_wei: Amount the buyer claims to have paid
        sender_webid: Buyer's WebID (the future grantee)
        resource_url: Resource the buyer wants to read
        duration_minutes: Access window the buyer paid for
    """
    notification_url: str
    sender_address: str
    receiver_address: str
    transaction_hash: str
    price_in_wei: int
    sender_webid: str
    resource_url: str
    duration_minutes: int

    @staticmethod
    def is_payment(doc: GraphDocument) -> bool:
        """Whether an inbox document is a payment notification at all."""
        return _transaction_node(doc) is not None

    @classmethod
    def from_graph(cls, doc: GraphDocument) -> "Notification":
        """
        Read a notification from its graph.

        Raises ParseFailure if any field is missing or undecodable.
        """
        tx = _transaction_node(doc)
        if tx is None:
            raise ParseFailure(f"{doc.url} is not a payment notification")

        sender = _party_node(doc, tx, ETHON["from"], "Sender")
        receiver = _party_node(doc, tx, ETHON.to, "Receiver")

        sender_webid = doc.get_iri(sender, SOLID.account)
        if sender_webid is None:
            raise ParseFailure(f"Notification {doc.url} is missing the sender's solid:account")

        value = _required_literal(doc, tx, ETHON.value)
        try:
            price_in_wei = int(value)
        except ValueError as e:
            raise ParseFailure(f"Notification {doc.url} has invalid value {value!r}") from e

        message = hex_to_text(_required_literal(doc, tx, ETHON.msgPayload))
        resource_url, sep, duration = message.rpartition(",")
        if not sep or not resource_url:
            raise ParseFailure(f"Notification {doc.url} has malformed message payload")
        try:
            duration_minutes = int(duration)
        except ValueError as e:
            raise ParseFailure(f"Notification {doc.url} has invalid duration {duration!r}") from e

        return cls(
            notification_url=doc.url,
            sender_address=_required_literal(doc, sender, ETHON.address),
            receiver_address=_required_literal(doc, receiver, ETHON.address),
            transaction_hash=_required_literal(doc, tx, ETHON.txHash),
            price_in_wei=price_in_wei,
            sender_webid=sender_webid,
            resource_url=resource_url,
            duration_minutes=duration_minutes,
        )

    def to_turtle(self) -> str:
        """Serialize as the notification document a buyer posts to the inbox."""
        payload = text_to_hex(f"{self.resource_url},{self.duration_minutes}")
        return f"""@prefix : <#> .
@prefix ethon: <http://ethon.consensys.net/> .
@prefix solid: <http://www.w3.org/ns/solid/terms#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .

:Transaction
  a ethon:Tx;
  ethon:txHash "{self.transaction_hash}"^^xsd:hexBinary;
  ethon:from :Sender;
  ethon:to :Receiver;
  ethon:value {self.price_in_wei};
  ethon:msgPayload "{payload}"^^xsd:hexBinary .

:Sender
  a ethon:Account, solid:Account;
  ethon:address "{self.sender_address}"^^xsd:hexBinary;
  solid:account <{self.sender_webid}> .

:Receiver
  a ethon:Account;
  ethon:address "{self.receiver_address}"^^xsd:hexBinary .
"""
