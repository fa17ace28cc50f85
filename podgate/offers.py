# podgate/offers.py
"""
Offers published by the resource owner.

An offer document lives in the owner's offer container ("payable/") and
advertises a resource URL, a price in ether and an access duration:

    :Offer a schema:Offer;
        schema:itemOffered :Item;
        schema:price 0.01;
        schema:priceCurrency "ETH".
    :Item a schema:Product;
        schema:url <https://alice.example/private/f.txt>;
        time:hasDuration [ a time:Duration;
            time:numericDuration 5;
            time:unitType time:unitMinute ].
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from .directory import ResourceDirectory
from .errors import ParseFailure
from .graph import GraphDocument
from .ledger import to_wei
from .vocab import SCHEMA, TIME, UNIT_MINUTES

logger = logging.getLogger(__name__)

CURRENCY = "ETH"


@dataclass(frozen=True)
class Offer:
    """
    A resource offered for time-limited read access.

    Attributes:
        resource_url: The protected resource being sold
        price: Price in ether
        duration_minutes: Length of the access window
        currency: Price currency (only ETH is settled on the ledger)
        offer_url: URL of the offer document, if fetched
    """
    resource_url: str
    price: Decimal
    duration_minutes: int
    currency: str = CURRENCY
    offer_url: Optional[str] = None

    @property
    def price_in_wei(self) -> int:
        return to_wei(self.price)

    @classmethod
    def from_graph(cls, doc: GraphDocument) -> "Offer":
        """
        Read an offer from its graph.

        Raises ParseFailure if a required triple is missing or invalid.
        """
        resource_url = doc.get_iri(None, SCHEMA.url)
        if resource_url is None:
            raise ParseFailure(f"Offer {doc.url} has no schema:url")

        price_literal = doc.get_literal(None, SCHEMA.price)
        if price_literal is None:
            raise ParseFailure(f"Offer {doc.url} has no schema:price")
        try:
            price = Decimal(price_literal.value)
        except InvalidOperation as e:
            raise ParseFailure(f"Offer {doc.url} has invalid price {price_literal.value!r}") from e
        to_wei(price)

        currency_literal = doc.get_literal(None, SCHEMA.priceCurrency)
        currency = currency_literal.value if currency_literal else CURRENCY
        if currency != CURRENCY:
            raise ParseFailure(f"Offer {doc.url} is priced in unsupported currency {currency!r}")

        duration_literal = doc.get_literal(None, TIME.numericDuration)
        if duration_literal is None:
            raise ParseFailure(f"Offer {doc.url} has no time:numericDuration")
        try:
            amount = Decimal(duration_literal.value)
        except InvalidOperation as e:
            raise ParseFailure(f"Offer {doc.url} has invalid duration {duration_literal.value!r}") from e

        unit = doc.value(None, TIME.unitType) or TIME.unitMinute
        if unit not in UNIT_MINUTES:
            raise ParseFailure(f"Offer {doc.url} uses unsupported duration unit {unit}")

        minutes = amount * UNIT_MINUTES[unit]
        if minutes < 0 or minutes != minutes.to_integral_value():
            raise ParseFailure(f"Offer {doc.url} duration is not a whole number of minutes")

        return cls(
            resource_url=resource_url,
            price=price,
            duration_minutes=int(minutes),
            currency=currency,
            offer_url=doc.url,
        )

    def to_turtle(self) -> str:
        """Serialize as an offer document for the owner's offer container."""
        return f"""@prefix : <#> .
@prefix schema: <https://schema.org/> .
@prefix time: <http://www.w3.org/2006/time#> .

:Offer
  a schema:Offer;
  schema:itemOffered :Item;
  schema:price {self.price};
  schema:priceCurrency "{self.currency}" .

:Item
  a schema:Product;
  schema:url <{self.resource_url}>;
  time:hasDuration [
    a time:Duration;
    time:numericDuration {self.duration_minutes};
    time:unitType time:unitMinute
  ] .
"""


class OfferCatalog:
    """
    Reads and publishes offers in an offer container.

    Args:
        directory: ResourceDirectory used for listing and fetching
    """

    def __init__(self, directory: ResourceDirectory):
        self.directory = directory

    def fetch_offer(self, offer_url: str) -> Optional[Offer]:
        """Fetch a single offer document. Returns None if it does not exist."""
        doc = self.directory.fetch_graph(offer_url)
        if doc is None:
            return None
        return Offer.from_graph(doc)

    def list_offers(self, container_url: str) -> List[Offer]:
        """
        List every offer in a container.

        Documents that are missing or fail to parse are dropped; they do
        not fail the whole listing.
        """
        offers = []
        for offer_url in self.directory.list_container(container_url):
            try:
                offer = self.fetch_offer(offer_url)
            except ParseFailure as e:
                logger.warning(f"Skipping offer {offer_url}: {e}")
                continue
            if offer is not None:
                offers.append(offer)

        logger.debug(f"Found {len(offers)} offers in {container_url}")
        return offers

    @staticmethod
    def index(offers: Iterable[Offer]) -> Dict[str, Offer]:
        """Key offers by resource URL. The first offer for a resource wins."""
        catalog: Dict[str, Offer] = {}
        for offer in offers:
            if offer.resource_url in catalog:
                logger.warning(
                    f"Duplicate offer for {offer.resource_url} in {offer.offer_url}, "
                    f"keeping {catalog[offer.resource_url].offer_url}"
                )
                continue
            catalog[offer.resource_url] = offer
        return catalog

    def load(self, container_url: str) -> Dict[str, Offer]:
        """List and index the offers of a container."""
        return self.index(self.list_offers(container_url))

    def publish(self, container_url: str, offer: Offer, slug: Optional[str] = None) -> Optional[str]:
        """POST an offer document into the container. Returns its URL if known."""
        return self.directory.post(container_url, offer.to_turtle(), slug=slug)

