# podgate/verifier.py
"""
Notification verification.

A notification is a claim made by the buyer. Before it is trusted it is
cross-checked, in order, against:

1. the owner's offer catalog (is the resource for sale at all?)
2. the offer terms (price and duration as advertised?)
3. the ledger (does the transaction exist and is it mined?)
4. the transaction payload (the buyer's on-chain statement of intent)
5. the transaction itself and the owner's profile address

Each step is terminal on failure. Steps 1 and 2 never touch the ledger.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional

from .errors import NotFoundError, ParseFailure, VerificationFailure
from .ledger import decode_payload, same_address
from .notifications import Notification
from .offers import Offer
from .vocab import PAYLOAD_MARKER

logger = logging.getLogger(__name__)


class RejectionReason(Enum):
    """Why a notification was not accepted."""
    UNKNOWN_RESOURCE = "UnknownResource"
    OFFER_MISMATCH = "OfferMismatch"
    TRANSACTION_NOT_FOUND = "TransactionNotFound"
    MALFORMED_PAYLOAD = "MalformedPayload"
    TRANSACTION_MISMATCH = "TransactionMismatch"


@dataclass(frozen=True)
class VerifiedGrantRequest:
    """A verified request to grant read access."""
    resource_url: str
    grantee_webid: str
    duration_minutes: int


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of verifying one notification.

    Exactly one of request (accepted) or reason (rejected) is set.
    """
    notification: Notification
    request: Optional[VerifiedGrantRequest] = None
    reason: Optional[RejectionReason] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.request is not None

    def raise_for_rejection(self) -> VerifiedGrantRequest:
        """Return the request, or raise VerificationFailure."""
        if self.request is None:
            raise VerificationFailure(self.reason, self.detail)
        return self.request

    @classmethod
    def reject(cls, notification: Notification, reason: RejectionReason, detail: str) -> "VerificationResult":
        return cls(notification=notification, reason=reason, detail=detail)


class NotificationVerifier:
    """
    Decides whether a notification is a genuine, paid, matching request.

    Args:
        ledger: Object with get_transaction(hash) -> Transaction | None
        owner_address: Callable returning the owner's Ethereum address from
            their profile. Only called once all cheaper checks have passed.
        marker: Expected first field of the transaction payload
    """

    def __init__(
        self,
        ledger,
        owner_address: Callable[[], Optional[str]],
        marker: str = PAYLOAD_MARKER,
    ):
        self.ledger = ledger
        self._owner_address = owner_address
        self.marker = marker

    def verify(self, notification: Notification, catalog: Mapping[str, Offer]) -> VerificationResult:
        """
        Verify a notification against the offer catalog and the ledger.

        Args:
            notification: The parsed notification
            catalog: Offers keyed by resource URL

        Returns:
            VerificationResult (accepted, or rejected with a reason)

        Raises:
            NotFoundError: The owner's profile declares no Ethereum address
            TransientIOFailure: The ledger or profile could not be reached
        """
        n = notification

        # 1. Catalog match
        offer = catalog.get(n.resource_url)
        if offer is None:
            return VerificationResult.reject(
                n, RejectionReason.UNKNOWN_RESOURCE,
                f"{n.resource_url} is not offered",
            )

        # 2. Offer terms
        if (
            offer.resource_url != n.resource_url
            or offer.price_in_wei != n.price_in_wei
            or offer.duration_minutes != n.duration_minutes
        ):
            return VerificationResult.reject(
                n, RejectionReason.OFFER_MISMATCH,
                f"offer is {offer.price_in_wei} wei / {offer.duration_minutes} min, "
                f"notification claims {n.price_in_wei} wei / {n.duration_minutes} min",
            )

        # 3. Ledger lookup
        transaction = self.ledger.get_transaction(n.transaction_hash)
        if transaction is None or not transaction.mined:
            return VerificationResult.reject(
                n, RejectionReason.TRANSACTION_NOT_FOUND,
                f"transaction {n.transaction_hash} is unknown or not mined",
            )

        # 4. Payload decode
        try:
            payload = decode_payload(transaction.payload_text(), self.marker)
        except ParseFailure as e:
            return VerificationResult.reject(n, RejectionReason.MALFORMED_PAYLOAD, str(e))

        # 5. Transaction, payload, notification and profile must all agree
        owner_address = self._owner_address()
        if not owner_address:
            raise NotFoundError("Owner profile declares no Ethereum address")

        mismatches = []
        if not same_address(transaction.sender, n.sender_address):
            mismatches.append("sender address")
        if not same_address(transaction.recipient, n.receiver_address):
            mismatches.append("receiver address")
        if not same_address(n.receiver_address, owner_address):
            mismatches.append("receiver is not the owner")
        if not (transaction.value == n.price_in_wei == payload.price_in_wei):
            mismatches.append("value")
        if payload.duration_minutes != n.duration_minutes:
            mismatches.append("duration")
        if payload.buyer_webid != n.sender_webid:
            mismatches.append("buyer WebID")
        if payload.resource_url != n.resource_url:
            mismatches.append("resource URL")

        if mismatches:
            return VerificationResult.reject(
                n, RejectionReason.TRANSACTION_MISMATCH,
                "mismatched " + ", ".join(mismatches),
            )

        logger.debug(f"Verified {n.notification_url}: {n.sender_webid} -> {n.resource_url}")
        return VerificationResult(
            notification=n,
            request=VerifiedGrantRequest(
                resource_url=n.resource_url,
                grantee_webid=n.sender_webid,
                duration_minutes=n.duration_minutes,
            ),
        )
