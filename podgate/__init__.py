# podgate - Pay-per-access gate for Solid pods
#
# Sells time-limited read access to private pod resources. A buyer pays
# on-chain and drops a notification into the owner's inbox; podgate
# verifies the claim against the owner's offers and the ledger, grants a
# time-bounded read authorization and later sweeps it away once expired.
#
# Core concepts:
# - Offer: price and duration the owner advertises for a resource
# - Notification: a buyer's claim of payment
# - Verifier: cross-checks a notification against offers and the ledger
# - Grant: a time-bounded acl:Authorization in a permission document
# - Processor / Sweeper: recurring tasks that grant and revoke

from .config import Config
from .directory import ResourceDirectory
from .errors import (
    ConfigError,
    NotFoundError,
    ParseFailure,
    PodgateError,
    TransientIOFailure,
    VerificationFailure,
)
from .grants import AuthorizationGrant, grant_access, grant_key, list_grants, revoke_expired
from .graph import GraphDocument, LiteralValue
from .ledger import JsonRpcLedger, Transaction, to_wei
from .notifications import Notification
from .offers import Offer, OfferCatalog
from .storage import Response, StorageClient
from .tasks import ExpirySweeper, ItemStatus, NotificationProcessor, RecurringTask, TickReport
from .verifier import NotificationVerifier, RejectionReason, VerificationResult, VerifiedGrantRequest

__all__ = [
    # Configuration and errors
    "Config",
    "ConfigError",
    "NotFoundError",
    "ParseFailure",
    "PodgateError",
    "TransientIOFailure",
    "VerificationFailure",
    # Collaborators
    "GraphDocument",
    "LiteralValue",
    "StorageClient",
    "Response",
    "ResourceDirectory",
    "JsonRpcLedger",
    "Transaction",
    "to_wei",
    # Protocol
    "Offer",
    "OfferCatalog",
    "Notification",
    "NotificationVerifier",
    "RejectionReason",
    "VerificationResult",
    "VerifiedGrantRequest",
    "AuthorizationGrant",
    "grant_access",
    "grant_key",
    "list_grants",
    "revoke_expired",
    # Recurring tasks
    "NotificationProcessor",
    "ExpirySweeper",
    "RecurringTask",
    "TickReport",
    "ItemStatus",
]

__version__ = "0.1.0"
