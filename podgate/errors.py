# podgate/errors.py
"""
Error taxonomy.

- NotFoundError: a remote document or transaction is absent
- ParseFailure: a graph, literal or payload could not be decoded
- TransientIOFailure: network or storage failure; retried on the next tick
- VerificationFailure: a notification was rejected for a named reason
- ConfigError: the configuration file is unusable

None of these are fatal to a running scheduler.
"""


class PodgateError(Exception):
    """Base class for all podgate errors."""


class NotFoundError(PodgateError):
    """A remote document or transaction does not exist."""


class ParseFailure(PodgateError):
    """Malformed graph document, literal or transaction payload."""


class TransientIOFailure(PodgateError):
    """Storage or ledger could not be reached, or answered with an error."""


class ConfigError(PodgateError):
    """Invalid configuration."""


class VerificationFailure(PodgateError):
    """
    A notification failed verification.

    Attributes:
        reason: The RejectionReason that stopped verification
        detail: Human-readable explanation
    """

    def __init__(self, reason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)
