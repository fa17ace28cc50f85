# podgate/ledger.py
"""
Payment ledger collaborator.

Transactions are looked up by hash over Ethereum JSON-RPC
(eth_getTransactionByHash). The buyer attaches an ASCII payload to the
transaction input:

    MARKER,<resource URL>,<buyer WebID>,<price in ether>,<duration minutes>

which is the on-chain attestation of what was paid for.
"""

import itertools
import json
import logging
import socket
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import ParseFailure, TransientIOFailure
from .vocab import PAYLOAD_MARKER

logger = logging.getLogger(__name__)

WEI_PER_ETHER = 10 ** 18


def to_wei(price: Union[str, Decimal, int]) -> int:
    """
    Convert an ether amount to wei.

    Raises ParseFailure for malformed, negative or sub-wei amounts.
    """
    try:
        amount = Decimal(str(price).strip())
    except InvalidOperation as e:
        raise ParseFailure(f"Invalid price: {price!r}") from e

    if not amount.is_finite() or amount < 0:
        raise ParseFailure(f"Invalid price: {price!r}")

    wei = amount * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise ParseFailure(f"Price {price!r} is not a whole number of wei")
    return int(wei)


def from_wei(value: int) -> Decimal:
    """Convert wei to ether."""
    return (Decimal(value) / WEI_PER_ETHER).normalize()


def hex_to_text(data: str) -> str:
    """Decode 0x-prefixed hex into ASCII text."""
    digits = data[2:] if data.lower().startswith("0x") else data
    try:
        raw = bytes.fromhex(digits)
        return raw.decode("ascii")
    except (ValueError, UnicodeDecodeError) as e:
        raise ParseFailure(f"Invalid hex payload: {data[:32]!r}") from e


def text_to_hex(text: str) -> str:
    """Encode ASCII text as 0x-prefixed hex."""
    return "0x" + text.encode("ascii").hex()


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compare Ethereum addresses ignoring checksum capitalisation."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


@dataclass(frozen=True)
class TransactionPayload:
    """Decoded transaction input."""
    marker: str
    resource_url: str
    buyer_webid: str
    price: Decimal
    duration_minutes: int

    @property
    def price_in_wei(self) -> int:
        return to_wei(self.price)


def encode_payload(
    resource_url: str,
    buyer_webid: str,
    price: Union[str, Decimal],
    duration_minutes: int,
    marker: str = PAYLOAD_MARKER,
) -> str:
    """Build the payload string a buyer attaches to the payment."""
    return f"{marker},{resource_url},{buyer_webid},{price},{duration_minutes}"


def decode_payload(text: str, marker: str = PAYLOAD_MARKER) -> TransactionPayload:
    """
    Split a transaction payload into its five fields.

    Raises ParseFailure if the field count, marker, price or duration is wrong.
    """
    fields = text.split(",")
    if len(fields) != 5:
        raise ParseFailure(f"Expected 5 payload fields, got {len(fields)}")

    found_marker, resource_url, buyer_webid, price, duration = fields
    if found_marker != marker:
        raise ParseFailure(f"Unexpected payload marker: {found_marker!r}")
    if not resource_url or not buyer_webid:
        raise ParseFailure("Payload is missing resource URL or buyer WebID")

    to_wei(price)
    try:
        duration_minutes = int(duration)
    except ValueError as e:
        raise ParseFailure(f"Invalid payload duration: {duration!r}") from e
    if duration_minutes < 0:
        raise ParseFailure(f"Negative payload duration: {duration_minutes}")

    return TransactionPayload(
        marker=found_marker,
        resource_url=resource_url,
        buyer_webid=buyer_webid,
        price=Decimal(price),
        duration_minutes=duration_minutes,
    )


@dataclass(frozen=True)
class Transaction:
    """
    A ledger transaction.

    Attributes:
        hash: Transaction hash
        sender: "from" address
        recipient: "to" address (None for contract creation)
        value: Amount transferred in wei
        input_data: Hex-encoded input data
        block_number: Block the transaction was mined in (None if pending)
    """
    hash: str
    sender: str
    recipient: Optional[str]
    value: int
    input_data: str = "0x"
    block_number: Optional[int] = None

    @property
    def mined(self) -> bool:
        return self.block_number is not None

    def payload_text(self) -> str:
        return hex_to_text(self.input_data)

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "Transaction":
        """Build from an eth_getTransactionByHash result object."""
        block = data.get("blockNumber")
        try:
            return cls(
                hash=data["hash"],
                sender=data["from"],
                recipient=data.get("to"),
                value=int(data.get("value", "0x0"), 16),
                input_data=data.get("input") or "0x",
                block_number=int(block, 16) if block else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseFailure(f"Malformed transaction object: {e}") from e


class JsonRpcLedger:
    """
    Read-only ledger client speaking Ethereum JSON-RPC.

    Args:
        rpc_url: Node endpoint (e.g. "http://127.0.0.1:8545")
        timeout: Request timeout in seconds
    """

    def __init__(self, rpc_url: str, timeout: float = 30):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _call(self, method: str, params: list) -> Any:
        """Make a JSON-RPC call and return its result."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        req = Request(
            self.rpc_url,
            data=json.dumps(payload).encode(),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urlopen(req, timeout=self.timeout) as response:
                data = json.loads(response.read().decode())
        except HTTPError as e:
            raise TransientIOFailure(f"Ledger returned HTTP {e.code}") from e
        except (URLError, socket.timeout, ConnectionError) as e:
            raise TransientIOFailure(f"Failed to reach ledger: {e}") from e
        except json.JSONDecodeError as e:
            raise TransientIOFailure(f"Ledger returned invalid JSON: {e}") from e

        if data.get("error"):
            error = data["error"]
            raise TransientIOFailure(f"Ledger error {error.get('code')}: {error.get('message')}")
        return data.get("result")

    def get_transaction(self, tx_hash: str) -> Optional[Transaction]:
        """
        Look up a transaction by hash.

        Returns None if the ledger does not know the transaction.
        """
        result = self._call("eth_getTransactionByHash", [tx_hash])
        if result is None:
            logger.debug(f"Transaction {tx_hash} not found")
            return None
        return Transaction.from_rpc(result)
