"""
Log filter construction for ERC-721 Transfer subscriptions.

Turns a monitoring intent (all NFTs, specific contracts, or one wallet's
incoming/outgoing activity) into a FilterDescriptor that maps directly onto
an eth_subscribe("logs", ...) filter object.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from eth_utils import is_hex_address, to_checksum_address

from ..config.monitor_config import TRANSFER_TOPIC
from .exceptions import InvalidAddress


class Direction(Enum):
    """Wallet side of a Transfer"""
    INCOMING = "incoming"  # wallet is the "to" topic
    OUTGOING = "outgoing"  # wallet is the "from" topic


def normalize_address(address: Any, context: str = "address") -> str:
    """
    Validate and lower-case a 20-byte hex address.

    Raises:
        InvalidAddress: if the value is not 0x + 40 hex characters
    """
    if not isinstance(address, str):
        raise InvalidAddress(address, context)
    candidate = address.strip()
    if candidate[:2] not in ('0x', '0X') or not is_hex_address(candidate):
        raise InvalidAddress(address, context)
    return '0x' + candidate[2:].lower()


def address_to_topic(address: str, context: str = "address") -> str:
    """Left-zero-pad an address into a 32-byte topic word."""
    normalized = normalize_address(address, context)
    return '0x' + normalized[2:].zfill(64)


def _normalize_hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    return str(value).lower()


@dataclass(frozen=True)
class FilterDescriptor:
    """
    What a single subscription receives.

    Either a global/per-contract filter (contract_addresses may restrict,
    no topic constraints) or a wallet-direction filter (exactly one of
    from_topic/to_topic pinned, no address restriction). Descriptors are
    never merged; the manager registers each one independently.
    """
    event_topic: str = TRANSFER_TOPIC
    contract_addresses: FrozenSet[str] = frozenset()
    from_topic: Optional[str] = None
    to_topic: Optional[str] = None
    direction: Optional[Direction] = None

    @property
    def is_wallet_filter(self) -> bool:
        return self.from_topic is not None or self.to_topic is not None

    def describe(self) -> str:
        """Short human-readable label used in logs and reports."""
        if self.direction is Direction.INCOMING:
            return f"wallet {'0x' + self.to_topic[-40:]} incoming"
        if self.direction is Direction.OUTGOING:
            return f"wallet {'0x' + self.from_topic[-40:]} outgoing"
        if not self.contract_addresses:
            return "all contracts"
        if len(self.contract_addresses) == 1:
            return f"contract {next(iter(self.contract_addresses))}"
        return f"{len(self.contract_addresses)} contracts"

    def topics(self) -> List[Optional[str]]:
        """Topic list in eth_subscribe positional form (None = any)."""
        if not self.is_wallet_filter:
            return [self.event_topic]
        return [self.event_topic, self.from_topic, self.to_topic]

    def to_rpc_params(self) -> Dict[str, Any]:
        """Filter object for eth_subscribe("logs", params)."""
        params: Dict[str, Any] = {'topics': self.topics()}
        if self.contract_addresses:
            params['address'] = [to_checksum_address(addr) for addr in sorted(self.contract_addresses)]
        return params

    def matches(self, raw_log: Dict[str, Any]) -> bool:
        """
        Whether a node applying this filter would deliver raw_log.

        Mirrors node-side semantics: address membership plus positional
        topic equality, with None matching anything.
        """
        topics = [_normalize_hex(t) for t in (raw_log.get('topics') or [])]
        if self.contract_addresses:
            address = (raw_log.get('address') or '').lower()
            if address not in self.contract_addresses:
                return False
        for index, wanted in enumerate(self.topics()):
            if wanted is None:
                continue
            if index >= len(topics) or topics[index] != wanted.lower():
                return False
        return True


def build_global_filter(contract_addresses: Iterable[str] = ()) -> FilterDescriptor:
    """
    Build the Transfer filter for all contracts or a fixed contract set.

    Args:
        contract_addresses: Contracts to restrict to; empty means all contracts

    Returns:
        FilterDescriptor with no indexed-parameter constraints

    Raises:
        InvalidAddress: if any contract address is malformed
    """
    addresses = frozenset(
        normalize_address(addr, "contract address") for addr in contract_addresses
    )
    return FilterDescriptor(contract_addresses=addresses)


def build_wallet_filter(wallet: str, direction: Direction) -> FilterDescriptor:
    """
    Build a Transfer filter pinned to one side of a wallet's activity.

    INCOMING pins the "to" topic, OUTGOING pins the "from" topic; the other
    side and the contract address stay unconstrained.
    """
    wallet_topic = address_to_topic(wallet, "wallet address")
    if direction is Direction.INCOMING:
        return FilterDescriptor(to_topic=wallet_topic, direction=direction)
    if direction is Direction.OUTGOING:
        return FilterDescriptor(from_topic=wallet_topic, direction=direction)
    raise ValueError(f"Unknown direction: {direction!r}")


def build_wallet_filters(wallet: str) -> Tuple[FilterDescriptor, FilterDescriptor]:
    """Incoming and outgoing filters for a wallet, incoming first."""
    return (
        build_wallet_filter(wallet, Direction.INCOMING),
        build_wallet_filter(wallet, Direction.OUTGOING),
    )
