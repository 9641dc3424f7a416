"""
ERC-721 Transfer log decoder.

Turns a raw log (JSON-RPC hex strings or a web3-formatted AttributeDict with
HexBytes values) into a TransferEvent. All three event parameters of the
ERC-721 Transfer are indexed, so everything is recovered from the topics:

    topics[0]  keccak256("Transfer(address,address,uint256)")
    topics[1]  from     (address, left-zero-padded to 32 bytes)
    topics[2]  to       (address, left-zero-padded to 32 bytes)
    topics[3]  tokenId  (uint256, big-endian)

An ERC-20 Transfer shares topics[0] but carries the amount in data and has
only three topics; it is rejected as a malformed ERC-721 Transfer.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional
import logging

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes, to_int

from ...config.monitor_config import TRANSFER_TOPIC, TRANSFER_TOPIC_COUNT
from ..exceptions import DecodeError, DecodeErrorReason, InvalidAddress, MalformedTopic
from ..filters import normalize_address
from .base import TransferEvent

logger = logging.getLogger(__name__)

WORD_SIZE = 32
ADDRESS_PADDING = 12  # high bytes of an address topic, must be zero

# Decode shape for the indexed parameters, computed once
TRANSFER_TOPIC_TYPES = (
    (1, 'from', 'address'),
    (2, 'to', 'address'),
    (3, 'tokenId', 'uint256'),
)
_TRANSFER_TOPIC_BYTES = bytes.fromhex(TRANSFER_TOPIC[2:])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"expected bytes or hex string, got {type(value).__name__}")


def _malformed(message: str) -> DecodeError:
    return DecodeError(DecodeErrorReason.MALFORMED, message)


class TransferLogDecoder:
    """
    Decodes ERC-721 Transfer logs.

    The clock is injectable so that decoding is deterministic in tests:
    decoding the same raw log with the same observed_at always yields an
    equal TransferEvent.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self.clock = clock

    def decode(self, raw_log: Dict[str, Any], observed_at: Optional[datetime] = None) -> TransferEvent:
        """
        Decode a raw log entry.

        Args:
            raw_log: Log entry as delivered by eth_subscribe / eth_getLogs
            observed_at: Capture time; defaults to the decoder clock

        Returns:
            TransferEvent

        Raises:
            DecodeError: NOT_TRANSFER for foreign events, MALFORMED otherwise
        """
        if not isinstance(raw_log, Mapping):
            raise _malformed(f"expected a log object, got {type(raw_log).__name__}")

        topics = raw_log.get('topics') or []
        if not topics:
            raise DecodeError(DecodeErrorReason.NOT_TRANSFER, "log has no topics")

        try:
            topic0 = _as_bytes(topics[0])
        except (TypeError, ValueError) as e:
            raise DecodeError(DecodeErrorReason.NOT_TRANSFER, f"unreadable event topic: {e}")
        if topic0 != _TRANSFER_TOPIC_BYTES:
            raise DecodeError(
                DecodeErrorReason.NOT_TRANSFER,
                f"event topic 0x{topic0.hex()} is not Transfer"
            )

        if len(topics) != TRANSFER_TOPIC_COUNT:
            raise _malformed(
                f"expected {TRANSFER_TOPIC_COUNT} topics, got {len(topics)}"
                + (" (ERC-20 style Transfer)" if len(topics) == 3 else "")
            )

        args = {}
        for index, name, abi_type in TRANSFER_TOPIC_TYPES:
            args[name] = self._decode_topic(topics[index], index, abi_type)

        return TransferEvent(
            contract_address=self._decode_address(raw_log.get('address')),
            from_address=args['from'],
            to_address=args['to'],
            token_id=args['tokenId'],
            block_number=self._decode_block_number(raw_log.get('blockNumber')),
            transaction_hash=self._decode_tx_hash(raw_log.get('transactionHash')),
            observed_at=observed_at or self.clock(),
            log_index=self._decode_log_index(raw_log.get('logIndex')),
        )

    def _decode_topic(self, topic: Any, index: int, abi_type: str):
        try:
            word = _as_bytes(topic)
        except (TypeError, ValueError) as e:
            raise MalformedTopic(index, f"is not hex: {e}")
        if len(word) != WORD_SIZE:
            raise MalformedTopic(index, f"is {len(word)} bytes, expected {WORD_SIZE}")

        if abi_type == 'address' and any(word[:ADDRESS_PADDING]):
            raise MalformedTopic(index, f"has non-zero high bytes 0x{word[:ADDRESS_PADDING].hex()}")

        try:
            (value,) = abi_decode([abi_type], word)
        except DecodingError as e:
            raise MalformedTopic(index, f"does not decode as {abi_type}: {e}")

        if abi_type == 'address':
            return value.lower()
        return value

    def _decode_address(self, address: Any) -> str:
        if isinstance(address, (bytes, bytearray)) and len(address) == 20:
            return '0x' + bytes(address).hex()
        try:
            return normalize_address(address, "log address")
        except InvalidAddress as e:
            raise _malformed(str(e))

    def _decode_block_number(self, block_number: Any) -> int:
        if block_number is None:
            raise _malformed("missing blockNumber (pending log)")
        try:
            value = block_number if isinstance(block_number, int) else to_int(hexstr=block_number)
        except (TypeError, ValueError) as e:
            raise _malformed(f"invalid blockNumber {block_number!r}: {e}")
        if value < 0:
            raise _malformed(f"negative blockNumber {value}")
        return value

    def _decode_tx_hash(self, tx_hash: Any) -> str:
        if tx_hash is None:
            raise _malformed("missing transactionHash")
        try:
            raw = _as_bytes(tx_hash)
        except (TypeError, ValueError) as e:
            raise _malformed(f"invalid transactionHash: {e}")
        if len(raw) != WORD_SIZE:
            raise _malformed(f"transactionHash is {len(raw)} bytes, expected {WORD_SIZE}")
        return '0x' + raw.hex()

    def _decode_log_index(self, log_index: Any) -> Optional[int]:
        if log_index is None:
            return None
        try:
            return log_index if isinstance(log_index, int) else to_int(hexstr=log_index)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unreadable logIndex {log_index!r}")
            return None


# Module-level decoder for callers that do not need a custom clock
default_decoder = TransferLogDecoder()


def decode_transfer_log(raw_log: Dict[str, Any], observed_at: Optional[datetime] = None) -> TransferEvent:
    """Decode a raw log with the default decoder."""
    return default_decoder.decode(raw_log, observed_at)
