"""
Error taxonomy for the NFT monitor.

Construction-time errors (InvalidAddress, SubscriptionError, NotRunning) are
raised to the caller. DecodeError is raised by the decoder and handled per
event by the subscription manager.
"""

from enum import Enum
from typing import Any, Optional


class MonitorError(Exception):
    """Base class for all monitor errors."""


class InvalidAddress(MonitorError, ValueError):
    """A value that is not a 0x-prefixed 20-byte hex address."""

    def __init__(self, address: Any, context: str = "address"):
        self.address = address
        self.context = context
        super().__init__(f"Invalid {context}: {address!r} (expected 0x followed by 40 hex characters)")


class DecodeErrorReason(Enum):
    """Why a log could not be decoded"""
    NOT_TRANSFER = "not_transfer"  # Not an ERC-721 Transfer event at all
    MALFORMED = "malformed"        # Transfer event with a broken shape


class DecodeError(MonitorError):
    """A raw log could not be turned into a TransferEvent."""

    def __init__(self, reason: DecodeErrorReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(f"{reason.value}: {message}")

    @property
    def is_transfer(self) -> bool:
        return self.reason is not DecodeErrorReason.NOT_TRANSFER


class MalformedTopic(DecodeError):
    """An indexed topic of a Transfer log has the wrong size or dirty padding."""

    def __init__(self, index: int, message: str):
        self.index = index
        super().__init__(DecodeErrorReason.MALFORMED, f"topic[{index}] {message}")


class SubscriptionError(MonitorError, ConnectionError):
    """The connection could not be established or a subscribe call was rejected."""

    def __init__(self, message: str, descriptor: Optional[Any] = None):
        self.descriptor = descriptor
        if descriptor is not None:
            message = f"{message} [{descriptor.describe()}]"
        super().__init__(message)


class ConnectionLost(SubscriptionError):
    """The notification stream ended because the connection dropped."""


class NotRunning(MonitorError, RuntimeError):
    """An operation that needs a running monitor was called on a stopped one."""
