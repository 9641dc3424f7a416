"""
Transfer Classification Service

Labels a decoded ERC-721 Transfer as a mint, a burn or a plain transfer
using the zero-address convention.
"""

from ..config.monitor_config import MINT_OR_BURN_ADDRESS
from .decoders.base import TransferClassification, TransferEvent


def classify_addresses(from_address: str, to_address: str) -> TransferClassification:
    """
    Classify a (from, to) pair.

    from == zero is checked first, so a log with both sides zero is a MINT.
    That log has no canonical on-chain meaning; the precedence is fixed so
    the result is stable.
    """
    if from_address.lower() == MINT_OR_BURN_ADDRESS:
        return TransferClassification.MINT
    if to_address.lower() == MINT_OR_BURN_ADDRESS:
        return TransferClassification.BURN
    return TransferClassification.PLAIN


def classify(event: TransferEvent) -> TransferClassification:
    """Classify a decoded Transfer event."""
    return classify_addresses(event.from_address, event.to_address)
