"""
ERC-721 Transfer log decoding.

Exports:
- TransferEvent / TransferClassification: decoded record and its label
- TransferLogDecoder: turns raw logs into TransferEvents
"""

from .base import (
    TransferClassification,
    TransferEvent,
)
from .transfer_decoder import (
    TransferLogDecoder,
    decode_transfer_log,
    default_decoder,
)

__all__ = [
    'TransferClassification',
    'TransferEvent',
    'TransferLogDecoder',
    'decode_transfer_log',
    'default_decoder',
]
