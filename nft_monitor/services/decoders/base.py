"""
Base data structures for ERC-721 Transfer decoding.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================================
# ENUMS
# ============================================================================

class TransferClassification(Enum):
    """Mint / burn / plain transfer, by the zero-address convention"""
    MINT = "mint"
    BURN = "burn"
    PLAIN = "transfer"


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class TransferEvent:
    """Decoded ERC-721 Transfer log. Immutable; one per received notification."""
    contract_address: str
    from_address: str
    to_address: str
    token_id: int
    block_number: int
    transaction_hash: str
    observed_at: datetime
    log_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contract_address': self.contract_address,
            'token_id': str(self.token_id),
            'from': self.from_address,
            'to': self.to_address,
            'block_number': self.block_number,
            'transaction_hash': self.transaction_hash,
            'observed_at': self.observed_at.isoformat(),
            'log_index': self.log_index,
        }
