"""
Transfer reporting.

TransferRecord.to_dict() is the external record shape other tooling reads:
contract_address, token_id (decimal string), from, to, block_number,
transaction_hash, observed_at (ISO-8601), classification, subscription and
metadata (object or null).
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from .decoders.base import TransferClassification, TransferEvent
from .metadata_service import TokenMetadata

logger = logging.getLogger(__name__)

CLASSIFICATION_LABELS = {
    TransferClassification.MINT: "NFT mint",
    TransferClassification.BURN: "NFT burn",
    TransferClassification.PLAIN: "NFT transfer",
}


@dataclass(frozen=True)
class TransferRecord:
    """A classified transfer ready for display."""
    event: TransferEvent
    classification: TransferClassification
    subscription: str = ""
    metadata: Optional[TokenMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        record = self.event.to_dict()
        record.pop('log_index', None)
        record['classification'] = self.classification.value
        record['subscription'] = self.subscription
        record['metadata'] = self.metadata.to_dict() if self.metadata else None
        return record


class Reporter(Protocol):
    """Consumes finished transfer records."""

    def report(self, record: TransferRecord) -> None:
        ...


class LoggingReporter:
    """
    Writes each record through the application logger.

    Human mode prints a block per transfer; JSON mode prints one JSON
    object per line so the output can be piped into other tools.
    """

    def __init__(self, as_json: bool = False, log: Optional[logging.Logger] = None):
        self.as_json = as_json
        self.log = log or logger
        self.reported = 0

    def report(self, record: TransferRecord) -> None:
        self.reported += 1
        if self.as_json:
            self.log.info(json.dumps(record.to_dict(), sort_keys=True))
            return

        data = record.to_dict()
        lines = [
            f"NFT transfer detected ({record.subscription or 'unlabelled'}):",
            f"  Contract:    {data['contract_address']}",
            f"  Token ID:    {data['token_id']}",
            f"  From:        {data['from']}",
            f"  To:          {data['to']}",
            f"  Block:       {data['block_number']}",
            f"  Transaction: {data['transaction_hash']}",
            f"  Observed:    {data['observed_at']}",
        ]
        if record.metadata:
            lines.extend([
                f"  Collection:  {record.metadata.name} ({record.metadata.symbol})",
                f"  Token URI:   {record.metadata.token_uri}",
            ])
        lines.append(f"  Type:        {CLASSIFICATION_LABELS[record.classification]}")
        lines.append("-" * 50)
        self.log.info("\n".join(lines))
