"""
Token Metadata Service

Best-effort lookup of tokenURI, name and symbol for an ERC-721 token.
Each of the three calls fails independently to its own fallback value.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from eth_utils import to_checksum_address

from ..config.monitor_config import ERC721_METADATA_ABI, METADATA_FALLBACKS, METADATA_TIMEOUT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenMetadata:
    """Always fully populated; failed lookups carry their fallback value."""
    token_uri: str
    name: str
    symbol: str

    @classmethod
    def fallback(cls) -> 'TokenMetadata':
        return cls(
            token_uri=METADATA_FALLBACKS['token_uri'],
            name=METADATA_FALLBACKS['name'],
            symbol=METADATA_FALLBACKS['symbol'],
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            'token_uri': self.token_uri,
            'name': self.name,
            'symbol': self.symbol,
        }


class TokenMetadataFetcher:
    """
    Fetches ERC-721 metadata through an AsyncWeb3 instance.

    Contract objects are cached per address; the three eth_calls of a
    single fetch run concurrently.
    """

    def __init__(self, w3, timeout: Optional[float] = METADATA_TIMEOUT):
        self.w3 = w3
        self.timeout = timeout
        self._contracts: Dict[str, Any] = {}

    def _contract(self, contract_address: str):
        address = to_checksum_address(contract_address)
        if address not in self._contracts:
            self._contracts[address] = self.w3.eth.contract(address=address, abi=ERC721_METADATA_ABI)
        return self._contracts[address]

    async def _call(self, build: Callable[[], Awaitable]) -> Any:
        awaitable = build()
        if self.timeout:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        return await awaitable

    async def fetch(self, contract_address: str, token_id: int) -> TokenMetadata:
        """
        Fetch tokenURI, name and symbol.

        Args:
            contract_address: ERC-721 contract
            token_id: Token id (uint256)

        Returns:
            TokenMetadata; never raises for call failures
        """
        try:
            functions = self._contract(contract_address).functions
        except Exception as e:
            logger.warning(f"Could not load metadata contract {contract_address}: {e}")
            return TokenMetadata.fallback()

        calls = (
            lambda: functions.tokenURI(token_id).call(),
            lambda: functions.name().call(),
            lambda: functions.symbol().call(),
        )

        token_uri, name, symbol = await asyncio.gather(
            *(self._call(c) for c in calls), return_exceptions=True
        )

        values = {}
        for field_name, result in (('token_uri', token_uri), ('name', name), ('symbol', symbol)):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.debug(f"{field_name} lookup failed for {contract_address} #{token_id}: {result}")
                values[field_name] = METADATA_FALLBACKS[field_name]
            else:
                values[field_name] = str(result)

        return TokenMetadata(**values)
