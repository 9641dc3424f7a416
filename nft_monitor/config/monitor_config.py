"""
Monitor Configuration Module

Contains the ERC-721 event constants, connection tuning and environment
loading for the NFT transfer monitor.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

# RPC Configuration
DEFAULT_RPC_URL = "wss://eth-mainnet.g.alchemy.com/v2/YOUR_API_KEY"

# Transfer event topic
# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"

# ERC-721 Transfer has topic0 plus from, to and tokenId all indexed
TRANSFER_TOPIC_COUNT = 4

# Special Addresses
MINT_OR_BURN_ADDRESS = "0x0000000000000000000000000000000000000000"

# Reconnect Configuration
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY = 1.0  # seconds, doubled per attempt
MAX_RECONNECT_DELAY = 60.0  # seconds

# How often the CLI checks that the monitor is still running
HEALTH_CHECK_INTERVAL = 5.0  # seconds

# Metadata Configuration
METADATA_TIMEOUT = 10  # seconds, per eth_call
METADATA_FALLBACKS = {
    "token_uri": "N/A",
    "name": "Unknown",
    "symbol": "N/A",
}

# ERC-721 metadata ABI (tokenURI, name, symbol)
ERC721_METADATA_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
]

_TRUTHY = ('1', 'true', 'yes', 'on')


def split_addresses(value: Optional[str]) -> List[str]:
    """Split a comma-separated address list, dropping blanks."""
    if not value:
        return []
    return [addr.strip() for addr in value.split(',') if addr.strip()]


@dataclass
class MonitorSettings:
    """Resolved (rpc_url, contract_addresses, wallet_address) plus output switches."""
    rpc_url: str = DEFAULT_RPC_URL
    contract_addresses: List[str] = field(default_factory=list)
    wallet_address: Optional[str] = None
    fetch_metadata: bool = False
    report_json: bool = False

    def to_dict(self) -> Dict:
        return {
            'rpc_url': self.rpc_url,
            'contract_addresses': list(self.contract_addresses),
            'wallet_address': self.wallet_address,
            'fetch_metadata': self.fetch_metadata,
            'report_json': self.report_json,
        }


def load_settings(env: Optional[Mapping[str, str]] = None) -> MonitorSettings:
    """
    Load monitor settings from the environment.

    Reads a local .env file first when no explicit mapping is given.

    Args:
        env: Optional mapping used instead of os.environ (tests)

    Returns:
        MonitorSettings with environment values applied
    """
    if env is None:
        load_dotenv()
        env = os.environ

    rpc_url = env.get('RPC_URL') or env.get('WEB3_WEBSOCKET_URL') or DEFAULT_RPC_URL
    wallet = (env.get('WALLET_ADDRESS') or '').strip() or None

    return MonitorSettings(
        rpc_url=rpc_url,
        contract_addresses=split_addresses(env.get('TOKEN_ADDRESSES')),
        wallet_address=wallet,
        fetch_metadata=env.get('FETCH_METADATA', '').lower() in _TRUTHY,
        report_json=env.get('REPORT_JSON', '').lower() in _TRUTHY,
    )
