"""
Shared RPC connection for log subscriptions.

One AsyncWeb3 WebSocket connection carries every eth_subscribe("logs")
subscription of a monitor. The connection multiplexes notifications: each
one is yielded together with the subscription id it belongs to, and the
subscription manager routes it from there.
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from web3 import AsyncWeb3, WebSocketProvider
from web3.exceptions import PersistentConnectionError, ProviderConnectionError
from websockets.exceptions import ConnectionClosed

from .exceptions import ConnectionLost, SubscriptionError

logger = logging.getLogger(__name__)

# Errors that mean the socket is gone rather than a request was refused
CONNECTION_ERRORS = (ConnectionClosed, PersistentConnectionError, ProviderConnectionError, OSError)


def mask_url(url: str) -> str:
    """Hide the API key part of an RPC URL for logging."""
    if not url:
        return ""
    if len(url) <= 30:
        return url
    return f"{url[:30]}..."


class LogConnection:
    """
    WebSocket JSON-RPC connection used by all subscriptions of a monitor.

    The subscription manager only registers and removes listeners; opening
    and closing the socket belongs to whoever created the connection.
    """

    def __init__(self, rpc_url: str, w3: Optional[AsyncWeb3] = None):
        self.rpc_url = rpc_url
        self.w3 = w3 or AsyncWeb3(WebSocketProvider(rpc_url))

    async def is_connected(self) -> bool:
        try:
            return bool(await self.w3.is_connected())
        except CONNECTION_ERRORS:
            return False

    async def connect(self) -> None:
        """Open the socket if it is not already open."""
        if await self.is_connected():
            return
        try:
            await self.w3.provider.connect()
        except Exception as e:
            raise SubscriptionError(f"Failed to connect to {mask_url(self.rpc_url)}: {e}") from e
        logger.info(f"Connected to Web3 WebSocket: {mask_url(self.rpc_url)}")

    async def disconnect(self) -> None:
        try:
            await self.w3.provider.disconnect()
        except CONNECTION_ERRORS as e:
            logger.debug(f"Ignoring error while disconnecting: {e}")
        logger.info("Web3 WebSocket disconnected")

    async def subscribe(self, params: Dict[str, Any]) -> str:
        """
        Register an eth_subscribe("logs", params) listener.

        Returns:
            The node-assigned subscription id

        Raises:
            SubscriptionError: if the node rejects the call or the socket is down
        """
        try:
            subscription_id = await self.w3.eth.subscribe("logs", params)
        except Exception as e:
            raise SubscriptionError(f"eth_subscribe failed: {e}") from e
        return str(subscription_id)

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a listener. Returns the node's acknowledgement."""
        try:
            return bool(await self.w3.eth.unsubscribe(subscription_id))
        except Exception as e:
            raise SubscriptionError(f"eth_unsubscribe {subscription_id} failed: {e}") from e

    async def notifications(self) -> AsyncIterator[Tuple[str, Any]]:
        """
        Yield (subscription_id, log) pairs as the node pushes them.

        The stream only ends when the socket does, so a clean close by the
        node is reported the same way as a dropped connection.

        Raises:
            ConnectionLost: when the socket closes or drops mid-stream
        """
        try:
            async for message in self.w3.socket.process_subscriptions():
                yield str(message['subscription']), message['result']
        except CONNECTION_ERRORS as e:
            raise ConnectionLost(f"Connection to {mask_url(self.rpc_url)} lost: {e}") from e
        raise ConnectionLost(f"Connection to {mask_url(self.rpc_url)} closed by the node")
