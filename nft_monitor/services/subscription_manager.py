"""
Subscription Manager

Owns the live Transfer subscriptions of one monitor against one shared
LogConnection and drives every delivered log through
decode -> classify -> (metadata) -> report.

Delivery model:
- one reader task drains the connection's notification stream and routes
  each log onto the queue of the subscription it belongs to
- one worker task per subscription consumes that queue in order, so logs of
  the same subscription keep the order the node delivered them in; there is
  no ordering across subscriptions
- a log matching two live filters (e.g. the global filter and a wallet
  filter) is delivered and reported once per subscription; nothing is
  deduplicated

A log that fails to decode, or any other failure while handling one log, is
logged and counted on its subscription. It never stops the subscription or
affects other logs.
"""

import asyncio
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..config.monitor_config import MAX_RECONNECT_ATTEMPTS, MAX_RECONNECT_DELAY, RECONNECT_DELAY
from .decoders.transfer_decoder import TransferLogDecoder
from .exceptions import ConnectionLost, DecodeError, NotRunning, SubscriptionError
from .filters import Direction, FilterDescriptor, build_wallet_filter, normalize_address
from .reporter import TransferRecord
from .transfer_classifier import classify

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    """Monitor run state"""
    STOPPED = "stopped"
    RUNNING = "running"


class StartResult(Enum):
    """Outcome of SubscriptionManager.start()"""
    STARTED = "started"
    ALREADY_RUNNING = "already_running"


@dataclass(eq=False)
class Subscription:
    """A live subscription handle. The node id changes on reconnect; the handle does not."""
    handle: int
    descriptor: FilterDescriptor
    subscription_id: Optional[str] = None
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    worker: Optional[asyncio.Task] = None
    delivered: int = 0
    decode_failures: int = 0
    handler_failures: int = 0
    filter_mismatches: int = 0

    @property
    def label(self) -> str:
        return self.descriptor.describe()

    def stats(self) -> Dict[str, Any]:
        return {
            'handle': self.handle,
            'label': self.label,
            'subscription_id': self.subscription_id,
            'delivered': self.delivered,
            'decode_failures': self.decode_failures,
            'handler_failures': self.handler_failures,
            'filter_mismatches': self.filter_mismatches,
            'pending': self.queue.qsize(),
        }


@dataclass
class MonitorState:
    """Run state plus the live subscription table, keyed by handle."""
    status: RunStatus = RunStatus.STOPPED
    subscriptions: Dict[int, Subscription] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.status is RunStatus.RUNNING

    def find(self, descriptor: FilterDescriptor) -> Optional[Subscription]:
        for sub in self.subscriptions.values():
            if sub.descriptor == descriptor:
                return sub
        return None


class SubscriptionManager:
    """
    Registers FilterDescriptors on a LogConnection and processes their logs.

    The manager never opens or closes the socket beyond making sure it is
    connected before subscribing; stop() only removes its own listeners.
    Several managers may share nothing or share one connection.
    """

    def __init__(
        self,
        connection,
        reporter,
        metadata_fetcher=None,
        decoder: Optional[TransferLogDecoder] = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.connection = connection
        self.reporter = reporter
        self.metadata_fetcher = metadata_fetcher
        self.decoder = decoder or TransferLogDecoder()
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay

        self.state = MonitorState()
        self._by_subscription_id: Dict[str, Subscription] = {}
        self._handles = itertools.count(1)
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self.state.subscriptions.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, filters: Iterable[FilterDescriptor]) -> StartResult:
        """
        Register each distinct filter as an independent subscription.

        Returns:
            STARTED, or ALREADY_RUNNING (nothing registered) if running

        Raises:
            ValueError: if no filters are given
            SubscriptionError: if the connection cannot be established or a
                subscribe call is rejected; filters registered before the
                failure stay active and the monitor is running
        """
        filters = list(filters)
        if self.is_running:
            logger.warning("Monitor is already running")
            return StartResult.ALREADY_RUNNING
        if not filters:
            raise ValueError("start() needs at least one filter")

        unique = list(dict.fromkeys(filters))
        await self._ensure_connected()

        logger.info(f"Starting NFT transfer monitoring ({len(unique)} filter(s))")
        try:
            for descriptor in unique:
                await self._register(descriptor)
        finally:
            if self.state.subscriptions:
                self._mark_running()

        logger.info("NFT monitoring started, waiting for transfer events...")
        return StartResult.STARTED

    async def add_wallet_watch(
        self,
        wallet: str,
        directions: Union[Direction, Sequence[Direction]] = (Direction.INCOMING, Direction.OUTGOING),
    ) -> List[Subscription]:
        """
        Add wallet-direction subscriptions to a running monitor.

        Both filters are validated before either is registered. A direction
        that is already watched is not registered twice.

        Raises:
            NotRunning: if start() has not succeeded
            InvalidAddress: if the wallet is malformed
            SubscriptionError: if a subscribe call is rejected
        """
        if not self.is_running:
            raise NotRunning("add_wallet_watch() needs a running monitor; call start() first")
        if isinstance(directions, Direction):
            directions = (directions,)

        descriptors = [build_wallet_filter(wallet, direction) for direction in directions]
        logger.info(f"Watching wallet {normalize_address(wallet, 'wallet address')}")

        added = []
        for descriptor in descriptors:
            if self.state.find(descriptor):
                logger.info(f"Already subscribed to {descriptor.describe()}")
                continue
            added.append(await self._register(descriptor))
        return added

    async def stop(self) -> None:
        """
        Remove every listener and stop. Idempotent.

        Unsubscribe failures are logged; the connection itself stays open.
        """
        if not self.is_running and not self.state.subscriptions:
            return

        subs, reader = self._detach()

        for sub in subs:
            if sub.subscription_id is None:
                continue
            try:
                await self.connection.unsubscribe(sub.subscription_id)
                logger.debug(f"Unsubscribed {sub.label} ({sub.subscription_id})")
            except SubscriptionError as e:
                logger.warning(f"Could not unsubscribe {sub.label}: {e}")

        await self._cancel_tasks(subs, reader)
        logger.info("NFT monitoring stopped")

    async def wait_idle(self) -> None:
        """Wait until every log routed so far has been handled."""
        await asyncio.gather(*(sub.queue.join() for sub in self.subscriptions))

    def stats(self) -> List[Dict[str, Any]]:
        return [sub.stats() for sub in self.subscriptions]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def _ensure_connected(self) -> None:
        try:
            await self.connection.connect()
        except SubscriptionError:
            raise
        except Exception as e:
            raise SubscriptionError(f"Could not connect: {e}") from e

    async def _subscribe(self, descriptor: FilterDescriptor) -> str:
        try:
            return await self.connection.subscribe(descriptor.to_rpc_params())
        except Exception as e:
            raise SubscriptionError(f"Subscription rejected: {e}", descriptor) from e

    async def _register(self, descriptor: FilterDescriptor) -> Subscription:
        sub = Subscription(handle=next(self._handles), descriptor=descriptor)
        sub.subscription_id = await self._subscribe(descriptor)

        self.state.subscriptions[sub.handle] = sub
        self._by_subscription_id[sub.subscription_id] = sub
        sub.worker = asyncio.create_task(self._consume(sub), name=f"nft-monitor-sub-{sub.handle}")
        logger.info(f"Subscribed to {sub.label} ({sub.subscription_id})")
        return sub

    def _mark_running(self) -> None:
        self.state.status = RunStatus.RUNNING
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_notifications(), name="nft-monitor-reader")

    def _detach(self) -> Tuple[List[Subscription], Optional[asyncio.Task]]:
        """
        Mark the monitor stopped and empty its tables in one step.

        Nothing is awaited here, so a start() that runs while the detached
        subscriptions are being torn down gets a clean table of its own.
        """
        subs = self.subscriptions
        reader, self._reader = self._reader, None
        self.state.status = RunStatus.STOPPED
        self.state.subscriptions.clear()
        self._by_subscription_id.clear()
        return subs, reader

    async def _cancel_tasks(self, subs: List[Subscription], reader: Optional[asyncio.Task] = None) -> None:
        tasks = [sub.worker for sub in subs if sub.worker is not None]
        if reader is not None and reader is not asyncio.current_task():
            tasks.append(reader)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _read_notifications(self) -> None:
        while self.is_running:
            try:
                async for subscription_id, raw_log in self.connection.notifications():
                    self._route(subscription_id, raw_log)
                if not self.is_running:
                    return
                logger.warning("Notification stream ended unexpectedly")
            except ConnectionLost as e:
                if not self.is_running:
                    return
                logger.warning(str(e))
            except Exception as e:
                if not self.is_running:
                    return
                logger.error(f"Notification stream failed: {e}", exc_info=True)

            if not await self._reconnect():
                await self._abandon()
                return

    def _route(self, subscription_id: str, raw_log: Any) -> None:
        sub = self._by_subscription_id.get(subscription_id)
        if sub is None:
            logger.debug(f"Dropping log for unknown subscription {subscription_id}")
            return
        sub.queue.put_nowait(raw_log)

    async def _consume(self, sub: Subscription) -> None:
        while True:
            raw_log = await sub.queue.get()
            try:
                await self._handle_log(sub, raw_log)
            except Exception as e:
                sub.handler_failures += 1
                logger.error(f"Error handling transfer on {sub.label}: {e}", exc_info=True)
            finally:
                sub.queue.task_done()

    async def _handle_log(self, sub: Subscription, raw_log: Any) -> None:
        if isinstance(raw_log, Mapping) and raw_log.get('removed'):
            logger.info(f"Skipping removed log on {sub.label} (chain reorganisation)")
            return

        try:
            event = self.decoder.decode(raw_log)
        except DecodeError as e:
            sub.decode_failures += 1
            if e.is_transfer:
                logger.warning(f"Skipping malformed Transfer log on {sub.label}: {e}")
            else:
                logger.info(f"Skipping non-Transfer log on {sub.label}: {e}")
            return

        # Some nodes ignore parts of the filter object
        if not sub.descriptor.matches(raw_log):
            sub.filter_mismatches += 1
            logger.warning(f"Skipping transfer outside {sub.label} (tx {event.transaction_hash})")
            return

        sub.delivered += 1
        if sub.descriptor.direction is Direction.INCOMING:
            logger.info(f"Wallet {event.to_address} received an NFT")
        elif sub.descriptor.direction is Direction.OUTGOING:
            logger.info(f"Wallet {event.from_address} sent an NFT")

        metadata = None
        if self.metadata_fetcher is not None:
            metadata = await self.metadata_fetcher.fetch(event.contract_address, event.token_id)

        self.reporter.report(TransferRecord(
            event=event,
            classification=classify(event),
            subscription=sub.label,
            metadata=metadata,
        ))

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    async def _reconnect(self) -> bool:
        """Reconnect and re-register every live descriptor under its handle."""
        self._by_subscription_id.clear()
        for sub in self.subscriptions:
            sub.subscription_id = None

        for attempt in range(self.max_reconnect_attempts):
            delay = min(self.reconnect_delay * (2 ** attempt), MAX_RECONNECT_DELAY)
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {attempt + 1}/{self.max_reconnect_attempts})")
            await asyncio.sleep(delay)
            if not self.is_running:
                return False

            try:
                await self._ensure_connected()
                for sub in self.subscriptions:
                    if sub.subscription_id is not None:
                        continue
                    sub.subscription_id = await self._subscribe(sub.descriptor)
                    self._by_subscription_id[sub.subscription_id] = sub
            except SubscriptionError as e:
                logger.warning(f"Reconnect attempt {attempt + 1} failed: {e}")
                continue

            logger.info(f"Reconnected, {len(self.state.subscriptions)} subscription(s) restored")
            return True

        logger.error(f"Giving up after {self.max_reconnect_attempts} reconnect attempts")
        return False

    async def _abandon(self) -> None:
        subs, _ = self._detach()
        await self._cancel_tasks(subs)
        logger.error("NFT monitoring stopped: connection could not be restored")
