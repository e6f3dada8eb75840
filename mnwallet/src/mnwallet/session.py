"""
Wallet session lifecycle: one lazily built session per process, state
subscriptions and the initial sync wait.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from loguru import logger

from mnwallet.capabilities import (
    Capability,
    ProviderAdapter,
    is_stream,
    maybe_await,
    release_subscription,
    resolve_method,
)
from mnwallet.constants import DEFAULT_SYNC_POLL_INTERVAL, DEFAULT_SYNC_WAIT_SECONDS
from mnwallet.errors import CapabilityUnavailableError
from mnwallet.miner import find_sync_flag

T = TypeVar("T")


class WalletSessionCache(Generic[T]):
    """
    Builds the wallet session on first use and hands the same one to every caller.

    Concurrent callers share the in-flight build. A failed build is not cached,
    so the next ``get()`` tries again.
    """

    def __init__(self, builder: Callable[[], Awaitable[T]]):
        self._builder = builder
        self._task: asyncio.Task[T] | None = None
        self.build_count = 0

    @property
    def ready(self) -> bool:
        task = self._task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    async def _build(self) -> T:
        self.build_count += 1
        logger.info(f"Building wallet session (attempt {self.build_count})")
        session = await self._builder()
        logger.info("Wallet session ready")
        return session

    async def get(self) -> T:
        if self._task is None:
            self._task = asyncio.ensure_future(self._build())
        task = self._task
        try:
            # Shielded so one cancelled caller does not abort the shared build
            return await asyncio.shield(task)
        except Exception as e:
            if self._task is task and task.done():
                logger.error(f"Wallet session build failed: {e}")
                self._task = None
            raise

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return
        if task.cancelled() or task.exception() is not None:
            return

        session = task.result()
        close = resolve_method(session, "close")
        if close is not None:
            await maybe_await(close())
        logger.info("Wallet session closed")


class StateSubscription:
    """
    Async context manager delivering state snapshots.

    Uses the provider's native ``subscribe`` when it has one, then a ``state()``
    stream, otherwise polls ``state()``. The subscription is released on every
    exit path.
    """

    def __init__(
        self, provider: ProviderAdapter, poll_interval: float = DEFAULT_SYNC_POLL_INTERVAL
    ):
        self.provider = provider
        self.poll_interval = poll_interval
        self.closed = False
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._handle: Any = None
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> StateSubscription:
        if self.provider.supports(Capability.STATE_SUBSCRIPTION):
            self._handle = await self.provider.call(
                Capability.STATE_SUBSCRIPTION, self._queue.put_nowait
            )
        elif self.provider.supports(Capability.STATE):
            await self._follow_state()
        else:
            raise CapabilityUnavailableError(
                f"Provider '{self.provider.name}' cannot report wallet state"
            )
        return self

    async def _follow_state(self) -> None:
        """Subscribe to ``state()`` when it is a stream, otherwise poll it."""
        try:
            source = await self.provider.state_source()
        except Exception as e:
            logger.debug(f"State poll failed: {e}")
        else:
            if is_stream(source):
                subscribe = resolve_method(source, "subscribe")
                self._handle = await maybe_await(subscribe(self._queue.put_nowait))
                return
            self._queue.put_nowait(source)
        self._task = asyncio.create_task(self._poll())

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if self._handle is not None:
            await release_subscription(self._handle)
            self._handle = None

        self.closed = True

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                self._queue.put_nowait(await self.provider.state())
            except Exception as e:
                logger.debug(f"State poll failed: {e}")

    async def next(self, timeout: float | None = None) -> Any:
        return await asyncio.wait_for(self._queue.get(), timeout)


def _default_is_synced(snapshot: Any) -> bool:
    return find_sync_flag(snapshot) is True


async def wait_for_initial_sync(
    provider: ProviderAdapter,
    max_wait: float = DEFAULT_SYNC_WAIT_SECONDS,
    poll_interval: float = DEFAULT_SYNC_POLL_INTERVAL,
    is_synced: Callable[[Any], bool] | None = None,
) -> bool:
    """
    Wait until the wallet reports it is synced, for at most ``max_wait`` seconds.

    Returns:
        True if a synced snapshot arrived, False on timeout (callers proceed anyway)
    """
    is_synced = is_synced or _default_is_synced
    if not (
        provider.supports(Capability.STATE_SUBSCRIPTION) or provider.supports(Capability.STATE)
    ):
        logger.warning("Wallet cannot report state, skipping initial sync wait")
        return False

    logger.info(f"Waiting up to {max_wait:.0f}s for wallet to sync...")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max_wait
    first = True

    async with StateSubscription(provider, poll_interval) as subscription:
        while (remaining := deadline - loop.time()) > 0:
            try:
                snapshot = await subscription.next(timeout=remaining)
            except asyncio.TimeoutError:
                break
            if first:
                logger.debug("Received first state snapshot")
                first = False
            if is_synced(snapshot):
                logger.info("Wallet synced")
                return True

    logger.warning(f"Wallet not confirmed synced after {max_wait:.0f}s, proceeding optimistically")
    return False
