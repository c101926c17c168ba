"""
Unified watcher: prefer the push subscription, fall back to polling, never go
backwards in version.

Flow:
1. Race ``strategy.subscribe`` against ``ws_connect_timeout_ms``.
2. Subscription wins: seed the caller with one poll, then stream. When the
   stream ends or raises, demote to polling for good.
3. Timeout or subscribe failure: report it, then poll immediately and every
   ``poll_interval_ms`` until stopped. The first poll is the seed.

Every value, whatever its transport, goes through one VersionGate.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import (
    Any, AsyncIterable, Awaitable, Callable, Generic, Optional, Set, TypeVar,
)

from slotwatch.errors import SubscriptionTimeoutError, WatcherConfigError, create_structured_error_response
from slotwatch.observability.metrics import (
    record_demotion, record_poll_error, record_update_delivered, record_update_dropped,
    release_resource,
)
from slotwatch.protocols.resource_strategy import EmitFn, ResourceStrategy
from slotwatch.schemas.watch import VersionedItem, WatcherState, WatcherStatus
from slotwatch.services.version_gate import VersionGate
from slotwatch.util.async_tools import CancellationToken, create_supervised_task

logger = logging.getLogger("unified_watcher")

TRaw = TypeVar("TRaw")
TNormalized = TypeVar("TNormalized")

OnUpdate = Callable[[int, Optional[Any]], None]
OnError = Callable[[BaseException], None]

STREAM_CLOSE_TIMEOUT_S = 2.0

_watcher_ids = itertools.count(1)


@dataclass(frozen=True)
class WatcherStrategy(Generic[TRaw, TNormalized]):
    """Strategy assembled from plain callables."""
    poll: Callable[[EmitFn, CancellationToken], Awaitable[None]]
    subscribe: Callable[[CancellationToken], Awaitable[AsyncIterable[VersionedItem[TRaw]]]]
    normalize: Callable[[Optional[TRaw]], Optional[TNormalized]] = field(default=lambda raw: raw)
    name: str = "resource"


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise WatcherConfigError(f"{name} must be a positive number, got {value!r}", details={name: value})


def _validate(strategy: Any, poll_interval_ms: Any, ws_connect_timeout_ms: Any,
              on_update: Any, on_error: Any) -> None:
    for op in ("poll", "subscribe", "normalize"):
        if not callable(getattr(strategy, op, None)):
            raise WatcherConfigError(f"strategy has no callable {op}()")
    _require_positive("poll_interval_ms", poll_interval_ms)
    _require_positive("ws_connect_timeout_ms", ws_connect_timeout_ms)
    if not callable(on_update):
        raise WatcherConfigError("on_update callback is required")
    if on_error is not None and not callable(on_error):
        raise WatcherConfigError("on_error must be callable")


class UnifiedWatcher(Generic[TRaw, TNormalized]):
    """Fallback orchestrator for one resource. ``stop()`` is the only control."""

    def __init__(
        self,
        strategy: ResourceStrategy[TRaw, TNormalized],
        *,
        poll_interval_ms: float,
        ws_connect_timeout_ms: float,
        on_update: OnUpdate,
        on_error: Optional[OnError] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ):
        _validate(strategy, poll_interval_ms, ws_connect_timeout_ms, on_update, on_error)

        self.strategy = strategy
        self.resource: str = getattr(strategy, "name", None) or type(strategy).__name__
        self.poll_interval_ms = poll_interval_ms
        self.ws_connect_timeout_ms = ws_connect_timeout_ms
        self.token = cancellation_token or CancellationToken()
        self.watcher_id = next(_watcher_ids)

        self._on_update = on_update
        self._on_error = on_error
        self._gate: VersionGate[TNormalized] = VersionGate(self._deliver)
        self._task: Optional[asyncio.Task] = None
        self._remove_token_callback: Optional[Callable[[], None]] = None
        self._closed = False
        self._late_releases: Set[asyncio.Task] = set()

        self.state = WatcherState.CONNECTING
        self.demoted = False
        self.updates_delivered = 0
        self.updates_dropped = 0
        self.error_count = 0

    # ---- lifecycle -------------------------------------------------------

    def start(self) -> "UnifiedWatcher[TRaw, TNormalized]":
        """Spawn the orchestration task. Requires a running event loop."""
        if self._task is not None or self._closed:
            return self
        self._task = create_supervised_task(
            self._run(), name=f"watcher:{self.resource}:{self.watcher_id}"
        )
        # A caller-owned token being cancelled stops this handle too
        self._remove_token_callback = self.token.add_callback(self.stop)
        logger.info(
            f"[unified_watcher] {self.resource} connecting "
            f"(timeout={self.ws_connect_timeout_ms}ms, poll={self.poll_interval_ms}ms)",
            extra={"evt": "watcher_start", "resource": self.resource, "watcher_id": self.watcher_id},
        )
        return self

    def stop(self) -> None:
        """Stop delivering, cancel the shared token and any in-flight work. Idempotent."""
        if self._closed:
            return
        self._closed = True
        previous = self.state
        self.state = WatcherState.STOPPED

        if self._remove_token_callback is not None:
            self._remove_token_callback()
            self._remove_token_callback = None
        self.token.cancel()

        if self._task is not None and not self._task.done():
            self._task.cancel()
        release_resource(self.resource)

        logger.info(
            f"[unified_watcher] {self.resource} stopped (was {previous.value})",
            extra={"evt": "watcher_stopped", "resource": self.resource, "watcher_id": self.watcher_id},
        )

    async def wait_stopped(self) -> None:
        """Wait until the orchestration task has fully exited."""
        if self._task is None:
            return
        await asyncio.gather(self._task, return_exceptions=True)
        if self._late_releases:
            await asyncio.gather(*self._late_releases, return_exceptions=True)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_delivered_version(self) -> int:
        return self._gate.last_delivered_version

    def get_status(self) -> WatcherStatus:
        return WatcherStatus(
            resource=self.resource,
            state=self.state,
            last_delivered_version=self.last_delivered_version,
            updates_delivered=self.updates_delivered,
            updates_dropped=self.updates_dropped,
            errors=self.error_count,
            demoted=self.demoted,
        )

    # ---- delivery --------------------------------------------------------

    def _emit(self, version: int, value: Optional[TNormalized]) -> None:
        if self._closed:
            return
        if not self._gate.admit(version, value):
            self.updates_dropped += 1
            record_update_dropped(self.resource)
            logger.debug(
                f"[unified_watcher] {self.resource} dropped stale version {version} "
                f"(last={self._gate.last_delivered_version})"
            )

    def _deliver(self, version: int, value: Optional[TNormalized]) -> None:
        if self._closed:
            return
        self.updates_delivered += 1
        record_update_delivered(self.resource, version)
        try:
            self._on_update(version, value)
        except Exception:
            logger.exception(f"[unified_watcher] {self.resource} on_update raised at version {version}")

    def _report(self, error: BaseException) -> None:
        if self._closed:
            return
        self.error_count += 1
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception(f"[unified_watcher] {self.resource} on_error raised")

    def _transition(self, state: WatcherState, reason: str) -> None:
        if self._closed:
            return
        previous, self.state = self.state, state
        logger.info(
            f"[unified_watcher] {self.resource} {previous.value} -> {state.value} ({reason})",
            extra={"evt": "watcher_transition", "resource": self.resource, "from": previous.value,
                   "to": state.value, "reason": reason},
        )

    # ---- state machine ---------------------------------------------------

    async def _run(self) -> None:
        try:
            stream = await self._connect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                return
            reason = "connect_timeout" if isinstance(e, SubscriptionTimeoutError) else "connect_failed"
            logger.warning(
                f"[unified_watcher] {self.resource} subscription unavailable, falling back to polling: {e}",
                extra={"evt": "watcher_demoted", "reason": reason, "error": create_structured_error_response(e)},
            )
            self._report(e)
            await self._demote_and_poll(reason)
            return

        reason = "stream_closed"
        try:
            # Seed current state even though push is up
            await self._single_poll()
            if self._closed:
                return
            self._transition(WatcherState.STREAMING, "subscribed")
            async for item in stream:
                if self._closed:
                    break
                self._emit(item.version, self.strategy.normalize(item.value))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                return
            reason = "stream_error"
            logger.warning(
                f"[unified_watcher] {self.resource} stream failed, falling back to polling: {e}",
                extra={"evt": "watcher_demoted", "reason": reason, "error": create_structured_error_response(e)},
            )
            self._report(e)
        finally:
            await self._close_stream(stream)

        if self._closed:
            return
        await self._demote_and_poll(reason)

    async def _connect(self) -> AsyncIterable[VersionedItem[TRaw]]:
        """Race subscription establishment against the connect timeout."""
        subscribe_task = asyncio.ensure_future(self.strategy.subscribe(self.token))
        try:
            done, _ = await asyncio.wait({subscribe_task}, timeout=self.ws_connect_timeout_ms / 1000.0)
        except asyncio.CancelledError:
            if subscribe_task.done():
                # established just as stop() landed
                await self._release_subscription(subscribe_task)
            else:
                self._abandon_subscription(subscribe_task)
            raise
        if not done:
            self._abandon_subscription(subscribe_task)
            raise SubscriptionTimeoutError(
                "ws connect timeout", details={"timeout_ms": self.ws_connect_timeout_ms}
            )
        return subscribe_task.result()

    def _abandon_subscription(self, subscribe_task: asyncio.Future) -> None:
        """Cancel a pending subscribe; close whatever it still manages to establish."""
        subscribe_task.cancel()

        def _on_done(task: asyncio.Future) -> None:
            if task.cancelled():
                return
            release = asyncio.ensure_future(self._release_subscription(task))
            self._late_releases.add(release)
            release.add_done_callback(self._late_releases.discard)

        subscribe_task.add_done_callback(_on_done)

    async def _release_subscription(self, subscribe_task: asyncio.Future) -> None:
        if subscribe_task.cancelled():
            return
        error = subscribe_task.exception()
        if error is not None:
            logger.debug(f"[unified_watcher] {self.resource} late subscribe failure ignored: {error}")
            return
        logger.info(f"[unified_watcher] {self.resource} closing subscription established after the race")
        await self._close_stream(subscribe_task.result())

    async def _demote_and_poll(self, reason: str) -> None:
        self.demoted = True
        record_demotion(self.resource, reason)
        self._transition(WatcherState.POLLING, reason)

        loop = asyncio.get_running_loop()
        interval = self.poll_interval_ms / 1000.0

        await self._single_poll()
        next_tick = loop.time() + interval
        while not self._closed:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            await self._single_poll()
            next_tick += interval
            now = loop.time()
            # Skip ticks missed while a slow poll was in flight
            while next_tick <= now:
                next_tick += interval

    async def _single_poll(self) -> None:
        if self._closed:
            return
        try:
            await self.strategy.poll(self._emit, self.token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                return
            record_poll_error(self.resource)
            logger.warning(
                f"[unified_watcher] {self.resource} poll failed: {e}",
                extra={"evt": "watcher_poll_error", "error": create_structured_error_response(e)},
            )
            self._report(e)

    async def _close_stream(self, stream: Any) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await asyncio.wait_for(aclose(), STREAM_CLOSE_TIMEOUT_S)
        except Exception as e:
            logger.debug(f"[unified_watcher] {self.resource} stream close failed: {e}")


def create_watcher(
    strategy: ResourceStrategy[TRaw, TNormalized],
    *,
    poll_interval_ms: float,
    ws_connect_timeout_ms: float,
    on_update: OnUpdate,
    on_error: Optional[OnError] = None,
    cancellation_token: Optional[CancellationToken] = None,
) -> UnifiedWatcher[TRaw, TNormalized]:
    """
    Build and start a fallback watcher for ``strategy``.

    Argument problems raise WatcherConfigError right here; every transport
    failure afterwards is absorbed and surfaced through ``on_error`` only.
    Must be called from within a running event loop.
    """
    watcher = UnifiedWatcher(
        strategy,
        poll_interval_ms=poll_interval_ms,
        ws_connect_timeout_ms=ws_connect_timeout_ms,
        on_update=on_update,
        on_error=on_error,
        cancellation_token=cancellation_token,
    )
    return watcher.start()
