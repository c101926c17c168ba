"""
Program log watcher.

Logs only exist as a push stream (there is nothing to snapshot), so the
strategy's poll never emits: after a demotion the watcher stays alive but
quiet until stopped. Entries are kept in a bounded ring buffer so listeners
attached later in the same process can replay recent history.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from slotwatch.config import settings
from slotwatch.errors import ValidationError, WatcherConfigError
from slotwatch.protocols.resource_strategy import EmitFn
from slotwatch.protocols.solana_transport import SubscriptionRpc
from slotwatch.schemas.watch import LogFilter, ProgramLog, VersionedItem, WatcherState
from slotwatch.services.ring_buffer import RingBuffer
from slotwatch.services.unified_watcher import OnError, UnifiedWatcher
from slotwatch.util.async_tools import CancellationToken

logger = logging.getLogger("program_logs")

LOG_FILTERS = ("all", "success", "error")

OnLog = Callable[[ProgramLog], None]


def matches_filter(log_filter: str, err: Any) -> bool:
    if log_filter == "success":
        return not err
    if log_filter == "error":
        return bool(err)
    return True


@dataclass(frozen=True)
class ProgramLogsStrategy:
    """Binds the fallback watcher to transactions mentioning one program."""
    subscriptions: SubscriptionRpc
    program_id: str
    commitment: str = "confirmed"
    log_filter: LogFilter = "all"

    @property
    def name(self) -> str:
        return f"logs:{self.program_id}"

    def normalize(self, raw: Optional[Dict[str, Any]]) -> Optional[ProgramLog]:
        if raw is None:
            return None
        try:
            return ProgramLog.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Malformed log notification for {self.program_id}",
                details={"program_id": self.program_id, "errors": e.errors(include_url=False)},
            ) from e

    async def poll(self, emit: EmitFn, token: CancellationToken) -> None:
        return None

    async def subscribe(self, token: CancellationToken) -> AsyncIterable[VersionedItem[Dict[str, Any]]]:
        stream = await self.subscriptions.logs_notifications(
            [self.program_id], commitment=self.commitment, token=token
        )
        return self._filtered(stream)

    async def _filtered(self, stream: AsyncIterable[VersionedItem[Dict[str, Any]]]) -> AsyncIterator[VersionedItem[Dict[str, Any]]]:
        try:
            async for item in stream:
                value = item.value
                if not value or not matches_filter(self.log_filter, value.get("err")):
                    continue
                # normalize() only sees the value, so carry the slot along
                yield VersionedItem(version=item.version, value={**value, "slot": item.version})
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()


class ProgramLogsSubscription:
    """Handle returned by ``watch_program_logs``."""

    def __init__(
        self,
        strategy: ProgramLogsStrategy,
        *,
        max_items: int,
        on_log: Optional[OnLog] = None,
        on_error: Optional[OnError] = None,
        poll_interval_ms: float,
        ws_connect_timeout_ms: float,
        cancellation_token: Optional[CancellationToken] = None,
    ):
        self.program_id = strategy.program_id
        self.log_filter = strategy.log_filter
        self.error: Optional[BaseException] = None
        self._buffer: RingBuffer[ProgramLog] = RingBuffer(max_items)
        self._listeners: List[OnLog] = [on_log] if on_log else []
        self._on_error = on_error
        self.watcher: UnifiedWatcher[Dict[str, Any], ProgramLog] = UnifiedWatcher(
            strategy,
            poll_interval_ms=poll_interval_ms,
            ws_connect_timeout_ms=ws_connect_timeout_ms,
            on_update=self._handle_update,
            on_error=self._handle_error,
            cancellation_token=cancellation_token,
        )

    def start(self) -> "ProgramLogsSubscription":
        self.watcher.start()
        return self

    def _handle_update(self, slot: int, log: Optional[ProgramLog]) -> None:
        if log is None:
            return
        self._buffer.append(log)
        for listener in list(self._listeners):
            self._notify(listener, log)

    @staticmethod
    def _notify(listener: OnLog, log: ProgramLog) -> None:
        try:
            listener(log)
        except Exception:
            logger.exception(f"[program_logs] listener failed for {log.signature}")

    def _handle_error(self, error: BaseException) -> None:
        self.error = error
        if self._on_error is not None:
            self._on_error(error)

    @property
    def logs(self) -> List[ProgramLog]:
        """Buffered entries, oldest first."""
        return self._buffer.to_list()

    def clear(self) -> None:
        self._buffer.clear()
        self.error = None

    def add_listener(self, listener: OnLog, *, replay: bool = True) -> Callable[[], None]:
        """Attach a listener, optionally replaying buffered logs first. Returns a remover."""
        if replay:
            for log in self._buffer.to_list():
                self._notify(listener, log)
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def is_active(self) -> bool:
        return not self.watcher.closed

    def is_connected(self) -> bool:
        return self.watcher.state == WatcherState.STREAMING

    def stop(self) -> None:
        self.watcher.stop()

    async def unsubscribe(self) -> None:
        """Stop and wait for the subscription to be torn down. Safe to call twice."""
        self.stop()
        await self.watcher.wait_stopped()


def watch_program_logs(
    rpc_subscriptions: SubscriptionRpc,
    program_id: str,
    *,
    log_filter: LogFilter = "all",
    commitment: Optional[str] = None,
    max_items: Optional[int] = None,
    on_log: Optional[OnLog] = None,
    on_error: Optional[OnError] = None,
    poll_interval_ms: Optional[float] = None,
    ws_connect_timeout_ms: Optional[float] = None,
    cancellation_token: Optional[CancellationToken] = None,
) -> ProgramLogsSubscription:
    """
    Stream logs of transactions that mention ``program_id``.

    Entries are ordered by slot and pass the same version gate as every other
    watcher, so at most one matching transaction per slot is delivered. Later
    transactions landing in an already delivered slot are dropped as stale.
    Listener exceptions, live or replayed, are logged and never reach the caller.
    """
    if not program_id:
        raise WatcherConfigError("program_id is required")
    if log_filter not in LOG_FILTERS:
        raise WatcherConfigError(f"log_filter must be one of {LOG_FILTERS}, got {log_filter!r}")
    if max_items is None:
        max_items = settings.PROGRAM_LOGS_MAX_ITEMS
    if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items <= 0:
        raise WatcherConfigError(f"max_items must be a positive integer, got {max_items!r}")
    if on_log is not None and not callable(on_log):
        raise WatcherConfigError("on_log must be callable")

    strategy = ProgramLogsStrategy(
        subscriptions=rpc_subscriptions,
        program_id=str(program_id),
        commitment=commitment or settings.SOLANA_COMMITMENT,
        log_filter=log_filter,
    )
    subscription = ProgramLogsSubscription(
        strategy,
        max_items=max_items,
        on_log=on_log,
        on_error=on_error,
        poll_interval_ms=settings.WATCH_POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms,
        ws_connect_timeout_ms=(
            settings.WATCH_WS_CONNECT_TIMEOUT_MS if ws_connect_timeout_ms is None else ws_connect_timeout_ms
        ),
        cancellation_token=cancellation_token,
    )
    logger.info(f"[program_logs] watching {program_id} (filter={log_filter})")
    return subscription.start()
