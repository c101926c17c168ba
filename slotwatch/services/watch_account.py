"""
Account watcher: accountSubscribe with getAccountInfo polling fallback.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from slotwatch.config import settings
from slotwatch.errors import ValidationError, WatcherConfigError
from slotwatch.protocols.resource_strategy import EmitFn
from slotwatch.protocols.solana_transport import SnapshotRpc, SubscriptionRpc
from slotwatch.schemas.watch import AccountInfo, AccountUpdate, VersionedItem
from slotwatch.services.unified_watcher import OnError, UnifiedWatcher, create_watcher
from slotwatch.util.async_tools import CancellationToken

logger = logging.getLogger("account_watcher")


@dataclass(frozen=True)
class AccountStrategy:
    """Binds the fallback watcher to one account address."""
    rpc: SnapshotRpc
    subscriptions: SubscriptionRpc
    address: str
    commitment: str = "confirmed"

    @property
    def name(self) -> str:
        return f"account:{self.address}"

    def normalize(self, raw: Optional[Dict[str, Any]]) -> Optional[AccountInfo]:
        if raw is None:
            return None
        try:
            return AccountInfo.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Malformed account payload for {self.address}",
                details={"address": self.address, "errors": e.errors(include_url=False)},
            ) from e

    async def poll(self, emit: EmitFn, token: CancellationToken) -> None:
        slot, raw = await self.rpc.get_account_info(self.address, commitment=self.commitment, token=token)
        emit(slot, self.normalize(raw))

    async def subscribe(self, token: CancellationToken) -> AsyncIterable[VersionedItem[Dict[str, Any]]]:
        return await self.subscriptions.account_notifications(
            self.address, commitment=self.commitment, token=token
        )


def watch_account(
    rpc: SnapshotRpc,
    rpc_subscriptions: SubscriptionRpc,
    account_address: str,
    on_update: Callable[[AccountUpdate], None],
    *,
    on_error: Optional[OnError] = None,
    commitment: Optional[str] = None,
    poll_interval_ms: Optional[float] = None,
    ws_connect_timeout_ms: Optional[float] = None,
    cancellation_token: Optional[CancellationToken] = None,
) -> UnifiedWatcher[Dict[str, Any], AccountInfo]:
    """
    Watch an account, preferring the WS subscription and falling back to polling.

    ``on_update`` receives an AccountUpdate whose ``value`` is None while the
    account does not exist. Retry/backoff on persistent errors is left to the
    caller: watch ``on_error`` and call ``stop()`` / start a new watcher.

    Returns the running watcher; call ``stop()`` to end it.
    """
    if not callable(on_update):
        raise WatcherConfigError("on_update callback is required")
    if not account_address:
        raise WatcherConfigError("account_address is required")

    strategy = AccountStrategy(
        rpc=rpc,
        subscriptions=rpc_subscriptions,
        address=account_address,
        commitment=commitment or settings.SOLANA_COMMITMENT,
    )

    def _on_update(slot: int, value: Optional[AccountInfo]) -> None:
        on_update(AccountUpdate(slot=slot, value=value))

    return create_watcher(
        strategy,
        poll_interval_ms=settings.WATCH_POLL_INTERVAL_MS if poll_interval_ms is None else poll_interval_ms,
        ws_connect_timeout_ms=(
            settings.WATCH_WS_CONNECT_TIMEOUT_MS if ws_connect_timeout_ms is None else ws_connect_timeout_ms
        ),
        on_update=_on_update,
        on_error=on_error,
        cancellation_token=cancellation_token,
    )
