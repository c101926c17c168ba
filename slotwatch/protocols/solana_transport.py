"""
Transport protocols the resource strategies depend on.
Implemented by SolanaRpcClient / SolanaSubscriptionClient; fakes in tests.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

from slotwatch.schemas.watch import VersionedItem
from slotwatch.util.async_tools import CancellationToken


class SnapshotRpc(Protocol):
    """Pull transport."""

    async def get_account_info(
        self,
        address: str,
        *,
        commitment: str = "confirmed",
        token: Optional[CancellationToken] = None,
    ) -> Tuple[int, Optional[Dict[str, Any]]]:
        """Return ``(slot, raw_account_or_None)``."""
        ...


class SubscriptionRpc(Protocol):
    """Push transport."""

    async def account_notifications(
        self,
        address: str,
        *,
        commitment: str = "confirmed",
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[VersionedItem[Dict[str, Any]]]:
        ...

    async def logs_notifications(
        self,
        mentions: List[str],
        *,
        commitment: str = "confirmed",
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[VersionedItem[Dict[str, Any]]]:
        ...
