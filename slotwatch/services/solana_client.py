"""
RPC + subscription client bundle.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from slotwatch.config import rpc_url_for, settings, ws_url_for
from slotwatch.services.solana_rpc import SolanaRpcClient
from slotwatch.services.solana_ws import SolanaSubscriptionClient

logger = logging.getLogger(__name__)


@dataclass
class SolanaClient:
    rpc: SolanaRpcClient
    rpc_subscriptions: SolanaSubscriptionClient

    async def close(self) -> None:
        await self.rpc.close()


def create_solana_client(url_or_moniker: Optional[str] = None, *,
                         ws_url: Optional[str] = None,
                         timeout: Optional[float] = None) -> SolanaClient:
    """Build both transports for a cluster moniker or an explicit RPC URL.

    With no arguments the configured SOLANA_RPC_URL / SOLANA_WS_URL are used.
    """
    if url_or_moniker is None:
        rpc_url = settings.SOLANA_RPC_URL
        ws_url = ws_url or settings.SOLANA_WS_URL
    else:
        rpc_url = rpc_url_for(url_or_moniker)
        ws_url = ws_url or ws_url_for(rpc_url)

    logger.info(f"Solana client: rpc={rpc_url} ws={ws_url}")
    return SolanaClient(
        rpc=SolanaRpcClient(rpc_url, timeout=timeout),
        rpc_subscriptions=SolanaSubscriptionClient(ws_url),
    )
