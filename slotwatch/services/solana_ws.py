"""
WebSocket pubsub client for Solana subscriptions.
One socket per subscription; establishment completes when the node acks the
subscribe request, after which notifications stream as VersionedItems.
"""

import itertools
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from slotwatch.errors import SubscriptionError
from slotwatch.schemas.watch import VersionedItem
from slotwatch.util.async_tools import CancellationToken

logger = logging.getLogger("solana_ws")

PING_INTERVAL_S = 20
CLOSE_TIMEOUT_S = 5


def build_request(request_id: int, method: str, params: List[Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}


def parse_notification(raw: Any, subscription_id: int) -> Optional[VersionedItem[Dict[str, Any]]]:
    """Extract ``(slot, value)`` from a ``*Notification`` frame for ``subscription_id``.

    Returns None for frames that belong to something else.
    """
    message = json.loads(raw)
    if not isinstance(message, dict) or not str(message.get("method", "")).endswith("Notification"):
        return None
    params = message.get("params") or {}
    if params.get("subscription") != subscription_id:
        return None
    result = params.get("result") or {}
    slot = result["context"]["slot"]
    return VersionedItem(version=int(slot), value=result.get("value"))


class SolanaSubscriptionClient:
    """Opens account / logs subscriptions against a pubsub endpoint."""

    def __init__(self, url: str, *, open_timeout: Optional[float] = None):
        self.url = url
        self.open_timeout = open_timeout
        self._ids = itertools.count(1)
        self.subscriptions_opened = 0

    async def account_notifications(
        self,
        address: str,
        *,
        commitment: str = "confirmed",
        encoding: str = "base64",
        token: Optional[CancellationToken] = None,
    ) -> "NotificationStream":
        return await self.subscribe(
            "accountSubscribe",
            [address, {"commitment": commitment, "encoding": encoding}],
            "accountUnsubscribe",
            token=token,
        )

    async def logs_notifications(
        self,
        mentions: List[str],
        *,
        commitment: str = "confirmed",
        token: Optional[CancellationToken] = None,
    ) -> "NotificationStream":
        return await self.subscribe(
            "logsSubscribe",
            [{"mentions": list(mentions)}, {"commitment": commitment}],
            "logsUnsubscribe",
            token=token,
        )

    async def subscribe(self, method: str, params: List[Any], unsubscribe_method: str, *,
                        token: Optional[CancellationToken] = None) -> "NotificationStream":
        """Connect, subscribe and wait for the ack. Raises SubscriptionError on failure."""
        establish = self._establish(method, params)
        if token is None:
            ws, subscription_id = await establish
        else:
            ws, subscription_id = await token.guard(establish)
        self.subscriptions_opened += 1
        logger.info(f"[solana_ws] {method} established (subscription={subscription_id})")
        return NotificationStream(self, ws, subscription_id, unsubscribe_method)

    async def _establish(self, method: str, params: List[Any]) -> Tuple[Any, int]:
        try:
            ws = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                ping_interval=PING_INTERVAL_S,
                close_timeout=CLOSE_TIMEOUT_S,
                max_size=None,
            )
        except (OSError, WebSocketException) as e:
            raise SubscriptionError(f"ws connect failed: {e}", details={"url": self.url, "method": method}) from e

        try:
            return ws, await self._await_ack(ws, method, params)
        except BaseException:
            await ws.close()
            raise

    async def _await_ack(self, ws: Any, method: str, params: List[Any]) -> int:
        request_id = next(self._ids)
        try:
            await ws.send(json.dumps(build_request(request_id, method, params)))
            while True:
                message = json.loads(await ws.recv())
                if not isinstance(message, dict) or message.get("id") != request_id:
                    continue
                if message.get("error"):
                    error = message["error"]
                    raise SubscriptionError(
                        f"{method} rejected: {error.get('message', error)}",
                        details={"method": method, "code": error.get("code")},
                    )
                return int(message["result"])
        except ConnectionClosed as e:
            raise SubscriptionError(f"ws closed before {method} ack: {e}", details={"method": method}) from e
        except (ValueError, KeyError, TypeError) as e:
            raise SubscriptionError(f"malformed {method} ack: {e}", details={"method": method}) from e

    async def _notifications(self, ws: Any, subscription_id: int) -> AsyncIterator[VersionedItem[Dict[str, Any]]]:
        try:
            async for raw in ws:
                try:
                    item = parse_notification(raw, subscription_id)
                except (ValueError, KeyError, TypeError) as e:
                    logger.error(f"[solana_ws] Undecodable frame on subscription {subscription_id}: {e}")
                    continue
                if item is not None:
                    yield item
        except ConnectionClosedError as e:
            raise SubscriptionError(
                f"subscription {subscription_id} dropped: {e}",
                details={"subscription": subscription_id},
            ) from e

    async def _unsubscribe(self, ws: Any, subscription_id: int, unsubscribe_method: str) -> None:
        try:
            await ws.send(json.dumps(build_request(next(self._ids), unsubscribe_method, [subscription_id])))
        except (ConnectionClosed, OSError) as e:
            logger.debug(f"[solana_ws] {unsubscribe_method} skipped: {e}")
        finally:
            await ws.close()
        logger.info(f"[solana_ws] subscription {subscription_id} closed")


class NotificationStream:
    """
    Async iterator over one subscription's notifications.

    The socket is released (unsubscribe + close) when iteration ends, fails,
    or ``aclose()`` is called, even if iteration never started.
    """

    def __init__(self, client: SolanaSubscriptionClient, ws: Any, subscription_id: int,
                 unsubscribe_method: str):
        self.subscription_id = subscription_id
        self._client = client
        self._ws = ws
        self._unsubscribe_method = unsubscribe_method
        self._items = client._notifications(ws, subscription_id)
        self._released = False

    def __aiter__(self) -> "NotificationStream":
        return self

    async def __anext__(self) -> VersionedItem[Dict[str, Any]]:
        try:
            return await self._items.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        if self._released:
            return
        self._released = True
        await self._items.aclose()
        await self._client._unsubscribe(self._ws, self.subscription_id, self._unsubscribe_method)
