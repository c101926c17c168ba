"""
Solana WebSocket Client Tests
Subscribe handshake, notification parsing and teardown against a fake socket.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from slotwatch.errors import SubscriptionError
from slotwatch.services.solana_ws import SolanaSubscriptionClient, build_request, parse_notification

WS_URL = "ws://127.0.0.1:8900"


def _notification(subscription, slot, value, method="accountNotification"):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": method,
        "params": {"subscription": subscription, "result": {"context": {"slot": slot}, "value": value}},
    })


class FakeWebSocket:
    """Replays scripted frames; ack frames get the id of the first sent request."""

    def __init__(self, ack=None, frames=()):
        self.ack = ack
        self.frames = list(frames)
        self.sent = []
        self.closed = False
        self._pending = asyncio.Queue()

    async def send(self, message):
        self.sent.append(json.loads(message))
        if len(self.sent) == 1 and self.ack is not None:
            await self._pending.put(json.dumps({"jsonrpc": "2.0", "id": self.sent[0]["id"], **self.ack}))
            for frame in self.frames:
                await self._pending.put(frame)

    async def recv(self):
        return await self._pending.get()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._pending.empty():
            raise StopAsyncIteration
        return self._pending.get_nowait()

    async def close(self):
        self.closed = True


class TestParseNotification:

    def test_extracts_slot_and_value(self):
        item = parse_notification(_notification(4, 99, {"lamports": 1}), 4)
        assert item.version == 99
        assert item.value == {"lamports": 1}

    def test_ignores_other_subscriptions(self):
        assert parse_notification(_notification(5, 99, {}), 4) is None

    def test_ignores_non_notifications(self):
        assert parse_notification(json.dumps({"jsonrpc": "2.0", "id": 3, "result": True}), 4) is None

    def test_missing_context_raises(self):
        frame = json.dumps({"method": "logsNotification", "params": {"subscription": 1, "result": {}}})
        with pytest.raises(KeyError):
            parse_notification(frame, 1)

    def test_build_request(self):
        assert build_request(7, "getSlot", []) == {"jsonrpc": "2.0", "id": 7, "method": "getSlot", "params": []}


@pytest.mark.asyncio
class TestSubscriptionClient:

    async def test_account_subscription_streams_and_unsubscribes(self):
        ws = FakeWebSocket(ack={"result": 42}, frames=[
            _notification(42, 10, {"lamports": 5}),
            _notification(41, 11, {"lamports": 6}),
            "not json",
            _notification(42, 12, None),
        ])
        client = SolanaSubscriptionClient(WS_URL)

        with patch("slotwatch.services.solana_ws.websockets.connect", AsyncMock(return_value=ws)):
            stream = await client.account_notifications("Addr1", commitment="finalized")
            items = [(item.version, item.value) async for item in stream]

        assert items == [(10, {"lamports": 5}), (12, None)]
        assert ws.sent[0]["method"] == "accountSubscribe"
        assert ws.sent[0]["params"] == ["Addr1", {"commitment": "finalized", "encoding": "base64"}]
        assert ws.sent[-1]["method"] == "accountUnsubscribe"
        assert ws.sent[-1]["params"] == [42]
        assert ws.closed is True
        assert client.subscriptions_opened == 1

    async def test_logs_subscription_request_shape(self):
        ws = FakeWebSocket(ack={"result": 3})
        client = SolanaSubscriptionClient(WS_URL)

        with patch("slotwatch.services.solana_ws.websockets.connect", AsyncMock(return_value=ws)):
            stream = await client.logs_notifications(["Prog1"])
            await stream.aclose()

        assert ws.sent[0]["method"] == "logsSubscribe"
        assert ws.sent[0]["params"] == [{"mentions": ["Prog1"]}, {"commitment": "confirmed"}]
        # closing before iterating still releases the socket
        assert ws.sent[-1]["method"] == "logsUnsubscribe"
        assert ws.closed is True

    async def test_rejected_subscribe_closes_socket(self):
        ws = FakeWebSocket(ack={"error": {"code": -32602, "message": "Invalid pubkey"}})
        client = SolanaSubscriptionClient(WS_URL)

        with patch("slotwatch.services.solana_ws.websockets.connect", AsyncMock(return_value=ws)):
            with pytest.raises(SubscriptionError) as exc:
                await client.account_notifications("bad")

        assert "Invalid pubkey" in str(exc.value)
        assert ws.closed is True
        assert client.subscriptions_opened == 0

    async def test_connect_failure(self):
        client = SolanaSubscriptionClient(WS_URL)
        connect = AsyncMock(side_effect=OSError("connection refused"))

        with patch("slotwatch.services.solana_ws.websockets.connect", connect):
            with pytest.raises(SubscriptionError):
                await client.account_notifications("Addr1")

        assert connect.await_args.kwargs["ping_interval"] == 20
