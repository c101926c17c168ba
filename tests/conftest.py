"""
Pytest Configuration
Fake strategies/transports for watcher tests and proper teardown of watchers.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import pytest

from slotwatch.observability.metrics import reset_metrics
from slotwatch.schemas.watch import VersionedItem


class FakeStrategy:
    """
    Scriptable ResourceStrategy.

    ``polls`` is consumed one entry per poll; the last entry repeats forever.
    An Exception entry makes that poll raise. ``stream`` items are yielded by
    the push subscription, followed by ``stream_error`` (raised) or, with
    ``hold_open``, an endless wait.
    """

    def __init__(
        self,
        *,
        polls: Sequence[Any] = (),
        stream: Sequence[Tuple[int, Any]] = (),
        stream_error: Optional[BaseException] = None,
        hold_open: bool = False,
        subscribe_error: Optional[BaseException] = None,
        subscribe_hangs: bool = False,
        subscribe_delay: float = 0.0,
        item_delay: float = 0.0,
        name: str = "fake",
    ):
        self.name = name
        self._polls = list(polls)
        self.stream_items = list(stream)
        self.stream_error = stream_error
        self.hold_open = hold_open
        self.subscribe_error = subscribe_error
        self.subscribe_hangs = subscribe_hangs
        self.subscribe_delay = subscribe_delay
        self.item_delay = item_delay

        self.poll_count = 0
        self.poll_times: List[float] = []
        self.subscribe_calls = 0
        self.stream_closed = False
        self.tokens: List[Any] = []

    def normalize(self, raw):
        return raw

    async def poll(self, emit, token):
        self.poll_count += 1
        self.poll_times.append(asyncio.get_running_loop().time())
        self.tokens.append(token)
        if not self._polls:
            return
        result = self._polls[0] if len(self._polls) == 1 else self._polls.pop(0)
        if isinstance(result, BaseException):
            raise result
        emit(*result)

    async def subscribe(self, token):
        self.subscribe_calls += 1
        self.tokens.append(token)
        if self.subscribe_delay:
            await asyncio.sleep(self.subscribe_delay)
        if self.subscribe_hangs:
            await asyncio.Event().wait()
        if self.subscribe_error is not None:
            raise self.subscribe_error
        return self._stream()

    async def _stream(self) -> AsyncIterator[VersionedItem]:
        try:
            for version, value in self.stream_items:
                if self.item_delay:
                    await asyncio.sleep(self.item_delay)
                yield VersionedItem(version=version, value=value)
            if self.stream_error is not None:
                raise self.stream_error
            if self.hold_open:
                await asyncio.Event().wait()
        finally:
            self.stream_closed = True


class Recorder:
    """Collects on_update / on_error calls in arrival order."""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []
        self.update_times: List[float] = []
        self.error_times: List[float] = []

    def on_update(self, version, value):
        self.events.append(("update", (version, value)))
        self.update_times.append(asyncio.get_running_loop().time())

    def on_error(self, error):
        self.events.append(("error", error))
        self.error_times.append(asyncio.get_running_loop().time())

    @property
    def updates(self):
        return [payload for kind, payload in self.events if kind == "update"]

    @property
    def errors(self):
        return [payload for kind, payload in self.events if kind == "error"]

    @property
    def versions(self):
        return [version for version, _ in self.updates]


class FakeSubscriptions:
    """SubscriptionRpc fake backed by pre-scripted notification lists."""

    def __init__(self, account_items=(), log_items=(), error: Optional[BaseException] = None,
                 hold_open: bool = False):
        self.account_items = list(account_items)
        self.log_items = list(log_items)
        self.error = error
        self.hold_open = hold_open
        self.calls: List[Tuple[str, Any, str]] = []
        self.closed = False

    async def _iterate(self, items):
        try:
            for version, value in items:
                yield VersionedItem(version=version, value=value)
            if self.hold_open:
                await asyncio.Event().wait()
        finally:
            self.closed = True

    async def account_notifications(self, address, *, commitment="confirmed", token=None):
        self.calls.append(("account", address, commitment))
        if self.error is not None:
            raise self.error
        return self._iterate(self.account_items)

    async def logs_notifications(self, mentions, *, commitment="confirmed", token=None):
        self.calls.append(("logs", list(mentions), commitment))
        if self.error is not None:
            raise self.error
        return self._iterate(self.log_items)


class FakeRpc:
    """SnapshotRpc fake returning scripted (slot, raw_account) pairs; last one repeats."""

    def __init__(self, responses: Sequence[Tuple[int, Optional[Dict[str, Any]]]]):
        self._responses = list(responses)
        self.calls: List[Tuple[str, str]] = []

    async def get_account_info(self, address, *, commitment="confirmed", token=None):
        self.calls.append((address, commitment))
        result = self._responses[0] if len(self._responses) == 1 else self._responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
async def watchers():
    """Track watchers created by a test and tear them down afterwards."""
    created = []
    yield created
    for watcher in created:
        watcher.stop()
        await watcher.wait_stopped()


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def account_raw() -> Dict[str, Any]:
    return {
        "lamports": 1_000_000,
        "owner": "11111111111111111111111111111111",
        "executable": False,
        "rentEpoch": 18446744073709551615,
        "space": 3,
        "data": ["AQID", "base64"],
    }


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "timing: relies on real event-loop timers")
