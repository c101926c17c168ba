"""
Resource strategy protocol: the seam between the fallback orchestrator and a
concrete resource kind.
"""

from typing import AsyncIterable, Awaitable, Callable, Optional, Protocol, TypeVar

from slotwatch.schemas.watch import VersionedItem
from slotwatch.util.async_tools import CancellationToken

TRaw = TypeVar("TRaw")
TNormalized = TypeVar("TNormalized")

EmitFn = Callable[[int, Optional[TNormalized]], None]


class ResourceStrategy(Protocol[TRaw, TNormalized]):
    """Protocol for poll/subscribe/normalize adapters."""

    name: str

    def normalize(self, raw: Optional[TRaw]) -> Optional[TNormalized]:
        """Map a raw wire payload to the domain shape (pure)."""
        ...

    def poll(self, emit: EmitFn, token: CancellationToken) -> Awaitable[None]:
        """Fetch one snapshot and call ``emit(version, value)`` exactly once."""
        ...

    def subscribe(self, token: CancellationToken) -> Awaitable[AsyncIterable[VersionedItem[TRaw]]]:
        """Establish a push subscription; raise if it cannot be established."""
        ...
