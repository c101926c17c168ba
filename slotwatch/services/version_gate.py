"""
Monotonic version gate.
Drops anything not strictly newer than the last delivered version.
"""

from typing import Callable, Generic, Optional, TypeVar

from slotwatch.schemas.watch import VERSION_SENTINEL

T = TypeVar('T')


class VersionGate(Generic[T]):
    """Admits (version, value) pairs in strictly increasing version order."""

    def __init__(self, on_admit: Callable[[int, Optional[T]], None]):
        self._on_admit = on_admit
        self.last_delivered_version = VERSION_SENTINEL

    def admit(self, version: int, value: Optional[T]) -> bool:
        if version <= self.last_delivered_version:
            return False
        self.last_delivered_version = version
        self._on_admit(version, value)
        return True
