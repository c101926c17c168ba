"""
Watcher schemas: wire payload validation and public update shapes.
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

Commitment = Literal["processed", "confirmed", "finalized"]
LogFilter = Literal["all", "success", "error"]

VERSION_SENTINEL = -1


@dataclass(frozen=True)
class VersionedItem(Generic[T]):
    """One update as produced by a transport: ledger slot + payload."""
    version: int
    value: Optional[T]


class WatcherState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    POLLING = "polling"
    STOPPED = "stopped"


class AccountInfo(BaseModel):
    """Account content at a given slot, decoded from the base64 wire form."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    lamports: int
    owner: str
    executable: bool
    rent_epoch: int = Field(alias="rentEpoch")
    space: Optional[int] = None
    data: bytes = b""

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, v: Any) -> bytes:
        # RPC returns [payload, encoding]
        if isinstance(v, (list, tuple)):
            payload, encoding = (list(v) + ["base64"])[:2]
            if encoding != "base64":
                raise ValueError(f"unsupported account encoding: {encoding}")
            return base64.b64decode(payload or "")
        if isinstance(v, str):
            return base64.b64decode(v)
        return v


class AccountUpdate(BaseModel):
    """Public shape handed to ``watch_account`` callers."""
    slot: int
    value: Optional[AccountInfo] = None

    @property
    def exists(self) -> bool:
        return self.value is not None


class ProgramLog(BaseModel):
    """One transaction's log output for a watched program."""
    signature: str
    err: Optional[Any] = None
    logs: List[str] = Field(default_factory=list)
    slot: int

    @property
    def succeeded(self) -> bool:
        return self.err is None


class WatcherStatus(BaseModel):
    """Watcher health snapshot."""
    resource: str
    state: WatcherState
    last_delivered_version: int
    updates_delivered: int
    updates_dropped: int
    errors: int
    demoted: bool
