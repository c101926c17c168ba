"""
slotwatch - push-first, poll-fallback watchers for Solana state.
"""

from slotwatch.errors import (
    SlotWatchError, WatcherConfigError, SubscriptionTimeoutError, SubscriptionError,
    RpcError, NetworkError, ValidationError, ConfigurationError,
)
from slotwatch.schemas.watch import (
    AccountInfo, AccountUpdate, ProgramLog, VersionedItem, WatcherState, WatcherStatus,
)
from slotwatch.services.version_gate import VersionGate
from slotwatch.services.unified_watcher import UnifiedWatcher, WatcherStrategy, create_watcher
from slotwatch.services.watch_account import AccountStrategy, watch_account
from slotwatch.services.watch_program_logs import (
    ProgramLogsStrategy, ProgramLogsSubscription, watch_program_logs,
)
from slotwatch.services.solana_client import SolanaClient, create_solana_client
from slotwatch.util.async_tools import CancellationToken

__version__ = "0.1.0"

__all__ = [
    "SlotWatchError",
    "WatcherConfigError",
    "SubscriptionTimeoutError",
    "SubscriptionError",
    "RpcError",
    "NetworkError",
    "ValidationError",
    "ConfigurationError",
    "AccountInfo",
    "AccountUpdate",
    "ProgramLog",
    "VersionedItem",
    "WatcherState",
    "WatcherStatus",
    "VersionGate",
    "UnifiedWatcher",
    "WatcherStrategy",
    "create_watcher",
    "AccountStrategy",
    "watch_account",
    "ProgramLogsStrategy",
    "ProgramLogsSubscription",
    "watch_program_logs",
    "SolanaClient",
    "create_solana_client",
    "CancellationToken",
]
