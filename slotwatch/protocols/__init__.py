"""
Protocols
Lightweight Protocols for interface clarity and decoupling.
"""

from .resource_strategy import ResourceStrategy, EmitFn
from .solana_transport import SnapshotRpc, SubscriptionRpc

__all__ = [
    "ResourceStrategy",
    "EmitFn",
    "SnapshotRpc",
    "SubscriptionRpc",
]
