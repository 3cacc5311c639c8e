"""Background persistence of dirty conversations."""

from .auto_sync import AutoSyncConfig, AutoSyncScheduler
from .sync import HttpPushSink, StoreSync, SyncBackend

__all__ = [
    "AutoSyncConfig",
    "AutoSyncScheduler",
    "HttpPushSink",
    "StoreSync",
    "SyncBackend",
]
