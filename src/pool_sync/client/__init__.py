"""Pool controller sync client: stream, schedules, snapshot and commands."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ClientConfig",
    "CommandResult",
    "ConnectionStatus",
    "PoolApi",
    "PoolSyncClient",
    "Snapshot",
    "SyncContext",
    "SyncError",
    "load_client_config",
]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "ClientConfig": ("pool_sync.client.config", "ClientConfig"),
        "load_client_config": ("pool_sync.client.config", "load_client_config"),
        "CommandResult": ("pool_sync.client.dispatcher", "CommandResult"),
        "ConnectionStatus": ("pool_sync.client.context", "ConnectionStatus"),
        "Snapshot": ("pool_sync.client.context", "Snapshot"),
        "SyncContext": ("pool_sync.client.context", "SyncContext"),
        "SyncError": ("pool_sync.client.errors", "SyncError"),
        "PoolApi": ("pool_sync.client.http_api", "PoolApi"),
        "PoolSyncClient": ("pool_sync.client.sync_client", "PoolSyncClient"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
