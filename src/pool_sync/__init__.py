"""
pool-sync: keep a local copy of a pool controller's state in sync.

The controller pushes change notifications over a Socket.IO-style websocket;
each one triggers a full re-read of ``/state/all``. Polling covers the gaps
when the stream is down.
"""

__version__ = "0.1.0"

from .client import ClientConfig, ConnectionStatus, PoolSyncClient, load_client_config  # noqa: E402

__all__ = ["ClientConfig", "ConnectionStatus", "PoolSyncClient", "__version__", "load_client_config"]
