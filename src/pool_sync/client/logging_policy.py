"""Opt-in DEBUG output for client modules, toggled by environment flags."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from pool_sync.utils.env import env_flag_enabled

DEBUG_ENV_FLAGS = ("POOL_SYNC_STATE_DEBUG", "POOL_SYNC_CLIENT_DEBUG")
LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


def maybe_enable_debug_logger(target: logging.Logger, env: Optional[Mapping[str, str]] = None) -> bool:
    """Attach a local DEBUG stream handler to ``target`` when a debug flag is set."""

    if not env_flag_enabled(*DEBUG_ENV_FLAGS, env=env):
        return False
    has_local = any(getattr(h, "_pool_sync_local", False) for h in target.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_pool_sync_local", True)
        target.addHandler(handler)
    target.setLevel(logging.DEBUG)
    target.propagate = False
    return True


__all__ = ["DEBUG_ENV_FLAGS", "LOG_FORMAT", "maybe_enable_debug_logger"]
