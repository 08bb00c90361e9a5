from __future__ import annotations

import os
from typing import Mapping, Optional

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _lookup(name: str, env: Optional[Mapping[str, str]]) -> Optional[str]:
    source = os.environ if env is None else env
    v = source.get(name)
    return v if v not in (None, "") else None


def env_str(name: str, default: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    v = _lookup(name, env)
    return v if v is not None else default


def env_bool(name: str, default: bool = False, env: Optional[Mapping[str, str]] = None) -> bool:
    v = _lookup(name, env)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def env_int(name: str, default: int, env: Optional[Mapping[str, str]] = None) -> int:
    v = _lookup(name, env)
    if v is None:
        return default
    try:
        return int(v, 10)
    except Exception:
        return default


def env_float(name: str, default: float, env: Optional[Mapping[str, str]] = None) -> float:
    v = _lookup(name, env)
    if v is None:
        return default
    try:
        return float(v)
    except Exception:
        return default


def env_flag_enabled(*names: str, env: Optional[Mapping[str, str]] = None) -> bool:
    """True when any of ``names`` holds a debug-style truthy value."""
    for name in names:
        v = (_lookup(name, env) or "").strip().lower()
        if v in _TRUTHY or v in ("dbg", "debug"):
            return True
    return False
