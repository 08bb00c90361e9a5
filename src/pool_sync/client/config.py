"""Client configuration.

Server address, port and TLS flag are user preferences owned by an external
settings store; :func:`load_client_config` layers defaults, that store and
``POOL_SYNC_*`` environment overrides into one frozen :class:`ClientConfig`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol

from pool_sync.utils.env import env_bool, env_float, env_int, env_str

DEFAULT_HOST = "192.168.1.100"
DEFAULT_PORT = 4200

# Keys used by the persisted preference store.
SETTINGS_HOST_KEY = "serverURL"
SETTINGS_PORT_KEY = "serverPort"
SETTINGS_SSL_KEY = "useSSL"


class SettingsStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemorySettingsStore:
    """Dictionary-backed :class:`SettingsStore`."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: MutableMapping[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value


@dataclass(frozen=True)
class ClientConfig:
    """Connection target plus the timing knobs of the sync client."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    use_ssl: bool = False

    polling_interval_s: float = 5.0
    refresh_interval_s: float = 5.0
    heartbeat_interval_s: float = 30.0
    fallback_delay_s: float = 3.0

    # Reconnect delays by close reason; "not connected" closes retry sooner.
    reconnect_short_delay_s: float = 2.0
    reconnect_default_delay_s: float = 3.0
    max_reconnect_attempts: int = 10

    heat_mode_settle_s: float = 1.0
    single_flight_refetch: bool = False
    # Fetch /config/schedules when a state document arrives without them.
    fill_missing_schedules: bool = False

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def websocket_url(self) -> str:
        scheme = "wss" if self.use_ssl else "ws"
        return f"{scheme}://{self.host}:{self.port}/socket.io/?EIO=4&transport=websocket"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce_port(value: Any, default: int) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return default
    return port if 0 < port < 65536 else default


def _coerce_flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("1", "true", "yes", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
    return default


def config_from_store(store: SettingsStore, base: Optional[ClientConfig] = None) -> ClientConfig:
    cfg = base or ClientConfig()
    host = store.get(SETTINGS_HOST_KEY)
    return replace(
        cfg,
        host=str(host) if host else cfg.host,
        port=_coerce_port(store.get(SETTINGS_PORT_KEY), cfg.port),
        use_ssl=_coerce_flag(store.get(SETTINGS_SSL_KEY), cfg.use_ssl),
    )


def save_to_store(cfg: ClientConfig, store: SettingsStore) -> None:
    store.set(SETTINGS_HOST_KEY, cfg.host)
    store.set(SETTINGS_PORT_KEY, cfg.port)
    store.set(SETTINGS_SSL_KEY, cfg.use_ssl)


def load_client_config(
    env: Optional[Mapping[str, str]] = None,
    store: Optional[SettingsStore] = None,
) -> ClientConfig:
    """Resolve defaults, then the settings store, then environment overrides."""

    cfg = ClientConfig()
    if store is not None:
        cfg = config_from_store(store, cfg)

    return replace(
        cfg,
        host=env_str("POOL_SYNC_HOST", cfg.host, env=env) or cfg.host,
        port=_coerce_port(env_int("POOL_SYNC_PORT", cfg.port, env=env), cfg.port),
        use_ssl=env_bool("POOL_SYNC_SSL", cfg.use_ssl, env=env),
        polling_interval_s=env_float("POOL_SYNC_POLL_INTERVAL", cfg.polling_interval_s, env=env),
        refresh_interval_s=env_float("POOL_SYNC_REFRESH_INTERVAL", cfg.refresh_interval_s, env=env),
        heartbeat_interval_s=env_float("POOL_SYNC_HEARTBEAT_INTERVAL", cfg.heartbeat_interval_s, env=env),
        fallback_delay_s=env_float("POOL_SYNC_FALLBACK_DELAY", cfg.fallback_delay_s, env=env),
        reconnect_short_delay_s=env_float(
            "POOL_SYNC_RECONNECT_SHORT_DELAY", cfg.reconnect_short_delay_s, env=env
        ),
        reconnect_default_delay_s=env_float(
            "POOL_SYNC_RECONNECT_DELAY", cfg.reconnect_default_delay_s, env=env
        ),
        max_reconnect_attempts=env_int("POOL_SYNC_MAX_RECONNECT_ATTEMPTS", cfg.max_reconnect_attempts, env=env),
        heat_mode_settle_s=env_float("POOL_SYNC_HEAT_MODE_SETTLE", cfg.heat_mode_settle_s, env=env),
        single_flight_refetch=env_bool("POOL_SYNC_SINGLE_FLIGHT", cfg.single_flight_refetch, env=env),
        fill_missing_schedules=env_bool("POOL_SYNC_FILL_SCHEDULES", cfg.fill_missing_schedules, env=env),
    )


__all__ = [
    "ClientConfig",
    "MemorySettingsStore",
    "SettingsStore",
    "config_from_store",
    "load_client_config",
    "save_to_store",
]
