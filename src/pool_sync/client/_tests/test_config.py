from __future__ import annotations

from pool_sync.client.config import (
    ClientConfig,
    MemorySettingsStore,
    config_from_store,
    load_client_config,
    save_to_store,
)


def test_defaults() -> None:
    cfg = load_client_config(env={})

    assert cfg.host == "192.168.1.100"
    assert cfg.port == 4200
    assert cfg.use_ssl is False
    assert cfg.polling_interval_s == 5.0
    assert cfg.refresh_interval_s == 5.0
    assert cfg.heartbeat_interval_s == 30.0
    assert cfg.fallback_delay_s == 3.0
    assert cfg.reconnect_short_delay_s == 2.0
    assert cfg.reconnect_default_delay_s == 3.0
    assert cfg.max_reconnect_attempts == 10
    assert cfg.single_flight_refetch is False
    assert cfg.fill_missing_schedules is False
    assert cfg.base_url == "http://192.168.1.100:4200"
    assert cfg.websocket_url == "ws://192.168.1.100:4200/socket.io/?EIO=4&transport=websocket"


def test_ssl_switches_both_schemes() -> None:
    cfg = ClientConfig(host="pool.local", port=443, use_ssl=True)

    assert cfg.base_url == "https://pool.local:443"
    assert cfg.websocket_url.startswith("wss://pool.local:443/socket.io/")


def test_store_values_then_env_overrides() -> None:
    store = MemorySettingsStore({"serverURL": "10.0.0.5", "serverPort": "8080", "useSSL": "true"})

    cfg = load_client_config(env={}, store=store)
    assert (cfg.host, cfg.port, cfg.use_ssl) == ("10.0.0.5", 8080, True)

    cfg = load_client_config(
        env={
            "POOL_SYNC_HOST": "controller",
            "POOL_SYNC_PORT": "9000",
            "POOL_SYNC_SINGLE_FLIGHT": "yes",
            "POOL_SYNC_FILL_SCHEDULES": "1",
        },
        store=store,
    )
    assert (cfg.host, cfg.port, cfg.use_ssl) == ("controller", 9000, True)
    assert cfg.single_flight_refetch is True
    assert cfg.fill_missing_schedules is True


def test_malformed_values_fall_back_to_defaults() -> None:
    store = MemorySettingsStore({"serverURL": "", "serverPort": "not-a-port", "useSSL": "maybe"})
    env = {
        "POOL_SYNC_PORT": "70000",
        "POOL_SYNC_POLL_INTERVAL": "fast",
        "POOL_SYNC_MAX_RECONNECT_ATTEMPTS": "many",
        "POOL_SYNC_SSL": "perhaps",
    }

    cfg = load_client_config(env=env, store=store)

    assert cfg.host == "192.168.1.100"
    assert cfg.port == 4200
    assert cfg.use_ssl is False
    assert cfg.polling_interval_s == 5.0
    assert cfg.max_reconnect_attempts == 10


def test_save_round_trips_through_store() -> None:
    store = MemorySettingsStore()
    save_to_store(ClientConfig(host="pool.lan", port=5000, use_ssl=True), store)

    assert store.get("serverURL") == "pool.lan"
    cfg = config_from_store(store)
    assert (cfg.host, cfg.port, cfg.use_ssl) == ("pool.lan", 5000, True)
    assert cfg.as_dict()["host"] == "pool.lan"
