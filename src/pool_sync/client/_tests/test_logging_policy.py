import logging

from pool_sync.client.logging_policy import maybe_enable_debug_logger


def test_debug_logger_off_by_default():
    target = logging.getLogger("pool_sync.tests.quiet")
    assert maybe_enable_debug_logger(target, env={}) is False
    assert not target.handlers


def test_debug_flag_attaches_single_local_handler():
    target = logging.getLogger("pool_sync.tests.loud")
    try:
        assert maybe_enable_debug_logger(target, env={"POOL_SYNC_CLIENT_DEBUG": "dbg"}) is True
        assert maybe_enable_debug_logger(target, env={"POOL_SYNC_STATE_DEBUG": "1"}) is True
        assert len(target.handlers) == 1
        assert target.level == logging.DEBUG
        assert target.propagate is False
    finally:
        for handler in list(target.handlers):
            target.removeHandler(handler)
        target.propagate = True
