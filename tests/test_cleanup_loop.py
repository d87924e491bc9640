"""Unit tests for the background session sweep in api/main.py.

The loop is driven with a zero interval against a mocked store, then
cancelled the way lifespan shutdown cancels it.
"""

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from api.main import _session_cleanup_loop


def _run_until(store, condition, attempts: int = 200) -> None:
    app_stub = SimpleNamespace(state=SimpleNamespace(user_store=store))

    async def scenario():
        task = asyncio.create_task(_session_cleanup_loop(app_stub, 0))
        for _ in range(attempts):
            await asyncio.sleep(0.005)
            if condition():
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_loop_sweeps_repeatedly():
    store = MagicMock()
    store.delete_expired_sessions.return_value = 2
    _run_until(store, lambda: store.delete_expired_sessions.call_count >= 3)
    assert store.delete_expired_sessions.call_count >= 3


def test_loop_survives_database_errors(caplog):
    store = MagicMock()
    store.delete_expired_sessions.side_effect = [OperationalError("DELETE", {}, Exception("locked"))] + [0] * 1000
    with caplog.at_level(logging.ERROR, logger="teamgate.api"):
        _run_until(store, lambda: store.delete_expired_sessions.call_count >= 2)
    assert store.delete_expired_sessions.call_count >= 2
    assert any("Session cleanup failed" in r.message for r in caplog.records)


def test_loop_survives_unexpected_errors(caplog):
    store = MagicMock()
    store.delete_expired_sessions.side_effect = [RuntimeError("boom")] + [0] * 1000
    with caplog.at_level(logging.ERROR, logger="teamgate.api"):
        _run_until(store, lambda: store.delete_expired_sessions.call_count >= 2)
    assert store.delete_expired_sessions.call_count >= 2
    assert any("Session cleanup failed" in r.message for r in caplog.records)
