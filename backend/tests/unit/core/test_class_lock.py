from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from studio_booking.core import class_lock as lock_module
from studio_booking.core.config import settings


@pytest.fixture
def redis_client(monkeypatch) -> MagicMock:
    client = MagicMock()
    client.set.return_value = True
    client.delete.return_value = 1
    monkeypatch.setattr(lock_module, "_get_sync_redis", lambda: client)
    monkeypatch.setattr(settings, "redis_url", "redis://localhost:6379/0")
    return client


def test_lock_key_is_namespaced_per_class():
    assert lock_module._lock_key("01ABC") == f"{settings.lock_namespace}:lock:class:01ABC:mutex"


def test_without_redis_the_lock_fails_open(monkeypatch):
    monkeypatch.setattr(lock_module, "_get_sync_redis", lambda: None)

    with lock_module.class_lock("01ABC") as acquired:
        assert acquired is True


def test_acquire_and_release(redis_client):
    with lock_module.class_lock("01ABC") as acquired:
        assert acquired is True

    key = lock_module._lock_key("01ABC")
    redis_client.set.assert_called_once()
    assert redis_client.set.call_args.args[0] == key
    assert redis_client.set.call_args.kwargs["nx"] is True
    redis_client.delete.assert_called_once_with(key)


def test_contended_lock_gives_up_after_waiting(redis_client):
    redis_client.set.return_value = False

    assert lock_module.acquire_class_lock("01ABC", wait_s=0.0, poll_s=0.0) is False


def test_contended_block_still_runs_without_releasing(redis_client, monkeypatch):
    monkeypatch.setattr(lock_module, "acquire_class_lock", lambda *args, **kwargs: False)

    with lock_module.class_lock("01ABC") as acquired:
        assert acquired is False

    redis_client.delete.assert_not_called()


def test_redis_errors_fail_open(redis_client):
    redis_client.set.side_effect = ConnectionError("redis down")

    assert lock_module.acquire_class_lock("01ABC") is True


def test_release_errors_are_swallowed(redis_client):
    redis_client.delete.side_effect = ConnectionError("redis down")

    lock_module.release_class_lock("01ABC")
