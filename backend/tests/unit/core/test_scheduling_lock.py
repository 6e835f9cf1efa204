"""
Unit tests for scheduling_lock.py.

Coverage:
1) Key generation
2) Local backend mutual exclusion, busy timeout and registry eviction
3) Redis backend acquisition, release and fail-open behaviour
"""

import threading
from unittest.mock import MagicMock, patch

import pytest

from mentorline.core import scheduling_lock as lock_module
from mentorline.core.config import settings
from mentorline.core.exceptions import SchedulingBusyException
from mentorline.core.scheduling_lock import (
    _namespaced_key,
    mentor_lock_key,
    scheduling_lock,
    session_lock_key,
)


class TestKeyGeneration:
    def test_mentor_and_session_keys(self):
        assert mentor_lock_key("M1") == "mentor:M1"
        assert session_lock_key("S1") == "group_session:S1"

    def test_namespaced_key_format(self):
        assert _namespaced_key("mentor:M1") == f"{settings.scheduling_lock_namespace}:lock:mentor:M1"


class TestLocalBackend:
    def test_lock_is_released_after_block(self):
        with scheduling_lock("mentor:local-1"):
            pass
        with scheduling_lock("mentor:local-1", wait_s=0.01):
            pass

    def test_lock_is_released_when_block_raises(self):
        with pytest.raises(ValueError):
            with scheduling_lock("mentor:local-2"):
                raise ValueError("boom")
        with scheduling_lock("mentor:local-2", wait_s=0.01):
            pass

    def test_busy_key_raises_after_wait(self):
        held = threading.Event()
        release = threading.Event()

        def holder():
            with scheduling_lock("mentor:local-3"):
                held.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            assert held.wait(timeout=5)
            with pytest.raises(SchedulingBusyException) as exc_info:
                with scheduling_lock("mentor:local-3", wait_s=0.05):
                    pass
            assert exc_info.value.code == "SCHEDULING_BUSY"
            assert exc_info.value.details["lock_key"] == "mentor:local-3"
        finally:
            release.set()
            thread.join(timeout=5)

    def test_different_keys_do_not_block_each_other(self):
        with scheduling_lock("mentor:a"):
            with scheduling_lock("mentor:b", wait_s=0.01):
                pass

    def test_registry_entry_is_evicted_after_release(self):
        with scheduling_lock("mentor:evict-1"):
            assert "mentor:evict-1" in lock_module._LOCAL_LOCKS
        assert "mentor:evict-1" not in lock_module._LOCAL_LOCKS

    def test_registry_does_not_grow_with_distinct_keys(self):
        before = len(lock_module._LOCAL_LOCKS)
        for i in range(200):
            with scheduling_lock(f"mentor:churn-{i}"):
                pass
        assert len(lock_module._LOCAL_LOCKS) == before

    def test_timed_out_waiter_keeps_holders_entry(self):
        held = threading.Event()
        release = threading.Event()

        def holder():
            with scheduling_lock("mentor:evict-2"):
                held.set()
                release.wait(timeout=5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            assert held.wait(timeout=5)
            with pytest.raises(SchedulingBusyException):
                with scheduling_lock("mentor:evict-2", wait_s=0.05):
                    pass
            entry = lock_module._LOCAL_LOCKS["mentor:evict-2"]
            assert entry.users == 1
            assert entry.lock.locked()
        finally:
            release.set()
            thread.join(timeout=5)
        assert "mentor:evict-2" not in lock_module._LOCAL_LOCKS
        with scheduling_lock("mentor:evict-2", wait_s=0.01):
            pass


class TestRedisBackend:
    @pytest.fixture(autouse=True)
    def _redis_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "scheduling_lock_backend", "redis")

    def test_acquire_and_release(self):
        mock_redis = MagicMock()
        mock_redis.set.return_value = True
        mock_redis.delete.return_value = 1
        with patch.object(lock_module, "_get_sync_redis", return_value=mock_redis):
            with scheduling_lock("mentor:R1", ttl_s=10):
                pass
        namespaced = _namespaced_key("mentor:R1")
        assert mock_redis.set.call_args.args[0] == namespaced
        assert mock_redis.set.call_args.kwargs == {"nx": True, "ex": 10}
        mock_redis.delete.assert_called_once_with(namespaced)

    def test_held_elsewhere_raises_busy(self):
        mock_redis = MagicMock()
        mock_redis.set.return_value = False
        with patch.object(lock_module, "_get_sync_redis", return_value=mock_redis):
            with pytest.raises(SchedulingBusyException):
                with scheduling_lock("mentor:R2", wait_s=0):
                    pass
        mock_redis.delete.assert_not_called()

    def test_fails_open_when_redis_unavailable(self):
        entered = False
        with patch.object(lock_module, "_get_sync_redis", return_value=None):
            with scheduling_lock("mentor:R3"):
                entered = True
        assert entered

    def test_fails_open_when_set_errors(self):
        mock_redis = MagicMock()
        mock_redis.set.side_effect = ConnectionError("redis down")
        entered = False
        with patch.object(lock_module, "_get_sync_redis", return_value=mock_redis):
            with scheduling_lock("mentor:R4"):
                entered = True
        assert entered
