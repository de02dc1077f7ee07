"""Tests for SessionTransitionLock (in-process table and Redis backends)."""

from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.session_lock import SessionTransitionLock


class TestLocalLock:
    def test_second_acquire_is_blocked(self):
        lock = SessionTransitionLock(None, ttl_seconds=30)

        assert lock.acquire("s1") is True
        assert lock.acquire("s1") is False
        assert lock.acquire("s2") is True

    def test_release_allows_reacquire(self):
        lock = SessionTransitionLock(None, ttl_seconds=30)
        lock.acquire("s1")

        lock.release("s1")

        assert lock.acquire("s1") is True

    def test_hold_releases_on_error(self):
        lock = SessionTransitionLock(None, ttl_seconds=30)

        try:
            with lock.hold("s1") as acquired:
                assert acquired is True
                raise RuntimeError("boom")
        except RuntimeError:
            pass

        assert lock.acquire("s1") is True

    def test_blocked_hold_does_not_release_owner(self):
        lock = SessionTransitionLock(None, ttl_seconds=30)
        lock.acquire("s1")

        with lock.hold("s1") as acquired:
            assert acquired is False

        # The first holder still owns it
        assert lock.acquire("s1") is False

    def test_expired_lock_can_be_taken(self, monkeypatch):
        clock = {"now": 1000.0}
        monkeypatch.setattr("app.core.session_lock.time.monotonic", lambda: clock["now"])
        lock = SessionTransitionLock(None, ttl_seconds=30)
        lock.acquire("s1")

        clock["now"] += 31

        assert lock.acquire("s1") is True


class TestRedisLock:
    def test_uses_set_nx_ex(self):
        client = MagicMock()
        client.set.return_value = True
        lock = SessionTransitionLock(client, ttl_seconds=90)

        assert lock.acquire("s1") is True

        args, kwargs = client.set.call_args
        assert args[0] == "thoughtcloud:lock:session:s1:mutex"
        assert kwargs == {"nx": True, "ex": 90}

    def test_taken_key_blocks(self):
        client = MagicMock()
        client.set.return_value = None
        lock = SessionTransitionLock(client)

        assert lock.acquire("s1") is False

    def test_redis_errors_fail_open(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("down")
        client.delete.side_effect = RedisConnectionError("down")
        lock = SessionTransitionLock(client)

        with lock.hold("s1") as acquired:
            assert acquired is True

    def test_from_url_without_redis(self):
        lock = SessionTransitionLock.from_url(None, ttl_seconds=10)

        assert lock.redis is None
        assert lock.ttl_seconds == 10
