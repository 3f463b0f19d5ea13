import threading
import uuid

import pytest

from issuelink.core import tenant_lock as tenant_lock_module
from issuelink.core.tenant_lock import (
    ReconciliationInProgressError,
    get_redis_url,
    lock_key,
    tenant_lock,
)


def test_get_redis_url_disabled(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    assert get_redis_url() is None

    monkeypatch.setenv("REDIS_URL", "memory://")
    assert get_redis_url() is None

    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    assert get_redis_url() == "redis://localhost:6379/0"


def test_lock_is_per_organization():
    org_a, org_b = uuid.uuid4(), uuid.uuid4()

    with tenant_lock(org_a):
        with pytest.raises(ReconciliationInProgressError) as exc_info:
            with tenant_lock(org_a, blocking_timeout=0):
                pass
        with tenant_lock(org_b, blocking_timeout=0):
            pass

    assert exc_info.value.org_id == org_a
    with tenant_lock(org_a, blocking_timeout=0):
        pass


def test_lock_waits_for_release():
    org_id = uuid.uuid4()
    acquired = threading.Event()
    release = threading.Event()

    def hold():
        with tenant_lock(org_id):
            acquired.set()
            release.wait(5)

    holder = threading.Thread(target=hold)
    holder.start()
    acquired.wait(5)

    with pytest.raises(ReconciliationInProgressError):
        with tenant_lock(org_id, blocking_timeout=0.05):
            pass

    release.set()
    with tenant_lock(org_id, blocking_timeout=5):
        pass
    holder.join(5)


def test_lock_is_released_on_error():
    org_id = uuid.uuid4()

    with pytest.raises(RuntimeError):
        with tenant_lock(org_id):
            raise RuntimeError("run failed")

    with tenant_lock(org_id, blocking_timeout=0):
        pass


class _FakeRedisLock:
    def __init__(self, held: set, key: str, blocking: bool):
        self.held = held
        self.key = key
        self.blocking = blocking

    def acquire(self):
        if self.key in self.held:
            return False
        self.held.add(self.key)
        return True

    def release(self):
        self.held.discard(self.key)


class _FakeRedis:
    def __init__(self):
        self.held: set[str] = set()
        self.calls = []

    def lock(self, key, timeout, blocking, blocking_timeout):
        self.calls.append((key, timeout, blocking, blocking_timeout))
        return _FakeRedisLock(self.held, key, blocking)


def test_redis_lock_used_when_configured(monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(tenant_lock_module, "_get_redis_client", lambda: fake)
    org_id = uuid.uuid4()

    with tenant_lock(org_id, blocking_timeout=0, lease_seconds=30):
        assert fake.held == {lock_key(org_id)}
        with pytest.raises(ReconciliationInProgressError):
            with tenant_lock(org_id, blocking_timeout=0):
                pass

    assert fake.held == set()
    assert fake.calls[0] == (lock_key(org_id), 30, False, None)
