import asyncio
import fnmatch
import inspect
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medicalink.config import Settings  # noqa: E402
from medicalink.service.passwords import hash_password  # noqa: E402
from medicalink.service.runtime import Runtime  # noqa: E402
from medicalink.storage.memory import MemoryAccountStore  # noqa: E402
from medicalink.storage.redis_cache import RedisCache  # noqa: E402

ACCESS_SECRET = "access-secret-for-automated-tests-only-0123456789"
REFRESH_SECRET = "refresh-secret-for-automated-tests-only-9876543210"


class FakeClock:
    """Epoch-seconds clock that only moves when a test advances it."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=timezone.utc)

    def ms(self) -> int:
        return int(self.now * 1000)


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` with decoded strings.

    Keys expire against the injected clock. Setting ``fail`` makes every
    command raise ``ConnectionError`` like an unreachable server.
    """

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data = {}
        self.expiry = {}
        self.fail = False
        self.closed = False
        self.commands = []

    def _check(self, name: str) -> None:
        self.commands.append(name)
        if self.fail:
            raise RedisConnectionError("connection refused")

    def _purge(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.clock():
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    def _live_keys(self):
        for key in list(self.data):
            self._purge(key)
        return list(self.data)

    async def get(self, key):
        self._check("get")
        self._purge(key)
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check("set")
        self.data[key] = value
        if ex is None:
            self.expiry.pop(key, None)
        else:
            self.expiry[key] = self.clock() + ex
        return True

    async def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.data:
                removed += 1
                self.data.pop(key, None)
                self.expiry.pop(key, None)
        return removed

    async def exists(self, *keys):
        self._check("exists")
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self.data
        return count

    async def ttl(self, key):
        self._check("ttl")
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return int(deadline - self.clock())

    async def scan_iter(self, match=None, count=None):
        self._check("scan")
        for key in self._live_keys():
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        self._check("ping")
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def cache(fake_redis):
    return RedisCache("redis://fake:6379/0", key_prefix="medicalink:", client=fake_redis)


@pytest.fixture
def settings():
    return Settings(
        auth_secret=ACCESS_SECRET,
        auth_refresh_secret=REFRESH_SECRET,
        auth_expires="15m",
        auth_refresh_expires="7d",
        test_mode=True,
    )


@pytest.fixture
def account_store():
    return MemoryAccountStore()


@pytest.fixture
def runtime(settings, cache, account_store, clock):
    return Runtime(settings, cache=cache, accounts_store=account_store, clock=clock)


@pytest.fixture
def make_account(account_store):
    def _make(email="a@x.com", password="secret", role="DOCTOR", full_name="Test Staff"):
        return account_store.create_account(email, full_name, hash_password(password), role=role)

    return _make


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
