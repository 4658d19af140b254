import threading
from datetime import datetime

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_identity_service, get_wallet_service
from app.db import models  # noqa: F401
from app.db.database import Base
from app.main import app
from app.services.balance_store import MemoryBalanceStore
from app.services.claim_ledger import MemoryClaimLedger
from app.services.identity_service import IdentityService
from app.services.quota_counter import MemoryQuotaCounter
from app.services.wallet_service import WalletService
from app.utils.time_utils import ZONE


class FakeClock:
    """テスト用に「今」を固定できる時計"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeRedis:
    """
    Redis の set(nx, ex) / get / eval / decrby の最小挙動を再現するスタブ。
    TTL は記録するだけで期限切れは起こさない。
    """

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self._lock = threading.Lock()

    def set(self, key, value, nx=False, ex=None):
        with self._lock:
            if nx and key in self.store:
                return None
            self.store[key] = value
            if ex is not None:
                self.ttls[key] = ex
            return True

    def get(self, key):
        with self._lock:
            return self.store.get(key)

    def eval(self, _script, _numkeys, key, delta, cap, ttl):
        # quota_counter.RESERVE_SCRIPT 相当
        with self._lock:
            current = int(self.store.get(key, 0))
            if current + int(delta) > int(cap):
                return -1
            total = current + int(delta)
            self.store[key] = total
            self.ttls[key] = int(ttl)
            return total

    def decrby(self, key, amount):
        with self._lock:
            self.store[key] = int(self.store.get(key, 0)) - int(amount)
            return self.store[key]


class BrokenRedis:
    """常に接続エラーになる Redis"""

    def _fail(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    set = get = eval = decrby = _fail


@pytest.fixture
def fixed_now():
    return ZONE.localize(datetime(2026, 10, 17, 12, 0, 0))


@pytest.fixture
def clock(fixed_now):
    return FakeClock(fixed_now)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def lua_redis():
    """Lua スクリプトまで実行できる Redis（fakeredis[lua]）"""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def memory_service(clock):
    return WalletService(
        balances=MemoryBalanceStore(),
        claims=MemoryClaimLedger(),
        quota=MemoryQuotaCounter(),
        clock=clock,
        daily_reward_amount=50,
        daily_add_cap=10000,
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def code2session_handler(request: httpx.Request) -> httpx.Response:
    code = request.url.params.get("code")
    if code == "good-code":
        return httpx.Response(
            200,
            json={"openid": "open-123", "unionid": "union-456", "session_key": "sk"},
        )
    return httpx.Response(200, json={"errcode": 40029, "errmsg": "invalid code"})


@pytest.fixture
def client(memory_service):
    identity = IdentityService(
        app_id="tt-app",
        app_secret="tt-secret",
        url="https://example.test/api/apps/jscode2session",
        transport=httpx.MockTransport(code2session_handler),
    )
    app.dependency_overrides[get_wallet_service] = lambda: memory_service
    app.dependency_overrides[get_identity_service] = lambda: identity
    yield TestClient(app)
    app.dependency_overrides.clear()
