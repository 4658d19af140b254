# diamond-wallet-backend/app/services/quota_counter.py
"""
デイリー以外の加算の1日上限カウンタ

reserve(user_id, day, delta, cap, ttl_seconds) -> 加算後の合計 or None（上限超過）
release(user_id, day, delta)                   -> 残高加算に失敗した時の払い戻し
"""

import threading
from typing import Dict, Optional

from redis.exceptions import RedisError

from app.core.errors import StoreUnavailable

K_ADDED = "wallet:added:{day}:{user_id}"

# チェックと加算を1回の原子的操作で行う（TOCTOU対策）
RESERVE_SCRIPT = """
    local key = KEYS[1]
    local delta = tonumber(ARGV[1])
    local cap = tonumber(ARGV[2])
    local ttl = tonumber(ARGV[3])

    local current = tonumber(redis.call('GET', key)) or 0
    if current + delta > cap then
        return -1
    end

    local total = redis.call('INCRBY', key, delta)
    redis.call('EXPIRE', key, ttl)
    return total
"""


def added_key(user_id: str, day: str) -> str:
    return K_ADDED.format(day=day, user_id=user_id)


class RedisQuotaCounter:
    def __init__(self, client):
        self._client = client

    def reserve(
        self, user_id: str, day: str, delta: int, cap: int, ttl_seconds: int
    ) -> Optional[int]:
        try:
            total = self._client.eval(
                RESERVE_SCRIPT, 1, added_key(user_id, day), delta, cap, ttl_seconds
            )
        except RedisError as e:
            print(f"⚠️ Quota reserve failed: {e}")
            raise StoreUnavailable("quota counter unavailable") from e
        total = int(total)
        return None if total < 0 else total

    def release(self, user_id: str, day: str, delta: int) -> None:
        try:
            self._client.decrby(added_key(user_id, day), delta)
        except RedisError as e:
            print(f"⚠️ Quota release failed: {e}")


class MemoryQuotaCounter:
    def __init__(self):
        self._totals: Dict[str, int] = {}
        self._lock = threading.Lock()

    def reserve(
        self, user_id: str, day: str, delta: int, cap: int, ttl_seconds: int
    ) -> Optional[int]:
        key = added_key(user_id, day)
        with self._lock:
            # 前日分は不要なので捨てる
            for stale in [k for k in self._totals if not k.startswith(f"wallet:added:{day}:")]:
                del self._totals[stale]
            current = self._totals.get(key, 0)
            if current + delta > cap:
                return None
            self._totals[key] = current + delta
            return current + delta

    def release(self, user_id: str, day: str, delta: int) -> None:
        key = added_key(user_id, day)
        with self._lock:
            if key in self._totals:
                self._totals[key] = max(0, self._totals[key] - delta)
