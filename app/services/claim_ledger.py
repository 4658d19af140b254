# diamond-wallet-backend/app/services/claim_ledger.py
"""
デイリー受取の記録（Claim Ledger）

- try_claim(user_id, day, ttl_seconds, claimed_at): キーが無い時だけ作成（勝ったら True）
- peek(user_id, day): 受取時刻（ISO8601）か None。書き込みはしない

読んでから書く（check-then-set）と二重付与の競合が起きるので、
必ず一発の条件付き書き込み (SET NX EX) で判定する。
"""

import threading
import time
from typing import Dict, Optional, Tuple

from redis.exceptions import RedisError

from app.core.errors import StoreUnavailable

K_CLAIM = "wallet:claim:{day}:{user_id}"


def claim_key(user_id: str, day: str) -> str:
    return K_CLAIM.format(day=day, user_id=user_id)


class RedisClaimLedger:
    def __init__(self, client):
        self._client = client

    def try_claim(
        self, user_id: str, day: str, ttl_seconds: int, claimed_at: str
    ) -> bool:
        try:
            created = self._client.set(
                claim_key(user_id, day), claimed_at, nx=True, ex=ttl_seconds
            )
        except RedisError as e:
            print(f"⚠️ Claim write failed: {e}")
            raise StoreUnavailable("claim ledger unavailable") from e
        return bool(created)

    def peek(self, user_id: str, day: str) -> Optional[str]:
        try:
            return self._client.get(claim_key(user_id, day))
        except RedisError as e:
            print(f"⚠️ Claim read failed: {e}")
            raise StoreUnavailable("claim ledger unavailable") from e


class MemoryClaimLedger:
    """プロセス内の受取記録（期限付き）"""

    def __init__(self, monotonic=time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._monotonic = monotonic

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._monotonic():
            del self._entries[key]
            return None
        return value

    def try_claim(
        self, user_id: str, day: str, ttl_seconds: int, claimed_at: str
    ) -> bool:
        key = claim_key(user_id, day)
        with self._lock:
            # 前日分と期限切れは二度と読まれないので捨てる
            today_prefix = claim_key("", day)
            now = self._monotonic()
            for stale in [
                k
                for k, (_, expires_at) in self._entries.items()
                if not k.startswith(today_prefix) or expires_at <= now
            ]:
                del self._entries[stale]
            if self._live_value(key) is not None:
                return False
            self._entries[key] = (claimed_at, self._monotonic() + ttl_seconds)
            return True

    def peek(self, user_id: str, day: str) -> Optional[str]:
        with self._lock:
            return self._live_value(claim_key(user_id, day))
