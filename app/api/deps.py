# diamond-wallet-backend/app/api/deps.py
"""
エンドポイント共通の依存関係
- ウォレットサービス（ストアの組み立て）
- ユーザーID（query / header）
"""

from functools import lru_cache
from typing import Optional

from fastapi import Header, Query

from app.core.config import settings
from app.core.errors import InvalidInput
from app.services.balance_store import MemoryBalanceStore, SqlBalanceStore
from app.services.claim_ledger import MemoryClaimLedger, RedisClaimLedger
from app.services.identity_service import IdentityService
from app.services.quota_counter import MemoryQuotaCounter, RedisQuotaCounter
from app.services.wallet_service import WalletService


def build_wallet_service() -> WalletService:
    """WALLET_STORE に応じてストアを組み立てる"""
    if settings.WALLET_STORE == "memory":
        print("⚠️ Using in-memory wallet store (single instance only).")
        return WalletService(
            balances=MemoryBalanceStore(),
            claims=MemoryClaimLedger(),
            quota=MemoryQuotaCounter(),
        )

    if not settings.REDIS_URL:
        raise RuntimeError("REDIS_URL is required when WALLET_STORE=persistent")

    import redis
    from app.db.database import SessionLocal

    client = redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.STORE_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.STORE_TIMEOUT_SECONDS,
    )
    print("✅ Using persistent wallet store (database + redis).")
    return WalletService(
        balances=SqlBalanceStore(SessionLocal),
        claims=RedisClaimLedger(client),
        quota=RedisQuotaCounter(client),
    )


@lru_cache()
def get_wallet_service() -> WalletService:
    return build_wallet_service()


@lru_cache()
def get_identity_service() -> IdentityService:
    return IdentityService()


def get_user_id(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    x_tt_openid: Optional[str] = Header(default=None),
) -> str:
    """
    デプロイ形態によって userId はクエリかヘッダー(x-tt-openid)で届く。
    USER_ID_SOURCE=any の場合はクエリを優先。
    """
    source = settings.USER_ID_SOURCE
    if source == "query":
        candidate = user_id
    elif source == "header":
        candidate = x_tt_openid
    else:
        candidate = user_id or x_tt_openid

    if not candidate or not candidate.strip():
        raise InvalidInput(f"missing userId (query userId or {settings.OPENID_HEADER})")
    return candidate


def get_union_id(x_tt_unionid: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_tt_unionid or None
