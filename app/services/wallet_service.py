# diamond-wallet-backend/app/services/wallet_service.py
"""
ダイヤ ウォレットのビジネスロジック

- 残高と今日の受取状況の取得
- デイリー報酬（1日1回、サーバー側の固定額）
- それ以外の加算（クライアント指定額、1日の累計上限あり）

デイリー報酬は「受取記録の条件付き書き込み → 残高加算」の順で行う。
書き込みに勝ったリクエストだけが加算するので、同時に来ても付与は1回だけ。
加算前に落ちた場合はその日の付与が失われるだけで、二重付与にはならない。
"""

import math
from datetime import datetime
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import InvalidInput, QuotaExceeded, StoreUnavailable
from app.schemas.wallet import GrantResult, RewardEventOut, WalletHistory, WalletState
from app.utils.time_utils import (
    get_day_bucket,
    get_next_midnight,
    get_zone_now,
    seconds_until_midnight,
    to_zone,
)

MAX_USER_ID_LENGTH = 255
MAX_HISTORY_LIMIT = 100


def validate_user_id(user_id: Optional[str]) -> str:
    if user_id is None or not str(user_id).strip():
        raise InvalidInput("missing userId")
    # 前後の空白で別のウォレットにならないように
    user_id = str(user_id).strip()
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidInput("userId is too long")
    return user_id


def validate_amount(amount) -> int:
    """正の有限な整数値のみ許可（30.0 は 30 として扱う）"""
    if amount is None:
        raise InvalidInput("missing amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidInput("amount must be a number")
    if isinstance(amount, float):
        if not math.isfinite(amount):
            raise InvalidInput("amount must be finite")
        if not amount.is_integer():
            raise InvalidInput("amount must be a whole number of diamonds")
        amount = int(amount)
    if amount <= 0:
        raise InvalidInput("amount must be positive")
    return amount


class WalletService:
    def __init__(
        self,
        balances,
        claims,
        quota=None,
        clock: Callable[[], datetime] = get_zone_now,
        daily_reward_amount: int = settings.DAILY_REWARD_AMOUNT,
        daily_add_cap: int = settings.DAILY_ADD_CAP,
        daily_reason: str = settings.DAILY_REWARD_REASON,
    ):
        self.balances = balances
        self.claims = claims
        self.quota = quota
        self.clock = clock
        self.daily_reward_amount = daily_reward_amount
        self.daily_add_cap = daily_add_cap
        self.daily_reason = daily_reason

    def get_wallet_state(
        self, user_id: str, union_id: Optional[str] = None
    ) -> WalletState:
        """残高と今日の受取状況（副作用なし）"""
        user_id = validate_user_id(user_id)
        return self._state_at(user_id, self.clock(), union_id)

    def _state_at(
        self, user_id: str, now: datetime, union_id: Optional[str] = None
    ) -> WalletState:
        day = get_day_bucket(now)
        diamonds = self.balances.get(user_id)
        last_claim_at = self.claims.peek(user_id, day)
        # ヘッダーが無ければ加算時に保存した unionid を返す
        union_id = union_id or self.balances.get_union_id(user_id)

        return WalletState(
            user_id=user_id,
            union_id=union_id,
            diamonds=diamonds,
            claimed_today=last_claim_at is not None,
            next_claim_at=get_next_midnight(now).isoformat(),
            last_claim_at=last_claim_at,
        )

    def grant_reward(
        self,
        user_id: str,
        amount=None,
        reason: Optional[str] = "",
        source: Optional[str] = None,
        union_id: Optional[str] = None,
    ) -> GrantResult:
        user_id = validate_user_id(user_id)
        reason = reason or ""
        union_id = union_id or None

        if reason == self.daily_reason:
            return self._grant_daily(user_id, source, union_id)
        return self._grant_amount(
            user_id, validate_amount(amount), reason, source, union_id
        )

    def _grant_daily(
        self, user_id: str, source: Optional[str], union_id: Optional[str]
    ) -> GrantResult:
        # クライアントの amount は使わない（サーバー側の固定額のみ）
        now = self.clock()
        day = get_day_bucket(now)
        next_claim_at = get_next_midnight(now).isoformat()
        claimed_at = to_zone(now).isoformat()

        won = self.claims.try_claim(
            user_id, day, seconds_until_midnight(now), claimed_at
        )
        if not won:
            # 同じ now で読む（0時をまたいでも受取済みの日の記録を返す）
            state = self._state_at(user_id, now, union_id)
            return GrantResult(
                granted=False,
                code="already_claimed",
                coins_delta=0,
                diamonds=state.diamonds,
                claimed_today=True,
                next_claim_at=next_claim_at,
                last_claim_at=state.last_claim_at,
                reason=self.daily_reason,
                source=source,
            )

        diamonds = self.balances.increment(
            user_id, self.daily_reward_amount, self.daily_reason, source, union_id
        )
        print(f"✅ Daily reward +{self.daily_reward_amount} for {user_id} ({day})")
        return GrantResult(
            granted=True,
            coins_delta=self.daily_reward_amount,
            diamonds=diamonds,
            claimed_today=True,
            next_claim_at=next_claim_at,
            last_claim_at=claimed_at,
            reason=self.daily_reason,
            source=source,
        )

    def _grant_amount(
        self,
        user_id: str,
        delta: int,
        reason: str,
        source: Optional[str],
        union_id: Optional[str],
    ) -> GrantResult:
        now = self.clock()
        day = get_day_bucket(now)
        # 加算後に読むと、読み込み失敗で「加算済みなのにエラー」になるので先に読む
        last_claim_at = self.claims.peek(user_id, day)

        capped = self.quota is not None and self.daily_add_cap > 0
        if capped:
            total = self.quota.reserve(
                user_id, day, delta, self.daily_add_cap, seconds_until_midnight(now)
            )
            if total is None:
                raise QuotaExceeded(
                    f"daily limit of {self.daily_add_cap} diamonds reached"
                )

        try:
            diamonds = self.balances.increment(
                user_id, delta, reason, source, union_id
            )
        except StoreUnavailable:
            if capped:
                self.quota.release(user_id, day, delta)
            raise

        return GrantResult(
            granted=True,
            coins_delta=delta,
            diamonds=diamonds,
            claimed_today=last_claim_at is not None,
            next_claim_at=get_next_midnight(now).isoformat(),
            last_claim_at=last_claim_at,
            reason=reason,
            source=source,
        )

    def get_history(self, user_id: str, limit: int = 20) -> WalletHistory:
        """加算の履歴（新しい順）"""
        user_id = validate_user_id(user_id)
        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        events = self.balances.history(user_id, limit)
        return WalletHistory(
            user_id=user_id,
            events=[RewardEventOut(**e) for e in events],
        )
