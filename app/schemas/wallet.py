from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional


class CamelModel(BaseModel):
    """クライアント（小游戏 JS）向けに camelCase で入出力するベース"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WalletState(CamelModel):
    user_id: str
    union_id: Optional[str] = None
    diamonds: int = 0
    claimed_today: bool = False
    next_claim_at: str  # ISO8601文字列（翌日0時）
    last_claim_at: Optional[str] = None


class GrantResult(CamelModel):
    granted: bool
    code: str = "ok"  # ok / already_claimed
    coins_delta: int = 0
    diamonds: int = 0
    claimed_today: bool = False
    next_claim_at: str
    last_claim_at: Optional[str] = None
    reason: str = ""
    source: Optional[str] = None


# --- リクエストスキーマ ---
class AddDiamondsRequest(CamelModel):
    """ダイヤ加算リクエスト（daily_reward の時 amount は無視される）"""

    # 型チェックは daily_reward 以外の時だけ（サービス側の validate_amount）
    amount: Optional[Any] = None
    reason: Optional[str] = ""
    source: Optional[str] = None


class RewardEventOut(CamelModel):
    reason: str = ""
    source: Optional[str] = None
    amount: int
    created_at: Optional[str] = None


class WalletHistory(CamelModel):
    user_id: str
    events: List[RewardEventOut]
