# diamond-wallet-backend/app/api/v1/endpoints/wallet.py
"""
ウォレット API エンドポイント
- 残高・今日の受取状況
- ダイヤ加算（daily_reward は1日1回・固定額）
- 加算履歴
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.api.deps import get_union_id, get_user_id, get_wallet_service
from app.schemas.common import ApiResponse, envelope
from app.schemas.wallet import AddDiamondsRequest
from app.services.wallet_service import WalletService


router = APIRouter()


@router.get("", response_model=ApiResponse)
def read_wallet(
    user_id: str = Depends(get_user_id),
    union_id: Optional[str] = Depends(get_union_id),
    service: WalletService = Depends(get_wallet_service),
):
    """残高と今日のデイリー受取状況を取得"""
    state = service.get_wallet_state(user_id, union_id=union_id)
    return envelope(True, state)


@router.post("/add", response_model=ApiResponse)
def add_diamonds(
    req: AddDiamondsRequest,
    user_id: str = Depends(get_user_id),
    union_id: Optional[str] = Depends(get_union_id),
    service: WalletService = Depends(get_wallet_service),
):
    """ダイヤを加算する（daily_reward の場合 amount は無視して固定額）"""
    result = service.grant_reward(
        user_id,
        amount=req.amount,
        reason=req.reason,
        source=req.source,
        union_id=union_id,
    )
    if not result.granted:
        # 受取済みはエラーではなく業務結果: 現在の状態を返す
        return envelope(
            False,
            result,
            code=result.code,
            message="daily reward already claimed today",
        )
    return envelope(True, result)


@router.get("/history", response_model=ApiResponse)
def read_history(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_user_id),
    service: WalletService = Depends(get_wallet_service),
):
    """加算履歴（新しい順）"""
    return envelope(True, service.get_history(user_id, limit=limit))
