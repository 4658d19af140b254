# diamond-wallet-backend/app/api/v1/endpoints/auth.py
"""
ログイン: code → openid / unionid
（独自トークンの発行はしない。プラットフォームのIDをそのまま返す）
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_identity_service
from app.schemas.auth import CodeExchangeRequest
from app.schemas.common import ApiResponse, envelope
from app.services.identity_service import IdentityService


router = APIRouter()


@router.post("/exchange", response_model=ApiResponse)
@router.post("/code2session", response_model=ApiResponse)
def exchange_code(
    req: CodeExchangeRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """ログインコードをプラットフォームのIDに交換"""
    identity = service.exchange_code(req.code, anonymous_code=req.anonymous_code)
    return envelope(True, identity)
