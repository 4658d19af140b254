from pydantic import BaseModel
from typing import Optional

from app.schemas.wallet import CamelModel


class CodeExchangeRequest(BaseModel):
    code: Optional[str] = None
    anonymous_code: Optional[str] = None


class PlatformIdentity(CamelModel):
    """code2session の結果（session_key はクライアントに返さない）"""

    openid: str
    unionid: Optional[str] = None
