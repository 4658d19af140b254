from pydantic import BaseModel
from typing import Any, Optional


class ApiResponse(BaseModel):
    """全エンドポイント共通のレスポンス"""

    success: bool
    code: str = "ok"
    message: str = ""
    data: Optional[Any] = None


def envelope(success: bool, data=None, code: str = "ok", message: str = "") -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    return ApiResponse(
        success=success, code=code, message=message, data=data
    ).model_dump()
