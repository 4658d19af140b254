# diamond-wallet-backend/app/services/identity_service.py
"""
抖音 code2session（ログインコード → openid / unionid）

旧形式: { openid, unionid?, session_key, errcode?, errmsg? }
v2形式: { err_no, err_tips, data: { openid, unionid?, session_key } }
どちらの形でも受け付ける。失敗時は状態を一切変更しない。
"""

from typing import Optional

import httpx

from app.core.config import settings
from app.core.errors import IdentityResolutionFailed, InvalidInput
from app.schemas.auth import PlatformIdentity

DEFAULT_FAILURE_MESSAGE = "code2session failed"


class IdentityService:
    def __init__(
        self,
        app_id: str = settings.DOUYIN_APP_ID,
        app_secret: str = settings.DOUYIN_APP_SECRET,
        url: str = settings.CODE2SESSION_URL,
        timeout: float = settings.IDENTITY_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.url = url
        self.timeout = timeout
        # テストでは httpx.MockTransport を渡す
        self.transport = transport

    def exchange_code(
        self, code: Optional[str], anonymous_code: Optional[str] = None
    ) -> PlatformIdentity:
        if not code:
            raise InvalidInput("missing code")

        params = {
            "appid": self.app_id,
            "secret": self.app_secret,
            "code": code,
            "grant_type": "authorization_code",
        }
        if anonymous_code:
            params["anonymous_code"] = anonymous_code

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.get(self.url, params=params)
        except httpx.HTTPError as e:
            print(f"⚠️ code2session request failed: {e}")
            raise IdentityResolutionFailed(DEFAULT_FAILURE_MESSAGE) from e

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            print(f"⚠️ code2session returned non-JSON body (status {resp.status_code})")
            raise IdentityResolutionFailed(DEFAULT_FAILURE_MESSAGE)

        return self._parse(payload, resp.status_code)

    def _parse(self, payload: dict, status_code: int) -> PlatformIdentity:
        # v2形式は data の中に openid が入っている
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        error_code = payload.get("errcode") or payload.get("err_no") or payload.get("error")
        message = payload.get("errmsg") or payload.get("err_tips") or DEFAULT_FAILURE_MESSAGE
        openid = body.get("openid")

        if status_code >= 400 or error_code or not openid:
            print(f"⚠️ code2session rejected: {error_code} {message}")
            raise IdentityResolutionFailed(message)

        return PlatformIdentity(openid=openid, unionid=body.get("unionid") or None)
