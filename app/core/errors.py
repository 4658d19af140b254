# diamond-wallet-backend/app/core/errors.py
"""
ウォレット処理のエラー定義

kind はレスポンスの code にそのまま使う（snake_case）。
AlreadyClaimed はエラーではなく業務結果なのでここには無い（GrantResult を参照）。
"""


class WalletError(Exception):
    kind = "wallet_error"
    status_code = 500

    def __init__(self, message: str, data=None):
        super().__init__(message)
        self.message = message
        self.data = data


class InvalidInput(WalletError):
    """userId / amount などの入力不正（ストアに触れる前に弾く）"""

    kind = "invalid_input"
    status_code = 400


class QuotaExceeded(WalletError):
    """デイリー以外の加算が1日の上限を超えた"""

    kind = "quota_exceeded"
    status_code = 429


class IdentityResolutionFailed(WalletError):
    """code2session の失敗（上流のメッセージをそのまま載せる）"""

    kind = "identity_resolution_failed"
    status_code = 502


class StoreUnavailable(WalletError):
    """DB / Redis に到達できない。内部リトライはしない"""

    kind = "store_unavailable"
    status_code = 503
