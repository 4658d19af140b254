# diamond-wallet-backend/app/core/config.py

import os
from dotenv import load_dotenv

# .envファイルを読み込む（ローカル開発用）
# 本番環境（Cloud Runなど）ではファイルがないため無視されます
load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


class Settings:
    # API設定
    API_V1_STR: str = "/api/v1"

    # ストア設定
    # memory: 単一インスタンス用（プロセス内）、persistent: DB + Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "").strip()
    WALLET_STORE: str = os.getenv(
        "WALLET_STORE", "persistent" if REDIS_URL else "memory"
    ).lower()
    STORE_TIMEOUT_SECONDS: float = _float_env("STORE_TIMEOUT_SECONDS", 2.0)

    # DB設定
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./wallet.db")
    DB_USER: str = os.getenv("DB_USER", "root")
    # .envではDB_PASSとなっているため、ここで名前を合わせて読み込みます
    DB_PASSWORD: str = os.getenv("DB_PASS", "password")
    # Cloud SQL接続名（設定されている場合のみコネクタ経由で接続）
    DB_INSTANCE: str = os.getenv("INSTANCE_CONNECTION_NAME", "")
    DB_NAME: str = os.getenv("DB_NAME", "wallet")

    # 日付の境界（デイリー判定）に使うタイムゾーン
    WALLET_TIMEZONE: str = os.getenv("WALLET_TIMEZONE", "Asia/Shanghai")

    # ダイヤ報酬関連
    DAILY_REWARD_REASON: str = "daily_reward"
    DAILY_REWARD_AMOUNT: int = _int_env("DAILY_REWARD_AMOUNT", 50)
    # デイリー以外の加算の1日上限（0で無効）
    DAILY_ADD_CAP: int = _int_env("DAILY_ADD_CAP", 10000)

    # ユーザーIDの受け取り方: query / header / any
    USER_ID_SOURCE: str = os.getenv("USER_ID_SOURCE", "any").lower()
    OPENID_HEADER: str = "x-tt-openid"
    UNIONID_HEADER: str = "x-tt-unionid"

    # 抖音 小游戏 (code2session)
    DOUYIN_APP_ID: str = os.getenv("DOUYIN_APP_ID", "")
    DOUYIN_APP_SECRET: str = os.getenv("DOUYIN_APP_SECRET", "")
    CODE2SESSION_URL: str = os.getenv(
        "CODE2SESSION_URL", "https://developer.toutiao.com/api/apps/jscode2session"
    )
    IDENTITY_TIMEOUT_SECONDS: float = _float_env("IDENTITY_TIMEOUT_SECONDS", 5.0)

    # CORS設定
    CORS_ORIGINS: list = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
    ]

    # DEBUG mode
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"


# 設定インスタンスを作成してエクスポート
settings = Settings()
