# diamond-wallet-backend/app/utils/time_utils.py
"""
固定タイムゾーンの日付関連ユーティリティ関数
（UTCでもサーバーローカルでもなく、設定されたゾーンで「今日」を決める）
"""

import math
from datetime import datetime, time, timedelta
from pytz import timezone as tz

from app.core.config import settings

ZONE = tz(settings.WALLET_TIMEZONE)


def get_zone_now() -> datetime:
    """設定タイムゾーンの現在時刻を取得"""
    return datetime.now(ZONE)


def to_zone(dt: datetime) -> datetime:
    """日時を設定タイムゾーンに変換（naive はゾーンのローカル時刻とみなす）"""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(ZONE)
    return ZONE.localize(dt)


def get_day_bucket(now: datetime = None) -> str:
    """日付バケット (YYYY-MM-DD)"""
    if now is None:
        now = get_zone_now()
    return to_zone(now).date().isoformat()


def get_next_midnight(now: datetime = None) -> datetime:
    """翌日0時（設定タイムゾーン）"""
    if now is None:
        now = get_zone_now()
    tomorrow = to_zone(now).date() + timedelta(days=1)
    # pytz は replace(tzinfo=...) だとLMTになるので localize を使う
    return ZONE.localize(datetime.combine(tomorrow, time.min))


def seconds_until_midnight(now: datetime = None) -> int:
    """翌日0時までの秒数（切り上げ、最低1秒）"""
    if now is None:
        now = get_zone_now()
    remaining = (get_next_midnight(now) - to_zone(now)).total_seconds()
    return max(1, math.ceil(remaining))
