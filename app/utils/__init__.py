# diamond-wallet-backend/app/utils/__init__.py
"""
ユーティリティモジュール
"""

from .time_utils import (
    get_zone_now,
    to_zone,
    get_day_bucket,
    get_next_midnight,
    seconds_until_midnight,
    ZONE,
)
