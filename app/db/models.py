from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
)
from sqlalchemy.sql import func
from app.db.database import Base


# --- 1. Wallet Model ---
class Wallet(Base):
    __tablename__ = "wallets"

    # openid（アプリ単位のID）をそのままキーにする
    # MySQLではStringに長さ指定が必須 (特にindex/uniqueをつける場合)
    user_id = Column(String(255), primary_key=True)
    union_id = Column(String(255), nullable=True)

    # ダイヤ残高: 加算のみ（任意の値で上書きしない）
    diamonds = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# --- 2. RewardEvent Model (加算の台帳) ---
class RewardEvent(Base):
    __tablename__ = "reward_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), index=True, nullable=False)
    reason = Column(String(64), nullable=False, default="")  # daily_reward / task ...
    source = Column(String(255), nullable=True)
    amount = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
