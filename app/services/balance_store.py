# diamond-wallet-backend/app/services/balance_store.py
"""
ダイヤ残高ストア

- get(user_id): 残高（未登録なら0）
- increment(user_id, delta): 原子的に加算して新しい残高を返す（無ければ作成）
  union_id が渡されたら一緒に保存する
- get_union_id(user_id): 保存済みの unionid
- history(user_id, limit): 加算の台帳（新しい順）

SqlBalanceStore: 本番用（SQLAlchemy）。UPDATE diamonds = diamonds + delta で
ロストアップデートを防ぐ。
MemoryBalanceStore: 単一インスタンス用。Lock 付きの dict。
"""

import threading
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.errors import StoreUnavailable
from app.db import models
from app.utils.time_utils import get_zone_now

# INSERT が同時実行で衝突した場合のやり直し回数
MAX_UPSERT_ATTEMPTS = 3


def _event_dict(event) -> Dict[str, Any]:
    created_at = event.created_at
    return {
        "reason": event.reason or "",
        "source": event.source,
        "amount": event.amount,
        "created_at": created_at.isoformat() if created_at else None,
    }


class SqlBalanceStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def get(self, user_id: str) -> int:
        db = self._session_factory()
        try:
            diamonds = db.execute(
                select(models.Wallet.diamonds).where(models.Wallet.user_id == user_id)
            ).scalar_one_or_none()
            return diamonds or 0
        except SQLAlchemyError as e:
            print(f"⚠️ Balance read failed: {e}")
            raise StoreUnavailable("balance store unavailable") from e
        finally:
            db.close()

    def get_union_id(self, user_id: str) -> Optional[str]:
        db = self._session_factory()
        try:
            return db.execute(
                select(models.Wallet.union_id).where(models.Wallet.user_id == user_id)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            print(f"⚠️ Union id read failed: {e}")
            raise StoreUnavailable("balance store unavailable") from e
        finally:
            db.close()

    def increment(
        self,
        user_id: str,
        delta: int,
        reason: str = "",
        source: Optional[str] = None,
        union_id: Optional[str] = None,
    ) -> int:
        """残高に delta を加算し、台帳にも記録する（1トランザクション）"""
        db = self._session_factory()
        try:
            for attempt in range(MAX_UPSERT_ATTEMPTS):
                try:
                    values = {"diamonds": models.Wallet.diamonds + delta}
                    if union_id:
                        values["union_id"] = union_id
                    result = db.execute(
                        update(models.Wallet)
                        .where(models.Wallet.user_id == user_id)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        # 初回: 行が無いので作成（他リクエストと競合したらやり直し）
                        db.add(
                            models.Wallet(
                                user_id=user_id, union_id=union_id, diamonds=delta
                            )
                        )
                        db.flush()

                    db.add(
                        models.RewardEvent(
                            user_id=user_id,
                            reason=reason or "",
                            source=source,
                            amount=delta,
                            created_at=get_zone_now(),
                        )
                    )
                    db.flush()
                    # 自分の UPDATE で行ロックを持っている間に読む
                    diamonds = db.execute(
                        select(models.Wallet.diamonds).where(
                            models.Wallet.user_id == user_id
                        )
                    ).scalar_one()
                    db.commit()
                    return diamonds
                except IntegrityError:
                    db.rollback()
            raise StoreUnavailable("balance upsert kept conflicting")
        except SQLAlchemyError as e:
            db.rollback()
            print(f"⚠️ Balance increment failed: {e}")
            raise StoreUnavailable("balance store unavailable") from e
        finally:
            db.close()

    def history(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        db = self._session_factory()
        try:
            events = (
                db.query(models.RewardEvent)
                .filter(models.RewardEvent.user_id == user_id)
                .order_by(models.RewardEvent.id.desc())
                .limit(limit)
                .all()
            )
            return [_event_dict(e) for e in events]
        except SQLAlchemyError as e:
            print(f"⚠️ History read failed: {e}")
            raise StoreUnavailable("balance store unavailable") from e
        finally:
            db.close()


class _MemoryEvent:
    def __init__(self, reason, source, amount, created_at):
        self.reason = reason
        self.source = source
        self.amount = amount
        self.created_at = created_at


class MemoryBalanceStore:
    """プロセス内の残高（マルチインスタンスでは使わないこと）"""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._events: Dict[str, List[_MemoryEvent]] = {}
        self._union_ids: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> int:
        with self._lock:
            return self._balances.get(user_id, 0)

    def get_union_id(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._union_ids.get(user_id)

    def increment(
        self,
        user_id: str,
        delta: int,
        reason: str = "",
        source: Optional[str] = None,
        union_id: Optional[str] = None,
    ) -> int:
        with self._lock:
            if union_id:
                self._union_ids[user_id] = union_id
            new_balance = self._balances.get(user_id, 0) + delta
            self._balances[user_id] = new_balance
            self._events.setdefault(user_id, []).append(
                _MemoryEvent(reason or "", source, delta, get_zone_now())
            )
            return new_balance

    def history(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            events = list(self._events.get(user_id, []))
        return [_event_dict(e) for e in reversed(events[-limit:])]
