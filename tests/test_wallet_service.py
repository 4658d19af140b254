import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest

from app.core.errors import InvalidInput, QuotaExceeded, StoreUnavailable
from app.services.balance_store import MemoryBalanceStore, SqlBalanceStore
from app.services.claim_ledger import MemoryClaimLedger, RedisClaimLedger
from app.services.quota_counter import MemoryQuotaCounter, RedisQuotaCounter
from app.services.wallet_service import WalletService, validate_amount
from app.utils.time_utils import ZONE, get_next_midnight

from tests.conftest import BrokenRedis


def test_new_user_has_empty_wallet(memory_service, fixed_now):
    state = memory_service.get_wallet_state("u1")
    assert state.diamonds == 0
    assert state.claimed_today is False
    assert state.last_claim_at is None
    assert state.next_claim_at == get_next_midnight(fixed_now).isoformat()


def test_wallet_state_requires_user_id(memory_service):
    with pytest.raises(InvalidInput):
        memory_service.get_wallet_state("")
    with pytest.raises(InvalidInput):
        memory_service.get_wallet_state("   ")


def test_daily_reward_granted_once_per_day(memory_service):
    first = memory_service.grant_reward("u1", amount=9999, reason="daily_reward")
    second = memory_service.grant_reward("u1", amount=9999, reason="daily_reward")

    assert first.granted is True
    assert first.coins_delta == 50
    assert first.diamonds == 50
    assert first.claimed_today is True
    assert first.last_claim_at is not None

    assert second.granted is False
    assert second.code == "already_claimed"
    assert second.coins_delta == 0
    assert second.diamonds == 50
    assert second.last_claim_at == first.last_claim_at

    assert memory_service.get_wallet_state("u1").diamonds == 50


def test_daily_reward_ignores_client_amount_even_if_invalid(memory_service):
    result = memory_service.grant_reward("u1", amount=-5, reason="daily_reward")
    assert result.granted is True
    assert result.coins_delta == 50


def test_daily_reward_available_again_next_day(memory_service, clock, fixed_now):
    memory_service.grant_reward("u1", reason="daily_reward")
    clock.now = fixed_now + timedelta(days=1)

    result = memory_service.grant_reward("u1", reason="daily_reward")
    assert result.granted is True
    assert result.diamonds == 100


def test_daily_reward_shows_in_wallet_state(memory_service):
    granted = memory_service.grant_reward("u1", reason="daily_reward", source="home")
    state = memory_service.get_wallet_state("u1")
    assert state.claimed_today is True
    assert state.last_claim_at == granted.last_claim_at
    assert granted.source == "home"


def test_task_grant_adds_exact_amount(memory_service):
    before = memory_service.get_wallet_state("u1").diamonds
    result = memory_service.grant_reward("u1", amount=30, reason="task", source="lvl-3")

    assert result.granted is True
    assert result.coins_delta == 30
    assert result.reason == "task"
    assert result.source == "lvl-3"
    assert result.claimed_today is False

    state = memory_service.get_wallet_state("u1")
    assert state.diamonds == before + 30
    assert state.claimed_today is False


def test_task_grant_does_not_block_daily_reward(memory_service):
    memory_service.grant_reward("u1", amount=30, reason="task")
    result = memory_service.grant_reward("u1", reason="daily_reward")
    assert result.granted is True
    assert result.diamonds == 80


@pytest.mark.parametrize("amount", [-5, 0, None, 2.5, math.inf, math.nan, True, "30"])
def test_invalid_amount_is_rejected_without_mutation(memory_service, amount):
    with pytest.raises(InvalidInput):
        memory_service.grant_reward("u1", amount=amount, reason="task")
    assert memory_service.get_wallet_state("u1").diamonds == 0


def test_whole_float_amount_is_accepted():
    assert validate_amount(30.0) == 30


def test_empty_reason_uses_client_amount(memory_service):
    result = memory_service.grant_reward("u1", amount=12, reason="")
    assert result.coins_delta == 12
    assert result.reason == ""


def test_daily_cap_rejects_excess(memory_service):
    memory_service.grant_reward("u1", amount=9000, reason="task")
    memory_service.grant_reward("u1", amount=1000, reason="task")

    with pytest.raises(QuotaExceeded):
        memory_service.grant_reward("u1", amount=1, reason="task")
    assert memory_service.get_wallet_state("u1").diamonds == 10000

    # デイリー報酬は上限の対象外
    assert memory_service.grant_reward("u1", reason="daily_reward").granted is True


def test_daily_cap_resets_next_day(memory_service, clock, fixed_now):
    memory_service.grant_reward("u1", amount=10000, reason="task")
    clock.now = fixed_now + timedelta(days=1)
    assert memory_service.grant_reward("u1", amount=10000, reason="task").diamonds == 20000


def test_cap_disabled_when_zero(clock):
    service = WalletService(
        balances=MemoryBalanceStore(),
        claims=MemoryClaimLedger(),
        quota=MemoryQuotaCounter(),
        clock=clock,
        daily_add_cap=0,
    )
    assert service.grant_reward("u1", amount=50000, reason="task").diamonds == 50000


def test_concurrent_daily_claims_have_single_winner(memory_service):
    n = 20
    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(
            pool.map(
                lambda _: memory_service.grant_reward(
                    "u1", amount=1000, reason="daily_reward"
                ),
                range(n),
            )
        )

    winners = [r for r in results if r.granted]
    losers = [r for r in results if not r.granted]
    assert len(winners) == 1
    assert len(losers) == n - 1
    assert all(r.code == "already_claimed" for r in losers)
    assert memory_service.get_wallet_state("u1").diamonds == 50


def test_concurrent_daily_claims_with_redis_ledger(clock, fake_redis):
    service = WalletService(
        balances=MemoryBalanceStore(),
        claims=RedisClaimLedger(fake_redis),
        quota=RedisQuotaCounter(fake_redis),
        clock=clock,
        daily_reward_amount=50,
    )
    n = 16
    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(
            pool.map(lambda _: service.grant_reward("u1", reason="daily_reward"), range(n))
        )
    assert sum(1 for r in results if r.granted) == 1
    assert service.get_wallet_state("u1").diamonds == 50


def test_concurrent_task_grants_all_apply(memory_service):
    with ThreadPoolExecutor(max_workers=10) as pool:
        list(
            pool.map(
                lambda _: memory_service.grant_reward("u1", amount=3, reason="task"),
                range(100),
            )
        )
    assert memory_service.get_wallet_state("u1").diamonds == 300


def test_persistent_stores_end_to_end(clock, fake_redis, session_factory):
    service = WalletService(
        balances=SqlBalanceStore(session_factory),
        claims=RedisClaimLedger(fake_redis),
        quota=RedisQuotaCounter(fake_redis),
        clock=clock,
        daily_reward_amount=50,
        daily_add_cap=100,
    )
    assert service.grant_reward("u1", reason="daily_reward").diamonds == 50
    assert service.grant_reward("u1", reason="daily_reward").granted is False
    assert service.grant_reward("u1", amount=30, reason="task").diamonds == 80
    with pytest.raises(QuotaExceeded):
        service.grant_reward("u1", amount=71, reason="task")

    history = service.get_history("u1", limit=10)
    assert [e.amount for e in history.events] == [30, 50]
    assert history.events[1].reason == "daily_reward"


def test_ledger_outage_leaves_balance_unchanged(clock):
    balances = MemoryBalanceStore()
    service = WalletService(
        balances=balances,
        claims=RedisClaimLedger(BrokenRedis()),
        quota=MemoryQuotaCounter(),
        clock=clock,
    )
    with pytest.raises(StoreUnavailable):
        service.grant_reward("u1", reason="daily_reward")
    with pytest.raises(StoreUnavailable):
        service.grant_reward("u1", amount=10, reason="task")
    assert balances.get("u1") == 0


class FailingBalanceStore(MemoryBalanceStore):
    def increment(self, user_id, delta, reason="", source=None, union_id=None):
        raise StoreUnavailable("balance store unavailable")


def test_balance_outage_releases_quota_reservation(clock):
    quota = MemoryQuotaCounter()
    service = WalletService(
        balances=FailingBalanceStore(),
        claims=MemoryClaimLedger(),
        quota=quota,
        clock=clock,
        daily_add_cap=100,
    )
    with pytest.raises(StoreUnavailable):
        service.grant_reward("u1", amount=100, reason="task")
    # 払い戻されているので上限いっぱいまで予約できる
    assert quota.reserve("u1", "2026-10-17", 100, 100, 60) == 100


def test_balance_outage_after_claim_never_duplicates(clock):
    claims = MemoryClaimLedger()
    service = WalletService(
        balances=FailingBalanceStore(),
        claims=claims,
        quota=MemoryQuotaCounter(),
        clock=clock,
    )
    with pytest.raises(StoreUnavailable):
        service.grant_reward("u1", reason="daily_reward")
    # 受取記録は残る（付与は失われるが二重付与はしない）
    assert claims.peek("u1", "2026-10-17") is not None


def test_history_limit_is_clamped(memory_service):
    for _ in range(3):
        memory_service.grant_reward("u1", amount=1, reason="task")
    assert len(memory_service.get_history("u1", limit=0).events) == 1
    assert len(memory_service.get_history("u1", limit=500).events) == 3


class SteppingClock:
    """呼ばれるたびに次の時刻を返す時計"""

    def __init__(self, *moments):
        self.moments = list(moments)

    def __call__(self):
        if len(self.moments) > 1:
            return self.moments.pop(0)
        return self.moments[0]


def test_already_claimed_reports_the_claimed_day_across_midnight():
    before_midnight = ZONE.localize(datetime(2026, 10, 17, 23, 59, 59))
    after_midnight = ZONE.localize(datetime(2026, 10, 18, 0, 0, 1))
    claims = MemoryClaimLedger()
    claims.try_claim("u1", "2026-10-17", 60, "claimed-17")
    service = WalletService(
        balances=MemoryBalanceStore(),
        claims=claims,
        clock=SteppingClock(before_midnight, after_midnight),
    )

    result = service.grant_reward("u1", reason="daily_reward")
    assert result.granted is False
    assert result.claimed_today is True
    assert result.last_claim_at == "claimed-17"


def test_user_id_whitespace_is_trimmed(memory_service):
    memory_service.grant_reward(" u1 ", amount=10, reason="task")
    assert memory_service.get_wallet_state("u1").diamonds == 10
    assert memory_service.get_wallet_state("u1 ").user_id == "u1"


def test_union_id_is_stored_on_grant(memory_service):
    memory_service.grant_reward("u1", amount=10, reason="task", union_id="union-1")
    assert memory_service.get_wallet_state("u1").union_id == "union-1"
    # ヘッダーで届いた値が優先
    assert memory_service.get_wallet_state("u1", union_id="union-2").union_id == "union-2"


def test_union_id_is_persisted_in_database(clock, session_factory):
    service = WalletService(
        balances=SqlBalanceStore(session_factory),
        claims=MemoryClaimLedger(),
        clock=clock,
    )
    service.grant_reward("u1", reason="daily_reward", union_id="union-1")
    service.grant_reward("u1", amount=5, reason="task")
    assert service.get_wallet_state("u1").union_id == "union-1"
