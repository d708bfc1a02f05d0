import sys
from pathlib import Path

import numpy as np
import pytest
from mesa import Model

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_amm.agents.pool import PoolAgent
from defi_amm.engine.liquidity import LiquidityLedger
from defi_amm.utils.errors import InvalidAmount, Overflow, SlippageExceeded
from defi_amm.utils.math_helpers import U64_MAX


@pytest.fixture
def pool():
    return PoolAgent(model=Model(), token_a_id="A", token_b_id="B")


@pytest.fixture
def ledger():
    return LiquidityLedger(model=None)


def test_first_deposit_mints_smaller_side(pool, ledger):
    assert ledger.add_liquidity(pool, 500, 300) == 300
    assert pool.get_reserves() == (500, 300)


def test_full_withdrawal_returns_everything(pool, ledger):
    ledger.add_liquidity(pool, 500, 300)
    assert ledger.remove_liquidity(pool, 300, 300) == (500, 300)
    assert pool.get_reserves() == (0, 0)


def test_follow_up_deposit_checks_ratio(pool, ledger):
    ledger.add_liquidity(pool, 1_000, 4_000)
    with pytest.raises(SlippageExceeded):
        ledger.add_liquidity(pool, 10, 39)
    assert pool.get_reserves() == (1_000, 4_000)
    assert ledger.add_liquidity(pool, 10, 40) == 10
    assert pool.get_reserves() == (1_010, 4_040)


def test_zero_deposit_rejected(pool, ledger):
    with pytest.raises(InvalidAmount):
        ledger.add_liquidity(pool, 0, 10)
    assert pool.get_reserves() == (0, 0)


def test_deposit_overflow_leaves_reserves(pool, ledger):
    pool.reserve_a, pool.reserve_b = U64_MAX - 5, U64_MAX - 5
    with pytest.raises(Overflow):
        ledger.add_liquidity(pool, 10, 10)
    assert pool.get_reserves() == (U64_MAX - 5, U64_MAX - 5)


def test_withdraw_beyond_balance_or_supply_rejected(pool, ledger):
    ledger.add_liquidity(pool, 500, 300)
    with pytest.raises(InvalidAmount):
        ledger.remove_liquidity(pool, 200, 300, lp_balance=100)
    with pytest.raises(InvalidAmount):
        ledger.remove_liquidity(pool, 301, 300)
    with pytest.raises(InvalidAmount):
        ledger.remove_liquidity(pool, 1, 0)
    assert pool.get_reserves() == (500, 300)


def test_withdrawals_of_all_claims_sum_to_reserves(pool, ledger):
    rng = np.random.default_rng(7)
    for _ in range(50):
        reserve_a = int(rng.integers(1, 10 ** 15))
        reserve_b = int(rng.integers(1, 10 ** 15))
        supply = int(rng.integers(1, 10 ** 9))
        pool.reserve_a, pool.reserve_b = reserve_a, reserve_b

        cuts = sorted(int(c) for c in rng.integers(0, supply, size=4))
        claims = [b - a for a, b in zip([0] + cuts, cuts + [supply]) if b - a > 0]

        total_a = total_b = 0
        remaining = supply
        for lp_amount in claims:
            out_a, out_b = ledger.remove_liquidity(pool, lp_amount, remaining)
            total_a += out_a
            total_b += out_b
            remaining -= lp_amount

        assert reserve_a - (len(claims) - 1) <= total_a <= reserve_a
        assert reserve_b - (len(claims) - 1) <= total_b <= reserve_b
        assert remaining == 0
