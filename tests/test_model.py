import sys
import threading
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_amm.agents.token_ledger import LedgerError
from defi_amm.agents.trader import TraderAgent
from defi_amm.models.amm_model import AMMModel
from defi_amm.utils.errors import InvalidAmount, PoolEmpty, SlippageExceeded
from defi_amm.utils.records import encode_pool


@pytest.fixture
def model():
    model = AMMModel()
    model.fund("lp", "A", 10_000_000)
    model.fund("lp", "B", 10_000_000)
    model.fund("alice", "A", 200_000)
    model.fund("alice", "B", 200_000)
    return model


@pytest.fixture
def seeded(model):
    pool = model.create_pool("A", "B")
    model.add_liquidity(pool, 1_000_000, 1_000_000, provider="lp")
    return model, pool


def balance(model, asset, holder):
    return model.token_ledger.get_token_balance(asset, holder)


def test_reference_swap_end_to_end(seeded):
    model, pool = seeded
    result = model.swap(pool, 1000, "A", 996, trader="alice")

    assert result.amount_out == 996
    assert result.protocol_fee_delta == 0
    assert result.lp_fee == 3
    assert (result.input_asset, result.output_asset) == ("A", "B")
    assert pool.get_reserves() == (1_001_000, 999_004)
    assert balance(model, "A", "alice") == 199_000
    assert balance(model, "B", "alice") == 200_996
    assert balance(model, "A", pool.vault_a) == 1_001_000
    assert balance(model, "B", pool.vault_b) == 999_004

    name, payload = model.token_ledger.get_events()[-1]
    assert name == "SwapEvent"
    assert payload["user"] == "alice"
    assert (payload["amount_in"], payload["amount_out"]) == (1000, 996)


def test_protocol_fee_reaches_treasury_and_stays_in_vault(seeded):
    model, pool = seeded
    result = model.swap(pool, 100_000, "A", trader="alice")

    assert result.amount_out == 90_661
    assert result.protocol_fee_delta == 60
    assert model.treasury.total_fees_collected == 60
    assert pool.reserve_a == 1_000_000 + 99_700 + 240
    # vault holds reserves plus the protocol share
    assert balance(model, "A", pool.vault_a) == pool.reserve_a + 60


def test_swap_b_to_a_uses_token_b_vault(seeded):
    model, pool = seeded
    result = model.swap(pool, 1000, "B", trader="alice")
    assert (result.input_asset, result.output_asset) == ("B", "A")
    assert pool.get_reserves() == (999_004, 1_001_000)
    assert balance(model, "A", "alice") == 200_996


def test_zero_amount_rejected_regardless_of_state(model):
    pool = model.create_pool("A", "B")
    with pytest.raises(InvalidAmount):
        model.swap(pool, 0, "A", trader="alice")
    model.add_liquidity(pool, 1_000, 1_000, provider="lp")
    with pytest.raises(InvalidAmount):
        model.swap(pool, 0, "A", trader="alice")


def test_empty_pool_rejected(model):
    pool = model.create_pool("A", "B")
    with pytest.raises(PoolEmpty):
        model.swap(pool, 1000, "A", trader="alice")
    assert balance(model, "A", "alice") == 200_000


def test_slippage_failure_changes_nothing(seeded):
    model, pool = seeded
    events_before = len(model.token_ledger.get_events())
    with pytest.raises(SlippageExceeded):
        model.swap(pool, 1000, "A", 997, trader="alice")
    assert pool.get_reserves() == (1_000_000, 1_000_000)
    assert balance(model, "A", "alice") == 200_000
    assert len(model.token_ledger.get_events()) == events_before
    assert model.metrics["failed_swaps"] == 1


def test_failed_transfer_rolls_back_pool_and_treasury(seeded):
    model, pool = seeded
    model.fund("bob", "A", 500)
    with pytest.raises(LedgerError):
        model.swap(pool, 100_000, "A", trader="bob")
    assert pool.get_reserves() == (1_000_000, 1_000_000)
    assert model.treasury.total_fees_collected == 0
    assert balance(model, "A", "bob") == 500
    assert balance(model, "B", "bob") == 0


def test_unknown_asset_and_missing_treasury():
    model = AMMModel({"treasury": {"authority": None}})
    model.fund("lp", "A", 1_000)
    model.fund("lp", "B", 1_000)
    pool = model.create_pool("A", "B")
    model.add_liquidity(pool, 1_000, 1_000, provider="lp")
    with pytest.raises(ValueError):
        model.swap(pool, 10, "C", trader="lp")
    with pytest.raises(ValueError):
        model.swap(pool, 10, "A", trader="lp")
    model.init_treasury("protocol")
    with pytest.raises(ValueError):
        model.init_treasury("someone-else")


def test_liquidity_round_trip(model):
    pool = model.create_pool("A", "B")
    assert model.add_liquidity(pool, 500, 300, provider="lp").lp_minted == 300
    assert model.token_ledger.get_mint_supply(pool.lp_mint) == 300
    assert balance(model, pool.lp_mint, "lp") == 300

    with pytest.raises(InvalidAmount):
        model.remove_liquidity(pool, 301, provider="lp")
    with pytest.raises(InvalidAmount):
        model.remove_liquidity(pool, 10, provider="alice")

    result = model.remove_liquidity(pool, 300, provider="lp")
    assert (result.amount_a, result.amount_b) == (500, 300)
    assert pool.get_reserves() == (0, 0)
    assert model.token_ledger.get_mint_supply(pool.lp_mint) == 0
    assert balance(model, "A", "lp") == 10_000_000


def test_ratio_mismatch_deposit_is_atomic(seeded):
    model, pool = seeded
    with pytest.raises(SlippageExceeded):
        model.add_liquidity(pool, 1_000, 999, provider="alice")
    assert balance(model, "A", "alice") == 200_000
    assert balance(model, pool.lp_mint, "alice") == 0


def test_hooks_fire_after_commit(seeded):
    model, pool = seeded
    seen = []
    pool.on_swap = lambda p, amount_in, amount_out, direction: seen.append((amount_in, amount_out, direction))
    pool.on_withdraw = lambda p, provider, amounts: seen.append((provider, amounts))
    model.swap(pool, 1000, "A", trader="alice")
    model.remove_liquidity(pool, 1_000, provider="lp")
    assert seen[0] == (1000, 996, "A→B")
    assert seen[1] == ("lp", (1_001, 999))


def test_deposit_hook_fires_only_on_success(model):
    pool = model.create_pool("A", "B")
    seen = []
    pool.on_deposit = lambda p, provider, lp_minted: seen.append((provider, lp_minted))
    model.add_liquidity(pool, 500, 300, provider="lp")
    with pytest.raises(SlippageExceeded):
        model.add_liquidity(pool, 1_000, 1, provider="alice")
    assert seen == [("lp", 300)]


def test_rollback_on_one_pool_keeps_other_pool_deposit():
    model = AMMModel({"treasury": {"authority": None}})
    for asset in ("A", "B", "C", "D"):
        model.fund("lp", asset, 10_000)
    first = model.create_pool("A", "B")
    second = model.create_pool("C", "D")
    entered, release = threading.Event(), threading.Event()
    errors = []

    def failing_operation():
        try:
            with model.atomic(first):
                entered.set()
                release.wait(timeout=5)
                raise RuntimeError("abort")
        except RuntimeError:
            pass

    def deposit():
        try:
            model.add_liquidity(second, 1_000, 1_000, provider="lp")
        except Exception as exc:
            errors.append(exc)

    failing = threading.Thread(target=failing_operation, daemon=True)
    failing.start()
    assert entered.wait(timeout=5)
    depositing = threading.Thread(target=deposit, daemon=True)
    depositing.start()
    depositing.join(timeout=0.2)
    assert depositing.is_alive()

    release.set()
    failing.join(timeout=5)
    depositing.join(timeout=5)

    assert errors == []
    assert second.get_reserves() == (1_000, 1_000)
    assert balance(model, "C", second.vault_a) == 1_000
    assert balance(model, "D", second.vault_b) == 1_000
    assert balance(model, second.lp_mint, "lp") == 1_000
    assert first.get_reserves() == (0, 0)


def test_pool_registry(model):
    pool = model.create_pool("A", "B", fee_bps=5, creator="founder")
    assert model.find_pool("B", "A") is pool
    assert model.get_pool(pool.key) is pool
    assert model.find_pool("A", "C") is None
    with pytest.raises(ValueError):
        model.create_pool("A", "B")
    with pytest.raises(ValueError):
        model.get_pool("nope")
    # a reversed pair is a distinct pool
    assert model.create_pool("B", "A").key != pool.key


def test_pool_record_reload(seeded):
    model, pool = seeded
    model.swap(pool, 1000, "A", trader="alice")
    data = pool.to_record()

    other = AMMModel()
    restored = other.load_pool_record(encode_pool(data))
    assert restored.key == pool.key
    assert restored.get_reserves() == (1_001_000, 999_004)
    assert restored.authority == pool.authority
    with pytest.raises(ValueError):
        other.load_pool_record(encode_pool(data))


def test_events_frame(seeded):
    model, pool = seeded
    model.swap(pool, 1000, "A", trader="alice")
    frame = model.events_frame()
    assert isinstance(frame, pd.DataFrame)
    assert list(frame["event"]) == ["LiquidityAdded", "SwapEvent"]


def test_simulation_keeps_k_monotonic():
    config = {
        "simulation": {"steps": 30, "seed": 11},
        "pools": [{"token_a": "SOL", "token_b": "USDC", "amount_a": 1_000_000, "amount_b": 25_000_000}],
        "traders": [
            {"name": "alice", "balances": {"SOL": 50_000, "USDC": 1_250_000}, "max_trade_fraction": 0.1},
            {"name": "bob", "balances": {"SOL": 10_000, "USDC": 100_000}, "slippage_bps": 0},
        ],
    }
    model = AMMModel(config)
    for _ in range(config["simulation"]["steps"]):
        model.step()

    df = model.datacollector.get_model_vars_dataframe()
    assert len(df) == 30
    k_values = list(df["Total_K"])
    assert all(b >= a for a, b in zip(k_values, k_values[1:]))
    assert k_values[0] >= 1_000_000 * 25_000_000

    traders = [a for a in model.agents if isinstance(a, TraderAgent)]
    assert len(traders) == 2
    assert sum(len(t.trades) for t in traders) == model.metrics["swaps"]
    assert sum(len(t.rejected) for t in traders) == model.metrics["failed_swaps"]
    assert df["Total_Fees"].iloc[-1] == model.treasury.total_fees_collected
