"""
Validated requests accepted by the mutating AMM operations.

Each ``validate_*`` function performs the boundary checks once (pool identity,
asset membership, amount domain) and returns a frozen order. Executors never
re-derive these facts from raw caller input.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from defi_amm.utils.errors import InvalidAmount
from defi_amm.utils.math_helpers import U64_MAX

if TYPE_CHECKING:
    from defi_amm.agents.pool import PoolAgent


def _require_amount(name: str, amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an integer, got {amount!r}")
    if amount <= 0 or amount > U64_MAX:
        raise InvalidAmount(f"{name} {amount}")
    return amount


@dataclass(frozen=True)
class SwapOrder:
    pool: "PoolAgent"
    trader: Any
    amount_in: int
    is_a_to_b: bool
    min_amount_out: int

    @property
    def input_asset(self) -> str:
        return self.pool.token_a_id if self.is_a_to_b else self.pool.token_b_id

    @property
    def output_asset(self) -> str:
        return self.pool.token_b_id if self.is_a_to_b else self.pool.token_a_id

    @property
    def input_vault(self) -> str:
        return self.pool.vault_a if self.is_a_to_b else self.pool.vault_b

    @property
    def output_vault(self) -> str:
        return self.pool.vault_b if self.is_a_to_b else self.pool.vault_a


@dataclass(frozen=True)
class DepositOrder:
    pool: "PoolAgent"
    provider: Any
    amount_a: int
    amount_b: int


@dataclass(frozen=True)
class WithdrawOrder:
    pool: "PoolAgent"
    provider: Any
    lp_amount: int


@dataclass(frozen=True)
class SwapResult:
    amount_out: int
    protocol_fee_delta: int
    lp_fee: int
    input_asset: str
    output_asset: str


@dataclass(frozen=True)
class DepositResult:
    lp_minted: int


@dataclass(frozen=True)
class WithdrawResult:
    amount_a: int
    amount_b: int


def validate_swap(pool: "PoolAgent", trader: Any, amount_in: Any, direction_asset_id: str,
                  min_amount_out: Any = 0) -> SwapOrder:
    amount_in = _require_amount("amount_in", amount_in)
    if isinstance(min_amount_out, bool) or not isinstance(min_amount_out, int) or min_amount_out < 0:
        raise InvalidAmount(f"min_amount_out {min_amount_out!r}")
    is_a_to_b = pool.direction_for(direction_asset_id)
    return SwapOrder(pool, trader, amount_in, is_a_to_b, min_amount_out)


def validate_deposit(pool: "PoolAgent", provider: Any, amount_a: Any, amount_b: Any) -> DepositOrder:
    return DepositOrder(
        pool,
        provider,
        _require_amount("amount_a", amount_a),
        _require_amount("amount_b", amount_b),
    )


def validate_withdraw(pool: "PoolAgent", provider: Any, lp_amount: Any) -> WithdrawOrder:
    return WithdrawOrder(pool, provider, _require_amount("lp_amount", lp_amount))
