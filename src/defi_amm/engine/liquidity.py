from typing import TYPE_CHECKING, Optional, Tuple
import logging

from defi_amm.agents.pool import PoolAgent
from defi_amm.engine.orders import DepositOrder, DepositResult, WithdrawOrder, WithdrawResult
from defi_amm.utils.errors import InvalidAmount
from defi_amm.utils.math_helpers import checked_add, checked_sub

if TYPE_CHECKING:
    from defi_amm.models.amm_model import AMMModel

logger = logging.getLogger(__name__)


class LiquidityLedger:
    """
    Proportional-share accounting of deposits and withdrawals against a pool.

    :meth:`add_liquidity` and :meth:`remove_liquidity` only touch pool
    reserves. :meth:`deposit` and :meth:`withdraw` run the full operation
    (token transfers, LP mint/burn, event) inside the model's atomic scope.
    """

    def __init__(self, model: "AMMModel"):
        self.model = model

    def add_liquidity(self, pool: PoolAgent, amount_a: int, amount_b: int) -> int:
        """
        Credit a deposit to the reserves and return the LP claims to mint.

        Raises:
            InvalidAmount: If either amount is zero.
            SlippageExceeded: If the deposit would move the pool price.
            Overflow: If a reserve would leave the u64 range.
        """
        lp_minted = pool.curve.compute_deposit_lp(pool.reserve_a, pool.reserve_b, amount_a, amount_b)
        new_reserve_a = checked_add(pool.reserve_a, amount_a)
        new_reserve_b = checked_add(pool.reserve_b, amount_b)
        pool.reserve_a, pool.reserve_b = new_reserve_a, new_reserve_b
        return lp_minted

    def remove_liquidity(
        self,
        pool: PoolAgent,
        lp_amount: int,
        total_lp_supply: int,
        lp_balance: Optional[int] = None,
    ) -> Tuple[int, int]:
        """
        Debit a proportional share of both reserves for ``lp_amount`` claims.

        Args:
            pool (PoolAgent): Pool to withdraw from.
            lp_amount (int): LP claims being burned.
            total_lp_supply (int): Outstanding LP claims before the burn.
            lp_balance (Optional[int]): Caller's LP balance, when known.

        Returns:
            Tuple[int, int]: Amounts of token A and B released.

        Raises:
            InvalidAmount: If ``lp_amount`` exceeds the caller's balance or
                the supply, or the supply is empty.
        """
        if lp_balance is not None and lp_amount > lp_balance:
            raise InvalidAmount(f"lp_amount {lp_amount} exceeds balance {lp_balance}")
        amount_a, amount_b = pool.curve.compute_withdraw_lp(
            pool.reserve_a, pool.reserve_b, total_lp_supply, lp_amount
        )
        new_reserve_a = checked_sub(pool.reserve_a, amount_a)
        new_reserve_b = checked_sub(pool.reserve_b, amount_b)
        pool.reserve_a, pool.reserve_b = new_reserve_a, new_reserve_b
        return amount_a, amount_b

    def deposit(self, order: DepositOrder) -> DepositResult:
        pool = order.pool
        ledger = self.model.token_ledger
        with self.model.atomic(pool):
            lp_minted = self.add_liquidity(pool, order.amount_a, order.amount_b)
            ledger.require(
                ledger.transfer_token(pool.token_a_id, order.provider, pool.vault_a, order.amount_a, order.provider),
                f"transfer of {order.amount_a} {pool.token_a_id} from {order.provider}",
            )
            ledger.require(
                ledger.transfer_token(pool.token_b_id, order.provider, pool.vault_b, order.amount_b, order.provider),
                f"transfer of {order.amount_b} {pool.token_b_id} from {order.provider}",
            )
            ledger.require(
                ledger.mint_to(pool.lp_mint, order.provider, lp_minted, pool.sign_for_vault()),
                f"mint of {lp_minted} LP to {order.provider}",
            )
            ledger.emit("LiquidityAdded", {
                "provider": order.provider,
                "pool": pool.key,
                "amount_a": order.amount_a,
                "amount_b": order.amount_b,
                "lp_minted": lp_minted,
            })

        logger.info(
            "Deposit into %s by %s: %d/%d -> %d LP", pool.key, order.provider,
            order.amount_a, order.amount_b, lp_minted,
        )
        if pool.on_deposit:
            pool.on_deposit(pool, order.provider, lp_minted)
        return DepositResult(lp_minted=lp_minted)

    def withdraw(self, order: WithdrawOrder) -> WithdrawResult:
        pool = order.pool
        ledger = self.model.token_ledger
        with self.model.atomic(pool):
            total_lp_supply = ledger.get_mint_supply(pool.lp_mint)
            lp_balance = ledger.get_token_balance(pool.lp_mint, order.provider)
            amount_a, amount_b = self.remove_liquidity(pool, order.lp_amount, total_lp_supply, lp_balance)
            ledger.require(
                ledger.burn(pool.lp_mint, order.provider, order.lp_amount, order.provider),
                f"burn of {order.lp_amount} LP from {order.provider}",
            )
            ledger.require(
                ledger.transfer_token(pool.token_a_id, pool.vault_a, order.provider, amount_a, pool.sign_for_vault()),
                f"transfer of {amount_a} {pool.token_a_id} to {order.provider}",
            )
            ledger.require(
                ledger.transfer_token(pool.token_b_id, pool.vault_b, order.provider, amount_b, pool.sign_for_vault()),
                f"transfer of {amount_b} {pool.token_b_id} to {order.provider}",
            )
            ledger.emit("LiquidityRemoved", {
                "provider": order.provider,
                "pool": pool.key,
                "lp_burned": order.lp_amount,
                "amount_a": amount_a,
                "amount_b": amount_b,
            })

        logger.info(
            "Withdrawal from %s by %s: %d LP -> %d/%d", pool.key, order.provider,
            order.lp_amount, amount_a, amount_b,
        )
        if pool.on_withdraw:
            pool.on_withdraw(pool, order.provider, (amount_a, amount_b))
        return WithdrawResult(amount_a=amount_a, amount_b=amount_b)
