from typing import TYPE_CHECKING
import logging

from defi_amm.engine.orders import SwapOrder, SwapResult

if TYPE_CHECKING:
    from defi_amm.models.amm_model import AMMModel

logger = logging.getLogger(__name__)


class SwapExecutor:
    """
    Runs one validated swap end to end.

    Inside the model's atomic scope the executor applies the pool state
    transition, moves the input into the pool vault, pays the output from the
    opposite vault under the pool's vault authority, records the protocol fee
    in the treasury and logs a ``SwapEvent``. Any failure restores the pool,
    the treasury and the token ledger.
    """

    def __init__(self, model: "AMMModel"):
        self.model = model

    def execute(self, order: SwapOrder) -> SwapResult:
        pool = order.pool
        treasury = self.model.require_treasury()
        ledger = self.model.token_ledger

        with self.model.atomic(pool):
            amount_out, protocol_fee, lp_fee = pool.apply_swap(
                order.amount_in, order.is_a_to_b, order.min_amount_out
            )
            ledger.require(
                ledger.transfer_token(order.input_asset, order.trader, order.input_vault,
                                      order.amount_in, order.trader),
                f"transfer of {order.amount_in} {order.input_asset} from {order.trader}",
            )
            ledger.require(
                ledger.transfer_token(order.output_asset, order.output_vault, order.trader,
                                      amount_out, pool.sign_for_vault()),
                f"transfer of {amount_out} {order.output_asset} to {order.trader}",
            )
            treasury.record_protocol_fee(protocol_fee)
            ledger.emit("SwapEvent", {
                "user": order.trader,
                "pool": pool.key,
                "input_asset": order.input_asset,
                "amount_in": order.amount_in,
                "amount_out": amount_out,
                "protocol_fee": protocol_fee,
            })

        logger.info(
            "Swap on %s by %s: %d %s -> %d %s (protocol fee %d)",
            pool.key, order.trader, order.amount_in, order.input_asset,
            amount_out, order.output_asset, protocol_fee,
        )
        if pool.on_swap:
            pool.on_swap(pool, order.amount_in, amount_out, "A→B" if order.is_a_to_b else "B→A")
        return SwapResult(
            amount_out=amount_out,
            protocol_fee_delta=protocol_fee,
            lp_fee=lp_fee,
            input_asset=order.input_asset,
            output_asset=order.output_asset,
        )
