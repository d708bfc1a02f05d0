from typing import Any, Dict, List, Optional
import logging

import numpy as np
from mesa import Agent

from defi_amm.agents.token_ledger import LedgerError
from defi_amm.utils.errors import AmmError
from defi_amm.utils.math_helpers import BPS_DENOMINATOR

logger = logging.getLogger(__name__)


class TraderAgent(Agent):
    """
    Noise trader that swaps a random slice of its holdings every step.

    Attributes:
        name (str): Identity used as the token-account holder and signer.
        max_trade_fraction (float): Upper bound on the share of a balance traded per step.
        slippage_bps (int): Tolerance below the quoted output accepted as ``min_amount_out``.
        trades (List[dict]): Successful swaps.
        rejected (List[str]): Messages of swaps the pool refused.
        _rng (np.random.Generator): Random number generator for trade sizing.
    """

    def __init__(
        self,
        model,
        name: str,
        max_trade_fraction: float = 0.01,
        slippage_bps: int = 50,
        seed: Optional[int] = None,
    ):
        super().__init__(model)
        if not 0.0 < max_trade_fraction <= 1.0:
            raise ValueError("max_trade_fraction must be in (0, 1].")
        if not 0 <= slippage_bps <= BPS_DENOMINATOR:
            raise ValueError(f"slippage_bps must be within 0..{BPS_DENOMINATOR}")
        self.name = name
        self.max_trade_fraction = float(max_trade_fraction)
        self.slippage_bps = int(slippage_bps)
        self.trades: List[Dict[str, Any]] = []
        self.rejected: List[str] = []
        if seed is None:
            seed = self.model.random.getrandbits(32)
        self._rng = np.random.default_rng(seed)

    def _pick_trade(self):
        pools = [self.model.pools[k] for k in sorted(self.model.pools)]
        if not pools:
            return None
        pool = pools[int(self._rng.integers(len(pools)))]
        asset = pool.token_a_id if self._rng.random() < 0.5 else pool.token_b_id
        balance = self.model.token_ledger.get_token_balance(asset, self.name)
        amount_in = int(balance * self._rng.uniform(0.0, self.max_trade_fraction))
        if amount_in <= 0:
            return None
        return pool, asset, amount_in

    def _reject(self, amount_in: int, asset: str, exc: Exception) -> None:
        logger.info("Trader %s swap of %d %s rejected: %s", self.name, amount_in, asset, exc)
        self.rejected.append(str(exc))

    def step(self):
        """
        Quote a random swap, derive the slippage floor and submit it.

        Does nothing while the model has no treasury, since swaps require one.
        """
        if self.model.treasury is None:
            return
        trade = self._pick_trade()
        if trade is None:
            return
        pool, asset, amount_in = trade
        try:
            quote = pool.quote_swap(amount_in, pool.direction_for(asset))
        except AmmError as exc:
            # model.swap counts its own failures; a refused quote never reaches it
            self.model.metrics["failed_swaps"] += 1
            self._reject(amount_in, asset, exc)
            return
        min_out = quote.amount_out * (BPS_DENOMINATOR - self.slippage_bps) // BPS_DENOMINATOR
        try:
            result = self.model.swap(pool, amount_in, asset, min_out, trader=self.name)
        except (AmmError, LedgerError) as exc:
            self._reject(amount_in, asset, exc)
            return
        self.trades.append({
            "step": self.model.steps,
            "pool": pool.key,
            "asset_in": asset,
            "amount_in": amount_in,
            "amount_out": result.amount_out,
        })
