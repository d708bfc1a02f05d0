# src/defi_amm/models/amm_model.py

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
import logging
import threading

import pandas as pd
from mesa import Model
from mesa.datacollection import DataCollector

from defi_amm.agents.pool import PoolAgent
from defi_amm.agents.token_ledger import LedgerError, TokenLedgerAgent
from defi_amm.agents.trader import TraderAgent
from defi_amm.agents.treasury import TreasuryAgent
from defi_amm.engine.executor import SwapExecutor
from defi_amm.engine.liquidity import LiquidityLedger
from defi_amm.engine.orders import (
    DepositResult,
    SwapResult,
    WithdrawResult,
    validate_deposit,
    validate_swap,
    validate_withdraw,
)
from defi_amm.utils.config_parser import build_config
from defi_amm.utils.errors import AmmError
from defi_amm.utils.keys import POOL_SEED, derive_address
from defi_amm.utils.math_helpers import DEFAULT_FEE_BPS
from defi_amm.utils.records import decode_pool

logger = logging.getLogger(__name__)

GENESIS = "genesis"


class AMMModel(Model):
    """
    Mesa model hosting constant-product pools, the fee treasury and the token layer.

    - Pools and the treasury live in a keyed store (``self.store``) under
      derived addresses; each key has its own lock.
    - Every mutating operation runs inside :meth:`atomic`, so a failure leaves
      pools, treasury and balances exactly as they were.
    - ``self.agents.shuffle_do("step")`` activates traders each tick.
    """

    def __init__(self, config: Optional[dict] = None):
        config = build_config(config)
        sim_cfg = config["simulation"]
        super().__init__(seed=sim_cfg.get("seed"))

        self.num_steps = int(sim_cfg.get("steps", 100))
        self.store: Dict[str, Any] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._store_lock = threading.Lock()
        self._ledger_lock = threading.RLock()

        self.token_ledger = TokenLedgerAgent(self)
        self.treasury: Optional[TreasuryAgent] = None
        self.swap_executor = SwapExecutor(self)
        self.liquidity_ledger = LiquidityLedger(self)

        self.metrics = {"swaps": 0, "failed_swaps": 0}

        self.datacollector = DataCollector(
            model_reporters={
                "Total_Fees": lambda m: m.treasury.total_fees_collected if m.treasury else 0,
                "Total_K": lambda m: sum(p.get_k() for p in m.pools.values()),
                "Swaps": lambda m: m.metrics["swaps"],
                "Failed_Swaps": lambda m: m.metrics["failed_swaps"],
            },
            agent_reporters={
                "Reserve_A": lambda a: getattr(a, "reserve_a", None),
                "Reserve_B": lambda a: getattr(a, "reserve_b", None),
            },
        )

        treasury_cfg = config["treasury"]
        if treasury_cfg.get("authority") is not None:
            self.init_treasury(treasury_cfg["authority"])
        for pool_cfg in config["pools"]:
            self._init_pool(pool_cfg)
        for trader_cfg in config["traders"]:
            self._init_trader(trader_cfg)

    # ------------------------------------------------------------------
    # Store and atomicity
    # ------------------------------------------------------------------

    @property
    def pools(self) -> Dict[str, PoolAgent]:
        return {k: v for k, v in self.store.items() if isinstance(v, PoolAgent)}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._store_lock:
            return self._locks.setdefault(key, threading.RLock())

    def _put(self, key: str, record: Any) -> None:
        with self._store_lock:
            if key in self.store:
                raise ValueError(f"Account {key} already exists")
            self.store[key] = record
            self._locks.setdefault(key, threading.RLock())

    @contextmanager
    def atomic(self, pool: PoolAgent) -> Iterator[None]:
        """
        Hold the pool (and treasury) locks and undo every change if the body raises.

        The token ledger is snapshotted as a whole, so its lock is held too;
        operations on different pools serialize on ledger writes.
        """
        pool_lock = self._lock_for(pool.key)
        treasury = self.treasury
        treasury_lock = self._lock_for(treasury.key) if treasury else threading.RLock()
        with pool_lock, treasury_lock, self._ledger_lock:
            ledger_snap = self.token_ledger.snapshot()
            reserves = pool.get_reserves()
            fees = treasury.total_fees_collected if treasury else None
            try:
                yield
            except Exception as exc:
                self.token_ledger.restore(ledger_snap)
                pool.reserve_a, pool.reserve_b = reserves
                if treasury is not None:
                    treasury.total_fees_collected = fees
                logger.warning("Operation on pool %s reverted: %s", pool.key, exc)
                raise

    def get_pool(self, key: str) -> PoolAgent:
        pool = self.store.get(key)
        if not isinstance(pool, PoolAgent):
            raise ValueError(f"No pool stored under {key}")
        return pool

    def find_pool(self, token_x: str, token_y: str) -> Optional[PoolAgent]:
        """Return the pool trading ``token_x``/``token_y`` in either order, else None."""
        for a, b in ((token_x, token_y), (token_y, token_x)):
            pool = self.store.get(derive_address(POOL_SEED, a, b))
            if isinstance(pool, PoolAgent):
                return pool
        return None

    def require_treasury(self) -> TreasuryAgent:
        if self.treasury is None:
            raise ValueError("Treasury has not been initialized")
        return self.treasury

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def ensure_asset(self, asset: str) -> None:
        """Register ``asset`` with the genesis mint authority if it is new."""
        if asset not in self.token_ledger.mints:
            self.token_ledger.register_mint(asset, GENESIS)

    def fund(self, holder: Any, asset: str, amount: int) -> None:
        """Mint ``amount`` of ``asset`` to ``holder`` from the genesis authority."""
        with self._ledger_lock:
            self.ensure_asset(asset)
            self.token_ledger.require(
                self.token_ledger.mint_to(asset, holder, int(amount), GENESIS),
                f"funding {holder} with {amount} {asset}",
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def init_treasury(self, authority: str) -> TreasuryAgent:
        if self.treasury is not None:
            raise ValueError("Treasury already initialized")
        treasury = TreasuryAgent(self, authority=authority)
        self._put(treasury.key, treasury)
        self.treasury = treasury
        logger.info("Treasury %s initialized for %s", treasury.key, authority)
        return treasury

    def create_pool(
        self,
        token_a_id: str,
        token_b_id: str,
        fee_bps: int = DEFAULT_FEE_BPS,
        creator: Optional[str] = None,
    ) -> PoolAgent:
        """
        Create the pool for ``token_a_id``/``token_b_id`` with empty reserves.

        Registers the LP mint (authority: the pool's vault authority) and the
        two vault accounts owned by the same authority.

        Raises:
            ValueError: If the pool exists, the tokens are identical or the
                fee is outside 0..10000.
        """
        key = derive_address(POOL_SEED, token_a_id, token_b_id)
        if key in self.store:
            raise ValueError(f"Pool for {token_a_id}/{token_b_id} already exists")
        pool = PoolAgent(self, token_a_id, token_b_id, fee_bps=fee_bps, authority=creator)
        try:
            self._put(pool.key, pool)
        except ValueError:
            pool.remove()
            raise
        return self._attach_pool(pool)

    def _attach_pool(self, pool: PoolAgent) -> PoolAgent:
        ledger = self.token_ledger
        with self._ledger_lock:
            self.ensure_asset(pool.token_a_id)
            self.ensure_asset(pool.token_b_id)
            ledger.register_vault_authority(pool.vault_authority)
            ledger.register_mint(pool.lp_mint, pool.vault_authority)
            ledger.create_account(pool.token_a_id, pool.vault_a, owner=pool.vault_authority)
            ledger.create_account(pool.token_b_id, pool.vault_b, owner=pool.vault_authority)
        logger.info(
            "Pool %s created for %s/%s (fee %d bps)",
            pool.key, pool.token_a_id, pool.token_b_id, pool.fee_bps,
        )
        return pool

    def load_pool_record(self, data: bytes) -> PoolAgent:
        """
        Rebuild a pool from its binary record and store it.

        The vault and LP accounts start empty; balances live in the token layer.
        """
        record = decode_pool(data)
        pool = PoolAgent(self, record.token_a_id, record.token_b_id,
                         fee_bps=record.fee_bps, authority=record.authority)
        if (pool.vault_a, pool.vault_b, pool.vault_authority, pool.lp_mint) != (
            record.vault_a, record.vault_b, record.vault_authority, record.lp_mint
        ):
            pool.remove()
            raise ValueError("Pool record addresses do not match its token pair")
        pool.reserve_a, pool.reserve_b = record.reserve_a, record.reserve_b
        try:
            self._put(pool.key, pool)
        except ValueError:
            pool.remove()
            raise
        return self._attach_pool(pool)

    def swap(self, pool: PoolAgent, amount_in: int, direction_asset_id: str,
             min_amount_out: int = 0, *, trader: Any) -> SwapResult:
        """
        Swap ``amount_in`` of ``direction_asset_id`` for the other pool token.

        Raises:
            InvalidAmount, PoolEmpty, SlippageExceeded, Overflow, InvariantViolation.
        """
        try:
            order = validate_swap(pool, trader, amount_in, direction_asset_id, min_amount_out)
            result = self.swap_executor.execute(order)
        except (AmmError, LedgerError):
            self.metrics["failed_swaps"] += 1
            raise
        self.metrics["swaps"] += 1
        return result

    def add_liquidity(self, pool: PoolAgent, amount_a: int, amount_b: int, *, provider: Any) -> DepositResult:
        order = validate_deposit(pool, provider, amount_a, amount_b)
        return self.liquidity_ledger.deposit(order)

    def remove_liquidity(self, pool: PoolAgent, lp_amount: int, *, provider: Any) -> WithdrawResult:
        order = validate_withdraw(pool, provider, lp_amount)
        return self.liquidity_ledger.withdraw(order)

    def events_frame(self) -> pd.DataFrame:
        """Return the token ledger event log as a DataFrame, one row per event."""
        rows = []
        for block in sorted(self.token_ledger.event_logs):
            for name, payload in self.token_ledger.event_logs[block]:
                rows.append({"block": block, "event": name, **payload})
        return pd.DataFrame(rows)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _init_pool(self, pool_cfg: dict) -> None:
        pool = self.create_pool(pool_cfg["token_a"], pool_cfg["token_b"], fee_bps=pool_cfg["fee_bps"])
        amount_a, amount_b = pool_cfg["amount_a"], pool_cfg["amount_b"]
        if amount_a > 0 and amount_b > 0:
            provider = pool_cfg["provider"]
            self.fund(provider, pool.token_a_id, amount_a)
            self.fund(provider, pool.token_b_id, amount_b)
            self.add_liquidity(pool, amount_a, amount_b, provider=provider)

    def _init_trader(self, trader_cfg: dict) -> None:
        for asset, amount in trader_cfg["balances"].items():
            self.fund(trader_cfg["name"], asset, amount)
        TraderAgent(
            self,
            name=trader_cfg["name"],
            max_trade_fraction=float(trader_cfg["max_trade_fraction"]),
            slippage_bps=int(trader_cfg["slippage_bps"]),
            seed=trader_cfg.get("seed"),
        )

    def step(self):
        """
        Advance the model one tick:
          1. Activate every agent's step() in random order (traders swap,
             the token ledger advances a block).
          2. Collect data via DataCollector.
        """
        self.agents.shuffle_do("step")
        self.datacollector.collect(self)
