from dataclasses import dataclass
from typing import Callable, Optional, Tuple
import logging

from mesa import Agent

from defi_amm.agents.curves import BaseCurve, ConstantProductCurve
from defi_amm.utils.errors import InvalidAmount, InvariantViolation, PoolEmpty, SlippageExceeded
from defi_amm.utils.keys import (
    LP_MINT_SEED,
    POOL_SEED,
    VAULT_A_SEED,
    VAULT_AUTH_SEED,
    VAULT_B_SEED,
    derive_address,
)
from defi_amm.utils.math_helpers import (
    BPS_DENOMINATOR,
    DEFAULT_FEE_BPS,
    U64_MAX,
    checked_add,
    checked_mul,
    checked_sub,
    split_fee,
)
from defi_amm.utils.records import PoolRecord

logger = logging.getLogger(__name__)

_ISSUER = object()


class VaultAuthority:
    """
    Single-use capability allowing one transfer or mint on behalf of a pool's vaults.

    Only :class:`PoolAgent` creates these; the token ledger consumes one per
    signed action and rejects a second use.
    """

    __slots__ = ("key", "_spent")

    def __init__(self, key: str, _issuer: object = None):
        if _issuer is not _ISSUER:
            raise PermissionError("Vault authority can only be issued by its pool")
        self.key = key
        self._spent = False

    @property
    def spent(self) -> bool:
        return self._spent

    def consume(self) -> str:
        """Mark the capability used and return the key it signs for."""
        if self._spent:
            raise PermissionError(f"Vault authority {self.key} already used")
        self._spent = True
        return self.key


@dataclass(frozen=True)
class SwapQuote:
    """Side-effect-free breakdown of a prospective swap."""

    amount_in: int
    is_a_to_b: bool
    total_fee: int
    protocol_fee: int
    lp_fee: int
    effective_input: int
    amount_out: int


class PoolAgent(Agent):
    """
    Reserve state for one constant-product token pair.

    Attributes:
        token_a_id (str): Identifier of token A (immutable).
        token_b_id (str): Identifier of token B (immutable).
        reserve_a (int): u64 reserve of token A.
        reserve_b (int): u64 reserve of token B.
        fee_bps (int): Swap fee in basis points, fixed at creation.
        curve (BaseCurve): Pricing curve used for swap and LP math.
        key (str): Derived pool address.
        authority (str): Identity that created the pool.
        vault_a, vault_b (str): Custodial vault account holders.
        vault_authority (str): Key owning the vaults and the LP mint.
        lp_mint (str): Identifier of the LP claim asset.
        on_swap, on_deposit, on_withdraw (Callable): Optional hooks fired after commit.
    """

    def __init__(
        self,
        model,
        token_a_id: str,
        token_b_id: str,
        fee_bps: int = DEFAULT_FEE_BPS,
        authority: Optional[str] = None,
        curve: Optional[BaseCurve] = None,
        on_swap: Optional[Callable] = None,
        on_deposit: Optional[Callable] = None,
        on_withdraw: Optional[Callable] = None,
    ):
        super().__init__(model)
        if token_a_id == token_b_id:
            raise ValueError("Pool tokens must differ")
        if not 0 <= int(fee_bps) <= BPS_DENOMINATOR:
            raise ValueError(f"fee_bps must be within 0..{BPS_DENOMINATOR}, got {fee_bps}")

        self._token_a_id = str(token_a_id)
        self._token_b_id = str(token_b_id)
        self._fee_bps = int(fee_bps)
        self.reserve_a = 0
        self.reserve_b = 0
        self.curve = curve if curve is not None else ConstantProductCurve()

        self.key = derive_address(POOL_SEED, self._token_a_id, self._token_b_id)
        self.authority = authority if authority is not None else self.key
        self.vault_a = derive_address(POOL_SEED, self._token_a_id, self._token_b_id, VAULT_A_SEED)
        self.vault_b = derive_address(POOL_SEED, self._token_a_id, self._token_b_id, VAULT_B_SEED)
        self.vault_authority = derive_address(VAULT_AUTH_SEED, self.key)
        self.lp_mint = derive_address(LP_MINT_SEED, self.key)

        self.on_swap = on_swap
        self.on_deposit = on_deposit
        self.on_withdraw = on_withdraw

    @property
    def token_a_id(self) -> str:
        return self._token_a_id

    @property
    def token_b_id(self) -> str:
        return self._token_b_id

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    def get_reserves(self) -> Tuple[int, int]:
        """Return current reserves of token A and token B."""
        return self.reserve_a, self.reserve_b

    def get_k(self) -> int:
        """Return the constant product ``reserve_a * reserve_b``."""
        return checked_mul(self.reserve_a, self.reserve_b)

    def has_liquidity(self) -> bool:
        return self.reserve_a > 0 and self.reserve_b > 0

    def direction_for(self, asset_id: str) -> bool:
        """
        Return ``True`` when ``asset_id`` is token A (an A-to-B swap) and
        ``False`` when it is token B.

        Raises:
            ValueError: If the asset is not part of this pair.
        """
        if asset_id == self._token_a_id:
            return True
        if asset_id == self._token_b_id:
            return False
        raise ValueError(f"Asset {asset_id!r} is not traded by pool {self.key}")

    def _oriented(self, is_a_to_b: bool) -> Tuple[int, int]:
        if is_a_to_b:
            return self.reserve_a, self.reserve_b
        return self.reserve_b, self.reserve_a

    def quote_swap(self, amount_in: int, is_a_to_b: bool) -> SwapQuote:
        """
        Price a swap against the current reserves without changing them.

        Raises:
            PoolEmpty: If either reserve is zero.
            InvalidAmount: If ``amount_in`` is not within ``1..U64_MAX``.
        """
        if not self.has_liquidity():
            raise PoolEmpty(f"reserves ({self.reserve_a}, {self.reserve_b})")
        if amount_in <= 0 or amount_in > U64_MAX:
            raise InvalidAmount(f"amount_in {amount_in}")

        reserve_in, reserve_out = self._oriented(is_a_to_b)
        total_fee, protocol_fee, lp_fee = split_fee(amount_in, self._fee_bps)
        effective_input = amount_in - total_fee
        # fee already taken out of the input, so price with zero fee
        amount_out = self.curve.quote_output(effective_input, reserve_in, reserve_out, 0)
        return SwapQuote(
            amount_in=amount_in,
            is_a_to_b=is_a_to_b,
            total_fee=total_fee,
            protocol_fee=protocol_fee,
            lp_fee=lp_fee,
            effective_input=effective_input,
            amount_out=amount_out,
        )

    def apply_swap(self, amount_in: int, is_a_to_b: bool, min_amount_out: int = 0) -> Tuple[int, int, int]:
        """
        Execute the swap state transition on the reserves.

        Args:
            amount_in (int): Gross input amount, fee included.
            is_a_to_b (bool): Direction, as returned by :meth:`direction_for`.
            min_amount_out (int): Slippage floor supplied by the caller.

        Returns:
            Tuple[int, int, int]: ``(amount_out, protocol_fee, lp_fee)``.

        Raises:
            PoolEmpty, InvalidAmount, SlippageExceeded, Overflow, InvariantViolation.
            Reserves are untouched whenever an error is raised.
        """
        quote = self.quote_swap(amount_in, is_a_to_b)
        if quote.amount_out < min_amount_out:
            raise SlippageExceeded(f"amount_out {quote.amount_out} < min_amount_out {min_amount_out}")

        reserve_in, reserve_out = self._oriented(is_a_to_b)
        old_k = checked_mul(reserve_in, reserve_out)
        new_reserve_in = checked_add(reserve_in, quote.effective_input + quote.lp_fee)
        new_reserve_out = checked_sub(reserve_out, quote.amount_out)
        new_k = checked_mul(new_reserve_in, new_reserve_out)
        if new_k < old_k:
            raise InvariantViolation(f"new_k {new_k} < old_k {old_k}")

        if is_a_to_b:
            self.reserve_a, self.reserve_b = new_reserve_in, new_reserve_out
        else:
            self.reserve_b, self.reserve_a = new_reserve_in, new_reserve_out
        logger.debug(
            "Pool %s swap %s in=%d out=%d reserves=(%d, %d)",
            self.key, "A->B" if is_a_to_b else "B->A", amount_in, quote.amount_out,
            self.reserve_a, self.reserve_b,
        )
        return quote.amount_out, quote.protocol_fee, quote.lp_fee

    def sign_for_vault(self) -> VaultAuthority:
        """Issue a one-shot capability over this pool's vaults and LP mint."""
        return VaultAuthority(self.vault_authority, _ISSUER)

    def to_record(self) -> PoolRecord:
        return PoolRecord(
            authority=self.authority,
            token_a_id=self._token_a_id,
            token_b_id=self._token_b_id,
            vault_a=self.vault_a,
            vault_b=self.vault_b,
            vault_authority=self.vault_authority,
            lp_mint=self.lp_mint,
            reserve_a=self.reserve_a,
            reserve_b=self.reserve_b,
            fee_bps=self._fee_bps,
        )

    def step(self):
        """Pools are reactive; nothing happens on a model tick."""
        pass
