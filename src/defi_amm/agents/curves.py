from abc import ABC, abstractmethod
from typing import Tuple

from defi_amm.utils.errors import InvalidAmount, SlippageExceeded
from defi_amm.utils.math_helpers import U64_MAX, get_amount_out, mul_div_floor


class BaseCurve(ABC):
    """
    Abstract base class for integer AMM pricing curves.

    To implement a custom curve, subclass this and implement the three required methods:
    - quote_output
    - compute_deposit_lp
    - compute_withdraw_lp
    """

    @abstractmethod
    def quote_output(
        self,
        amount_in: int,
        reserve_in: int,
        reserve_out: int,
        fee_bps: int,
    ) -> int:
        """
        Calculate the output amount for an input amount and reserves.

        Args:
            amount_in (int): Amount of input token provided.
            reserve_in (int): Current reserve of the input token.
            reserve_out (int): Current reserve of the output token.
            fee_bps (int): Swap fee in basis points.

        Returns:
            int: Output amount of the other token.
        """
        pass

    @abstractmethod
    def compute_deposit_lp(
        self,
        reserve_a: int,
        reserve_b: int,
        amount_a: int,
        amount_b: int,
    ) -> int:
        """
        Determine LP claims to mint for a liquidity deposit.

        Args:
            reserve_a (int): Reserve of token A.
            reserve_b (int): Reserve of token B.
            amount_a (int): Amount of token A to deposit.
            amount_b (int): Amount of token B to deposit.

        Returns:
            int: Amount of LP claims to mint.
        """
        pass

    @abstractmethod
    def compute_withdraw_lp(
        self,
        reserve_a: int,
        reserve_b: int,
        total_lp_supply: int,
        lp_amount: int,
    ) -> Tuple[int, int]:
        """
        Determine token amounts to return when LP claims are burned.

        Args:
            reserve_a (int): Reserve of token A.
            reserve_b (int): Reserve of token B.
            total_lp_supply (int): Total LP claim supply.
            lp_amount (int): LP claims to burn.

        Returns:
            Tuple[int, int]: Amounts of token A and B to return.
        """
        pass


class ConstantProductCurve(BaseCurve):
    """
    Constant product curve x * y = k with floor rounding in favour of the pool.
    """

    def quote_output(
        self,
        amount_in: int,
        reserve_in: int,
        reserve_out: int,
        fee_bps: int,
    ) -> int:
        """Swap output per :func:`defi_amm.utils.math_helpers.get_amount_out`."""
        return get_amount_out(amount_in, reserve_in, reserve_out, fee_bps)

    def compute_deposit_lp(
        self,
        reserve_a: int,
        reserve_b: int,
        amount_a: int,
        amount_b: int,
    ) -> int:
        """
        Calculate LP claims to mint when liquidity is added.

        A deposit into a pool that already has both reserves must bring at
        least ``floor(amount_a * reserve_b / reserve_a)`` of token B. Every
        deposit mints ``min(amount_a, amount_b)``.

        Raises:
            InvalidAmount: If either amount is zero or above the u64 range.
            SlippageExceeded: If token B falls short of the pool ratio.
        """
        for amount in (amount_a, amount_b):
            if amount <= 0 or amount > U64_MAX:
                raise InvalidAmount(f"deposit amount {amount}")

        if reserve_a > 0 and reserve_b > 0:
            expected_b = mul_div_floor(amount_a, reserve_b, reserve_a)
            if amount_b < expected_b:
                raise SlippageExceeded(
                    f"deposit must match pool ratio, expected b>={expected_b}, got b={amount_b}"
                )
        return min(amount_a, amount_b)

    def compute_withdraw_lp(
        self,
        reserve_a: int,
        reserve_b: int,
        total_lp_supply: int,
        lp_amount: int,
    ) -> Tuple[int, int]:
        """
        Calculate the proportional share returned for ``lp_amount`` claims.

        Raises:
            InvalidAmount: If the supply is empty or ``lp_amount`` is not
                within ``1..total_lp_supply``.
        """
        if total_lp_supply <= 0:
            raise InvalidAmount("LP supply is empty")
        if lp_amount <= 0 or lp_amount > total_lp_supply:
            raise InvalidAmount(f"lp_amount {lp_amount} of supply {total_lp_supply}")

        amount_a = mul_div_floor(reserve_a, lp_amount, total_lp_supply)
        amount_b = mul_div_floor(reserve_b, lp_amount, total_lp_supply)
        return amount_a, amount_b
