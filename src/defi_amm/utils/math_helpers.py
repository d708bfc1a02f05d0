from typing import Tuple

from defi_amm.utils.errors import Overflow

U64_MAX = 2 ** 64 - 1
U128_MAX = 2 ** 128 - 1

BPS_DENOMINATOR = 10_000
DEFAULT_FEE_BPS = 30
# Protocol keeps 1/5 of every swap fee, LPs keep the rest.
PROTOCOL_FEE_DIVISOR = 5


def checked_add(a: int, b: int, limit: int = U64_MAX) -> int:
    """
    Add two unsigned integers, failing instead of wrapping.

    Parameters
    ----------
    a, b : int
        Non-negative operands.
    limit : int
        Largest representable result (defaults to the u64 maximum).

    Returns
    -------
    int
        ``a + b``.

    Raises
    ------
    Overflow
        If the sum exceeds ``limit`` or an operand is negative.
    """
    if a < 0 or b < 0:
        raise Overflow(f"negative operand in {a} + {b}")
    result = a + b
    if result > limit:
        raise Overflow(f"{a} + {b} exceeds {limit}")
    return result


def checked_sub(a: int, b: int) -> int:
    """Subtract ``b`` from ``a``; raise ``Overflow`` on underflow below zero."""
    if b < 0 or b > a:
        raise Overflow(f"{a} - {b} underflows")
    return a - b


def checked_mul(a: int, b: int, limit: int = U128_MAX) -> int:
    """Multiply in the wide (u128) domain; raise ``Overflow`` past ``limit``."""
    if a < 0 or b < 0:
        raise Overflow(f"negative operand in {a} * {b}")
    result = a * b
    if result > limit:
        raise Overflow(f"{a} * {b} exceeds {limit}")
    return result


def mul_div_floor(a: int, b: int, denominator: int) -> int:
    """
    Compute ``floor(a * b / denominator)`` without losing precision.

    The product is formed in the u128 domain before dividing so that two u64
    values never overflow.
    """
    if denominator <= 0:
        raise ZeroDivisionError("mul_div_floor denominator must be positive")
    return checked_mul(a, b) // denominator


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """
    Compute the output amount of a swap using the constant-product formula.

    The fee is folded into the effective input rather than deducted from the
    output:

    ``effective_in = amount_in * (10000 - fee_bps)``

    ``amount_out = floor(effective_in * reserve_out / (reserve_in * 10000 + effective_in))``

    Parameters
    ----------
    amount_in : int
        Amount of the input token sent to the pool.
    reserve_in : int
        Pool reserve of the input token.
    reserve_out : int
        Pool reserve of the output token.
    fee_bps : int
        Fee rate in basis points (0-10000).

    Returns
    -------
    int
        Output amount, always rounded down in favour of the pool.

    Notes
    -----
    Returns 0 when the input is non-positive, a reserve is empty or the fee is
    outside 0-10000; validating those is the caller's job.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    if not 0 <= fee_bps <= BPS_DENOMINATOR:
        return 0

    effective_in = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = effective_in * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + effective_in
    return numerator // denominator


def split_fee(amount_in: int, fee_bps: int) -> Tuple[int, int, int]:
    """
    Split the swap fee charged on ``amount_in``.

    Returns:
        Tuple[int, int, int]: total fee, protocol share, LP share. The two
        shares always add up to the total.
    """
    total_fee = amount_in * fee_bps // BPS_DENOMINATOR
    protocol_fee = total_fee // PROTOCOL_FEE_DIVISOR
    lp_fee = total_fee - protocol_fee
    return total_fee, protocol_fee, lp_fee
