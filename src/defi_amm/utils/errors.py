from typing import Optional


class AmmError(ValueError):
    """
    Base class for every failure raised by the pricing and accounting core.

    Attributes:
        message (str): Short, fixed description of the failure kind.
        detail (Optional[str]): Context about the specific operation.
    """

    message = "AMM error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)


class InvalidAmount(AmmError):
    """A supplied amount is zero or outside the u64 domain."""

    message = "Invalid amount"


class PoolEmpty(AmmError):
    """The pool holds no reserve on at least one side."""

    message = "Pool has no liquidity"


class InsufficientLiquidity(AmmError):
    """Reserved for reserve shortfalls; no operation currently raises it."""

    message = "Insufficient liquidity"


class SlippageExceeded(AmmError):
    """The computed output or deposit ratio violates the caller's bound."""

    message = "Slippage exceeded"


class Overflow(AmmError):
    """Checked arithmetic left the allowed integer range."""

    message = "Math overflow"


class InvariantViolation(AmmError):
    """The post-swap constant product fell below the pre-swap value."""

    message = "Invariant violation"
