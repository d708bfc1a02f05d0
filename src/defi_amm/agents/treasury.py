from typing import Any
import logging

from mesa import Agent

from defi_amm.utils.errors import InvalidAmount
from defi_amm.utils.keys import TREASURY_SEED, derive_address
from defi_amm.utils.math_helpers import checked_add
from defi_amm.utils.records import TreasuryRecord

logger = logging.getLogger(__name__)


class TreasuryAgent(Agent):
    """
    Protocol-level accumulator of the protocol share of swap fees.

    Attributes:
        authority (str): Identity allowed to withdraw accumulated fees.
        total_fees_collected (int): Monotonic u64 counter of protocol fees.
        key (str): Derived address under which the treasury is stored.
    """

    def __init__(self, model, authority: str, total_fees_collected: int = 0):
        super().__init__(model)
        self.authority = str(authority)
        self.total_fees_collected = int(total_fees_collected)
        self.key = derive_address(TREASURY_SEED)

    def record_protocol_fee(self, amount: int) -> int:
        """
        Add ``amount`` to the collected total and return the new total.

        Raises:
            InvalidAmount: If ``amount`` is negative.
            Overflow: If the total would leave the u64 range.
        """
        if amount < 0:
            raise InvalidAmount(f"protocol fee {amount}")
        self.total_fees_collected = checked_add(self.total_fees_collected, amount)
        return self.total_fees_collected

    def is_authority(self, signer: Any) -> bool:
        return signer == self.authority

    def to_record(self) -> TreasuryRecord:
        return TreasuryRecord(authority=self.authority, total_fees_collected=self.total_fees_collected)

    def step(self):
        pass
