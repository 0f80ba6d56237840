"""Order number allocation"""

from ..exceptions import CapacityExceededError
from ..repositories.order_store import IOrderStore


ORDER_NUMBER_COUNTER = "order_number"


class OrderNumberGenerator:
    """Produces ``prefix + zero-padded sequence`` order numbers.

    The sequence is a single store-side counter shared by every process, so
    two allocations can never see the same value. When the counter needs more
    digits than ``length`` the allocation fails with CapacityExceededError
    instead of widening the number.
    """

    def __init__(self, store: IOrderStore, counter_name: str = ORDER_NUMBER_COUNTER):
        self.store = store
        self.counter_name = counter_name

    async def next(self, config) -> str:
        """``config`` is any object with ``prefix`` and ``length`` attributes"""
        sequence = await self.store.next_sequence(self.counter_name)
        return self.format(sequence, config)

    @staticmethod
    def format(sequence: int, config) -> str:
        digits = str(sequence)
        if len(digits) > config.length:
            raise CapacityExceededError(
                f"Order number sequence {sequence} does not fit in {config.length} digits"
            )
        return f"{config.prefix}{digits.zfill(config.length)}"

    @staticmethod
    def capacity(config) -> int:
        """Highest sequence value the configured width can hold"""
        return 10 ** config.length - 1
