"""Order store interface"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from ..entities.order import Order
from ..entities.order_event import OrderEvent
from ..enums import FulfillmentStatus, OrderStatus, PaymentStatus, SortOrder
from ..value_objects.entity_ids import OrderId


SORTABLE_FIELDS = ("created_at", "updated_at", "order_number", "status", "total")


@dataclass(frozen=True)
class OrderQuery:
    """Already-validated listing criteria handed to the store"""
    user_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    fulfillment_status: Optional[FulfillmentStatus] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = "created_at"
    sort_order: SortOrder = SortOrder.DESC
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class IOrderStore(ABC):
    """Persistence contract the lifecycle engine depends on.

    Every instance is bound to one unit of work: writes become visible to
    other units of work only when that unit commits.
    """

    @abstractmethod
    async def load(self, order_id: OrderId) -> Optional[Order]:
        pass

    @abstractmethod
    async def load_by_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        """Insert (version 0) or update (matching version) the order.

        Raises ConflictError when the stored version moved on since the
        order was loaded, or when the order number is already taken.
        Bumps ``order.version`` on success.
        """

    @abstractmethod
    async def query(self, criteria: OrderQuery) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    async def next_sequence(self, counter_name: str) -> int:
        """Atomically increment and return the named counter (first value is 1)"""

    @abstractmethod
    async def append_event(self, event: OrderEvent) -> None:
        pass

    @abstractmethod
    async def list_events(self, order_id: OrderId) -> List[OrderEvent]:
        """Ascending created_at, ties in insertion order"""
