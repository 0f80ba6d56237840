"""Order domain events

Raised by the Order aggregate and dispatched to the configured hooks once the
unit of work has committed. They are notifications, not ledger entries.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..value_objects.entity_ids import OrderId
from ..enums import FulfillmentStatus, OrderStatus, PaymentStatus


@dataclass(frozen=True)
class OrderCreated:
    order_id: OrderId
    order_number: str
    created_at: datetime


@dataclass(frozen=True)
class OrderStatusChanged:
    order_id: OrderId
    old_status: OrderStatus
    new_status: OrderStatus
    changed_at: datetime


@dataclass(frozen=True)
class PaymentStatusChanged:
    order_id: OrderId
    old_status: PaymentStatus
    new_status: PaymentStatus
    changed_at: datetime


@dataclass(frozen=True)
class FulfillmentStatusChanged:
    order_id: OrderId
    old_status: FulfillmentStatus
    new_status: FulfillmentStatus
    changed_at: datetime


@dataclass(frozen=True)
class OrderCancelled:
    order_id: OrderId
    reason: Optional[str]
    cancelled_at: datetime
