"""Order entity with business logic"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..enums import FulfillmentStatus, OrderStatus, PaymentStatus
from ..events.order_events import (
    FulfillmentStatusChanged,
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    PaymentStatusChanged,
)
from ..exceptions import ValidationFailedError
from ..services.state_machine import OrderState, TransitionOutcome, is_terminal
from ..value_objects.address import Address
from ..value_objects.entity_ids import OrderId
from ..value_objects.money import OrderTotals, calculate_totals, quantize, to_decimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_UNSET: Any = object()


@dataclass
class OrderItem:
    product_name: str
    quantity: int
    price: Decimal
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    sku: Optional[str] = None

    @property
    def total(self) -> Decimal:
        return quantize(to_decimal(self.price) * self.quantity)


def validate_new_order(email: Any, items: Any) -> None:
    """Structural check on the raw creation input.

    The request layer validates payload shape first; this guards the
    aggregate against anything that slipped past it.
    """
    errors: Dict[str, List[str]] = {}

    if not isinstance(email, str) or "@" not in email.strip():
        errors.setdefault("email", []).append("A contact email address is required")

    if not isinstance(items, (list, tuple)) or not items:
        errors.setdefault("items", []).append("An order needs at least one item")
    else:
        for index, item in enumerate(items):
            key = f"items[{index}]"
            if not getattr(item, "product_name", None):
                errors.setdefault(key, []).append("product_name is required")
            quantity = getattr(item, "quantity", None)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                errors.setdefault(key, []).append("quantity must be an integer of at least 1")
            price = getattr(item, "price", None)
            try:
                if price is None or to_decimal(price) < 0:
                    errors.setdefault(key, []).append("price must be zero or more")
            except (ArithmeticError, TypeError, ValueError):
                errors.setdefault(key, []).append("price must be a number")

    if errors:
        raise ValidationFailedError(errors)


@dataclass
class Order:
    id: OrderId
    order_number: str
    email: str
    items: List[OrderItem]
    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.UNFULFILLED
    currency: str = "USD"
    totals: OrderTotals = field(default_factory=OrderTotals)
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    cancelled_at: Optional[datetime] = None

    # Optimistic concurrency: 0 until first saved, bumped by the store on every save
    version: int = 0

    # Domain events
    _events: List = field(default_factory=list, init=False, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        order_number: str,
        email: str,
        items: List[OrderItem],
        now: datetime,
        user_id: Optional[str] = None,
        currency: str = "USD",
        totals: Optional[OrderTotals] = None,
        shipping_address: Optional[Address] = None,
        billing_address: Optional[Address] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> 'Order':
        """Factory method: a new order starts pending / pending / unfulfilled"""
        validate_new_order(email, items)

        order = cls(
            id=OrderId.generate(),
            order_number=order_number,
            email=email.strip(),
            items=list(items),
            user_id=user_id,
            currency=currency,
            totals=totals or calculate_totals((item.quantity, item.price) for item in items),
            shipping_address=shipping_address,
            billing_address=billing_address,
            notes=notes,
            metadata=dict(metadata) if metadata is not None else None,
            created_at=now,
            updated_at=now,
        )
        order._events.append(OrderCreated(
            order_id=order.id,
            order_number=order_number,
            created_at=now,
        ))
        return order

    @property
    def state(self) -> OrderState:
        return OrderState(self.status, self.payment_status, self.fulfillment_status)

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def apply_transition(self, outcome: TransitionOutcome, now: datetime, reason: Optional[str] = None) -> None:
        """Business logic: adopt a decision taken by the state machine"""
        if not outcome.changed:
            return

        for step in outcome.steps:
            if step.field == "status":
                self._events.append(OrderStatusChanged(
                    order_id=self.id, old_status=step.old, new_status=step.new, changed_at=now
                ))
            elif step.field == "payment_status":
                self._events.append(PaymentStatusChanged(
                    order_id=self.id, old_status=step.old, new_status=step.new, changed_at=now
                ))
            elif step.field == "fulfillment_status":
                self._events.append(FulfillmentStatusChanged(
                    order_id=self.id, old_status=step.old, new_status=step.new, changed_at=now
                ))

        self.status = outcome.state.status
        self.payment_status = outcome.state.payment_status
        self.fulfillment_status = outcome.state.fulfillment_status
        self.updated_at = now

        if self.status == OrderStatus.CANCELLED and self.cancelled_at is None:
            self.cancelled_at = now
            self._events.append(OrderCancelled(order_id=self.id, reason=reason, cancelled_at=now))

    def edit(self, now: datetime, notes: Any = _UNSET, metadata: Any = _UNSET) -> Dict[str, Dict[str, Any]]:
        """Business logic: replace free-form annotations, returning what changed"""
        changes: Dict[str, Dict[str, Any]] = {}
        if notes is not _UNSET and notes != self.notes:
            changes["notes"] = {"from": self.notes, "to": notes}
            self.notes = notes
        if metadata is not _UNSET and metadata != self.metadata:
            changes["metadata"] = {"from": self.metadata, "to": metadata}
            self.metadata = dict(metadata) if metadata is not None else None
        if changes:
            self.updated_at = now
        return changes

    def get_events(self) -> List:
        """Get and clear domain events"""
        events = self._events.copy()
        self._events.clear()
        return events
