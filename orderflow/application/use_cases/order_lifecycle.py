"""Order lifecycle use cases.

``OrderLifecycleEngine`` is the single entry point callers use to create and
move orders. Every mutating operation runs inside one unit of work: the order
write and the ledger entries describing it commit together or not at all.
Post-commit hooks are dispatched afterwards from the domain events the order
raised.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from ...core.config import OrderEngineConfig
from ...domain.entities.order import Order, utcnow, validate_new_order
from ...domain.entities.order_event import OrderEvent
from ...domain.enums import EventType, OrderStatus
from ...domain.exceptions import ForbiddenError, NotFoundError, OperationTimeoutError
from ...domain.repositories.unit_of_work import IUnitOfWork
from ...domain.services.event_ledger import EventLedger
from ...domain.services.order_number import OrderNumberGenerator
from ...domain.services.state_machine import (
    Cancel,
    Confirm,
    OrderStateMachine,
    SetFulfillmentStatus,
    SetPaymentStatus,
    SetStatus,
    Step,
)
from ...domain.value_objects.entity_ids import OrderId
from ...domain.value_objects.money import OrderTotals, calculate_totals
from ..dtos.order_dtos import (
    AddOrderEventInput,
    CreateOrderInput,
    OrderFilter,
    OrderPage,
    UpdateOrderInput,
    parse_input,
)
from .hooks import HookDispatcher


class OrderLifecycleEngine:
    """Creates orders and drives them through their lifecycle.

    ``uow_factory`` returns a fresh unit of work per call. ``timeout`` on any
    operation (or ``config.operation_timeout`` when omitted) bounds the whole
    unit of work; when it expires the work is rolled back and
    OperationTimeoutError is raised.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        config: Optional[OrderEngineConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow_factory = uow_factory
        self.config = config or OrderEngineConfig()
        self.clock = clock
        self.state_machine = OrderStateMachine(
            confirm_on_payment=self.config.auto_transitions.confirm_on_payment,
            complete_on_fulfillment=self.config.auto_transitions.complete_on_fulfillment,
        )
        self.hooks = HookDispatcher(self.config.hooks)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    async def create(self, data: Any, timeout: Optional[float] = None) -> Order:
        """Create a pending order with a freshly allocated order number"""

        async def operation() -> Order:
            payload = parse_input(CreateOrderInput, data)
            payload = parse_input(CreateOrderInput, await self.hooks.before_create(payload))
            items = [item.to_entity() for item in payload.items]
            validate_new_order(payload.email, items)
            totals = calculate_totals(
                ((item.quantity, item.price) for item in items),
                discount=payload.discount,
                tax_rate=payload.tax_rate,
                shipping=payload.shipping,
            )

            async with self.uow_factory() as uow:
                order_number = await OrderNumberGenerator(uow.orders).next(self.config.order_number)
                order = Order.create(
                    order_number=order_number,
                    email=payload.email,
                    items=items,
                    now=self.clock(),
                    user_id=payload.user_id,
                    currency=payload.currency or self.config.default_currency,
                    totals=totals,
                    shipping_address=payload.shipping_address.to_value() if payload.shipping_address else None,
                    billing_address=payload.billing_address.to_value() if payload.billing_address else None,
                    notes=payload.notes,
                    metadata=payload.metadata,
                )
                await uow.orders.save(order)
                await EventLedger(uow.orders, self.clock).append(
                    order.id,
                    EventType.CREATED.value,
                    data={"order_number": order.order_number, "email": order.email},
                )
                await uow.commit()
            return order

        return await self._mutate(operation, timeout)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def find_by_id(self, order_id, timeout: Optional[float] = None) -> Optional[Order]:
        parsed = OrderId.parse(order_id)
        if parsed is None:
            return None

        async def operation() -> Optional[Order]:
            async with self.uow_factory() as uow:
                return await uow.orders.load(parsed)

        return await self._with_timeout(operation, timeout)

    async def find_by_order_number(self, order_number: str, timeout: Optional[float] = None) -> Optional[Order]:
        async def operation() -> Optional[Order]:
            async with self.uow_factory() as uow:
                return await uow.orders.load_by_number(order_number)

        return await self._with_timeout(operation, timeout)

    async def find_many(self, filters: Any = None, timeout: Optional[float] = None) -> OrderPage:
        criteria = parse_input(OrderFilter, filters or {})

        async def operation() -> OrderPage:
            async with self.uow_factory() as uow:
                items, total = await uow.orders.query(criteria.to_query())
            return OrderPage(items=items, total=total, page=criteria.page, limit=criteria.limit)

        return await self._with_timeout(operation, timeout)

    async def get_events(self, order_id, timeout: Optional[float] = None) -> List[OrderEvent]:
        """Full ledger of an order, oldest first"""

        async def operation() -> List[OrderEvent]:
            async with self.uow_factory() as uow:
                order = await self._load(uow, order_id)
                return await EventLedger(uow.orders, self.clock).list(order.id)

        return await self._with_timeout(operation, timeout)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def update(self, order_id, patch: Any, timeout: Optional[float] = None) -> Order:
        """Apply a partial update: status first, then payment status, then notes/metadata"""
        features = self.config.features
        if not features.allow_edit:
            raise ForbiddenError("Editing orders is disabled")

        async def operation() -> Order:
            changes = parse_input(UpdateOrderInput, patch)
            changes = parse_input(UpdateOrderInput, await self.hooks.before_update(order_id, changes))
            if changes.status == OrderStatus.CANCELLED and not features.allow_cancel:
                raise ForbiddenError("Cancelling orders is disabled")

            async with self.uow_factory() as uow:
                order = await self._load(uow, order_id)
                now = self.clock()
                steps: List[Step] = []

                if changes.status is not None:
                    outcome = self.state_machine.transition(order.state, SetStatus(changes.status))
                    order.apply_transition(outcome, now)
                    steps.extend(outcome.steps)
                if changes.payment_status is not None:
                    outcome = self.state_machine.transition(order.state, SetPaymentStatus(changes.payment_status))
                    order.apply_transition(outcome, now)
                    steps.extend(outcome.steps)
                edits = order.edit(now, **changes.edits())

                if not steps and not edits:
                    return order

                await uow.orders.save(order)
                ledger = EventLedger(uow.orders, self.clock)
                await self._journal(ledger, order, steps)
                if edits and features.track_events:
                    await ledger.append(order.id, EventType.UPDATED.value, data={"changes": edits})
                await uow.commit()
            return order

        return await self._mutate(operation, timeout)

    async def update_fulfillment(self, order_id, fulfillment_status, timeout: Optional[float] = None) -> Order:
        """Record fulfillment progress; completing it may walk the order to delivered"""
        return await self._transition(order_id, SetFulfillmentStatus(fulfillment_status), timeout)

    async def confirm(self, order_id, timeout: Optional[float] = None) -> Order:
        return await self._transition(order_id, Confirm(), timeout)

    async def cancel(
        self,
        order_id,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Order:
        if not self.config.features.allow_cancel:
            raise ForbiddenError("Cancelling orders is disabled")
        return await self._transition(order_id, Cancel(reason), timeout, reason=reason, actor=cancelled_by)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    async def add_event(self, order_id, event: Any, timeout: Optional[float] = None) -> OrderEvent:
        """Append a manual annotation to an order's ledger"""
        if not self.config.features.track_events:
            raise ForbiddenError("Event tracking is disabled")
        entry = parse_input(AddOrderEventInput, event)

        async def operation() -> OrderEvent:
            async with self.uow_factory() as uow:
                order = await self._load(uow, order_id)
                recorded = await EventLedger(uow.orders, self.clock).append(
                    order.id, entry.type, data=entry.data, note=entry.note, created_by=entry.created_by
                )
                await uow.commit()
            return recorded

        return await self._with_timeout(operation, timeout)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------
    def calculate_totals(self, items: Iterable, discount=0, tax_rate=0, shipping=0) -> OrderTotals:
        """Totals for items given as OrderItem objects, item DTOs or mappings"""
        pairs = []
        for item in items:
            if isinstance(item, dict):
                pairs.append((item["quantity"], item["price"]))
            else:
                pairs.append((item.quantity, item.price))
        return calculate_totals(pairs, discount=discount, tax_rate=tax_rate, shipping=shipping)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _transition(self, order_id, action, timeout, reason=None, actor=None) -> Order:
        async def operation() -> Order:
            async with self.uow_factory() as uow:
                order = await self._load(uow, order_id)
                outcome = self.state_machine.transition(order.state, action)
                if not outcome.changed:
                    return order

                order.apply_transition(outcome, self.clock(), reason=reason)
                await uow.orders.save(order)
                await self._journal(
                    EventLedger(uow.orders, self.clock), order, outcome.steps, reason=reason, actor=actor
                )
                await uow.commit()
            return order

        return await self._mutate(operation, timeout)

    async def _journal(self, ledger: EventLedger, order: Order, steps, reason=None, actor=None) -> None:
        """One ledger entry per step; only status changes survive track_events=False"""
        for step in steps:
            data = {"from": step.old.value, "to": step.new.value}
            if step.is_status_change:
                if step.new == OrderStatus.CANCELLED and reason is not None:
                    data["reason"] = reason
                await ledger.append(
                    order.id,
                    EventType.STATUS_CHANGED.value,
                    data=data,
                    note=reason if step.new == OrderStatus.CANCELLED else None,
                    created_by=actor,
                )
            elif self.config.features.track_events:
                event_type = (
                    EventType.PAYMENT_UPDATED if step.field == "payment_status" else EventType.FULFILLMENT_UPDATED
                )
                await ledger.append(order.id, event_type.value, data=data, created_by=actor)

    async def _load(self, uow: IUnitOfWork, order_id) -> Order:
        parsed = OrderId.parse(order_id)
        order = await uow.orders.load(parsed) if parsed else None
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _mutate(self, operation, timeout) -> Order:
        order = await self._with_timeout(operation, timeout)
        await self.hooks.dispatch(order, order.get_events())
        return order

    async def _with_timeout(self, operation, timeout):
        limit = timeout if timeout is not None else self.config.operation_timeout
        deadline = asyncio.timeout(limit)
        try:
            async with deadline:
                return await operation()
        except TimeoutError as exc:
            if deadline.expired():
                raise OperationTimeoutError(f"Order operation exceeded {limit} seconds") from exc
            raise
