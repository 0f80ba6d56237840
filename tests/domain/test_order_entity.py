from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from orderflow.domain.entities.order import Order, OrderItem, validate_new_order
from orderflow.domain.enums import FulfillmentStatus, OrderStatus, PaymentStatus
from orderflow.domain.events.order_events import OrderCancelled, OrderCreated, OrderStatusChanged
from orderflow.domain.exceptions import ValidationFailedError
from orderflow.domain.services.state_machine import Cancel, Confirm, OrderStateMachine
from orderflow.domain.value_objects.money import OrderTotals, calculate_totals

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def new_order(**overrides):
    kwargs = dict(
        order_number="ORD00000001",
        email=" buyer@example.com ",
        items=[OrderItem(product_name="Widget", quantity=2, price=Decimal("10"))],
        now=NOW,
    )
    kwargs.update(overrides)
    return Order.create(**kwargs)


class TestOrderCreate:

    def test_initial_state(self):
        order = new_order()

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.fulfillment_status == FulfillmentStatus.UNFULFILLED
        assert order.email == "buyer@example.com"
        assert order.version == 0
        assert order.created_at == order.updated_at == NOW
        assert order.totals.total == Decimal("20.00")

    def test_raises_created_event(self):
        order = new_order()
        events = order.get_events()

        assert len(events) == 1
        assert isinstance(events[0], OrderCreated)
        assert events[0].order_number == "ORD00000001"
        assert order.get_events() == []

    def test_item_total(self):
        assert OrderItem(product_name="x", quantity=3, price=Decimal("1.10")).total == Decimal("3.30")


class TestValidateNewOrder:

    def test_missing_email_and_items(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_new_order("", [])
        assert set(exc_info.value.errors) == {"email", "items"}

    def test_bad_item_fields(self):
        items = [OrderItem(product_name="", quantity=0, price=Decimal("-1"))]
        with pytest.raises(ValidationFailedError) as exc_info:
            validate_new_order("a@b.com", items)
        assert len(exc_info.value.errors["items[0]"]) == 3

    def test_boolean_quantity_rejected(self):
        with pytest.raises(ValidationFailedError):
            validate_new_order("a@b.com", [OrderItem(product_name="x", quantity=True, price=Decimal("1"))])


class TestApplyTransition:

    def test_confirm_records_status_event(self):
        order = new_order()
        order.get_events()
        later = NOW + timedelta(minutes=1)

        order.apply_transition(OrderStateMachine().transition(order.state, Confirm()), later)

        assert order.status == OrderStatus.CONFIRMED
        assert order.updated_at == later
        [event] = order.get_events()
        assert isinstance(event, OrderStatusChanged)
        assert (event.old_status, event.new_status) == (OrderStatus.PENDING, OrderStatus.CONFIRMED)

    def test_cancel_sets_cancelled_at(self):
        order = new_order()
        order.get_events()

        order.apply_transition(OrderStateMachine().transition(order.state, Cancel("nope")), NOW, reason="nope")

        assert order.cancelled_at == NOW
        events = order.get_events()
        assert isinstance(events[-1], OrderCancelled)
        assert events[-1].reason == "nope"


class TestEdit:

    def test_edit_reports_changes(self):
        order = new_order(notes="old")
        changes = order.edit(NOW, notes="new", metadata={"gift": True})

        assert changes == {
            "notes": {"from": "old", "to": "new"},
            "metadata": {"from": None, "to": {"gift": True}},
        }
        assert order.notes == "new"

    def test_edit_without_changes(self):
        order = new_order(notes="same")
        assert order.edit(NOW + timedelta(days=1), notes="same") == {}
        assert order.updated_at == NOW


class TestTotals:

    def test_discount_tax_shipping(self):
        totals = calculate_totals([(2, "10.00"), (1, 5)], discount="5", tax_rate="0.1", shipping="4.99")

        assert totals.subtotal == Decimal("25.00")
        assert totals.tax == Decimal("2.00")
        assert totals.total == Decimal("26.99")

    def test_total_never_negative(self):
        totals = calculate_totals([(1, 5)], discount=50)
        assert totals.total == Decimal("0.00")

    def test_float_prices_keep_cents(self):
        assert calculate_totals([(3, 0.1)]).subtotal == Decimal("0.30")

    def test_negative_totals_rejected(self):
        with pytest.raises(ValueError):
            OrderTotals(subtotal=Decimal("-1"))
