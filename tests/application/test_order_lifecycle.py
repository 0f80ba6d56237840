import re
from decimal import Decimal

import pytest

from orderflow.application.dtos.order_dtos import OrderResponseDTO, UpdateOrderInput
from orderflow.domain.enums import FulfillmentStatus, OrderStatus, PaymentStatus
from orderflow.domain.exceptions import (
    CapacityExceededError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from orderflow.domain.value_objects.entity_ids import OrderId


async def drive_to(engine, order, status):
    """Walk a fresh pending order into the given status through the engine"""
    if status == "cancelled":
        return await engine.cancel(order.id, "customer request")
    await engine.confirm(order.id)
    if status == "delivered":
        return await engine.update_fulfillment(order.id, "fulfilled")
    await engine.update(order.id, {"status": "processing"})
    return await engine.update(order.id, {"status": status})


class TestCreate:

    async def test_create_order(self, engine, payload):
        order = await engine.create(payload())

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.fulfillment_status == FulfillmentStatus.UNFULFILLED
        assert re.fullmatch(r"ORD\d{8}", order.order_number)
        assert order.version == 1
        assert order.totals.total == Decimal("20.00")
        assert order.shipping_address.city == "London"
        assert order.currency == "USD"

        events = await engine.get_events(order.id)
        assert [e.type for e in events] == ["created"]
        assert events[0].data == {"order_number": order.order_number, "email": "a@b.com"}

    async def test_create_computes_totals_from_input(self, engine, payload):
        order = await engine.create(payload(discount="5", tax_rate="0.1", shipping="3", currency="EUR"))

        assert order.totals.subtotal == Decimal("20.00")
        assert order.totals.tax == Decimal("1.50")
        assert order.totals.total == Decimal("19.50")
        assert order.currency == "EUR"

    async def test_create_uses_default_currency(self, database, payload):
        from orderflow.application.use_cases.order_lifecycle import OrderLifecycleEngine
        from orderflow.core.config import OrderEngineConfig

        engine = OrderLifecycleEngine(database.unit_of_work, OrderEngineConfig(default_currency="GBP"))
        order = await engine.create(payload())
        assert order.currency == "GBP"

    async def test_order_numbers_are_sequential(self, engine, payload):
        first = await engine.create(payload())
        second = await engine.create(payload())
        assert (first.order_number, second.order_number) == ("ORD00000001", "ORD00000002")

    @pytest.mark.parametrize("bad", [
        {"email": "a@b.com", "items": []},
        {"email": "a@b.com", "items": [{"product_name": "x", "quantity": 0, "price": 1}]},
        {"items": [{"product_name": "x", "quantity": 1, "price": 1}]},
    ])
    async def test_create_rejects_bad_input(self, engine, bad, database):
        with pytest.raises(ValidationFailedError):
            await engine.create(bad)
        assert database.orders == {}

    async def test_overflowing_order_number_fails_and_stores_nothing(self, make_engine, payload, database):
        engine = make_engine(length=1)
        database.sequences["order_number"] = 9

        with pytest.raises(CapacityExceededError):
            await engine.create(payload())
        assert database.orders == {}


class TestReads:

    async def test_find_by_id_and_number(self, engine, payload):
        order = await engine.create(payload())

        by_id = await engine.find_by_id(order.id)
        by_str = await engine.find_by_id(str(order.id))
        by_number = await engine.find_by_order_number(order.order_number)

        assert by_id.id == by_str.id == by_number.id == order.id

    async def test_missing_orders(self, engine):
        assert await engine.find_by_id(OrderId.generate()) is None
        assert await engine.find_by_id("not-a-uuid") is None
        assert await engine.find_by_order_number("ORD99999999") is None
        with pytest.raises(NotFoundError):
            await engine.get_events(OrderId.generate())

    async def test_returned_orders_are_detached(self, engine, payload):
        order = await engine.create(payload())
        loaded = await engine.find_by_id(order.id)
        loaded.notes = "scribbled"

        assert (await engine.find_by_id(order.id)).notes is None

    async def test_response_dto(self, engine, payload):
        order = await engine.create(payload(metadata={"channel": "web"}))
        dto = OrderResponseDTO.from_entity(order)

        assert dto.id == order.id.value
        assert dto.items[0].total == Decimal("20.00")
        assert dto.shipping_address.country == "GB"
        assert dto.metadata == {"channel": "web"}


class TestConfirmAndCancel:

    async def test_confirm_pending_order(self, engine, payload):
        order = await engine.create(payload())

        confirmed = await engine.confirm(order.id)

        assert confirmed.status == OrderStatus.CONFIRMED
        events = await engine.get_events(order.id)
        assert events[-1].type == "status_changed"
        assert events[-1].data == {"from": "pending", "to": "confirmed"}

    async def test_confirm_twice_fails(self, engine, payload):
        order = await engine.create(payload())
        await engine.confirm(order.id)

        with pytest.raises(InvalidTransitionError):
            await engine.confirm(order.id)

    async def test_cancel_processing_order(self, engine, payload):
        order = await engine.create(payload())
        await engine.update(order.id, {"status": "confirmed"})
        await engine.update(order.id, {"status": "processing"})

        cancelled = await engine.cancel(order.id, "out of stock", cancelled_by="staff-7")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        last = (await engine.get_events(order.id))[-1]
        assert last.note == "out of stock"
        assert last.data == {"from": "processing", "to": "cancelled", "reason": "out of stock"}
        assert last.created_by == "staff-7"

        with pytest.raises(InvalidTransitionError):
            await engine.cancel(order.id, "out of stock")
        assert len(await engine.get_events(order.id)) == 4

    async def test_cancel_missing_order(self, engine):
        with pytest.raises(NotFoundError):
            await engine.cancel(OrderId.generate())


class TestUpdate:

    async def test_paid_confirms_pending_order(self, engine, payload):
        order = await engine.create(payload())

        updated = await engine.update(order.id, {"payment_status": "paid"})

        assert updated.status == OrderStatus.CONFIRMED
        assert updated.payment_status == PaymentStatus.PAID
        events = await engine.get_events(order.id)
        assert [(e.type, e.data) for e in events[1:]] == [
            ("payment_updated", {"from": "pending", "to": "paid"}),
            ("status_changed", {"from": "pending", "to": "confirmed"}),
        ]

    async def test_paid_without_auto_confirm(self, make_engine, payload):
        engine = make_engine(confirm_on_payment=False)
        order = await engine.create(payload())

        updated = await engine.update(order.id, {"payment_status": "paid"})

        assert updated.status == OrderStatus.PENDING
        assert [e.type for e in await engine.get_events(order.id)] == ["created", "payment_updated"]

    async def test_status_then_payment_in_one_patch(self, engine, payload):
        order = await engine.create(payload())

        updated = await engine.update(order.id, UpdateOrderInput(status="confirmed", payment_status="paid"))

        assert updated.status == OrderStatus.CONFIRMED
        assert [e.type for e in await engine.get_events(order.id)] == ["created", "status_changed", "payment_updated"]

    async def test_notes_and_metadata(self, engine, payload):
        order = await engine.create(payload())

        updated = await engine.update(order.id, {"notes": "leave at door", "metadata": {"gift": True}})

        assert updated.notes == "leave at door"
        last = (await engine.get_events(order.id))[-1]
        assert last.type == "updated"
        assert last.data == {"changes": {
            "notes": {"from": None, "to": "leave at door"},
            "metadata": {"from": None, "to": {"gift": True}},
        }}

    async def test_explicit_null_clears_notes(self, engine, payload):
        order = await engine.create(payload(notes="temp"))
        updated = await engine.update(order.id, {"notes": None})
        assert updated.notes is None

    async def test_empty_patch_changes_nothing(self, engine, payload):
        order = await engine.create(payload())

        updated = await engine.update(order.id, {})

        assert updated.version == 1
        assert len(await engine.get_events(order.id)) == 1

    async def test_same_status_is_noop(self, engine, payload):
        order = await engine.create(payload())
        updated = await engine.update(order.id, {"status": "pending"})
        assert updated.version == 1

    async def test_illegal_edge_rolls_back_everything(self, engine, payload):
        order = await engine.create(payload())

        with pytest.raises(InvalidTransitionError):
            await engine.update(order.id, {"status": "shipped", "notes": "lost"})

        stored = await engine.find_by_id(order.id)
        assert stored.status == OrderStatus.PENDING
        assert stored.notes is None
        assert len(await engine.get_events(order.id)) == 1

    @pytest.mark.parametrize("terminal", ["cancelled", "shipped", "delivered"])
    @pytest.mark.parametrize("attempt", ["confirm", "cancel", "same_status", "other_status"])
    async def test_terminal_order_rejects_moves_and_stays_unchanged(self, engine, payload, terminal, attempt):
        order = await drive_to(engine, await engine.create(payload()), terminal)
        before = await engine.find_by_id(order.id)
        ledger_before = await engine.get_events(order.id)

        with pytest.raises(InvalidTransitionError):
            if attempt == "confirm":
                await engine.confirm(order.id)
            elif attempt == "cancel":
                await engine.cancel(order.id, "too late")
            elif attempt == "same_status":
                await engine.update(order.id, {"status": terminal})
            else:
                await engine.update(order.id, {"status": "processing", "notes": "retry"})

        after = await engine.find_by_id(order.id)
        assert after == before
        assert after.status == OrderStatus(terminal)
        assert after.version == before.version
        assert await engine.get_events(order.id) == ledger_before

    async def test_bad_enum_value(self, engine, payload):
        order = await engine.create(payload())
        with pytest.raises(ValidationFailedError):
            await engine.update(order.id, {"status": "teleported"})

    async def test_update_missing_order(self, engine):
        with pytest.raises(NotFoundError):
            await engine.update(OrderId.generate(), {"notes": "x"})


class TestFulfillment:

    async def test_fulfilled_walks_to_delivered(self, engine, payload):
        order = await engine.create(payload())
        await engine.confirm(order.id)

        delivered = await engine.update_fulfillment(order.id, "fulfilled")

        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.fulfillment_status == FulfillmentStatus.FULFILLED
        events = await engine.get_events(order.id)
        assert [(e.type, e.data["to"]) for e in events[2:]] == [
            ("fulfillment_updated", "fulfilled"),
            ("status_changed", "processing"),
            ("status_changed", "shipped"),
            ("status_changed", "delivered"),
        ]

    async def test_order_fulfilled_while_pending_delivers_on_confirm(self, engine, payload):
        order = await engine.create(payload())
        pending = await engine.update_fulfillment(order.id, "fulfilled")
        assert pending.status == OrderStatus.PENDING

        delivered = await engine.confirm(order.id)

        assert delivered.status == OrderStatus.DELIVERED
        events = await engine.get_events(order.id)
        assert [(e.type, e.data["to"]) for e in events[2:]] == [
            ("status_changed", "confirmed"),
            ("status_changed", "processing"),
            ("status_changed", "shipped"),
            ("status_changed", "delivered"),
        ]

    async def test_partial_fulfillment(self, engine, payload):
        order = await engine.create(payload())
        updated = await engine.update_fulfillment(order.id, FulfillmentStatus.PARTIAL)
        assert updated.status == OrderStatus.PENDING
        assert updated.fulfillment_status == FulfillmentStatus.PARTIAL

    async def test_fulfilled_without_auto_complete(self, make_engine, payload):
        engine = make_engine(complete_on_fulfillment=False)
        order = await engine.create(payload())
        await engine.confirm(order.id)

        updated = await engine.update_fulfillment(order.id, "fulfilled")
        assert updated.status == OrderStatus.CONFIRMED


class TestManualEvents:

    async def test_add_event(self, engine, payload):
        order = await engine.create(payload())

        event = await engine.add_event(order.id, {"type": "note_added", "note": "called customer", "created_by": "cs-1"})

        events = await engine.get_events(order.id)
        assert events[-1].id == event.id
        assert events[-1].note == "called customer"

    async def test_get_events_is_repeatable(self, engine, payload):
        order = await engine.create(payload())
        await engine.update(order.id, {"payment_status": "paid", "notes": "rush"})

        first = await engine.get_events(order.id)
        second = await engine.get_events(order.id)
        assert first == second

        first[-1].data["tampered"] = True
        first.pop(0)

        third = await engine.get_events(order.id)
        assert third == second
        assert "tampered" not in third[-1].data

    async def test_add_event_missing_order(self, engine):
        with pytest.raises(NotFoundError):
            await engine.add_event(OrderId.generate(), {"type": "note_added"})

    async def test_add_event_type_too_long(self, engine, payload):
        order = await engine.create(payload())
        with pytest.raises(ValidationFailedError):
            await engine.add_event(order.id, {"type": "x" * 101})


def test_calculate_totals_accepts_mixed_items(engine):
    from orderflow.domain.entities.order import OrderItem

    totals = engine.calculate_totals(
        [{"quantity": 1, "price": "2.50"}, OrderItem(product_name="x", quantity=2, price=Decimal("1"))],
        shipping=1,
    )
    assert totals.total == Decimal("5.50")


class TestFindMany:

    async def test_filters_sorting_and_pages(self, engine, payload):
        first = await engine.create(payload(email="zed@example.com", user_id="u-1"))
        second = await engine.create(payload(email="Amy@Example.com", user_id="u-2"))
        third = await engine.create(payload(email="amy.b@example.com", user_id="u-1"))
        await engine.confirm(second.id)

        assert (await engine.find_many({"status": "confirmed"})).items[0].id == second.id
        assert {o.id for o in (await engine.find_many({"user_id": "u-1"})).items} == {first.id, third.id}
        assert (await engine.find_many({"search": "AMY"})).total == 2

        page = await engine.find_many({"sort_by": "order_number", "sort_order": "asc", "limit": 2, "page": 2})
        assert [o.id for o in page.items] == [third.id]
        assert (page.total, page.page, page.limit, page.total_pages) == (3, 2, 2, 2)

    async def test_invalid_filter(self, engine):
        with pytest.raises(ValidationFailedError):
            await engine.find_many({"limit": 500})
        with pytest.raises(ValidationFailedError):
            await engine.find_many({"sort_by": "email"})
