from datetime import datetime, timezone
from decimal import Decimal

import pytest

from orderflow.domain.entities.order import Order, OrderItem
from orderflow.domain.repositories.unit_of_work import IUnitOfWork
from orderflow.infrastructure.repositories.memory_order_store import InMemoryOrderDatabase

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


class RecordingUnitOfWork(IUnitOfWork):
    def __init__(self):
        self.calls = []

    async def commit(self):
        self.calls.append("commit")
        self._committed = True

    async def rollback(self):
        self.calls.append("rollback")


def new_order(number="ORD00000001"):
    return Order.create(
        order_number=number,
        email="buyer@example.com",
        items=[OrderItem(product_name="Widget", quantity=1, price=Decimal("5"))],
        now=T0,
    )


class TestContextProtocol:

    async def test_clean_exit_commits(self):
        uow = RecordingUnitOfWork()
        async with uow:
            pass
        assert uow.calls == ["commit"]

    async def test_explicit_commit_is_not_repeated(self):
        uow = RecordingUnitOfWork()
        async with uow:
            await uow.commit()
        assert uow.calls == ["commit"]

    async def test_error_rolls_back_and_propagates(self):
        uow = RecordingUnitOfWork()
        with pytest.raises(KeyError):
            async with uow:
                raise KeyError("boom")
        assert uow.calls == ["rollback"]

    async def test_reentering_resets_commit_flag(self):
        uow = RecordingUnitOfWork()
        async with uow:
            await uow.commit()
        async with uow:
            pass
        assert uow.calls == ["commit", "commit"]


class TestInMemoryUnitOfWork:

    async def test_clean_exit_publishes(self):
        database = InMemoryOrderDatabase()
        order = new_order()

        async with database.unit_of_work() as uow:
            await uow.orders.save(order)

        stored = database.snapshot(order.id)
        assert stored is not None
        assert stored.version == 1

    async def test_error_discards_staged_writes(self):
        database = InMemoryOrderDatabase()
        order = new_order()

        with pytest.raises(RuntimeError):
            async with database.unit_of_work() as uow:
                await uow.orders.save(order)
                raise RuntimeError("abort")

        assert database.snapshot(order.id) is None
        assert uow.orders.staged == {}
