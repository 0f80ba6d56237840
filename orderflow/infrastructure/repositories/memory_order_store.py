"""In-process order store.

Used by tests and by embedders that do not want a database. Each unit of
work stages its writes privately; commit re-checks every staged version
against the shared state under one lock and then publishes them together,
so the semantics match the SQL store: last reader loses with ConflictError.
"""

import copy
import logging
import threading
from typing import Dict, List, Optional, Tuple

from ...domain.entities.order import Order
from ...domain.entities.order_event import OrderEvent
from ...domain.enums import SortOrder
from ...domain.exceptions import ConflictError
from ...domain.repositories.order_store import IOrderStore, OrderQuery
from ...domain.repositories.unit_of_work import IUnitOfWork
from ...domain.value_objects.entity_ids import OrderId

logger = logging.getLogger(__name__)


def _detached(order: Order) -> Order:
    """Deep copy without pending domain events"""
    clone = copy.deepcopy(order)
    clone._events.clear()
    return clone


def _copied(events) -> List[OrderEvent]:
    """Ledger entries handed across the store boundary never share their data dicts"""
    return [copy.deepcopy(event) for event in events]


def _sort_value(order: Order, sort_by: str):
    if sort_by == "total":
        return order.totals.total
    value = getattr(order, sort_by)
    return value.value if hasattr(value, "value") else value


class InMemoryOrderDatabase:
    """Committed state shared by every unit of work created from it"""

    def __init__(self):
        self.orders: Dict[OrderId, Order] = {}
        self.numbers: Dict[str, OrderId] = {}
        self.events: Dict[OrderId, List[OrderEvent]] = {}
        self.sequences: Dict[str, int] = {}
        self.lock = threading.Lock()

    def unit_of_work(self) -> 'InMemoryUnitOfWork':
        return InMemoryUnitOfWork(self)

    def next_sequence(self, counter_name: str) -> int:
        """Counters advance immediately; a rolled-back allocation leaves a gap"""
        with self.lock:
            value = self.sequences.get(counter_name, 0) + 1
            self.sequences[counter_name] = value
            return value

    def snapshot(self, order_id: OrderId) -> Optional[Order]:
        with self.lock:
            order = self.orders.get(order_id)
            return _detached(order) if order else None

    def snapshot_all(self) -> List[Order]:
        with self.lock:
            return [_detached(order) for order in self.orders.values()]

    def find_id_by_number(self, order_number: str) -> Optional[OrderId]:
        with self.lock:
            return self.numbers.get(order_number)

    def events_for(self, order_id: OrderId) -> List[OrderEvent]:
        with self.lock:
            return _copied(self.events.get(order_id, []))

    def publish(self, store: 'InMemoryOrderStore') -> None:
        """Validate staged versions and apply the staged writes atomically"""
        with self.lock:
            for order_id, expected in store.expected_versions.items():
                committed = self.orders.get(order_id)
                committed_version = committed.version if committed else 0
                if committed_version != expected:
                    raise ConflictError(f"Order {order_id} was modified concurrently")
                staged = store.staged[order_id]
                owner = self.numbers.get(staged.order_number)
                if owner is not None and owner != order_id:
                    raise ConflictError(f"Order number {staged.order_number} is already taken")

            for order_id, staged in store.staged.items():
                self.orders[order_id] = _detached(staged)
                self.numbers[staged.order_number] = order_id
            for event in store.staged_events:
                self.events.setdefault(event.order_id, []).append(event)

        logger.debug(
            "Published %d order(s) and %d event(s)", len(store.staged), len(store.staged_events)
        )


class InMemoryOrderStore(IOrderStore):
    """Private view over an InMemoryOrderDatabase for one unit of work"""

    def __init__(self, database: InMemoryOrderDatabase):
        self.database = database
        self.staged: Dict[OrderId, Order] = {}
        # Version each staged order had in the database when first staged
        self.expected_versions: Dict[OrderId, int] = {}
        self.staged_events: List[OrderEvent] = []

    async def load(self, order_id: OrderId) -> Optional[Order]:
        if order_id in self.staged:
            return _detached(self.staged[order_id])
        return self.database.snapshot(order_id)

    async def load_by_number(self, order_number: str) -> Optional[Order]:
        for order in self.staged.values():
            if order.order_number == order_number:
                return _detached(order)
        order_id = self.database.find_id_by_number(order_number)
        return self.database.snapshot(order_id) if order_id else None

    async def save(self, order: Order) -> None:
        if order.version == 0:
            taken = self.database.find_id_by_number(order.order_number)
            staged_numbers = {o.order_number for o in self.staged.values() if o.id != order.id}
            if (taken is not None and taken != order.id) or order.order_number in staged_numbers:
                raise ConflictError(f"Order number {order.order_number} is already taken")
            self.expected_versions.setdefault(order.id, 0)
        else:
            current = self.staged.get(order.id) or self.database.snapshot(order.id)
            if current is None or current.version != order.version:
                raise ConflictError(f"Order {order.id} was modified concurrently")
            if order.id not in self.expected_versions:
                self.expected_versions[order.id] = current.version

        order.version += 1
        self.staged[order.id] = _detached(order)

    async def query(self, criteria: OrderQuery) -> Tuple[List[Order], int]:
        merged = {order.id: order for order in self.database.snapshot_all()}
        merged.update({order_id: _detached(order) for order_id, order in self.staged.items()})

        needle = criteria.search.lower() if criteria.search else None
        matches = []
        for order in merged.values():
            if criteria.user_id and order.user_id != criteria.user_id:
                continue
            if criteria.status and order.status != criteria.status:
                continue
            if criteria.payment_status and order.payment_status != criteria.payment_status:
                continue
            if criteria.fulfillment_status and order.fulfillment_status != criteria.fulfillment_status:
                continue
            if needle and needle not in order.order_number.lower() and needle not in order.email.lower():
                continue
            if criteria.date_from and order.created_at < criteria.date_from:
                continue
            if criteria.date_to and order.created_at > criteria.date_to:
                continue
            matches.append(order)

        # Stable sorts: order_number ascending breaks ties
        matches.sort(key=lambda o: o.order_number)
        matches.sort(
            key=lambda o: _sort_value(o, criteria.sort_by),
            reverse=criteria.sort_order == SortOrder.DESC,
        )
        page = matches[criteria.offset:criteria.offset + criteria.limit]
        return page, len(matches)

    async def next_sequence(self, counter_name: str) -> int:
        return self.database.next_sequence(counter_name)

    async def append_event(self, event: OrderEvent) -> None:
        self.staged_events.append(copy.deepcopy(event))

    async def list_events(self, order_id: OrderId) -> List[OrderEvent]:
        events = self.database.events_for(order_id)
        events.extend(_copied(e for e in self.staged_events if e.order_id == order_id))
        # Stable sort keeps insertion order for equal timestamps
        events.sort(key=lambda e: e.created_at)
        return events

    def discard(self) -> None:
        self.staged.clear()
        self.expected_versions.clear()
        self.staged_events.clear()


class InMemoryUnitOfWork(IUnitOfWork):
    """Usable with or without ``async with``; ``commit`` publishes either way"""

    def __init__(self, database: InMemoryOrderDatabase):
        self.database = database
        self.orders = InMemoryOrderStore(database)

    async def commit(self) -> None:
        """Publish staged writes; a conflict discards them"""
        try:
            self.database.publish(self.orders)
            self._committed = True
        except Exception:
            await self.rollback()
            raise
        self.orders.discard()

    async def rollback(self) -> None:
        self.orders.discard()
