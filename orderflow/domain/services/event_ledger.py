"""Append-only event ledger for order timelines"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..entities.order import utcnow
from ..entities.order_event import OrderEvent
from ..exceptions import ValidationFailedError
from ..repositories.order_store import IOrderStore
from ..value_objects.entity_ids import EventId, OrderId


MAX_EVENT_TYPE_LENGTH = 100


class EventLedger:
    """Journals what happened to an order through the unit of work's store.

    Entries appended here are staged in the same unit of work as the order
    write they describe, so they become visible together or not at all.
    Timestamps never go backwards within one order's ledger.
    """

    def __init__(self, store: IOrderStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self._watermarks: Dict[OrderId, datetime] = {}

    async def append(
        self,
        order_id: OrderId,
        type: str,
        data: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> OrderEvent:
        if not isinstance(type, str) or not type.strip():
            raise ValidationFailedError({"type": ["Event type is required"]})
        if len(type) > MAX_EVENT_TYPE_LENGTH:
            raise ValidationFailedError({"type": [f"Event type exceeds {MAX_EVENT_TYPE_LENGTH} characters"]})

        event = OrderEvent(
            id=EventId.generate(),
            order_id=order_id,
            type=type,
            data=dict(data) if data is not None else None,
            note=note,
            created_by=created_by,
            created_at=await self._next_timestamp(order_id),
        )
        await self.store.append_event(event)
        return event

    async def list(self, order_id: OrderId) -> List[OrderEvent]:
        return await self.store.list_events(order_id)

    async def _next_timestamp(self, order_id: OrderId) -> datetime:
        watermark = self._watermarks.get(order_id)
        if watermark is None:
            history = await self.store.list_events(order_id)
            if history:
                watermark = history[-1].created_at
        now = self.clock()
        if watermark is not None and now < watermark:
            now = watermark
        self._watermarks[order_id] = now
        return now
