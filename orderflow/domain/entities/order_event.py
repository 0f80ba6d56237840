"""Order ledger entry"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ..value_objects.entity_ids import EventId, OrderId


@dataclass(frozen=True)
class OrderEvent:
    """Immutable record of something that happened to an order.

    Only the engine creates these (through the EventLedger); stores keep them
    append-only.
    """
    id: EventId
    order_id: OrderId
    type: str
    created_at: datetime
    data: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
    created_by: Optional[str] = None

    @property
    def is_status_change(self) -> bool:
        return self.type == "status_changed"
