"""
Domain Enums - Order lifecycle enumerations
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class FulfillmentStatus(str, Enum):
    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"


class EventType(str, Enum):
    """Ledger entry types written by the engine itself.

    Callers may append any other tag through ``add_event``.
    """
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PAYMENT_UPDATED = "payment_updated"
    FULFILLMENT_UPDATED = "fulfillment_updated"
    UPDATED = "updated"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"
