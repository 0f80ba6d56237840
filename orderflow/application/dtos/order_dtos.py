"""Order DTOs for engine inputs, listing filters and responses"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ...domain.entities.order import Order, OrderItem
from ...domain.entities.order_event import OrderEvent
from ...domain.enums import FulfillmentStatus, OrderStatus, PaymentStatus, SortOrder
from ...domain.exceptions import ValidationFailedError
from ...domain.repositories.order_store import OrderQuery
from ...domain.services.event_ledger import MAX_EVENT_TYPE_LENGTH
from ...domain.value_objects.address import Address

InputT = TypeVar("InputT", bound=BaseModel)


def parse_input(model_cls: Type[InputT], data: Any) -> InputT:
    """Accept a DTO instance or a plain mapping; shape errors become ValidationFailedError"""
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        errors: Dict[str, List[str]] = {}
        for error in exc.errors():
            key = ".".join(str(part) for part in error["loc"]) or "__root__"
            errors.setdefault(key, []).append(error["msg"])
        raise ValidationFailedError(errors) from exc


class AddressDTO(BaseModel):
    """Postal address as sent by the caller"""
    first_name: str
    last_name: str
    company: Optional[str] = None
    address1: str
    address2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str
    phone: Optional[str] = None

    def to_value(self) -> Address:
        return Address(**self.model_dump())

    @classmethod
    def from_value(cls, address: Optional[Address]) -> Optional['AddressDTO']:
        if address is None:
            return None
        return cls(**address.to_dict())


class OrderItemInput(BaseModel):
    product_name: str = Field(..., min_length=1)
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0)

    def to_entity(self) -> OrderItem:
        return OrderItem(
            product_name=self.product_name,
            quantity=self.quantity,
            price=self.price,
            variant_id=self.variant_id,
            variant_name=self.variant_name,
            sku=self.sku,
        )


class CreateOrderInput(BaseModel):
    """Request DTO for creating an order"""
    email: str
    items: List[OrderItemInput] = Field(..., min_length=1)
    user_id: Optional[str] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    shipping_address: Optional[AddressDTO] = None
    billing_address: Optional[AddressDTO] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)


class UpdateOrderInput(BaseModel):
    """Partial update; only the keys the caller sent are applied.

    ``notes`` and ``metadata`` may be sent as null to clear them.
    """
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def edits(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in ("notes", "metadata") if name in self.model_fields_set}


class AddOrderEventInput(BaseModel):
    """Manual ledger annotation"""
    type: str = Field(..., min_length=1, max_length=MAX_EVENT_TYPE_LENGTH)
    data: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
    created_by: Optional[str] = None


class OrderFilter(BaseModel):
    """Listing criteria"""
    user_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    fulfillment_status: Optional[FulfillmentStatus] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: Literal["created_at", "updated_at", "order_number", "status", "total"] = "created_at"
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive datetimes are taken as UTC"""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_query(self) -> OrderQuery:
        return OrderQuery(
            user_id=self.user_id,
            status=self.status,
            payment_status=self.payment_status,
            fulfillment_status=self.fulfillment_status,
            search=self.search or None,
            date_from=self.date_from,
            date_to=self.date_to,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
            page=self.page,
            limit=self.limit,
        )


@dataclass
class OrderPage:
    items: List[Order] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class OrderItemResponseDTO(BaseModel):
    product_name: str
    variant_id: Optional[str] = None
    variant_name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    price: Decimal
    total: Decimal


class OrderResponseDTO(BaseModel):
    """Response DTO for order data"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: Optional[str] = None
    email: str
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus
    currency: str
    items: List[OrderItemResponseDTO]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    shipping_address: Optional[AddressDTO] = None
    billing_address: Optional[AddressDTO] = None
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: Optional[datetime] = None
    version: int

    @classmethod
    def from_entity(cls, order: Order) -> 'OrderResponseDTO':
        """Convert domain entity to DTO"""
        return cls(
            id=order.id.value,
            order_number=order.order_number,
            user_id=order.user_id,
            email=order.email,
            status=order.status,
            payment_status=order.payment_status,
            fulfillment_status=order.fulfillment_status,
            currency=order.currency,
            items=[
                OrderItemResponseDTO(
                    product_name=item.product_name,
                    variant_id=item.variant_id,
                    variant_name=item.variant_name,
                    sku=item.sku,
                    quantity=item.quantity,
                    price=item.price,
                    total=item.total,
                )
                for item in order.items
            ],
            subtotal=order.totals.subtotal,
            discount=order.totals.discount,
            tax=order.totals.tax,
            shipping=order.totals.shipping,
            total=order.totals.total,
            shipping_address=AddressDTO.from_value(order.shipping_address),
            billing_address=AddressDTO.from_value(order.billing_address),
            notes=order.notes,
            metadata=order.metadata,
            created_at=order.created_at,
            updated_at=order.updated_at,
            cancelled_at=order.cancelled_at,
            version=order.version,
        )


class OrderEventResponseDTO(BaseModel):
    id: UUID
    order_id: UUID
    type: str
    data: Optional[Dict[str, Any]] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_entity(cls, event: OrderEvent) -> 'OrderEventResponseDTO':
        return cls(
            id=event.id.value,
            order_id=event.order_id.value,
            type=event.type,
            data=event.data,
            note=event.note,
            created_by=event.created_by,
            created_at=event.created_at,
        )
