"""Order store implementation using SQLAlchemy ORM"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ...domain.entities.order import Order, OrderItem
from ...domain.entities.order_event import OrderEvent
from ...domain.enums import FulfillmentStatus, OrderStatus, PaymentStatus, SortOrder
from ...domain.exceptions import ConflictError
from ...domain.repositories.order_store import IOrderStore, OrderQuery
from ...domain.value_objects.address import Address
from ...domain.value_objects.entity_ids import EventId, OrderId
from ...domain.value_objects.money import OrderTotals
from ..orm.order_model import OrderEventModel, OrderItemModel, OrderModel, OrderSequenceModel

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "created_at": OrderModel.created_at,
    "updated_at": OrderModel.updated_at,
    "order_number": OrderModel.order_number,
    "status": OrderModel.status,
    "total": OrderModel.total,
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored in UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SqlAlchemyOrderStore(IOrderStore):
    """Store implementation for the Order aggregate and its ledger"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, order_id: OrderId) -> Optional[Order]:
        """Get order by ID"""
        stmt = self._select_orders().where(OrderModel.id == order_id.value)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return self._map_to_entity(model) if model else None

    async def load_by_number(self, order_number: str) -> Optional[Order]:
        """Get order by order number"""
        stmt = self._select_orders().where(OrderModel.order_number == order_number)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return self._map_to_entity(model) if model else None

    async def save(self, order: Order) -> None:
        """Insert a new order or update an existing one at its loaded version"""
        if order.version == 0:
            await self._insert(order)
            return

        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order.id.value, OrderModel.version == order.version)
            .values({
                OrderModel.status: order.status.value,
                OrderModel.payment_status: order.payment_status.value,
                OrderModel.fulfillment_status: order.fulfillment_status.value,
                OrderModel.notes: order.notes,
                OrderModel.metadata_: order.metadata,
                OrderModel.updated_at: order.updated_at,
                OrderModel.cancelled_at: order.cancelled_at,
                OrderModel.version: order.version + 1,
            })
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.info("Version conflict saving order %s at version %s", order.id, order.version)
            raise ConflictError(f"Order {order.id} was modified concurrently")
        order.version += 1

    async def query(self, criteria: OrderQuery) -> Tuple[List[Order], int]:
        """Filtered, sorted page of orders plus the unpaged total"""
        conditions = []
        if criteria.user_id:
            conditions.append(OrderModel.user_id == criteria.user_id)
        if criteria.status:
            conditions.append(OrderModel.status == criteria.status.value)
        if criteria.payment_status:
            conditions.append(OrderModel.payment_status == criteria.payment_status.value)
        if criteria.fulfillment_status:
            conditions.append(OrderModel.fulfillment_status == criteria.fulfillment_status.value)
        if criteria.search:
            pattern = f"%{criteria.search}%"
            conditions.append(or_(OrderModel.order_number.ilike(pattern), OrderModel.email.ilike(pattern)))
        if criteria.date_from:
            conditions.append(OrderModel.created_at >= criteria.date_from)
        if criteria.date_to:
            conditions.append(OrderModel.created_at <= criteria.date_to)

        sort_column = _SORT_COLUMNS[criteria.sort_by]
        ordering = sort_column.asc() if criteria.sort_order == SortOrder.ASC else sort_column.desc()

        stmt = (
            self._select_orders()
            .where(*conditions)
            .order_by(ordering, OrderModel.order_number.asc())
            .offset(criteria.offset)
            .limit(criteria.limit)
        )
        models = (await self.session.execute(stmt)).scalars().all()

        count_stmt = select(func.count()).select_from(OrderModel).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        return [self._map_to_entity(model) for model in models], total

    async def next_sequence(self, counter_name: str) -> int:
        """Increment the counter row in place; the row lock serializes allocators"""
        stmt = (
            update(OrderSequenceModel)
            .where(OrderSequenceModel.name == counter_name)
            .values(value=OrderSequenceModel.value + 1)
            .returning(OrderSequenceModel.value)
            .execution_options(synchronize_session=False)
        )
        value = (await self.session.execute(stmt)).scalar_one_or_none()
        if value is not None:
            return value

        try:
            async with self.session.begin_nested():
                self.session.add(OrderSequenceModel(name=counter_name, value=1))
        except IntegrityError:
            # Another transaction created the counter first
            logger.debug("Counter %s created concurrently, retrying increment", counter_name)
            return await self.next_sequence(counter_name)
        logger.debug("Created counter %s", counter_name)
        return 1

    async def append_event(self, event: OrderEvent) -> None:
        self.session.add(OrderEventModel(
            id=event.id.value,
            order_id=event.order_id.value,
            type=event.type,
            data=event.data,
            note=event.note,
            created_by=event.created_by,
            created_at=event.created_at,
        ))
        await self.session.flush()

    async def list_events(self, order_id: OrderId) -> List[OrderEvent]:
        stmt = (
            select(OrderEventModel)
            .where(OrderEventModel.order_id == order_id.value)
            .order_by(OrderEventModel.created_at.asc(), OrderEventModel.seq.asc())
        )
        models = (await self.session.execute(stmt)).scalars().all()
        return [self._map_event_to_entity(model) for model in models]

    @staticmethod
    def _select_orders():
        return (
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .execution_options(populate_existing=True)
        )

    async def _insert(self, order: Order) -> None:
        self.session.add(self._create_model_from_entity(order))
        try:
            await self.session.flush()
        except IntegrityError as exc:
            logger.info("Order %s (%s) already exists", order.id, order.order_number)
            raise ConflictError(f"Order number {order.order_number} is already taken") from exc
        order.version = 1

    def _create_model_from_entity(self, order: Order) -> OrderModel:
        """Create ORM model from domain entity"""
        return OrderModel(
            id=order.id.value,
            order_number=order.order_number,
            user_id=order.user_id,
            email=order.email,
            status=order.status.value,
            payment_status=order.payment_status.value,
            fulfillment_status=order.fulfillment_status.value,
            currency=order.currency,
            subtotal=order.totals.subtotal,
            discount=order.totals.discount,
            tax=order.totals.tax,
            shipping=order.totals.shipping,
            total=order.totals.total,
            shipping_address=order.shipping_address.to_dict() if order.shipping_address else None,
            billing_address=order.billing_address.to_dict() if order.billing_address else None,
            notes=order.notes,
            metadata_=order.metadata,
            created_at=order.created_at,
            updated_at=order.updated_at,
            cancelled_at=order.cancelled_at,
            version=1,
            items=[
                OrderItemModel(
                    position=position,
                    product_name=item.product_name,
                    variant_id=item.variant_id,
                    variant_name=item.variant_name,
                    sku=item.sku,
                    quantity=item.quantity,
                    price=item.price,
                    total=item.total,
                )
                for position, item in enumerate(order.items)
            ],
        )

    def _map_to_entity(self, model: OrderModel) -> Order:
        """Map ORM model to domain entity"""
        return Order(
            id=OrderId(model.id),
            order_number=model.order_number,
            email=model.email,
            items=[
                OrderItem(
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=Decimal(item.price),
                    variant_id=item.variant_id,
                    variant_name=item.variant_name,
                    sku=item.sku,
                )
                for item in model.items
            ],
            user_id=model.user_id,
            status=OrderStatus(model.status),
            payment_status=PaymentStatus(model.payment_status),
            fulfillment_status=FulfillmentStatus(model.fulfillment_status),
            currency=model.currency,
            totals=OrderTotals(
                subtotal=Decimal(model.subtotal),
                discount=Decimal(model.discount),
                tax=Decimal(model.tax),
                shipping=Decimal(model.shipping),
                total=Decimal(model.total),
            ),
            shipping_address=Address.from_dict(model.shipping_address),
            billing_address=Address.from_dict(model.billing_address),
            notes=model.notes,
            metadata=model.metadata_,
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
            cancelled_at=_as_utc(model.cancelled_at),
            version=model.version,
        )

    def _map_event_to_entity(self, model: OrderEventModel) -> OrderEvent:
        return OrderEvent(
            id=EventId(model.id),
            order_id=OrderId(model.order_id),
            type=model.type,
            data=model.data,
            note=model.note,
            created_by=model.created_by,
            created_at=_as_utc(model.created_at),
        )
