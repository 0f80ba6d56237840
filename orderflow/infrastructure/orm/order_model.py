"""Order ORM Models"""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from ...db.models import Base
from ...domain.enums import FulfillmentStatus, OrderStatus, PaymentStatus


class OrderModel(Base):
    __tablename__ = 'orders'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)  # Null for guest orders
    email = Column(String(255), nullable=False, index=True)

    # Lifecycle
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    fulfillment_status = Column(String(20), default=FulfillmentStatus.UNFULFILLED.value, nullable=False, index=True)

    # Totals
    currency = Column(String(3), default='USD', nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    # Addresses and annotations (JSON)
    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    metadata_ = Column('metadata', JSON, nullable=True)  # "metadata" is reserved on declarative classes

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    items = relationship(
        'OrderItemModel',
        back_populates='order',
        order_by='OrderItemModel.position',
        cascade='all, delete-orphan',
    )


class OrderItemModel(Base):
    __tablename__ = 'order_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid(as_uuid=True), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    variant_id = Column(String(255), nullable=True)
    variant_name = Column(String(255), nullable=True)
    sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    order = relationship('OrderModel', back_populates='items')


class OrderEventModel(Base):
    """Append-only ledger; rows are never updated or deleted"""
    __tablename__ = 'order_events'

    # Insertion order, breaks created_at ties
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey('orders.id'), nullable=False)
    type = Column(String(100), nullable=False)
    data = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_order_events_order_id_created_at', 'order_id', 'created_at', 'seq'),
    )


class OrderSequenceModel(Base):
    """Named counters, incremented in place"""
    __tablename__ = 'order_sequences'

    name = Column(String(100), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
