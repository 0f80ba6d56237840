"""Infrastructure ORM Models"""

from .order_model import OrderEventModel, OrderItemModel, OrderModel, OrderSequenceModel

__all__ = [
    'OrderModel',
    'OrderItemModel',
    'OrderEventModel',
    'OrderSequenceModel',
]
