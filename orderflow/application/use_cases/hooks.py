"""Hook dispatch for the lifecycle engine"""

import inspect
from typing import Any, Callable, Iterable, Optional

from ...core.config import OrderHooks
from ...domain.entities.order import Order
from ...domain.enums import OrderStatus
from ...domain.events.order_events import (
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    PaymentStatusChanged,
)


async def call_hook(hook: Optional[Callable[..., Any]], *args) -> Any:
    """Call a sync or async hook; missing hooks return None"""
    if hook is None:
        return None
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookDispatcher:
    """Runs the configured OrderHooks.

    Errors raised by a hook propagate to the caller of the engine operation.
    """

    def __init__(self, hooks: OrderHooks):
        self.hooks = hooks

    async def before_create(self, data):
        result = await call_hook(self.hooks.before_create, data)
        return data if result is None else result

    async def before_update(self, order_id, patch):
        result = await call_hook(self.hooks.before_update, order_id, patch)
        return patch if result is None else result

    async def dispatch(self, order: Order, events: Iterable) -> None:
        """Notify hooks about domain events raised by a committed order"""
        for event in events:
            if isinstance(event, OrderCreated):
                await call_hook(self.hooks.after_create, order)
            elif isinstance(event, OrderStatusChanged):
                await call_hook(self.hooks.on_status_change, event.order_id, event.old_status, event.new_status)
                if event.new_status == OrderStatus.CONFIRMED:
                    await call_hook(self.hooks.after_confirm, order)
                elif event.new_status == OrderStatus.SHIPPED:
                    await call_hook(self.hooks.on_order_shipped, order)
                elif event.new_status == OrderStatus.DELIVERED:
                    await call_hook(self.hooks.on_order_delivered, order)
            elif isinstance(event, PaymentStatusChanged):
                await call_hook(self.hooks.on_payment_status_change, event.order_id, event.old_status, event.new_status)
            elif isinstance(event, OrderCancelled):
                await call_hook(self.hooks.after_cancel, order, event.reason)
