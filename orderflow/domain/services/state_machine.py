"""Order state machine.

Pure decision logic: given the current (status, payment status, fulfillment
status) triple and a requested action, decide whether the action is legal and
what the resulting state is. Nothing here touches storage or the clock.

Status graph::

    pending -> confirmed -> processing -> shipped -> delivered
    pending | confirmed | processing -> cancelled

shipped, delivered and cancelled have no outgoing edges.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple, Type, Union

from ..enums import FulfillmentStatus, OrderStatus, PaymentStatus
from ..exceptions import InvalidTransitionError, UnknownActionError, ValidationFailedError


_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset(),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# shipped -> delivered is walked only by fulfillment completion; callers
# cannot move a shipped order.
_FULFILLMENT_EDGES: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    **_TRANSITIONS,
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
}

TERMINAL_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED})

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})

# Statuses from which a completed fulfillment walks the order to delivered
_COMPLETABLE_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED})


@dataclass(frozen=True)
class OrderState:
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    reason: Optional[str] = None


@dataclass(frozen=True)
class SetPaymentStatus:
    value: PaymentStatus


@dataclass(frozen=True)
class SetFulfillmentStatus:
    value: FulfillmentStatus


@dataclass(frozen=True)
class SetStatus:
    """Status part of a generic update patch"""
    target: OrderStatus


Action = Union[Confirm, Cancel, SetPaymentStatus, SetFulfillmentStatus, SetStatus]

_ACTIONS_BY_NAME: Dict[str, Type] = {
    "confirm": Confirm,
    "cancel": Cancel,
    "set_payment_status": SetPaymentStatus,
    "set_fulfillment_status": SetFulfillmentStatus,
    "set_status": SetStatus,
}


def action_from_name(name: str, **params) -> Action:
    """Build an action from its wire name, e.g. ``action_from_name("cancel", reason="x")``"""
    action_cls = _ACTIONS_BY_NAME.get(name)
    if action_cls is None:
        raise UnknownActionError(f"Unknown order action: {name!r}")
    try:
        return action_cls(**params)
    except TypeError as exc:
        raise ValidationFailedError({"action": [f"Invalid parameters for {name!r}: {exc}"]}) from exc


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Step:
    """One journaled change: a status hop or a standalone field update"""
    field: str
    old: Union[OrderStatus, PaymentStatus, FulfillmentStatus]
    new: Union[OrderStatus, PaymentStatus, FulfillmentStatus]
    automatic: bool = False

    @property
    def is_status_change(self) -> bool:
        return self.field == "status"


@dataclass(frozen=True)
class TransitionOutcome:
    state: OrderState
    steps: Tuple[Step, ...] = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return bool(self.steps)

    @property
    def status_steps(self) -> Tuple[Step, ...]:
        return tuple(step for step in self.steps if step.is_status_change)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _TRANSITIONS[current]


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def shortest_path(current: OrderStatus, target: OrderStatus,
                  edges: Optional[Dict[OrderStatus, FrozenSet[OrderStatus]]] = None) -> Optional[List[OrderStatus]]:
    """Statuses visited after ``current`` on the shortest walk to ``target``.

    Returns an empty list when already there and None when unreachable.
    """
    graph = edges if edges is not None else _TRANSITIONS
    if current == target:
        return []
    previous: Dict[OrderStatus, OrderStatus] = {}
    queue = deque([current])
    while queue:
        node = queue.popleft()
        # Sorted for a deterministic walk
        for nxt in sorted(graph[node], key=lambda s: s.value):
            if nxt in previous or nxt == current:
                continue
            previous[nxt] = node
            if nxt == target:
                path = [nxt]
                while path[-1] in previous and previous[path[-1]] != current:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            queue.append(nxt)
    return None


def _coerce(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailedError({field_name: [f"'{value}' is not one of: {allowed}"]}) from exc


class OrderStateMachine:
    """Decides legal transitions and applies the auto-transition policy.

    ``confirm_on_payment``: payment becoming ``paid`` while ``pending`` also
    confirms the order (payment step first, then the status step).

    ``complete_on_fulfillment``: a fulfilled order that is confirmed,
    processing or shipped walks the shortest path to ``delivered``, one status
    step per hop. The check runs when fulfillment becomes ``fulfilled`` and
    again after every status move, so an order fulfilled while still pending
    is delivered as soon as it is confirmed.
    """

    def __init__(self, confirm_on_payment: bool = True, complete_on_fulfillment: bool = True):
        self.confirm_on_payment = confirm_on_payment
        self.complete_on_fulfillment = complete_on_fulfillment

    def transition(self, current: OrderState, action: Action) -> TransitionOutcome:
        if isinstance(action, Confirm):
            return self._move(current, OrderStatus.CONFIRMED, allowed_from={OrderStatus.PENDING})
        if isinstance(action, Cancel):
            return self._move(current, OrderStatus.CANCELLED, allowed_from=CANCELLABLE_STATUSES)
        if isinstance(action, SetStatus):
            return self._set_status(current, _coerce(OrderStatus, action.target, "status"))
        if isinstance(action, SetPaymentStatus):
            return self._set_payment_status(current, _coerce(PaymentStatus, action.value, "payment_status"))
        if isinstance(action, SetFulfillmentStatus):
            return self._set_fulfillment_status(
                current, _coerce(FulfillmentStatus, action.value, "fulfillment_status")
            )
        raise UnknownActionError(f"Unknown order action: {action!r}")

    # -------------------------------------------------------------------
    # Status moves
    # -------------------------------------------------------------------
    def _move(self, current: OrderState, target: OrderStatus, allowed_from) -> TransitionOutcome:
        if current.status not in allowed_from or not can_transition(current.status, target):
            raise InvalidTransitionError(current.status.value, target.value)
        steps = [Step("status", current.status, target)]
        status = self._complete(target, current.fulfillment_status, steps)
        return TransitionOutcome(
            state=OrderState(status, current.payment_status, current.fulfillment_status),
            steps=tuple(steps),
        )

    def _set_status(self, current: OrderState, target: OrderStatus) -> TransitionOutcome:
        if is_terminal(current.status):
            raise InvalidTransitionError(current.status.value, target.value)
        if target == current.status:
            return TransitionOutcome(state=current)
        if not can_transition(current.status, target):
            raise InvalidTransitionError(current.status.value, target.value)
        steps = [Step("status", current.status, target)]
        status = self._complete(target, current.fulfillment_status, steps)
        return TransitionOutcome(
            state=OrderState(status, current.payment_status, current.fulfillment_status),
            steps=tuple(steps),
        )

    # -------------------------------------------------------------------
    # Standalone field updates (+ auto-transitions)
    # -------------------------------------------------------------------
    def _set_payment_status(self, current: OrderState, value: PaymentStatus) -> TransitionOutcome:
        if value == current.payment_status:
            return TransitionOutcome(state=current)

        steps = [Step("payment_status", current.payment_status, value)]
        status = current.status
        if self.confirm_on_payment and value == PaymentStatus.PAID and status == OrderStatus.PENDING:
            steps.append(Step("status", status, OrderStatus.CONFIRMED, automatic=True))
            status = self._complete(OrderStatus.CONFIRMED, current.fulfillment_status, steps)

        return TransitionOutcome(
            state=OrderState(status, value, current.fulfillment_status),
            steps=tuple(steps),
        )

    def _set_fulfillment_status(self, current: OrderState, value: FulfillmentStatus) -> TransitionOutcome:
        if value == current.fulfillment_status:
            return TransitionOutcome(state=current)

        steps = [Step("fulfillment_status", current.fulfillment_status, value)]
        status = self._complete(current.status, value, steps)
        return TransitionOutcome(
            state=OrderState(status, current.payment_status, value),
            steps=tuple(steps),
        )

    def _complete(self, status: OrderStatus, fulfillment: FulfillmentStatus, steps: List[Step]) -> OrderStatus:
        """Append the automatic walk to delivered, if any, and return the final status"""
        if (
            self.complete_on_fulfillment
            and fulfillment == FulfillmentStatus.FULFILLED
            and status in _COMPLETABLE_STATUSES
        ):
            for hop in shortest_path(status, OrderStatus.DELIVERED, _FULFILLMENT_EDGES) or []:
                steps.append(Step("status", status, hop, automatic=True))
                status = hop
        return status
