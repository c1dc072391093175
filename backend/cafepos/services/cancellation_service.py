"""
Cancellation Service - two-step order cancellation.

STATE MACHINE:
    CONFIRMED --request--> PENDING_CANCELLATION --approve--> CANCELLED (terminal)
                                                --reject---> CONFIRMED

WHY: A manager can ask, only an admin can decide. Approval reverses the
order's effect on the customer using the numbers stored on the order, so a
settings change between creation and cancellation cannot skew the reversal.

Every transition appends an OrderStatusHistory row in the same transaction.
The order row is locked and versioned; a concurrent decision surfaces as
InvalidState instead of a double reversal.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InvalidRequest, InvalidState, NotFound
from ..extensions import db
from ..models import Customer, Order, OrderStatusHistory
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PENDING_CANCELLATION,
)
from ..time_utils import utcnow
from ..validation import validate_cancellation_reason, validate_decision_notes
from . import customer_service
from .concurrency import lock_for_update, run_in_transaction
from .permission_service import ADMIN_ONLY, STAFF_ROLES, Principal, require_role

ACTION_REQUEST = "REQUEST"
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def _append_history(order: Order, previous: str, action: str, principal: Principal, reason: str | None) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        previous_status=previous,
        new_status=order.status,
        action=action,
        changed_by_user_id=principal.user_id,
        reason=reason,
    )
    db.session.add(entry)
    return entry


def _require_status(order: Order, expected: str) -> None:
    if order.status != expected:
        raise InvalidState(
            f"Order is {order.status}, expected {expected}",
            details={"order_id": order.id, "status": order.status},
        )


def _run(func):
    try:
        return run_in_transaction(func)
    except StaleDataError:
        raise InvalidState("Order was modified concurrently; reload and retry")


def request_cancellation(order_id: int, principal: Principal, reason) -> Order:
    """CONFIRMED -> PENDING_CANCELLATION. MANAGER or ADMIN."""
    require_role(principal, *STAFF_ROLES, action="request_cancellation")
    reason = validate_cancellation_reason(reason)

    def _op():
        order = _lock_order(order_id)
        _require_status(order, ORDER_STATUS_CONFIRMED)

        previous = order.status
        order.status = ORDER_STATUS_PENDING_CANCELLATION
        order.cancellation_requested_by_user_id = principal.user_id
        order.cancellation_requested_at = utcnow()
        order.cancellation_reason = reason
        order.cancellation_decided_by_user_id = None
        order.cancellation_decided_at = None
        order.cancellation_decision_notes = None

        _append_history(order, previous, ACTION_REQUEST, principal, reason)
        db.session.flush()
        current_app.logger.info("Cancellation requested for order %s by user %s", order.order_number, principal.user_id)
        return order

    return _run(_op)


def decide_cancellation(
    order_id: int,
    principal: Principal,
    approve: bool,
    notes=None,
    expected_status: str | None = None,
) -> Order:
    """
    PENDING_CANCELLATION -> CANCELLED (approve) or CONFIRMED (reject). ADMIN only.

    expected_status lets a caller assert the state it last displayed.
    """
    require_role(principal, *ADMIN_ONLY, action="decide_cancellation")
    notes = validate_decision_notes(notes)
    if not isinstance(approve, bool):
        raise InvalidRequest("approve must be true or false")

    def _op():
        order = _lock_order(order_id)
        if expected_status is not None and order.status != expected_status:
            raise InvalidState(
                f"Order is {order.status}, caller expected {expected_status}",
                details={"order_id": order.id, "status": order.status},
            )
        _require_status(order, ORDER_STATUS_PENDING_CANCELLATION)

        now = utcnow()
        previous = order.status
        order.cancellation_decided_by_user_id = principal.user_id
        order.cancellation_decided_at = now
        order.cancellation_decision_notes = notes

        if approve:
            order.status = ORDER_STATUS_CANCELLED
            order.cancelled_by_user_id = principal.user_id
            order.cancelled_at = now
            if order.customer_id is not None:
                customer = lock_for_update(
                    db.session.query(Customer).filter_by(id=order.customer_id)
                ).first()
                if customer is not None:
                    customer_service.reverse_order(customer, order)
            _append_history(order, previous, ACTION_APPROVE, principal, notes or order.cancellation_reason)
        else:
            order.status = ORDER_STATUS_CONFIRMED
            order.cancellation_requested_by_user_id = None
            order.cancellation_requested_at = None
            order.cancellation_reason = None
            _append_history(order, previous, ACTION_REJECT, principal, notes)

        db.session.flush()
        current_app.logger.info(
            "Cancellation %s for order %s by user %s",
            "approved" if approve else "rejected",
            order.order_number,
            principal.user_id,
        )
        return order

    return _run(_op)


def get_status_history(order_id: int) -> list[OrderStatusHistory]:
    if db.session.get(Order, order_id) is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusHistory.id.asc())
        .all()
    )


def list_pending_cancellations() -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.status == ORDER_STATUS_PENDING_CANCELLATION)
        .order_by(Order.cancellation_requested_at.asc(), Order.id.asc())
        .all()
    )
