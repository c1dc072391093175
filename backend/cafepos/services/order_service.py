"""
Order Service - order creation as one unit of work.

WHY: An order's total, its lines, the customer's aggregates and the loyalty
points it earns must all land together or not at all.

FLOW (single transaction):
1. Validate request shape, price every line (any failure aborts)
2. Resolve customer: explicit id, else find-or-create by phone/email
3. LOYALTY payment: customer must hold enough points; they are redeemed
4. Allocate ORD-YYYYMMDD-NNNN, insert order + lines + line addons
5. Credit earned points and bump customer aggregates
6. Commit
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidRequest, NotFound
from ..extensions import db
from ..models import (
    DocumentSequence,
    Order,
    OrderLine,
    OrderLineAddon,
)
from ..models.orders import ORDER_STATUS_CONFIRMED, ORDER_STATUSES, PAYMENT_LOYALTY
from ..time_utils import utcnow
from ..validation import OrderRequest, normalize_phone, validate_line_payload, validate_order_payload
from . import customer_service, loyalty_service, pricing_service, settings_service
from .concurrency import run_in_transaction
from .permission_service import STAFF_ROLES, Principal, require_role

ORDER_DOCUMENT_TYPE = "ORDER"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def next_order_number(on: date | None = None, *, prefix: str | None = None, pad: int = 4) -> str:
    """
    Atomically allocate the next order number for a day.

    Must run inside the caller's transaction. The first order of a day
    inserts the sequence row in a SAVEPOINT; losing that race falls back to
    the increment path.
    """
    day = (on or utcnow().date()).strftime("%Y%m%d")
    if prefix is None:
        prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "ORD")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == ORDER_DOCUMENT_TYPE,
            DocumentSequence.sequence_date == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _increment() -> int | None:
        result = db.session.execute(stmt)
        if not result.rowcount:
            return None
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=ORDER_DOCUMENT_TYPE, sequence_date=day)
            .scalar()
        )
        return current - 1

    next_num = _increment()
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(
                        document_type=ORDER_DOCUMENT_TYPE,
                        sequence_date=day,
                        next_number=2,
                    )
                )
                db.session.flush()
            next_num = 1
        except IntegrityError:
            next_num = _increment()
            if next_num is None:
                raise

    return f"{prefix}-{day}-{next_num:0{pad}d}"


def _resolve_customer(request: OrderRequest):
    """Customer for the order, or None for an anonymous walk-in."""
    if request.customer_id is not None:
        return customer_service.get_customer(request.customer_id, for_update=True)
    if request.has_customer_contact:
        customer, _created = customer_service.find_or_create_customer(
            name=request.customer_name,
            phone=request.customer_phone,
            email=request.customer_email,
        )
        return customer
    return None


def _build_order(
    request: OrderRequest,
    totals: pricing_service.OrderTotals,
    principal: Principal,
    customer,
) -> Order:
    order = Order(
        order_number=next_order_number(),
        customer_id=customer.id if customer is not None else None,
        customer_name=request.customer_name or (customer.full_name if customer is not None else None),
        customer_phone=request.customer_phone or (customer.phone if customer is not None else None),
        customer_email=request.customer_email or (customer.email if customer is not None else None),
        subtotal_cents=totals.subtotal_cents,
        tax_cents=totals.tax_cents,
        total_cents=totals.total_cents,
        payment_method=request.payment_method,
        payment_status=request.payment_status,
        status=ORDER_STATUS_CONFIRMED,
        notes=request.notes,
        loyalty_points_earned=0,
        loyalty_points_redeemed=0,
        created_by_user_id=principal.user_id,
    )

    for priced in totals.lines:
        breakdown = priced.breakdown
        line = OrderLine(
            menu_item_id=breakdown.menu_item_id,
            variant_id=breakdown.variant_id,
            menu_item_name=breakdown.menu_item_name,
            variant_name=breakdown.variant_name,
            quantity=priced.quantity,
            base_price_cents=breakdown.base_price_cents,
            unit_price_cents=breakdown.unit_price_cents,
            line_total_cents=priced.line_total_cents,
            special_instructions=priced.request.special_instructions,
        )
        for addon in breakdown.addons:
            line.addons.append(
                OrderLineAddon(
                    addon_id=addon.addon_id,
                    addon_name=addon.name,
                    unit_price_cents=addon.unit_price_cents,
                    quantity=addon.quantity,
                    subtotal_cents=addon.subtotal_cents,
                )
            )
        order.lines.append(line)
    return order


def create_order(principal: Principal, payload) -> Order:
    """
    Create and commit an order from a raw JSON-shaped payload.

    Requires MANAGER or ADMIN.
    """
    require_role(principal, *STAFF_ROLES, action="create_order")
    request = payload if isinstance(payload, OrderRequest) else validate_order_payload(payload)

    def _op():
        totals = pricing_service.calculate_order_total(request.lines)
        customer = _resolve_customer(request)

        redeemed = 0
        if request.payment_method == PAYMENT_LOYALTY:
            if customer is None:
                raise InvalidRequest("Loyalty payment requires a customer")
            redeemed = loyalty_service.points_required_for(totals.total_cents)
            if (customer.loyalty_points or 0) < redeemed:
                raise InvalidRequest(
                    "Insufficient loyalty points",
                    details={"required": redeemed, "available": customer.loyalty_points or 0},
                )

        order = _build_order(request, totals, principal, customer)
        order.loyalty_points_earned = loyalty_service.calculate_points_earned(
            totals.total_cents, settings_service.get_loyalty_ratio()
        )
        order.loyalty_points_redeemed = redeemed
        db.session.add(order)
        db.session.flush()

        if customer is not None:
            customer_service.record_order(customer, order)
            db.session.flush()

        current_app.logger.info(
            "Order %s created by user %s: total=%s points=%s redeemed=%s customer=%s",
            order.order_number,
            principal.user_id,
            order.total_cents,
            order.loyalty_points_earned,
            redeemed,
            order.customer_id,
        )
        return order

    return run_in_transaction(_op)


def preview_line(payload) -> pricing_service.LineTotal:
    """Price a single line without persisting anything."""
    line = validate_line_payload(payload)
    totals = pricing_service.calculate_order_total([line])
    return totals.lines[0]


def preview_order(payload) -> pricing_service.OrderTotals:
    """Price a list of lines (``{"items": [...]}``) without persisting anything."""
    if not isinstance(payload, dict) or not isinstance(payload.get("items"), list) or not payload["items"]:
        raise InvalidRequest("Order must contain at least one item")
    lines = [validate_line_payload(item, index=i) for i, item in enumerate(payload["items"])]
    return pricing_service.calculate_order_total(lines)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    customer_phone: str | None = None,
    customer_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """
    Orders newest first with simple filters.

    date_to is inclusive (the whole day).
    """
    if status is not None and status not in ORDER_STATUSES:
        raise InvalidRequest(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
    if page < 1:
        raise InvalidRequest("page must be >= 1")
    if per_page < 1 or per_page > MAX_PAGE_SIZE:
        raise InvalidRequest(f"per_page must be between 1 and {MAX_PAGE_SIZE}")
    if date_from and date_to and date_to < date_from:
        raise InvalidRequest("date_to must not be before date_from")

    query = db.session.query(Order)
    if status is not None:
        query = query.filter(Order.status == status)
    if customer_phone:
        query = query.filter(Order.customer_phone == normalize_phone(customer_phone))
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if date_from is not None:
        query = query.filter(Order.created_at >= datetime.combine(date_from, time.min))
    if date_to is not None:
        query = query.filter(Order.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "orders": orders,
        "total": total,
        "page": page,
        "per_page": per_page,
    }
