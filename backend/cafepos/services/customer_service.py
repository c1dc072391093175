"""
Customer Service - find-or-create by contact and aggregate bookkeeping.

WHY: Walk-in customers identify themselves by phone or email. Two registers
can see the same new phone number at once; the unique constraints decide who
inserts, and the loser re-reads the winner's row.

Aggregates (total_orders, total_spent_cents, loyalty_points) are only changed
by record_order and reverse_order, both called inside the caller's
transaction.

Read-only lookups (search, paginated list, top spenders) only ever return
active customers.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, InvalidRequest, NotFound
from ..extensions import db
from ..models import Customer, Order
from ..time_utils import utcnow
from . import loyalty_service, settings_service
from .concurrency import lock_for_update

DEFAULT_FIRST_NAME = "Customer"


def split_name(name: str | None) -> tuple[str, str]:
    """Split a full name on the first space; blank names become "Customer"."""
    parts = (name or "").split()
    if not parts:
        return DEFAULT_FIRST_NAME, ""
    return parts[0], " ".join(parts[1:])


def get_customer(customer_id: int, *, for_update: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if for_update:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None or not customer.is_active:
        raise NotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def find_by_contact(phone: str | None, email: str | None) -> Customer | None:
    """Phone first, then email."""
    if phone:
        customer = db.session.query(Customer).filter_by(phone=phone).first()
        if customer is not None:
            return customer
    if email:
        return db.session.query(Customer).filter_by(email=email).first()
    return None


def _usable(customer: Customer) -> Customer:
    if not customer.is_active:
        raise InvalidRequest("Customer account is inactive", details={"customer_id": customer.id})
    return customer


def find_or_create_customer(
    *,
    name: str | None,
    phone: str | None,
    email: str | None,
) -> tuple[Customer, bool]:
    """
    Return (customer, created).

    Must run inside an open transaction. The insert happens in a SAVEPOINT
    so a uniqueness race only undoes the insert, not the caller's work.
    """
    if not phone and not email:
        raise InvalidRequest("Customer phone or email is required")

    existing = find_by_contact(phone, email)
    if existing is not None:
        return _usable(existing), False

    first_name, last_name = split_name(name)
    customer = Customer(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=email,
    )
    try:
        with db.session.begin_nested():
            db.session.add(customer)
            db.session.flush()
    except IntegrityError:
        current_app.logger.warning("Customer insert raced (phone=%s email=%s); re-reading", phone, email)
        existing = find_by_contact(phone, email)
        if existing is None:
            raise Conflict("Customer could not be created", details={"phone": phone, "email": email})
        return _usable(existing), False

    current_app.logger.info("Created customer %s", customer.id)
    return customer, True


def record_order(customer: Customer, order: Order) -> Customer:
    """Apply a new order's effects to the customer aggregates."""
    customer.total_orders = (customer.total_orders or 0) + 1
    customer.total_spent_cents = (customer.total_spent_cents or 0) + order.total_cents
    customer.loyalty_points = (
        (customer.loyalty_points or 0)
        + order.loyalty_points_earned
        - order.loyalty_points_redeemed
    )
    customer.last_order_at = utcnow()
    return customer


def reverse_order(customer: Customer, order: Order) -> Customer:
    """
    Undo exactly what record_order applied, using the values stored on the
    order rather than current settings.
    """
    customer.total_orders = (customer.total_orders or 0) - 1
    customer.total_spent_cents = (customer.total_spent_cents or 0) - order.total_cents
    customer.loyalty_points = (
        (customer.loyalty_points or 0)
        - order.loyalty_points_earned
        + order.loyalty_points_redeemed
    )
    return customer


def get_customer_profile(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    standing = loyalty_service.describe_customer(customer, settings_service.get_snapshot())
    return {
        "customer": customer.to_dict(),
        "standing": standing.to_dict(),
    }


# -----------------------------------------------------------------------------
# Lookup lists
# -----------------------------------------------------------------------------

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SEARCH_RESULT_LIMIT = 10
MAX_TOP_CUSTOMERS = 50


def _contact_filter(term: str):
    """Case-insensitive substring match on name, phone or email."""
    pattern = f"%{term}%"
    clauses = [
        Customer.first_name.ilike(pattern),
        Customer.last_name.ilike(pattern),
        Customer.email.ilike(pattern),
        Customer.phone.ilike(pattern),
    ]
    # Phones are stored without separators
    digits = re.sub(r"[\s\-()]", "", term)
    if digits and digits != term:
        clauses.append(Customer.phone.ilike(f"%{digits}%"))
    return db.or_(*clauses)


def _search_term(value, field_name: str, min_length: int) -> str:
    if not isinstance(value, str):
        raise InvalidRequest(f"{field_name} must be a string")
    term = value.strip()
    if len(term) < min_length or len(term) > 100:
        raise InvalidRequest(f"{field_name} must be between {min_length} and 100 characters")
    return term


def search_customers(query: str | None, *, limit: int = SEARCH_RESULT_LIMIT) -> list[Customer]:
    """
    Quick lookup used at checkout before an order is punched.

    Active customers only, most recent visitors first.
    """
    if query is None:
        raise InvalidRequest("Search query is required")
    term = _search_term(query, "query", 3)
    if limit < 1 or limit > SEARCH_RESULT_LIMIT:
        raise InvalidRequest(f"limit must be between 1 and {SEARCH_RESULT_LIMIT}")

    return (
        db.session.query(Customer)
        .filter(Customer.is_active.is_(True))
        .filter(_contact_filter(term))
        .order_by(Customer.last_order_at.is_(None), Customer.last_order_at.desc(), Customer.id.asc())
        .limit(limit)
        .all()
    )


def list_customers(
    *,
    search: str | None = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Active customers, newest first, optionally narrowed by a search term."""
    if page < 1:
        raise InvalidRequest("page must be >= 1")
    if per_page < 1 or per_page > MAX_PAGE_SIZE:
        raise InvalidRequest(f"per_page must be between 1 and {MAX_PAGE_SIZE}")

    query = db.session.query(Customer).filter(Customer.is_active.is_(True))
    if search:
        query = query.filter(_contact_filter(_search_term(search, "search", 2)))

    total = query.count()
    customers = (
        query.order_by(Customer.created_at.desc(), Customer.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "customers": customers,
        "total": total,
        "page": page,
        "per_page": per_page,
    }


def top_customers(*, limit: int = 10) -> list[Customer]:
    """Active customers by lifetime spend."""
    if limit < 1 or limit > MAX_TOP_CUSTOMERS:
        raise InvalidRequest(f"limit must be between 1 and {MAX_TOP_CUSTOMERS}")
    return (
        db.session.query(Customer)
        .filter(Customer.is_active.is_(True))
        .order_by(Customer.total_spent_cents.desc(), Customer.id.asc())
        .limit(limit)
        .all()
    )
