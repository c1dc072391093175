from __future__ import annotations

from ..extensions import db
from cafepos.money import format_cents
from cafepos.time_utils import to_utc_z


# Lifecycle status
ORDER_STATUS_CONFIRMED = "CONFIRMED"
ORDER_STATUS_PENDING_CANCELLATION = "PENDING_CANCELLATION"
ORDER_STATUS_CANCELLED = "CANCELLED"
ORDER_STATUSES = (
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PENDING_CANCELLATION,
    ORDER_STATUS_CANCELLED,
)

# Payment is recorded, never processed
PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_UPI = "UPI"
PAYMENT_LOYALTY = "LOYALTY"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_UPI, PAYMENT_LOYALTY)

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_FAILED = "FAILED"
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID, PAYMENT_STATUS_FAILED)


class Order(db.Model):
    """
    Customer order with frozen pricing.

    IMMUTABLE PRICES: subtotal/total and every line price are resolved once
    at creation and never recomputed from the current catalog.

    LIFECYCLE:
        CONFIRMED -> PENDING_CANCELLATION -> CANCELLED
                                          -> CONFIRMED (rejected)

    Only cancellation_service mutates an order after creation.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_customer_phone", "customer_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Walk-in details (denormalized; customer_id links the master record)
    customer_name = db.Column(db.String(100), nullable=True)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Money (cents). tax_cents is always 0.
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING)

    status = db.Column(db.String(32), nullable=False, default=ORDER_STATUS_CONFIRMED, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Loyalty effects recorded so cancellation reverses exactly what was applied
    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    # Cancellation request
    cancellation_requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # Cancellation decision (set on approve and reject)
    cancellation_decided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_decision_notes = db.Column(db.String(500), nullable=True)

    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "subtotal": format_cents(self.subtotal_cents),
            "tax": format_cents(self.tax_cents),
            "total": format_cents(self.total_cents),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "loyalty_points_earned": self.loyalty_points_earned,
            "loyalty_points_redeemed": self.loyalty_points_redeemed,
            "cancellation_requested_by_user_id": self.cancellation_requested_by_user_id,
            "cancellation_requested_at": to_utc_z(self.cancellation_requested_at),
            "cancellation_reason": self.cancellation_reason,
            "cancellation_decided_by_user_id": self.cancellation_decided_by_user_id,
            "cancellation_decided_at": to_utc_z(self.cancellation_decided_at),
            "cancellation_decision_notes": self.cancellation_decision_notes,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """One priced line on an order. Immutable once written."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("item_variants.id"), nullable=True)

    # Names frozen alongside prices so receipts survive catalog edits
    menu_item_name = db.Column(db.String(150), nullable=False)
    variant_name = db.Column(db.String(50), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    base_price_cents = db.Column(db.Integer, nullable=False)
    # base + addons, per unit
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # unit_price_cents * quantity
    line_total_cents = db.Column(db.Integer, nullable=False)

    special_instructions = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    addons = db.relationship(
        "OrderLineAddon",
        backref="order_line",
        lazy=True,
        order_by="OrderLineAddon.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "menu_item_id": self.menu_item_id,
            "menu_item_name": self.menu_item_name,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "quantity": self.quantity,
            "base_price": format_cents(self.base_price_cents),
            "unit_price": format_cents(self.unit_price_cents),
            "line_total": format_cents(self.line_total_cents),
            "special_instructions": self.special_instructions,
            "addons": [a.to_dict() for a in self.addons],
        }


class OrderLineAddon(db.Model):
    """Addon selection on an order line with its resolved effective price."""
    __tablename__ = "order_line_addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    addon_id = db.Column(db.Integer, db.ForeignKey("addons.id"), nullable=False)

    addon_name = db.Column(db.String(100), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "addon_id": self.addon_id,
            "name": self.addon_name,
            "unit_price": format_cents(self.unit_price_cents),
            "quantity": self.quantity,
            "subtotal": format_cents(self.subtotal_cents),
        }


class OrderStatusHistory(db.Model):
    """
    Append-only ledger of order status transitions.

    IMMUTABLE: Rows are written by cancellation_service only, never updated.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    previous_status = db.Column(db.String(32), nullable=False)
    new_status = db.Column(db.String(32), nullable=False)
    # REQUEST, APPROVE, REJECT
    action = db.Column(db.String(16), nullable=False)

    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("status_history", lazy=True, order_by="OrderStatusHistory.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "action": self.action,
            "changed_by_user_id": self.changed_by_user_id,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-day document sequences.

    WHY: Two registers creating orders at the same instant must not both
    get ORD-20260115-0007.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_doc_sequences_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    # YYYYMMDD
    sequence_date = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
