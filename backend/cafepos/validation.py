from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .errors import InvalidRequest
from .models.orders import PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_STATUS_PENDING

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 100
# Ceiling for addon quantity when neither the item rule nor the addon sets a cap
MAX_ADDON_QUANTITY = 10

MAX_SPECIAL_INSTRUCTIONS = 500
MAX_ORDER_NOTES = 1000
MIN_CUSTOMER_NAME = 2
MAX_CUSTOMER_NAME = 100

MIN_CANCELLATION_REASON = 5
MAX_CANCELLATION_REASON = 500
MAX_DECISION_NOTES = 500

PHONE_RE = re.compile(r"^\+?[0-9]{7,15}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# -----------------------------------------------------------------------------
# Scalar coercion
# -----------------------------------------------------------------------------

def coerce_int(
    value: Any,
    field_name: str,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Strict integer coercion: rejects bools, floats, decimals, and 1e3 notation."""
    if isinstance(value, bool):
        raise InvalidRequest(f"{field_name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise InvalidRequest(f"{field_name} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidRequest(f"{field_name} must be an integer")
    else:
        raise InvalidRequest(f"{field_name} must be an integer")

    if min_value is not None and result < min_value:
        raise InvalidRequest(f"{field_name} must be >= {min_value}")
    if max_value is not None and result > max_value:
        raise InvalidRequest(f"{field_name} must be <= {max_value}")
    return result


def _optional_id(value: Any, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field_name, min_value=1)


def _optional_text(value: Any, field_name: str, *, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"{field_name} must be a string")
    text = value.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise InvalidRequest(f"{field_name} must be at most {max_length} characters")
    return text


def normalize_phone(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest("customer_phone must be a string")
    phone = re.sub(r"[\s\-()]", "", value)
    if not phone:
        return None
    if not PHONE_RE.match(phone):
        raise InvalidRequest("Invalid phone number format")
    return phone


def normalize_email(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest("customer_email must be a string")
    email = value.strip().lower()
    if not email:
        return None
    if len(email) > 255 or not EMAIL_RE.match(email):
        raise InvalidRequest("Invalid email address")
    return email


# -----------------------------------------------------------------------------
# Order requests
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AddonSelection:
    addon_id: int
    quantity: int = 1


@dataclass(frozen=True)
class LineRequest:
    """One requested order line, before pricing."""
    menu_item_id: int
    variant_id: int | None = None
    addon_selections: tuple[AddonSelection, ...] = ()
    quantity: int = 1
    special_instructions: str | None = None


@dataclass(frozen=True)
class OrderRequest:
    lines: tuple[LineRequest, ...]
    payment_method: str
    payment_status: str = PAYMENT_STATUS_PENDING
    customer_id: int | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    notes: str | None = None

    @property
    def has_customer_contact(self) -> bool:
        return bool(self.customer_phone or self.customer_email)


def validate_addon_selections(raw: Any) -> tuple[AddonSelection, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise InvalidRequest("addon_selections must be a list")

    selections: list[AddonSelection] = []
    seen: set[int] = set()
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise InvalidRequest(f"addon_selections[{i}] must be an object")
        if "addon_id" not in entry:
            raise InvalidRequest(f"addon_selections[{i}].addon_id is required")
        addon_id = coerce_int(entry["addon_id"], f"addon_selections[{i}].addon_id", min_value=1)
        quantity = coerce_int(
            entry.get("quantity", 1),
            f"addon_selections[{i}].quantity",
            min_value=1,
        )
        if addon_id in seen:
            raise InvalidRequest(f"Addon {addon_id} selected more than once")
        seen.add(addon_id)
        selections.append(AddonSelection(addon_id=addon_id, quantity=quantity))
    return tuple(selections)


def validate_line_payload(raw: Any, *, index: int | None = None) -> LineRequest:
    """
    Validate one line object:
    {menu_item_id, variant_id?, addon_selections?, quantity?, special_instructions?}
    """
    prefix = "item" if index is None else f"items[{index}]"
    if not isinstance(raw, dict):
        raise InvalidRequest(f"{prefix} must be an object")
    if raw.get("menu_item_id") is None:
        raise InvalidRequest(f"{prefix}.menu_item_id is required")

    return LineRequest(
        menu_item_id=coerce_int(raw["menu_item_id"], f"{prefix}.menu_item_id", min_value=1),
        variant_id=_optional_id(raw.get("variant_id"), f"{prefix}.variant_id"),
        addon_selections=validate_addon_selections(raw.get("addon_selections")),
        quantity=coerce_int(
            raw.get("quantity", 1),
            f"{prefix}.quantity",
            min_value=MIN_LINE_QUANTITY,
            max_value=MAX_LINE_QUANTITY,
        ),
        special_instructions=_optional_text(
            raw.get("special_instructions"),
            f"{prefix}.special_instructions",
            max_length=MAX_SPECIAL_INSTRUCTIONS,
        ),
    )


def validate_order_payload(payload: Any) -> OrderRequest:
    """
    Validates + normalizes an incoming create-order JSON body.
    Nothing here touches the database.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid JSON payload")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidRequest("Order must contain at least one item")
    lines = tuple(validate_line_payload(item, index=i) for i, item in enumerate(items))

    payment_method = payload.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        raise InvalidRequest(
            f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )

    payment_status = payload.get("payment_status") or PAYMENT_STATUS_PENDING
    if payment_status not in PAYMENT_STATUSES:
        raise InvalidRequest(
            f"Invalid payment status. Must be one of: {', '.join(PAYMENT_STATUSES)}"
        )

    customer_name = _optional_text(
        payload.get("customer_name"), "customer_name", max_length=MAX_CUSTOMER_NAME
    )
    if customer_name is not None and len(customer_name) < MIN_CUSTOMER_NAME:
        raise InvalidRequest(
            f"Customer name must be {MIN_CUSTOMER_NAME}-{MAX_CUSTOMER_NAME} characters"
        )

    return OrderRequest(
        lines=lines,
        payment_method=payment_method,
        payment_status=payment_status,
        customer_id=_optional_id(payload.get("customer_id"), "customer_id"),
        customer_name=customer_name,
        customer_phone=normalize_phone(payload.get("customer_phone")),
        customer_email=normalize_email(payload.get("customer_email")),
        notes=_optional_text(payload.get("notes"), "notes", max_length=MAX_ORDER_NOTES),
    )


# -----------------------------------------------------------------------------
# Cancellation input
# -----------------------------------------------------------------------------

def validate_cancellation_reason(reason: Any) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidRequest("Cancellation reason is required")
    text = reason.strip()
    if len(text) < MIN_CANCELLATION_REASON:
        raise InvalidRequest(
            f"Cancellation reason must be at least {MIN_CANCELLATION_REASON} characters"
        )
    if len(text) > MAX_CANCELLATION_REASON:
        raise InvalidRequest(
            f"Cancellation reason must be at most {MAX_CANCELLATION_REASON} characters"
        )
    return text


def validate_decision_notes(notes: Any) -> str | None:
    return _optional_text(notes, "notes", max_length=MAX_DECISION_NOTES)
