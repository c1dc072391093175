"""
Pricing Service - price resolver and order total aggregator.

WHY: The price preview and order creation must agree to the cent, so both go
through calculate_line_price. Prices are integer cents end to end.

RESOLUTION (per line):
1. Item must exist and be available (NotFound otherwise)
2. Variant-priced item: variant required, must belong to the item and be
   available; base = variant price
3. Flat item: base = base_price_cents
4. Each addon must be in the item's effective addon set; its price is the
   resolved effective price; quantity is capped per item rule, addon, or
   MAX_ADDON_QUANTITY in that order
5. unit price = base + sum(addon price * addon quantity)

Line quantity is applied by calculate_order_total, never here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..errors import InvalidRequest
from ..money import format_cents
from ..validation import (
    MAX_ADDON_QUANTITY,
    MAX_LINE_QUANTITY,
    MIN_LINE_QUANTITY,
    AddonSelection,
    LineRequest,
    coerce_int,
    validate_addon_selections,
)
from . import catalog_service


@dataclass(frozen=True)
class AddonBreakdown:
    addon_id: int
    name: str
    unit_price_cents: int
    quantity: int
    subtotal_cents: int

    def to_dict(self) -> dict:
        return {
            "addon_id": self.addon_id,
            "name": self.name,
            "unit_price": format_cents(self.unit_price_cents),
            "quantity": self.quantity,
            "subtotal": format_cents(self.subtotal_cents),
        }


@dataclass(frozen=True)
class PriceBreakdown:
    menu_item_id: int
    menu_item_name: str
    variant_id: int | None
    variant_name: str | None
    base_price_cents: int
    addons: tuple[AddonBreakdown, ...]
    addons_total_cents: int
    unit_price_cents: int

    def to_dict(self) -> dict:
        return {
            "menu_item_id": self.menu_item_id,
            "menu_item_name": self.menu_item_name,
            "variant_id": self.variant_id,
            "variant_name": self.variant_name,
            "base_price": format_cents(self.base_price_cents),
            "addons": [a.to_dict() for a in self.addons],
            "addons_total": format_cents(self.addons_total_cents),
            "unit_price": format_cents(self.unit_price_cents),
        }


@dataclass(frozen=True)
class LineTotal:
    request: LineRequest
    breakdown: PriceBreakdown
    quantity: int
    line_total_cents: int

    def to_dict(self) -> dict:
        data = self.breakdown.to_dict()
        data["quantity"] = self.quantity
        data["line_total"] = format_cents(self.line_total_cents)
        data["special_instructions"] = self.request.special_instructions
        return data


@dataclass(frozen=True)
class OrderTotals:
    lines: tuple[LineTotal, ...]
    subtotal_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": format_cents(self.subtotal_cents),
            "tax": format_cents(self.tax_cents),
            "total": format_cents(self.total_cents),
        }


def _normalize_selections(addon_selections: Iterable) -> tuple[AddonSelection, ...]:
    selections = list(addon_selections or ())
    if any(isinstance(s, dict) for s in selections):
        return validate_addon_selections(selections)
    seen: set[int] = set()
    for selection in selections:
        if selection.addon_id in seen:
            raise InvalidRequest(f"Addon {selection.addon_id} selected more than once")
        seen.add(selection.addon_id)
    return tuple(selections)


def calculate_line_price(
    menu_item_id: int,
    variant_id: int | None = None,
    addon_selections: Iterable = (),
    quantity: int = 1,
) -> PriceBreakdown:
    """Resolve the per-unit price of one line."""
    coerce_int(quantity, "quantity", min_value=MIN_LINE_QUANTITY, max_value=MAX_LINE_QUANTITY)
    selections = _normalize_selections(addon_selections)

    item = catalog_service.get_menu_item(menu_item_id)

    variant_name = None
    if item.has_variants:
        if variant_id is None:
            raise InvalidRequest(
                f"{item.name} requires a variant selection",
                details={"menu_item_id": item.id},
            )
        variant = catalog_service.get_variant(item.id, variant_id)
        if variant is None or not variant.is_available:
            raise InvalidRequest(
                "Variant not found or unavailable",
                details={"menu_item_id": item.id, "variant_id": variant_id},
            )
        base_price = variant.price_cents
        variant_name = variant.name
    else:
        if item.base_price_cents is None:
            raise InvalidRequest(
                f"{item.name} has no price",
                details={"menu_item_id": item.id},
            )
        # Variant ids on flat items are ignored.
        variant_id = None
        base_price = item.base_price_cents

    addons: list[AddonBreakdown] = []
    if selections:
        available = {a.addon_id: a for a in catalog_service.get_effective_addons(item.id)}
        for selection in selections:
            effective = available.get(selection.addon_id)
            if effective is None:
                raise InvalidRequest(
                    "Addon not available for this item",
                    details={"menu_item_id": item.id, "addon_id": selection.addon_id},
                )
            cap = effective.max_quantity if effective.max_quantity is not None else MAX_ADDON_QUANTITY
            if selection.quantity < 1 or selection.quantity > cap:
                raise InvalidRequest(
                    f"{effective.name} quantity must be between 1 and {cap}",
                    details={"addon_id": effective.addon_id, "max_quantity": cap},
                )
            addons.append(
                AddonBreakdown(
                    addon_id=effective.addon_id,
                    name=effective.name,
                    unit_price_cents=effective.price_cents,
                    quantity=selection.quantity,
                    subtotal_cents=effective.price_cents * selection.quantity,
                )
            )

    addons_total = sum(a.subtotal_cents for a in addons)
    return PriceBreakdown(
        menu_item_id=item.id,
        menu_item_name=item.name,
        variant_id=variant_id,
        variant_name=variant_name,
        base_price_cents=base_price,
        addons=tuple(addons),
        addons_total_cents=addons_total,
        unit_price_cents=base_price + addons_total,
    )


def calculate_order_total(lines: Sequence[LineRequest]) -> OrderTotals:
    """Price every line; any failing line fails the whole order."""
    if not lines:
        raise InvalidRequest("Order must contain at least one item")

    priced: list[LineTotal] = []
    for line in lines:
        breakdown = calculate_line_price(
            line.menu_item_id,
            variant_id=line.variant_id,
            addon_selections=line.addon_selections,
            quantity=line.quantity,
        )
        priced.append(
            LineTotal(
                request=line,
                breakdown=breakdown,
                quantity=line.quantity,
                line_total_cents=breakdown.unit_price_cents * line.quantity,
            )
        )

    subtotal = sum(line.line_total_cents for line in priced)
    # No tax is computed; total is the subtotal.
    tax = 0
    return OrderTotals(
        lines=tuple(priced),
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=subtotal + tax,
    )
