# Overview: Read-only access to the menu catalog for pricing and menu display.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFound
from ..extensions import db
from ..money import format_cents
from ..models import Addon, Category, CategoryAddon, ItemAddon, ItemVariant, MenuItem

SOURCE_CATEGORY = "CATEGORY"
SOURCE_ITEM = "ITEM"


@dataclass(frozen=True)
class EffectiveAddon:
    """
    An addon as it applies to one menu item.

    price_cents is already resolved (item override, else category override,
    else the addon's own price). max_quantity is the item rule's cap, else
    the addon's cap, else None.
    """
    addon_id: int
    name: str
    unit: str
    addon_group: str | None
    price_cents: int
    max_quantity: int | None
    source: str

    def to_dict(self) -> dict:
        return {
            "addon_id": self.addon_id,
            "name": self.name,
            "unit": self.unit,
            "addon_group": self.addon_group,
            "price": format_cents(self.price_cents),
            "max_quantity": self.max_quantity,
            "source": self.source,
        }


def get_menu_item(menu_item_id: int, *, available_only: bool = True) -> MenuItem:
    item = db.session.get(MenuItem, menu_item_id)
    if item is None or (available_only and not item.is_available):
        raise NotFound("Menu item not found or unavailable", details={"menu_item_id": menu_item_id})
    return item


def get_variant(menu_item_id: int, variant_id: int) -> ItemVariant | None:
    """Variant only if it belongs to the item. Availability is the caller's call."""
    return (
        db.session.query(ItemVariant)
        .filter_by(id=variant_id, menu_item_id=menu_item_id)
        .first()
    )


def get_effective_addons(menu_item_id: int) -> list[EffectiveAddon]:
    """
    Addons orderable with this item.

    (category links that are active, minus item exclusions)
    union (item rules that explicitly allow an addon).
    Unavailable addons never appear.
    """
    item = db.session.get(MenuItem, menu_item_id)
    if item is None:
        raise NotFound("Menu item not found", details={"menu_item_id": menu_item_id})

    rules = {
        rule.addon_id: rule
        for rule in db.session.query(ItemAddon).filter_by(menu_item_id=item.id).all()
    }
    excluded = {addon_id for addon_id, rule in rules.items() if not rule.is_allowed}

    links = (
        db.session.query(CategoryAddon)
        .join(Addon, Addon.id == CategoryAddon.addon_id)
        .filter(
            CategoryAddon.category_id == item.category_id,
            CategoryAddon.is_active.is_(True),
            Addon.is_available.is_(True),
        )
        .all()
    )

    effective: dict[int, EffectiveAddon] = {}
    for link in links:
        if link.addon_id in excluded:
            continue
        rule = rules.get(link.addon_id)
        effective[link.addon_id] = _build(
            link.addon,
            rule,
            category_price=link.price_override_cents,
            source=SOURCE_CATEGORY,
        )

    for addon_id, rule in rules.items():
        if not rule.is_allowed or addon_id in effective:
            continue
        if not rule.addon.is_available:
            continue
        effective[addon_id] = _build(rule.addon, rule, category_price=None, source=SOURCE_ITEM)

    return sorted(effective.values(), key=lambda a: (a.addon_group or "", a.name, a.addon_id))


def _build(addon: Addon, rule: ItemAddon | None, *, category_price: int | None, source: str) -> EffectiveAddon:
    if rule is not None and rule.price_override_cents is not None:
        price = rule.price_override_cents
    elif category_price is not None:
        price = category_price
    else:
        price = addon.price_cents

    if rule is not None and rule.max_quantity is not None:
        cap = rule.max_quantity
    else:
        cap = addon.max_quantity

    return EffectiveAddon(
        addon_id=addon.id,
        name=addon.name,
        unit=addon.unit,
        addon_group=addon.addon_group,
        price_cents=price,
        max_quantity=cap,
        source=source,
    )


def list_categories(active_only: bool = True) -> list[Category]:
    query = db.session.query(Category)
    if active_only:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.display_order.asc(), Category.name.asc()).all()


def list_menu(category_id: int | None = None, available_only: bool = True) -> list[MenuItem]:
    query = db.session.query(MenuItem).join(Category, Category.id == MenuItem.category_id)
    if category_id is not None:
        query = query.filter(MenuItem.category_id == category_id)
    if available_only:
        query = query.filter(MenuItem.is_available.is_(True), Category.is_active.is_(True))
    return query.order_by(
        Category.display_order.asc(),
        MenuItem.display_order.asc(),
        MenuItem.name.asc(),
    ).all()
