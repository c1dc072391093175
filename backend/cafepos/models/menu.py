from __future__ import annotations

from ..extensions import db
from cafepos.money import format_cents


DIET_VEGAN = "VEGAN"
DIET_VEG = "VEG"
DIET_EGGETARIAN = "EGGETARIAN"
DIET_NON_VEG = "NON_VEG"
DIET_TYPES = (DIET_VEGAN, DIET_VEG, DIET_EGGETARIAN, DIET_NON_VEG)


class Category(db.Model):
    """Menu category (Bowls, Wraps, Beverages...)."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class MenuItem(db.Model):
    """
    Sellable menu item.

    PRICING: Either flat-priced (base_price_cents set, has_variants False)
    or variant-priced (has_variants True, price comes from the chosen
    ItemVariant). The order core only reads these rows.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.UniqueConstraint("category_id", "slug", name="uq_menu_items_category_slug"),
        db.Index("ix_menu_items_category_available", "category_id", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    name = db.Column(db.String(150), nullable=False)
    slug = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    diet_type = db.Column(db.String(16), nullable=False, default=DIET_VEG)

    # Flat price (null for variant-priced items)
    base_price_cents = db.Column(db.Integer, nullable=True)
    has_variants = db.Column(db.Boolean, nullable=False, default=False)

    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("items", lazy=True))
    variants = db.relationship(
        "ItemVariant",
        backref="menu_item",
        lazy=True,
        order_by="ItemVariant.display_order",
    )

    def to_dict(self, include_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "diet_type": self.diet_type,
            "base_price": format_cents(self.base_price_cents),
            "has_variants": self.has_variants,
            "is_available": self.is_available,
            "display_order": self.display_order,
        }
        if include_variants:
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class ItemVariant(db.Model):
    """Mutually exclusive priced option for a menu item (4oz / 8oz, Half / Full)."""
    __tablename__ = "item_variants"
    __table_args__ = (
        db.UniqueConstraint("menu_item_id", "name", name="uq_item_variants_item_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)

    name = db.Column(db.String(50), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price": format_cents(self.price_cents),
            "display_order": self.display_order,
            "is_available": self.is_available,
        }


class Addon(db.Model):
    """
    Optional extra for an order line (Extra Rice, Egg, Dressing).

    Availability per item is decided by CategoryAddon links and ItemAddon
    rules, see catalog_service.get_effective_addons.
    """
    __tablename__ = "addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True)

    price_cents = db.Column(db.Integer, nullable=False)
    # "piece", "100g", "serving"
    unit = db.Column(db.String(50), nullable=False, default="piece")
    # Default per-line cap (null = request-level ceiling)
    max_quantity = db.Column(db.Integer, nullable=True)
    addon_group = db.Column(db.String(50), nullable=True)

    is_available = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "price": format_cents(self.price_cents),
            "unit": self.unit,
            "max_quantity": self.max_quantity,
            "addon_group": self.addon_group,
            "is_available": self.is_available,
        }


class CategoryAddon(db.Model):
    """Addon offered to every item in a category, optionally at a category price."""
    __tablename__ = "category_addons"
    __table_args__ = (
        db.UniqueConstraint("category_id", "addon_id", name="uq_category_addons"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    addon_id = db.Column(db.Integer, db.ForeignKey("addons.id"), nullable=False, index=True)

    price_override_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    addon = db.relationship("Addon")


class ItemAddon(db.Model):
    """
    Item-specific addon rule.

    - is_allowed False: excludes a category addon from this item
    - is_allowed True: allows the addon even without a category link
    - price_override_cents / max_quantity: beat category and addon defaults
    """
    __tablename__ = "item_addons"
    __table_args__ = (
        db.UniqueConstraint("menu_item_id", "addon_id", name="uq_item_addons"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    addon_id = db.Column(db.Integer, db.ForeignKey("addons.id"), nullable=False, index=True)

    price_override_cents = db.Column(db.Integer, nullable=True)
    is_allowed = db.Column(db.Boolean, nullable=False, default=True)
    max_quantity = db.Column(db.Integer, nullable=True)

    addon = db.relationship("Addon")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "addon_id": self.addon_id,
            "price_override_cents": self.price_override_cents,
            "is_allowed": self.is_allowed,
            "max_quantity": self.max_quantity,
        }
