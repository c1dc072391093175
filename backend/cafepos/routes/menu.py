# backend/cafepos/routes/menu.py
"""Read-only menu API for the order screen."""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreError, InvalidRequest
from ..services import catalog_service
from ..decorators import require_auth
from ..validation import coerce_int


menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


@menu_bp.get("/categories")
@require_auth
def list_categories_route():
    categories = catalog_service.list_categories()
    return jsonify({"categories": [c.to_dict() for c in categories]}), 200


@menu_bp.get("/items")
@require_auth
def list_items_route():
    """
    List menu items with their variants.

    Query params:
    - category_id: restrict to one category
    - include_unavailable: "true" to include unavailable items
    """
    try:
        category_id = request.args.get("category_id")
        if category_id is not None:
            category_id = coerce_int(category_id, "category_id", min_value=1)
        include_unavailable = request.args.get("include_unavailable", "").lower() == "true"

        items = catalog_service.list_menu(
            category_id=category_id,
            available_only=not include_unavailable,
        )
        return jsonify({"items": [item.to_dict() for item in items]}), 200

    except InvalidRequest as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list menu items")
        return jsonify({"error": "Internal server error"}), 500


@menu_bp.get("/items/<int:item_id>/addons")
@require_auth
def list_item_addons_route(item_id: int):
    """Effective addons for one item, with resolved prices and caps."""
    try:
        addons = catalog_service.get_effective_addons(item_id)
        return jsonify({
            "menu_item_id": item_id,
            "addons": [a.to_dict() for a in addons],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list item addons")
        return jsonify({"error": "Internal server error"}), 500
