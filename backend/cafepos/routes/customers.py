# backend/cafepos/routes/customers.py
"""
Customer API routes.

- GET /api/customers               paginated list (search, page, per_page)
- GET /api/customers/search?q=     checkout lookup by name, phone or email
- GET /api/customers/top           top customers by lifetime spend
- GET /api/customers/<id>          record plus derived loyalty standing
- GET /api/customers/<id>/orders   that customer's orders, newest first
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import CoreError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import customer_service, order_service
from ..decorators import require_auth, require_role
from ..validation import coerce_int


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def list_customers_route():
    try:
        args = request.args
        result = customer_service.list_customers(
            search=args.get("search") or None,
            page=coerce_int(args.get("page", "1"), "page", min_value=1),
            per_page=coerce_int(
                args.get("per_page", str(customer_service.DEFAULT_PAGE_SIZE)),
                "per_page",
                min_value=1,
                max_value=customer_service.MAX_PAGE_SIZE,
            ),
        )
        return jsonify({
            "customers": [c.to_dict() for c in result["customers"]],
            "total": result["total"],
            "page": result["page"],
            "per_page": result["per_page"],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/search")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def search_customers_route():
    """Query param q: at least 3 characters of a name, phone or email."""
    try:
        customers = customer_service.search_customers(request.args.get("q"))
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.get("/top")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def top_customers_route():
    try:
        limit = coerce_int(request.args.get("limit", "10"), "limit", min_value=1)
        customers = customer_service.top_customers(limit=limit)
        return jsonify({"customers": [c.to_dict() for c in customers]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def get_customer_route(customer_id: int):
    """Customer record plus tier, VIP flag and distance to the next tier."""
    try:
        return jsonify(customer_service.get_customer_profile(customer_id)), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.get("/<int:customer_id>/orders")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def customer_orders_route(customer_id: int):
    """Query params: page, per_page."""
    try:
        customer_service.get_customer(customer_id)
        args = request.args
        result = order_service.list_orders(
            customer_id=customer_id,
            page=coerce_int(args.get("page", "1"), "page", min_value=1),
            per_page=coerce_int(
                args.get("per_page", str(order_service.DEFAULT_PAGE_SIZE)),
                "per_page",
                min_value=1,
                max_value=order_service.MAX_PAGE_SIZE,
            ),
        )
        return jsonify({
            "orders": [o.to_dict(include_lines=False) for o in result["orders"]],
            "total": result["total"],
            "page": result["page"],
            "per_page": result["per_page"],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list customer orders")
        return jsonify({"error": "Internal server error"}), 500
