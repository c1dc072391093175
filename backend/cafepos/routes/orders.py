# backend/cafepos/routes/orders.py
"""Order API routes: pricing preview, creation, lookup and cancellation."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CoreError, InvalidRequest
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import order_service, cancellation_service
from ..decorators import require_auth, require_role
from ..time_utils import parse_iso_date
from ..validation import coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error(e: CoreError):
    return jsonify(e.to_dict()), e.http_status


@orders_bp.post("/price-preview")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def price_preview_route():
    """
    Price a line (or a list of lines) exactly as order creation would.

    Body is either one line object or {"items": [...]}. Nothing is saved.
    """
    try:
        data = request.get_json(silent=True)
        if isinstance(data, dict) and "items" in data:
            totals = order_service.preview_order(data)
            return jsonify({"preview": totals.to_dict()}), 200

        line = order_service.preview_line(data)
        return jsonify({"preview": line.to_dict()}), 200

    except CoreError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to preview price")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def create_order_route():
    """
    Create an order.

    Body: {items: [...], payment_method, payment_status?, customer_id?,
           customer_name?, customer_phone?, customer_email?, notes?}
    """
    try:
        data = request.get_json(silent=True)
        order = order_service.create_order(g.principal, data)
        return jsonify({"order": order.to_dict()}), 201

    except CoreError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def list_orders_route():
    """
    List orders, newest first.

    Query params: status, customer_phone, customer_id, date_from, date_to
    (YYYY-MM-DD, inclusive), page, per_page.
    """
    try:
        args = request.args
        try:
            date_from = parse_iso_date(args.get("date_from"))
            date_to = parse_iso_date(args.get("date_to"))
        except ValueError:
            raise InvalidRequest("Dates must be YYYY-MM-DD")

        customer_id = args.get("customer_id")
        result = order_service.list_orders(
            status=args.get("status") or None,
            customer_phone=args.get("customer_phone") or None,
            customer_id=coerce_int(customer_id, "customer_id", min_value=1) if customer_id else None,
            date_from=date_from,
            date_to=date_to,
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
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except CoreError as e:
        return _error(e)


@orders_bp.get("/<int:order_id>/history")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def get_order_history_route(order_id: int):
    try:
        history = cancellation_service.get_status_history(order_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except CoreError as e:
        return _error(e)


@orders_bp.post("/<int:order_id>/cancellation")
@require_auth
@require_role(ROLE_MANAGER, ROLE_ADMIN)
def request_cancellation_route(order_id: int):
    """
    Ask for an order to be cancelled.

    Body: {reason}
    """
    try:
        data = request.get_json(silent=True) or {}
        order = cancellation_service.request_cancellation(order_id, g.principal, data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200

    except CoreError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to request cancellation")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancellation/decision")
@require_auth
@require_role(ROLE_ADMIN)
def decide_cancellation_route(order_id: int):
    """
    Approve or reject a pending cancellation.

    Body: {approve: bool, notes?, expected_status?}
    """
    try:
        data = request.get_json(silent=True) or {}
        if "approve" not in data:
            raise InvalidRequest("approve is required")

        order = cancellation_service.decide_cancellation(
            order_id,
            g.principal,
            approve=data.get("approve"),
            notes=data.get("notes"),
            expected_status=data.get("expected_status"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except CoreError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to decide cancellation")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/cancellations/pending")
@require_auth
@require_role(ROLE_ADMIN)
def list_pending_cancellations_route():
    orders = cancellation_service.list_pending_cancellations()
    return jsonify({"orders": [o.to_dict(include_lines=False) for o in orders]}), 200
