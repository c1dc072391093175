# backend/cafepos/routes/settings.py
"""Loyalty settings API. Anyone signed in can read; only ADMIN can write."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CoreError, InvalidRequest
from ..models.auth import ROLE_ADMIN
from ..services import settings_service
from ..decorators import require_auth, require_role


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def list_settings_route():
    return jsonify({"settings": settings_service.get_all_settings()}), 200


@settings_bp.put("/<key>")
@require_auth
@require_role(ROLE_ADMIN)
def update_setting_route(key: str):
    """
    Replace one setting.

    Body: {"value": {...}}
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "value" not in data:
            raise InvalidRequest("value is required")

        settings_service.update_setting(g.principal, key, data["value"])
        return jsonify({
            "key": key,
            "setting": settings_service.get_all_settings()[key],
        }), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update setting")
        return jsonify({"error": "Internal server error"}), 500
