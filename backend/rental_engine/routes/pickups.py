# Overview: Flask API routes for pickup dispatch status.

from flask import Blueprint, current_app, jsonify, request

from ..services import pickup_service
from .errors import DOMAIN_ERRORS, error_response


pickups_bp = Blueprint("pickups", __name__, url_prefix="/api/pickups")


@pickups_bp.patch("/<int:pickup_id>")
def update_pickup_route(pickup_id: int):
    """
    Move a pickup forward.

    Request body: {"status": "READY" | "COMPLETED"}

    Returns:
        200: Updated pickup
        400: Unknown status
        409: Backward transition
    """
    try:
        data = request.get_json(silent=True) or {}
        pickup = pickup_service.update_pickup_status(pickup_id, data.get("status"))
        return jsonify({"pickup": pickup.to_dict()}), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update pickup %s", pickup_id)
        return jsonify({"error": "Internal server error"}), 500
