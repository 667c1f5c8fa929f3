# Overview: Flask API routes for rental returns; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import return_service
from ..validation import ValidationError, coerce_int
from .errors import DOMAIN_ERRORS, error_response


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def create_return_route():
    """
    Process the return of a rental order.

    Request body:
    {
        "order_id": 7,
        "items": [{"product_id": 1, "quantity": 2, "condition": "GOOD"}],
        "notes": "Scratched lens",  (optional)
        "damage_fee_cents": 2500,  (optional, replaces the policy rate)
        "returned_at": "2025-06-10T12:00:00Z"  (optional, defaults to now)
    }

    Returns:
        201: Return recorded, reservations released
        400: Invalid items
        404: Unknown order
        409: Order already returned or not returnable
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("order_id") is None:
            raise ValidationError("order_id required")

        rental_return = return_service.process_return(
            coerce_int(data.get("order_id"), "order_id"),
            data.get("items"),
            notes=data.get("notes"),
            damage_fee_cents=data.get("damage_fee_cents"),
            returned_at=data.get("returned_at"),
        )
        return jsonify({"return": rental_return.to_dict()}), 201

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500
