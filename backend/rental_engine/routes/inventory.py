# Overview: Flask API routes for product availability queries.

from flask import Blueprint, current_app, jsonify, request

from ..services import inventory_service
from ..validation import coerce_datetime
from .errors import DOMAIN_ERRORS, error_response
from rental_engine.time_utils import to_utc_z


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<int:product_id>/availability")
def availability_route(product_id: int):
    """
    Units of a product free during [from, to].

    Query params:
        from, to: ISO-8601 datetimes (required)

    Returns:
        200: {"product_id", "from", "to", "quantity_on_hand", "reserved", "available"}
        400: Missing or malformed window
        404: Unknown product
    """
    try:
        from_date = coerce_datetime(request.args.get("from"), "from")
        to_date = coerce_datetime(request.args.get("to"), "to")

        product = inventory_service.get_product(product_id)
        reserved = inventory_service.reserved_quantity(product_id, from_date, to_date)
        available = inventory_service.available_quantity(product_id, from_date, to_date)

        return jsonify({
            "product_id": product.id,
            "from": to_utc_z(from_date),
            "to": to_utc_z(to_date),
            "quantity_on_hand": product.quantity_on_hand,
            "reserved": reserved,
            "available": available,
        }), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute availability")
        return jsonify({"error": "Internal server error"}), 500
