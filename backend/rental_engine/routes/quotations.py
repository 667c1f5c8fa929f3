# Overview: Flask API routes for checkout-time availability pre-checks.

from flask import Blueprint, current_app, jsonify

from ..services import reservation_service
from .errors import DOMAIN_ERRORS, error_response


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.post("/<int:quotation_id>/check")
def check_quotation_route(quotation_id: int):
    """
    Advisory availability check for every line of a quotation.

    Returns:
        200: {"ok": true, "reservations": [...], "sale_decrements": [...]}
        404: Unknown quotation or product
        409: First line that cannot be fulfilled, with details
    """
    try:
        plan = reservation_service.precheck_quotation(quotation_id)
        return jsonify({
            "ok": True,
            "reservations": [
                {"product_id": pid, "quantity": qty} for pid, qty in plan.reservations
            ],
            "sale_decrements": [
                {"product_id": pid, "quantity": qty} for pid, qty in plan.sale_decrements
            ],
        }), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check quotation %s", quotation_id)
        return jsonify({"error": "Internal server error"}), 500
