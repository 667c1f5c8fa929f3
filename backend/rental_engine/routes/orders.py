# Overview: Flask API routes for order confirmation, order reads, invoices and payments.

# backend/rental_engine/routes/orders.py
"""
Order API Routes

- Confirm a quotation into an order (idempotent: repeats return the same order)
- Read an order with its lines, invoices, pickup and return
- Get-or-create the order invoice
- Record externally verified payments
"""

from flask import Blueprint, current_app, jsonify, request

from ..models.orders import INVOICE_KIND_ORDER
from ..services import order_service
from ..validation import ValidationError, coerce_int
from .errors import DOMAIN_ERRORS, error_response


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/confirm")
def confirm_order_route():
    """
    Confirm a quotation.

    Request body:
    {
        "quotation_id": 12,
        "address_id": 3  (optional, defaults to the customer's default address)
    }

    Returns:
        201: Order created
        200: Quotation was already confirmed; existing order returned
        404: Unknown quotation
        409: Insufficient stock, with {"product_id", "requested", "available"}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("quotation_id") is None:
            raise ValidationError("quotation_id required")

        quotation_id = coerce_int(data.get("quotation_id"), "quotation_id")
        address_id = data.get("address_id")
        if address_id is not None:
            address_id = coerce_int(address_id, "address_id")

        result = order_service.confirm_quotation(quotation_id, address_id=address_id)
        return jsonify(result.to_dict()), 201 if result.created else 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm quotation")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return jsonify(order_service.get_order_summary(order_id)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/invoice")
def get_invoice_route(order_id: int):
    """Return the order's invoice, creating it on first access."""
    try:
        invoice = order_service.get_or_create_invoice(order_id)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load invoice for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments")
def record_payment_route(order_id: int):
    """
    Record a verified payment.

    Request body:
    {
        "amount_cents": 5000,
        "invoice_kind": "ORDER" | "FEES"  (optional, default ORDER)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("amount_cents") is None:
            raise ValidationError("amount_cents required")

        invoice = order_service.record_payment(
            order_id,
            data.get("amount_cents"),
            invoice_kind=str(data.get("invoice_kind") or INVOICE_KIND_ORDER).upper(),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
