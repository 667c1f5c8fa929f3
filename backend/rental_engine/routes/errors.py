# Overview: Maps domain exceptions to JSON error responses.

from flask import jsonify
from werkzeug.exceptions import HTTPException

from ..services.inventory_service import InsufficientStockError
from ..validation import ConflictError, NotFoundError, ValidationError


DOMAIN_ERRORS = (InsufficientStockError, NotFoundError, ConflictError, ValidationError)


def error_response(exc: Exception):
    """JSON body and status for a domain error raised by a service."""
    if isinstance(exc, InsufficientStockError):
        return jsonify({"error": str(exc), "details": exc.details}), 409
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    return jsonify({"error": str(exc)}), 400


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        return jsonify({"error": exc.description}), exc.code
