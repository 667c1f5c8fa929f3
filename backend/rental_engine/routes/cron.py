# Overview: Cron-triggered entry point for the lifecycle sweep.

import hmac

from flask import Blueprint, current_app, jsonify, request

from ..services import sweep_service


cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def _authorized() -> bool:
    expected = current_app.config.get("CRON_SECRET")
    if not expected:
        return False
    provided = request.args.get("secret") or request.headers.get("X-Cron-Secret") or ""
    return hmac.compare_digest(provided, expected)


@cron_bp.post("/notifications")
def run_notifications_route():
    """
    Run the lifecycle sweep once.

    Requires ?secret=<CRON_SECRET> (or X-Cron-Secret header). Per-order
    failures are reported in "errors" with a 200; the sweep itself does not fail.
    """
    if not _authorized():
        current_app.logger.warning("Rejected cron call from %s", request.remote_addr)
        return jsonify({"error": "Unauthorized"}), 401

    try:
        result = sweep_service.run_lifecycle_sweep()
        return jsonify({"success": True, **result.to_dict()}), 200
    except Exception:
        current_app.logger.exception("Lifecycle sweep failed")
        return jsonify({"error": "Internal server error"}), 500
