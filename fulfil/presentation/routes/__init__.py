"""
Routes package for the fulfillment API
One blueprint; each document type lives in its own module.
"""

from flask import Blueprint, current_app, jsonify

from fulfil.logger import get_logger

logger = get_logger("fulfil.routes")

fulfil_bp = Blueprint('fulfil', __name__)


def workflow_limit():
    """Rate limit applied to close and waive calls"""
    return current_app.config.get('RATELIMIT_WORKFLOW', '60 per minute')


def document_response(payload, created=None):
    """201 for a freshly created document, 200 otherwise (including replays)."""
    return jsonify(payload), 201 if created else 200


def reject_customer_change(document, header):
    """The customer of a document is fixed at creation; PATCH may only repeat it."""
    from fulfil.business.errors import ValidationFailed

    customer_id = header.pop('customer_id', None)
    if customer_id is not None and customer_id != document.customer_id:
        raise ValidationFailed({'customer_id': "customer_id cannot be changed."})


# Import route modules
from . import items, purchase_orders, orders, deliveries  # noqa: E402,F401


def init_app(app):
    """Register the API blueprint and the JSON error handlers with the Flask app"""
    from fulfil.presentation.errors import register_error_handlers

    prefix = app.config.get('FULFIL_URL_PREFIX') or ''
    if prefix and not prefix.startswith('/'):
        prefix = f"/{prefix}"
    app.register_blueprint(fulfil_bp, url_prefix=prefix.rstrip('/') or None)
    register_error_handlers(app)
    logger.debug(f"Registered fulfil blueprint at '{prefix or '/'}'")
