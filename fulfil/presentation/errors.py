from flask import jsonify
from werkzeug.exceptions import HTTPException

from fulfil import db
from fulfil.business.errors import FulfilError
from fulfil.logger import get_logger

logger = get_logger("fulfil.presentation.errors")


def register_error_handlers(app):
    """JSON error bodies for every failure the API can return"""

    @app.errorhandler(FulfilError)
    def handle_fulfil_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.name, "detail": error.description, "code": error.name.upper().replace(" ", "_")}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.error(f"Unhandled error: {error}", exc_info=True)
        return jsonify({"error": "Internal server error", "detail": "Internal server error",
                        "code": "INTERNAL_ERROR"}), 500
