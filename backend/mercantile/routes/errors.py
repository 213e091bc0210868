# Overview: Maps domain errors to JSON error responses for the API blueprints.

from flask import current_app, jsonify

from ..validation import (
    ConflictError,
    DuplicateSkuError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
)

# Order matters: subclasses before their bases
ERROR_STATUS = (
    (NotFoundError, 404),
    (DuplicateSkuError, 409),
    (ConflictError, 409),
    (ReferentialIntegrityError, 409),
    (ValidationError, 400),
)

DOMAIN_ERRORS = tuple(cls for cls, _ in ERROR_STATUS)


def error_response(exc: Exception):
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            body = {"error": str(exc)}
            if isinstance(exc, DuplicateSkuError):
                body["sku"] = exc.sku
            return jsonify(body), status

    current_app.logger.exception("Unhandled error: %s", type(exc).__name__)
    return jsonify({"error": "Internal server error"}), 500


def internal_error(message: str):
    """For use inside an except block: logs the active exception."""
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
