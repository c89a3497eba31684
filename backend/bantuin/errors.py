from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException


class BantuinError(Exception):
    """Business-rule violation surfaced to the client with a stable kind."""

    kind = "error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "message": self.message}


class ValidationError(BantuinError):
    kind = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class NotFound(BantuinError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class Forbidden(BantuinError):
    kind = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class Conflict(BantuinError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class InvalidStateTransition(BantuinError):
    kind = "invalid_state_transition"
    status_code = 409
    default_message = "Operation not allowed in the current status"


class InsufficientFunds(BantuinError):
    kind = "insufficient_funds"
    status_code = 400
    default_message = "Insufficient wallet balance"


class RevisionQuotaExhausted(BantuinError):
    kind = "revision_quota_exhausted"
    status_code = 400
    default_message = "No revisions left for this order"


class AlreadyResolved(BantuinError):
    kind = "already_resolved"
    status_code = 409
    default_message = "Dispute already resolved"


class SignatureMismatch(BantuinError):
    kind = "signature_mismatch"
    status_code = 401
    default_message = "Invalid signature"


class PaymentGatewayError(BantuinError):
    kind = "payment_gateway_error"
    status_code = 502
    default_message = "Failed to create payment session. Please try again."


class DuplicateWebhook(BantuinError):
    # Raised inside the settlement unit to abort it; acknowledged as success.
    kind = "duplicate_webhook"
    status_code = 200
    default_message = "Payment already processed"


def register_error_handlers(app) -> None:
    @app.errorhandler(BantuinError)
    def _bantuin_error(e: BantuinError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def _db_error(e: SQLAlchemyError):
        current_app.logger.exception("Database failure: %s", e.__class__.__name__)
        return jsonify({"ok": False, "error": "internal_error", "message": "Internal error"}), 500

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return jsonify({"ok": False, "error": (e.name or "error").lower().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(Exception)
    def _unexpected(e: Exception):
        current_app.logger.exception("Unhandled error: %s", e)
        return jsonify({"ok": False, "error": "internal_error", "message": "Internal error"}), 500
