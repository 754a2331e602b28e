# errors.py
import logging
from flask import jsonify

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base for every caller-visible rejection raised by the engine."""
    status_code = 400
    code = "SCHEDULING_ERROR"

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(SchedulingError):
    code = "VALIDATION_ERROR"


class InvalidSchedule(SchedulingError):
    code = "INVALID_SCHEDULE"


class NotFound(SchedulingError):
    status_code = 404
    code = "NOT_FOUND"


class SlotConflict(SchedulingError):
    status_code = 409
    code = "SLOT_CONFLICT"


class StaleState(SchedulingError):
    status_code = 409
    code = "STALE_STATE"


class PastSlot(SchedulingError):
    status_code = 422
    code = "PAST_SLOT"


class ForbiddenTransition(SchedulingError):
    status_code = 422
    code = "FORBIDDEN_TRANSITION"


class FieldLocked(SchedulingError):
    status_code = 422
    code = "FIELD_LOCKED"


class InvalidAmount(SchedulingError):
    code = "INVALID_AMOUNT"


class MissingCancellationReason(SchedulingError):
    code = "MISSING_CANCELLATION_REASON"


def register_error_handlers(app):
    @app.errorhandler(SchedulingError)
    def handle_scheduling_error(err):
        logger.info("rejected %s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def handle_missing_route(err):
        return jsonify({"error": "not found", "code": "NOT_FOUND"}), 404

    @app.errorhandler(405)
    def handle_bad_method(err):
        return jsonify({"error": "method not allowed", "code": "METHOD_NOT_ALLOWED"}), 405
