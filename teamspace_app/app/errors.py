"""Error taxonomy shared by the membership and invitation engines.

Every engine failure is raised as a ``MembershipError`` subclass carrying a
stable ``kind`` and an HTTP status; the API layer renders them as JSON.
"""
from __future__ import annotations
from flask import jsonify


class MembershipError(Exception):
    status_code = 400
    kind = "bad_request"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFoundError(MembershipError):
    status_code = 404
    kind = "not_found"


class ValidationError(MembershipError):
    status_code = 400
    kind = "bad_request"


class FormError(ValidationError):
    """A request payload that failed form validation."""

    def __init__(self, fields: dict, message: str = "Invalid request payload"):
        super().__init__(message)
        self.fields = fields

    def to_dict(self) -> dict:
        return {**super().to_dict(), "fields": self.fields}


class ForbiddenError(MembershipError):
    status_code = 403
    kind = "forbidden"


class ConflictError(MembershipError):
    status_code = 409
    kind = "conflict"


class ServiceUnavailableError(MembershipError):
    status_code = 503
    kind = "service_unavailable"


def register_error_handlers(app):
    @app.errorhandler(MembershipError)
    def handle_membership_error(exc: MembershipError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.kind, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed"}), 405
