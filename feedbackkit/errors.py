import uuid

from flask import jsonify


class ServiceError(RuntimeError):
    """Recoverable service error (validation/authorization/state)."""

    status_code = 400
    error = "invalid_request"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        payload = {"error": self.error, "message": self.message, "code": self.status_code}
        for key, value in self.extra.items():
            payload[key] = str(value) if isinstance(value, uuid.UUID) else value
        return payload


class InvalidRequest(ServiceError):
    status_code = 400
    error = "invalid_request"


class Unauthorized(ServiceError):
    status_code = 401
    error = "unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    error = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    error = "not_found"


class Conflict(ServiceError):
    status_code = 409
    error = "conflict"


class AlreadyMerged(ServiceError):
    status_code = 409
    error = "already_merged"


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return {"error": "invalid_request", "message": getattr(e, "description", "Bad Request"), "code": 400}, 400

    @app.errorhandler(401)
    def unauthorized(e):
        return {"error": "unauthorized", "code": 401}, 401

    @app.errorhandler(403)
    def forbidden(e):
        return {"error": "forbidden", "code": 403}, 403

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "not_found", "code": 404}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "method_not_allowed", "code": 405}, 405

    @app.errorhandler(500)
    def server_error(e):
        return {"error": "server_error", "code": 500}, 500

    # 429 Too Many Requests: JSON with Retry-After
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        payload = {"error": "rate_limited", "code": 429}
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            payload["retry_after"] = int(retry_after)
        return (payload, 429, headers)
