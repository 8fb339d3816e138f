class ServiceError(Exception):
    status_code = 500
    kind = "server_error"
    default_message = "Server error!"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        out = {"success": False, "error": self.message, "kind": self.kind}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(ServiceError):
    status_code = 400
    kind = "validation_error"
    default_message = "Invalid input"


class InvalidStatus(ValidationError):
    kind = "invalid_status"
    default_message = "Invalid status value!"


class AuthError(ServiceError):
    status_code = 401
    kind = "auth_error"
    default_message = "Authentication required"


class Forbidden(ServiceError):
    status_code = 403
    kind = "forbidden"
    default_message = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class ConflictError(ServiceError):
    status_code = 409
    kind = "conflict"
    default_message = "Conflict"


class StoreError(ServiceError):
    kind = "store_error"
