from typing import Optional


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """Malformed input."""

    status_code = 400


class NotFound(ServiceError):
    """No such resource for this owner, including other owners' resources."""

    status_code = 404


class PolicyViolation(ServiceError):
    """Well-formed request that breaks a business rule."""

    status_code = 400


class AuthenticationError(ServiceError):
    status_code = 401


class StorageError(ServiceError):
    """The store failed; the attempted change was rolled back."""

    status_code = 500
