from typing import Any, Dict, Optional


class FizzpanError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class FormError(FizzpanError):
    """Form-level validation failure. Blocks the submission before any backend call."""

    status_code = 400

    def __init__(self, errors: Dict[str, str], message: str = "Please fix the highlighted fields"):
        super().__init__(message)
        self.errors = errors


class EmptyCartError(FormError):
    def __init__(self):
        super().__init__({"cart": "Your cart is empty"}, message="cart empty")


class BackendError(FizzpanError):
    """A failed call to the hosted backend or the legacy REST API."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message, status_code)
        self.code = code
        self.details = details

    @classmethod
    def from_payload(cls, payload: Any, status_code: int) -> "BackendError":
        if isinstance(payload, dict):
            message = (
                payload.get("message")
                or payload.get("msg")
                or payload.get("error_description")
                or payload.get("error")
                or f"HTTP {status_code}"
            )
            code = payload.get("code") or payload.get("error_code")
            if code is not None:
                code = str(code)
            return cls(str(message), status_code, code=code, details=payload.get("details"))
        return cls(str(payload) or f"HTTP {status_code}", status_code)


class NotFoundError(BackendError):
    def __init__(self, message: str = "JSON object requested, multiple (or no) rows returned"):
        super().__init__(message, status_code=404, code="PGRST116")


class AuthError(BackendError):
    """Rejected credentials or sign-up."""


class SessionExpired(BackendError):
    def __init__(self, message: str = "Session expired, please log in again"):
        super().__init__(message, status_code=401, code="session_expired")


class RedirectRequired(FizzpanError):
    """Raised by route guards; answered with a 303 to `location`."""

    status_code = 303

    def __init__(self, location: str):
        super().__init__(f"redirect to {location}")
        self.location = location
