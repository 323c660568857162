"""
Authentication service exceptions.

Every error the core raises derives from AuthError and carries a
machine-readable error code plus an HTTP-equivalent status code, so the
calling layer can map it to a response without inspecting the message.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

# Rule codes that come from tenant policy rather than from the request shape.
POLICY_RULES = frozenset({"allowedDomains", "allowedRedirectUrls", "breached", "notAllowed"})


class AuthError(Exception):
    """
    Base exception for all authentication errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error context
    """

    status_code = 400

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "status": self.status_code,
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


@dataclass(frozen=True)
class FieldError:
    """A single violated rule on a single field."""

    field: str
    code: str
    message: str

    @property
    def rule(self) -> str:
        return self.code.rsplit(".", 1)[-1]

    @property
    def is_policy(self) -> bool:
        return self.rule in POLICY_RULES


class SchemaViolation(AuthError):
    """
    Request payload failed validation.

    Carries every violated field, not only the first, so the caller can
    report a complete correction list.
    """

    status_code = 400

    def __init__(self, errors: Iterable[FieldError], message: Optional[str] = None):
        self.errors: List[FieldError] = list(errors)
        super().__init__(
            message or "; ".join(f'"{e.field}" {e.message}' for e in self.errors) or "invalid request",
            "invalid-request",
            {"errors": [{"field": e.field, "code": e.code, "message": e.message} for e in self.errors]},
        )

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self.errors]

    @classmethod
    def of(cls, errors: Iterable[FieldError]) -> "SchemaViolation":
        """Build a PolicyRejection when every error is a policy rule, else a SchemaViolation."""
        errors = list(errors)
        if errors and all(e.is_policy for e in errors):
            return PolicyRejection(errors)
        return SchemaViolation(errors)


class PolicyRejection(SchemaViolation):
    """A value is well formed but not allowed by tenant policy (domain, redirect URL, role, breached password)."""


class ConfigurationError(AuthError):
    """Policy configuration is invalid. Fatal at startup."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "invalid-configuration")


class CollaboratorFailure(AuthError):
    """
    A storage, notification or breach-check call failed.

    The message is deliberately opaque; the underlying exception is chained
    and logged where it is raised.
    """

    status_code = 500

    def __init__(self, operation: str):
        super().__init__("Internal server error", "internal-server-error", {"operation": operation})
        self.operation = operation


class InvalidCredentialsError(AuthError):
    status_code = 401

    def __init__(self):
        super().__init__("Incorrect email or password", "invalid-email-password")


class UserDisabledError(AuthError):
    status_code = 401

    def __init__(self):
        super().__init__("User is disabled", "disabled-user")


class EmailNotVerifiedError(AuthError):
    status_code = 401

    def __init__(self):
        super().__init__("Email is not verified", "unverified-user")


class OperationNotAllowedError(AuthError):
    status_code = 403

    def __init__(self, message: str, error_code: str = "forbidden"):
        super().__init__(message, error_code)


class UserAlreadyExistsError(AuthError):
    """Raised by storage when the email uniqueness constraint is violated."""

    status_code = 409

    def __init__(self, email: Optional[str]):
        super().__init__(f"User with email {email} already exists", "email-already-in-use", {"email": email})
