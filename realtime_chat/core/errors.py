from dataclasses import dataclass
from typing import Optional, Dict, Any

from fastapi import HTTPException, status


# =============================================================================
# HTTP exceptions
# =============================================================================

class BaseCustomException(HTTPException):
    """Base class for errors rendered as JSON by the application handler"""
    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error = error
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(status_code=status_code, detail=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
            "status_code": self.status_code
        }


class AuthenticationException(BaseCustomException):
    """Authentication failed"""
    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="authentication_error",
            message=message,
            details=details
        )


class ServiceUnavailableException(BaseCustomException):
    """A collaborator the request depends on is not configured or reachable"""
    def __init__(
        self,
        service: str,
        message: str = "Service unavailable",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error="service_unavailable",
            message=f"{service}: {message}",
            details=details or {"service": service}
        )


# =============================================================================
# Domain errors
# =============================================================================

class IdentityFailure(Exception):
    """A credential was presented but could not be verified."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class StoreUnavailable(Exception):
    """The durable store cannot be reached. Never raised past the gateway."""


@dataclass(frozen=True)
class JoinResult:
    """Outcome of a room join, delivered as the join acknowledgement."""

    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "JoinResult":
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str) -> "JoinResult":
        return cls(success=False, error=reason)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True}
        return {"success": False, "error": self.error}
