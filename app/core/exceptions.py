"""
Custom exception hierarchy for centralized error handling.
All exceptions map to appropriate HTTP status codes.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class DataAccessError(AppException):
    """Data store unreachable, timed out, or a query failed."""

    def __init__(self, operation: str, reason: str = "Unknown") -> None:
        super().__init__(
            message=f"Data store {operation} failed: {reason}",
            status_code=503,
            error_code="DATA_ACCESS_ERROR",
            details={"operation": operation, "reason": reason},
        )


class CacheUnavailableError(AppException):
    """Cache operation failed. Callers treat this as a cache miss."""

    def __init__(self, operation: str, reason: str = "Unknown") -> None:
        super().__init__(
            message=f"Cache {operation} failed: {reason}",
            status_code=500,
            error_code="CACHE_UNAVAILABLE",
            details={"operation": operation, "reason": reason},
        )


class RankingServiceError(AppException):
    """Scoring engine failed."""

    def __init__(self, reason: str = "Unknown error") -> None:
        super().__init__(
            message=f"Ranking service error: {reason}",
            status_code=500,
            error_code="RANKING_ERROR",
            details={"reason": reason},
        )


class CircuitBreakerOpenError(AppException):
    """Circuit breaker is open - service calls blocked."""

    def __init__(self, service_name: str) -> None:
        super().__init__(
            message=f"Circuit breaker open for: {service_name}",
            status_code=503,
            error_code="CIRCUIT_BREAKER_OPEN",
            details={"service": service_name},
        )
