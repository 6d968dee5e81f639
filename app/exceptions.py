"""Service-layer exceptions and their HTTP translation"""
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class LabelCheckerError(Exception):
    """Base exception for errors raised below the route layer"""

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"detail": self.message}
        if self.details:
            result["details"] = self.details
        return result


class StorageError(LabelCheckerError):
    """Object storage is unreachable or rejected the request"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details)


class LabelAnalysisError(LabelCheckerError):
    """The vision model call failed or returned an unusable response"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=502, details=details)


class BillingError(LabelCheckerError):
    """Stripe is not configured or rejected the request"""

    def __init__(self, message: str, status_code: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=status_code, details=details)


async def label_checker_exception_handler(request: Request, exc: LabelCheckerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
