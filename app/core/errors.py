"""
Error taxonomy for the marketplace workflows.

Workflow operations return these inside a ``Result`` instead of raising; the
HTTP layer unwraps and renders them through ``marketplace_error_handler``.
"""

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from app.database.store import StoreError


class MarketplaceError(Exception):
    """Base error with a stable code and the HTTP status it maps to."""

    def __init__(
        self,
        message: str,
        code: str = "MARKETPLACE_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result = {"detail": self.message, "code": self.code}
        if self.details:
            result["details"] = self.details
        return result


class DuplicateRequestError(MarketplaceError):
    def __init__(self, requester_id: str, supplier_id: str):
        super().__init__(
            message="Connection request already sent and pending",
            code="DUPLICATE_REQUEST",
            status_code=409,
            details={"requester_id": requester_id, "supplier_id": supplier_id},
        )


class AlreadyConnectedError(MarketplaceError):
    def __init__(self, requester_id: str, supplier_id: str):
        super().__init__(
            message="Already connected with this supplier",
            code="ALREADY_CONNECTED",
            status_code=409,
            details={"requester_id": requester_id, "supplier_id": supplier_id},
        )


class NotFoundOrUnauthorizedError(MarketplaceError):
    def __init__(self, connection_request_id: str):
        super().__init__(
            message="Connection request not found or unauthorized",
            code="NOT_FOUND_OR_UNAUTHORIZED",
            status_code=404,
            details={"connection_request_id": connection_request_id},
        )


class InvalidConnectionRequestError(MarketplaceError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="INVALID_CONNECTION_REQUEST",
            status_code=400,
            details=details,
        )


class StoreUnavailableError(MarketplaceError):
    def __init__(self, message: str, store_code: Optional[str] = None):
        super().__init__(
            message=message,
            code="STORE_UNAVAILABLE",
            status_code=503,
            details={"store_code": store_code} if store_code else None,
        )

    @classmethod
    def from_store_error(cls, error: StoreError) -> "StoreUnavailableError":
        if error.missing_table:
            return cls(
                "Connection system not set up. Please run the database setup script first.",
                store_code=error.code,
            )
        return cls(f"Store unavailable: {error.message}", store_code=error.code)


class MalformedMetadataError(MarketplaceError):
    """Notification content/metadata that is not valid JSON. Recovered where parsed."""

    def __init__(self, field: str, raw: Any):
        super().__init__(
            message=f"Malformed notification {field}",
            code="MALFORMED_METADATA",
            status_code=422,
            details={"field": field, "raw": str(raw)[:200]},
        )


async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
