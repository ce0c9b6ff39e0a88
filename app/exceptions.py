# =============================================================================
# app/exceptions.py - Settlement Exceptions & Handlers
# =============================================================================
# Centralized error taxonomy for the settlement pipeline and the API.
# Errors tell HOW to fix, not just WHAT failed.
#
# Pipeline errors:
# - ConfigurationError:   malformed tier pricing table (campaign left for review)
# - TransientStoreError:  database read/write failure (retried next run)
# - TransferError:        funds transfer rejected or timed out
# - NotificationError:    email enqueue failure (logged, never escalated)
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class SettlementException(Exception):
    """
    Base exception for the settlement service.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "SETTLEMENT_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Pipeline Exceptions
# =============================================================================

class ConfigurationError(SettlementException):
    """Raised when a campaign's tier pricing table is malformed."""

    def __init__(self, reason: str, campaign_id: str | None = None):
        details = {"reason": reason}
        if campaign_id:
            details["campaign_id"] = campaign_id
        super().__init__(
            message=f"Invalid tier pricing configuration: {reason}",
            code="INVALID_TIER_CONFIGURATION",
            status_code=422,
            suggestion="Fix the tiered pricing in the admin pricing screen; the campaign is left unchanged",
            details=details,
        )


class TransientStoreError(SettlementException):
    """Raised when a database read or write fails (including timeouts)."""

    def __init__(
        self,
        operation: str,
        error: str,
        code: str = "TRANSIENT_STORE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=f"Store operation '{operation}' failed: {error}",
            code=code,
            status_code=503,
            suggestion="The next scheduled run retries this campaign; check Supabase availability if it persists",
            details={"operation": operation, **(details or {})},
        )
        self.operation = operation


class TransferError(SettlementException):
    """Raised when the funds transfer provider rejects or times out."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=f"Payout transfer failed: {reason}",
            code="TRANSFER_FAILED",
            status_code=502,
            suggestion="The campaign stays in production and the payout is retried on the next run",
            details=details,
        )
        self.reason = reason


class NotificationError(SettlementException):
    """Raised when an email cannot be queued."""

    def __init__(self, user_id: str, template_type: str, error: str):
        super().__init__(
            message=f"Failed to queue {template_type} email for user {user_id}: {error}",
            code="NOTIFICATION_FAILED",
            status_code=500,
            details={"user_id": user_id, "template_type": template_type},
        )


# =============================================================================
# Service Exceptions
# =============================================================================

class CampaignNotFoundError(SettlementException):
    """Raised when a campaign ID doesn't exist."""

    def __init__(self, campaign_id: str):
        super().__init__(
            message=f"Campaign not found: {campaign_id}",
            code="CAMPAIGN_NOT_FOUND",
            status_code=404,
            suggestion="Check that the design id is correct and pre-order pricing was launched",
            details={"campaign_id": campaign_id},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def settlement_exception_handler(
    request: Request,
    exc: SettlementException
) -> JSONResponse:
    """
    Convert SettlementException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
