"""
Error taxonomy for task gating and billing.

Every failure that can cross the API boundary is one of these classes.
Routes raise them; the handler registered in tutor_app.main turns them into
a JSON body of the shape:

    {"error": "<CODE>", "message": "...", "retryable": false, ...extra}
"""
from typing import Any, Dict, Optional

from fastapi import status


class TutorError(Exception):
    """Base error with a machine-readable code and an HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        body.update(self.details)
        return body


class Unauthenticated(TutorError):
    code = "LOGIN_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Please log in to try a free demo task or upgrade to premium."

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["loginRequired"] = True
        return body


class EntitlementExhausted(TutorError):
    code = "DEMO_LIMIT_REACHED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = (
        "You have used your free demo task. Please upgrade to premium for unlimited access."
    )

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["upgradeRequired"] = True
        return body


class TransientDependencyFailure(TutorError):
    """AI service or payment processor failed or timed out. Safe to retry."""

    code = "DEPENDENCY_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
    default_message = "An upstream service is temporarily unavailable. Please try again."

    def __init__(self, dependency: str, message: Optional[str] = None):
        self.dependency = dependency
        super().__init__(message, details={"dependency": dependency})


class LedgerWriteFailure(TutorError):
    """Consumption happened but could not be recorded. Never shown to the user."""

    code = "LEDGER_WRITE_FAILED"

    def __init__(self, account_id: int, cause: Optional[Exception] = None):
        self.account_id = account_id
        self.cause = cause
        super().__init__(f"Failed to record usage for account {account_id}: {cause}")


class DuplicatePaymentEvent(TutorError):
    """The external payment id was already reconciled."""

    code = "DUPLICATE_PAYMENT_EVENT"
    status_code = status.HTTP_200_OK

    def __init__(self, external_payment_id: str):
        self.external_payment_id = external_payment_id
        super().__init__(f"Payment {external_payment_id} already processed")


class UnknownCustomerReference(TutorError):
    code = "UNKNOWN_CUSTOMER"
    status_code = status.HTTP_200_OK

    def __init__(self, customer_ref: Optional[str]):
        self.customer_ref = customer_ref
        super().__init__(f"No account linked to customer {customer_ref}")


class MalformedWebhookEvent(TutorError):
    code = "MALFORMED_WEBHOOK"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Webhook payload could not be parsed"
