from __future__ import annotations


class StorefrontError(Exception):
    """Base error surfaced to callers with a stable ``kind``."""

    kind = "storefront_error"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.detail, "error": self.kind}


class NotFound(StorefrontError):
    kind = "not_found"
    status_code = 404


class ValidationFailed(StorefrontError):
    kind = "validation_failed"
    status_code = 400


class InsufficientStock(ValidationFailed):
    kind = "insufficient_stock"
    status_code = 409


class Forbidden(StorefrontError):
    kind = "forbidden"
    status_code = 403


class SignatureInvalid(StorefrontError):
    kind = "signature_invalid"
    status_code = 400


class PaymentNotVerified(StorefrontError):
    kind = "payment_not_verified"
    status_code = 402


class AmountMismatch(StorefrontError):
    kind = "amount_mismatch"
    status_code = 409


class ReplayDetected(StorefrontError):
    kind = "replay_detected"
    status_code = 409


class VerificationUnavailable(StorefrontError):
    """The wallet provider could not be reached in time. Safe to retry."""

    kind = "verification_unavailable"
    status_code = 503
