from __future__ import annotations

from typing import Any


class CheckoutError(Exception):
    """Base exception for checkout failures that map onto an HTTP outcome."""

    status_code = 400
    code = "checkout_error"

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        status_code: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def as_payload(self) -> dict[str, Any]:
        return {"ok": False, "error": self.code, "detail": self.message}


class NotFoundError(CheckoutError):
    status_code = 404
    code = "not_found"


class DuplicateReference(CheckoutError):
    status_code = 409
    code = "duplicate_reference"


class AuthenticityError(CheckoutError):
    """Webhook signature did not match the shared secret."""

    status_code = 401
    code = "invalid_signature"


class ConsistencyError(CheckoutError):
    """Stored order and processor-reported values disagree."""

    status_code = 409
    code = "amount_mismatch"


class ProcessorError(CheckoutError):
    status_code = 502
    code = "processor_error"


class TokenError(CheckoutError):
    status_code = 403
    code = "token_error"


class InvalidToken(TokenError):
    code = "invalid_token"


class ExpiredToken(TokenError):
    code = "token_expired"


class NotPaid(TokenError):
    status_code = 409
    code = "not_paid"


class DispatchError(CheckoutError):
    """An attribution or notification call failed (transport or logical rejection)."""

    status_code = 502
    code = "dispatch_failed"

    def __init__(self, message: str = "", *, detail: Any = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.detail = detail if detail is not None else message
