from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any


class VerificationError(RuntimeError):
    pass


class ReceiptClientError(VerificationError):
    """The bank endpoint explicitly rejected the request (4xx)."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class DocumentUnavailableError(VerificationError):
    """The direct tier answered, but not with the expected document."""


class RenderError(VerificationError):
    pass


class ReceiptParseError(VerificationError):
    pass


@dataclass(frozen=True)
class VerifyResult:
    success: bool
    payer: str | None = None
    payer_account: str | None = None
    receiver: str | None = None
    receiver_account: str | None = None
    amount: Decimal | None = None
    date: datetime | None = None
    reference: str | None = None
    reason: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and (not self.receiver or self.amount is None):
            raise ValueError("successful result requires receiver and amount")
        if not self.success and not self.error:
            raise ValueError("failed result requires an error message")

    @classmethod
    def failure(cls, error: str) -> VerifyResult:
        return cls(success=False, error=error)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "payer": self.payer,
            "payer_account": self.payer_account,
            "receiver": self.receiver,
            "receiver_account": self.receiver_account,
            "amount": str(self.amount) if self.amount is not None else None,
            "date": self.date.isoformat() if self.date else None,
            "reference": self.reference,
            "reason": self.reason,
            "error": self.error,
        }
