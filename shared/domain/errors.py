"""
Settlement error taxonomy.

Every error carries a machine readable ``code`` that the API layer
returns instead of the raw message. Resolvers never raise these for
business rejections; they return ``Rejection`` values instead.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for all settlement-core failures."""

    code = "SETTLEMENT_ERROR"
    retryable = False

    def __init__(self, detail: str = "", *, code: str | None = None, **context):
        super().__init__(detail or self.code)
        self.detail = detail or self.code
        if code:
            self.code = code
        self.context = context


class ValidationError(SettlementError):
    """Malformed or missing input. Client fixable, never retried."""

    code = "VALIDATION_ERROR"


class ConflictError(SettlementError):
    """Slot unavailable, duplicate usage and similar. Reported immediately."""

    code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """The booking is not in a state that allows the requested transition."""

    code = "INVALID_TRANSITION"


class ProviderTransientError(SettlementError):
    """Timeout or 5xx from a payment provider."""

    code = "PROVIDER_UNAVAILABLE"
    retryable = True


class ProviderPermanentError(SettlementError):
    """The provider rejected the request as invalid."""

    code = "PROVIDER_REJECTED"


class LedgerIntegrityError(SettlementError):
    """A ledger invariant would be violated; the operation is aborted."""

    code = "LEDGER_INTEGRITY"


class WebhookVerificationError(SettlementError):
    """Inbound provider event failed signature or origin verification."""

    code = "INVALID_SIGNATURE"
