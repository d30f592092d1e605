"""DRF exception handler mapping settlement errors to structured responses."""

from __future__ import annotations

import logging

from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler as drf_exception_handler  # type: ignore

from shared.domain import errors

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.ConflictError, status.HTTP_409_CONFLICT),
    (errors.LedgerIntegrityError, status.HTTP_409_CONFLICT),
    (errors.ProviderTransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (errors.ProviderPermanentError, status.HTTP_502_BAD_GATEWAY),
    (errors.WebhookVerificationError, status.HTTP_403_FORBIDDEN),
)

# context keys safe to echo back to clients
PUBLIC_CONTEXT = ("rejections",)


def error_body(code: str, detail: str, **extra) -> dict:
    body = {"code": code, "detail": detail}
    body.update(extra)
    return {"error": body}


def settlement_exception_handler(exc, context):
    if isinstance(exc, errors.SettlementError):
        http_status = status.HTTP_400_BAD_REQUEST
        for error_type, mapped in STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                http_status = mapped
                break
        if http_status >= 500:
            logger.warning(f"Settlement error {exc.code}: {exc.detail}")
        return Response(
            error_body(
                exc.code,
                exc.detail,
                retryable=exc.retryable,
                **{key: value for key, value in exc.context.items() if key in PUBLIC_CONTEXT},
            ),
            status=http_status,
        )
    return drf_exception_handler(exc, context)
