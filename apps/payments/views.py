"""Provider webhooks and staff payment actions."""

from __future__ import annotations

import logging

from django.http import JsonResponse  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_POST  # type: ignore
from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from shared.domain.errors import ValidationError, WebhookVerificationError

from . import gateway
from .models import Provider
from .serializers import PromptPayConfirmSerializer

logger = logging.getLogger(__name__)


def _webhook(provider_name: str):
    @csrf_exempt
    @require_POST
    def view(request):
        try:
            result = gateway.handle_webhook(provider_name, request)
        except WebhookVerificationError as e:
            logger.warning(f"Rejected {provider_name} webhook from {request.META.get('REMOTE_ADDR')}: {e.code}")
            return JsonResponse({"status": "error", "code": e.code}, status=403)
        except ValidationError as e:
            logger.warning(f"Unreadable {provider_name} webhook: {e.detail}")
            return JsonResponse({"status": "error", "code": e.code}, status=400)
        return JsonResponse(result.body, status=result.http_status)

    view.__name__ = f"{provider_name}_webhook"
    return view


card_webhook = _webhook(Provider.CARD.value)
crypto_webhook = _webhook(Provider.CRYPTO.value)
telegram_stars_webhook = _webhook(Provider.TELEGRAM_STARS.value)
promptpay_webhook = _webhook(Provider.PROMPTPAY.value)
regional_webhook = _webhook(Provider.REGIONAL.value)


class PromptPayConfirmView(APIView):
    """Staff marks a PromptPay transfer as received."""

    permission_classes = [permissions.IsAdminUser]

    def post(self, request, intent_id, *args, **kwargs):  # type: ignore
        serializer = PromptPayConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = gateway.confirm_promptpay(
            intent_id,
            serializer.validated_data["transaction_reference"],
            staff_user_id=request.user.id,
        )
        return Response(
            {"status": result.status, "booking_reference": result.booking_reference, "detail": result.detail},
            status=status.HTTP_200_OK,
        )
