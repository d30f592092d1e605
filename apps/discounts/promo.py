"""Promo code resolver.

``quote`` validates a code against an order and prices the discount;
``commit`` records the usage and is only called from the booking's
paid transition.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Optional

from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.errors import LedgerIntegrityError
from shared.domain.value_objects import ZERO, quantize

from .models import PromoCode, PromoCodeUsage, Scope
from .quotes import DiscountKind, DiscountQuote, QuoteResult, Rejection, RejectionReason

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _reject(reason: str, code: str, detail: str = "") -> Rejection:
    return Rejection(DiscountKind.PROMO, reason, code, detail)


def compute_discount(promo: PromoCode, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal``; never more than the subtotal itself."""
    if promo.kind == PromoCode.Kind.PERCENTAGE:
        discount = subtotal * promo.value / Decimal("100")
        if promo.max_discount_amount is not None:
            discount = min(discount, promo.max_discount_amount)
    else:
        discount = promo.value
    return quantize(max(min(discount, subtotal), ZERO))


def user_usage_count(promo: PromoCode, user_id: Optional[int]) -> int:
    if user_id is None:
        return 0
    return PromoCodeUsage.objects.filter(promo=promo, user_id=user_id).count()


def quote(
    order,
    code: str,
    subtotal: Decimal,
    *,
    bundled_addon_ids: Iterable[int] = (),
    now=None,
) -> QuoteResult:
    now = now or timezone.now()
    code = normalize_code(code)

    promo = PromoCode.objects.filter(code=code, is_active=True).first()
    if promo is None:
        return _reject(RejectionReason.NOT_FOUND, code, "Promo code not found")

    if promo.valid_from and promo.valid_from > now:
        return _reject(RejectionReason.EXPIRED, code, "Promo code is not active yet")
    if promo.valid_until and promo.valid_until < now:
        return _reject(RejectionReason.EXPIRED, code, "Promo code has expired")

    if promo.applies_to != Scope.ALL and promo.applies_to != order.scope:
        return _reject(RejectionReason.SCOPE_MISMATCH, code, f"Promo code is valid for {promo.applies_to} only")
    if promo.applicable_ids and int(order.bookable_id) not in {int(i) for i in promo.applicable_ids}:
        return _reject(RejectionReason.SCOPE_MISMATCH, code, "Promo code does not apply to this item")

    bundled = {int(i) for i in bundled_addon_ids}
    if bundled and promo.addon_ids and bundled & {int(i) for i in promo.addon_ids}:
        return _reject(
            RejectionReason.PACKAGE_PROMO_CONFLICT,
            code,
            "Promo code discounts add-ons already bundled in the selected package",
        )

    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        return _reject(RejectionReason.USAGE_LIMIT_REACHED, code, "Promo code usage limit reached")
    if promo.per_user_limit and user_usage_count(promo, order.user_id) >= promo.per_user_limit:
        return _reject(RejectionReason.USAGE_LIMIT_REACHED, code, "You have already used this promo code")

    if subtotal < promo.min_order_amount:
        return _reject(
            RejectionReason.BELOW_MINIMUM,
            code,
            f"Minimum order amount is {promo.min_order_amount}",
        )

    return DiscountQuote(
        DiscountKind.PROMO,
        promo.code,
        compute_discount(promo, subtotal),
        details={"promo_id": promo.pk, "promo_kind": promo.kind, "value": str(promo.value)},
    )


def commit(code: str, user_id: Optional[int], booking, amount: Decimal) -> PromoCodeUsage:
    """
    Consume one use of the code for ``booking``.

    Must run inside the paid transition's transaction. The promo row is
    locked so two bookings settling concurrently cannot both take the
    last use.
    """
    code = normalize_code(code)
    promo = PromoCode.objects.select_for_update().filter(code=code).first()
    if promo is None:
        raise LedgerIntegrityError(f"Promo code {code} disappeared before settlement", code="PROMO_NOT_FOUND")

    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        raise LedgerIntegrityError(f"Promo code {code} usage limit reached", code="USAGE_LIMIT_REACHED")
    if promo.per_user_limit and user_usage_count(promo, user_id) >= promo.per_user_limit:
        raise LedgerIntegrityError(f"Promo code {code} per-user limit reached", code="USAGE_LIMIT_REACHED")

    usage = PromoCodeUsage.objects.create(
        promo=promo,
        user_id=user_id,
        booking=booking,
        discount_amount=amount,
    )
    PromoCode.objects.filter(pk=promo.pk).update(used_count=F("used_count") + 1)
    logger.info(f"Promo {code} used by user {user_id} for booking {booking.reference}: -{amount}")
    return usage
