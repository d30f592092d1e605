"""Price composer.

Turns an ``OrderContext`` into a ``PriceBreakdown`` by running a fixed
pipeline: base rate, dynamic rules, package bundle, promo code, gift
card, cashback. Each discount is capped at the running subtotal and
rejected discounts are collected on the breakdown instead of raised.
Nothing here mutates a ledger; the booking's paid transition commits
the quoted discounts later.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from django.conf import settings  # type: ignore

from apps.catalog.gateway import AddonLine, CatalogGateway, get_catalog_gateway
from apps.discounts import cashback, giftcards, promo
from apps.discounts.quotes import DiscountQuote, Rejection
from shared.domain.value_objects import ZERO, quantize

from . import packages
from .context import OrderContext
from .rules import RuleAdjustment, apply_rules

logger = logging.getLogger(__name__)


@dataclass
class PriceBreakdown:
    base_price: Decimal
    adjusted_base: Decimal
    subtotal: Decimal = ZERO
    currency: str = "THB"
    rule_adjustments: list[RuleAdjustment] = field(default_factory=list)
    addons: list[AddonLine] = field(default_factory=list)
    discounts: list[DiscountQuote] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)
    package_id: Optional[int] = None

    @property
    def discount_total(self) -> Decimal:
        return quantize(sum((d.amount for d in self.discounts), ZERO))

    @property
    def total(self) -> Decimal:
        return quantize(max(self.subtotal - self.discount_total, ZERO))

    @property
    def running(self) -> Decimal:
        return self.total

    def discount(self, kind: str) -> Optional[DiscountQuote]:
        return next((d for d in self.discounts if d.kind == kind), None)

    def add(self, result) -> None:
        if isinstance(result, Rejection):
            self.rejections.append(result)
            return
        amount = min(result.amount, self.running)
        if amount <= 0:
            return
        if amount != result.amount:
            result = DiscountQuote(result.kind, result.code, amount, result.details)
        self.discounts.append(result)

    def to_dict(self) -> dict:
        return {
            "base_price": str(self.base_price),
            "adjusted_base": str(self.adjusted_base),
            "rule_adjustments": [r.to_dict() for r in self.rule_adjustments],
            "addons": [
                {"addon_id": a.addon_id, "name": a.name, "quantity": a.quantity, "amount": str(a.amount)}
                for a in self.addons
            ],
            "package_id": self.package_id,
            "subtotal": str(self.subtotal),
            "discounts": [d.to_dict() for d in self.discounts],
            "discount_total": str(self.discount_total),
            "rejections": [r.to_dict() for r in self.rejections],
            "total": str(self.total),
            "currency": self.currency,
        }


def compose(
    order: OrderContext,
    *,
    gateway: Optional[CatalogGateway] = None,
    today: Optional[date] = None,
) -> PriceBreakdown:
    gateway = gateway or get_catalog_gateway()

    base = gateway.get_rate(order.bookable_type, order.bookable_id, order.date, order.duration_hours, order.party_size)
    adjusted, adjustments = apply_rules(order, base, today=today)
    breakdown = PriceBreakdown(
        base_price=base,
        adjusted_base=adjusted,
        currency=settings.SETTLEMENT_CURRENCY,
        rule_adjustments=adjustments,
    )

    package_quote = None
    if order.package_id:
        result = packages.quote(order, adjusted, gateway)
        if isinstance(result, Rejection):
            breakdown.rejections.append(result)
        else:
            package_quote = result
            breakdown.adjusted_base = result.base
            breakdown.package_id = result.package.pk
            breakdown.addons.extend(result.included)

    if order.extra_addons:
        breakdown.addons.extend(gateway.price_addons(order.extra_addons, order.party_size, order.duration_hours))

    breakdown.subtotal = quantize(breakdown.adjusted_base + sum((a.amount for a in breakdown.addons), ZERO))

    if package_quote is not None:
        breakdown.add(package_quote.discount)

    if order.promo_code:
        bundled = package_quote.addon_ids if package_quote else ()
        breakdown.add(promo.quote(order, order.promo_code, breakdown.running, bundled_addon_ids=bundled))

    if order.gift_card_code:
        breakdown.add(giftcards.quote(order, order.gift_card_code, breakdown.running))

    if order.cashback_amount and order.cashback_amount > 0:
        breakdown.add(cashback.quote(order, order.cashback_amount, breakdown.running))

    logger.info(
        f"Quoted {order.bookable_type} {order.bookable_id} on {order.date}: "
        f"subtotal {breakdown.subtotal}, discounts {breakdown.discount_total}, total {breakdown.total}"
    )
    return breakdown
