"""Dynamic pricing rule matching and aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from django.utils import timezone  # type: ignore

from shared.domain.value_objects import ZERO, quantize

from .models import PricingRule

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class RuleAdjustment:
    rule_id: int
    name: str
    adjustment_type: str
    value: Decimal
    amount: Decimal

    @property
    def is_discount(self) -> bool:
        return self.amount < 0

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "adjustment_type": self.adjustment_type,
            "value": str(self.value),
            "amount": str(self.amount),
        }


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


def matches(rule: PricingRule, order, today: date) -> bool:
    if rule.applies_to != "all" and rule.applies_to != order.scope:
        return False
    if rule.bookable_ids and int(order.bookable_id) not in {int(i) for i in rule.bookable_ids}:
        return False

    kind = rule.rule_type
    days_ahead = (order.date - today).days
    if kind in (PricingRule.RuleType.SEASON, PricingRule.RuleType.SPECIAL_DATE):
        return _in_range(order.date, rule.start_date, rule.end_date)
    if kind == PricingRule.RuleType.DAY_OF_WEEK:
        wanted = {str(d).lower() for d in rule.days_of_week or []}
        return WEEKDAYS[order.date.weekday()] in wanted and _in_range(order.date, rule.start_date, rule.end_date)
    if kind == PricingRule.RuleType.EARLY_BIRD:
        return rule.days_before_min is not None and days_ahead >= rule.days_before_min
    if kind == PricingRule.RuleType.LAST_MINUTE:
        return rule.days_before_max is not None and 0 <= days_ahead <= rule.days_before_max
    if kind == PricingRule.RuleType.GROUP_SIZE:
        if rule.min_guests is not None and order.party_size < rule.min_guests:
            return False
        if rule.max_guests is not None and order.party_size > rule.max_guests:
            return False
        return True
    if kind == PricingRule.RuleType.DURATION:
        return rule.min_duration_hours is not None and order.duration_hours >= rule.min_duration_hours
    return False


def _effect(rule: PricingRule, base: Decimal) -> Decimal:
    if rule.adjustment_type == PricingRule.AdjustmentType.PERCENTAGE:
        return quantize(base * rule.adjustment_value / Decimal("100"))
    return quantize(rule.adjustment_value)


def select(candidates: Iterable[PricingRule], base: Decimal) -> list[PricingRule]:
    """
    Pick the rules that take effect, preserving priority order.

    Every stackable rule and every non-stackable premium applies; of the
    non-stackable discounts only the deepest one does, the earliest
    winning a tie.
    """
    chosen: list[PricingRule] = []
    best: Optional[PricingRule] = None
    for rule in candidates:
        if rule.is_stackable or rule.adjustment_value >= 0:
            chosen.append(rule)
            continue
        if best is None or _effect(rule, base) < _effect(best, base):
            best = rule
    if best is not None:
        chosen.append(best)
    return sorted(chosen, key=lambda r: (-r.priority, r.pk))


def apply_rules(order, base: Decimal, *, today: Optional[date] = None) -> tuple[Decimal, list[RuleAdjustment]]:
    """
    Return the adjusted base and the list of applied adjustments.

    Percentages are summed and applied once to ``base``; fixed amounts
    are added on top. The result never drops below zero.
    """
    today = today or timezone.localdate()
    rules = PricingRule.objects.filter(is_active=True).order_by("-priority", "id")
    applied = select((r for r in rules if matches(r, order, today)), base)

    percent_total = sum(
        (r.adjustment_value for r in applied if r.adjustment_type == PricingRule.AdjustmentType.PERCENTAGE),
        ZERO,
    )
    fixed_total = sum(
        (r.adjustment_value for r in applied if r.adjustment_type == PricingRule.AdjustmentType.FIXED),
        ZERO,
    )
    adjusted = quantize(max(base + base * percent_total / Decimal("100") + fixed_total, ZERO))

    adjustments = [
        RuleAdjustment(r.pk, r.name, r.adjustment_type, r.adjustment_value, _effect(r, base)) for r in applied
    ]
    if adjustments:
        logger.debug(f"Applied {len(adjustments)} pricing rules to {order.bookable_type} {order.bookable_id}: {base} -> {adjusted}")
    return adjusted, adjustments
