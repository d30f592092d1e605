"""Loyalty cashback ledger and resolver.

The ledger is append-only; the balance is the ``balance_after`` of the
user's latest entry. Every write happens with the user's
``LoyaltyAccount`` row locked, which serializes concurrent settlements
for the same user.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings  # type: ignore
from django.db.models import Sum  # type: ignore

from shared.domain.errors import LedgerIntegrityError
from shared.domain.value_objects import ZERO, quantize

from .models import CashbackLedgerEntry, LoyaltyAccount, LoyaltyTier
from .quotes import DiscountKind, DiscountQuote, QuoteResult, Rejection, RejectionReason

logger = logging.getLogger(__name__)

DEFAULT_TIERS = (
    # slug, name, min_bookings, min_spent, cashback_percent
    ("bronze", "Bronze", 0, Decimal("0"), Decimal("5.00")),
    ("silver", "Silver", 3, Decimal("50000"), Decimal("7.00")),
    ("gold", "Gold", 7, Decimal("150000"), Decimal("10.00")),
    ("platinum", "Platinum", 15, Decimal("500000"), Decimal("15.00")),
)


def ensure_default_tiers() -> int:
    created = 0
    for order, (slug, name, bookings, spent, percent) in enumerate(DEFAULT_TIERS, start=1):
        _, was_created = LoyaltyTier.objects.get_or_create(
            slug=slug,
            defaults={
                "name": name,
                "min_bookings": bookings,
                "min_spent": spent,
                "cashback_percent": percent,
                "sort_order": order,
            },
        )
        created += int(was_created)
    return created


def balance(user_id: Optional[int]) -> Decimal:
    if user_id is None:
        return ZERO
    last = CashbackLedgerEntry.objects.filter(user_id=user_id).order_by("-id").first()
    return last.balance_after if last else ZERO


def quote(order, requested: Decimal, subtotal: Decimal) -> QuoteResult:
    """Applicable amount is ``min(requested, balance, subtotal * share)``."""
    requested = quantize(requested or 0)
    if order.user_id is None:
        return Rejection(DiscountKind.CASHBACK, RejectionReason.LOGIN_REQUIRED, "", "Sign in to use cashback")

    available = balance(order.user_id)
    if requested <= 0 or available <= 0:
        return Rejection(
            DiscountKind.CASHBACK,
            RejectionReason.INSUFFICIENT_BALANCE,
            "",
            f"Cashback balance is {available}",
        )

    cap = quantize(subtotal * settings.CASHBACK_MAX_ORDER_SHARE)
    amount = max(min(requested, available, cap), ZERO)
    if amount <= 0:
        return Rejection(DiscountKind.CASHBACK, RejectionReason.INSUFFICIENT_BALANCE, "", "Nothing left to cover")
    return DiscountQuote(
        DiscountKind.CASHBACK,
        "",
        amount,
        details={"requested": str(requested), "balance": str(available), "cap": str(cap)},
    )


def lock_account(user_id: int) -> LoyaltyAccount:
    """Fetch (creating on first use) and row-lock the user's loyalty account."""
    LoyaltyAccount.objects.get_or_create(user_id=user_id)
    return LoyaltyAccount.objects.select_for_update().get(user_id=user_id)


def post_entry(
    user_id: int,
    entry_type: str,
    amount: Decimal,
    *,
    booking=None,
    description: str = "",
) -> CashbackLedgerEntry:
    """Append a signed entry. The caller must hold the account lock."""
    amount = quantize(amount)
    new_balance = balance(user_id) + amount
    if entry_type == CashbackLedgerEntry.Type.USED and new_balance < 0:
        raise LedgerIntegrityError(
            f"Cashback balance of user {user_id} would drop to {new_balance}",
            code="INSUFFICIENT_CASHBACK",
        )
    return CashbackLedgerEntry.objects.create(
        user_id=user_id,
        type=entry_type,
        amount=amount,
        balance_after=new_balance,
        booking=booking,
        description=description,
    )


def commit_usage(user_id: int, amount: Decimal, booking) -> CashbackLedgerEntry:
    lock_account(user_id)
    entry = post_entry(
        user_id,
        CashbackLedgerEntry.Type.USED,
        -quantize(amount),
        booking=booking,
        description=f"Used on booking {booking.reference}",
    )
    logger.info(f"Cashback {amount} used by user {user_id} on {booking.reference}")
    return entry


def cashback_percent(account: LoyaltyAccount) -> Decimal:
    if account.tier_id and account.tier.is_active:
        return account.tier.cashback_percent
    bronze = LoyaltyTier.objects.filter(slug="bronze", is_active=True).first()
    if bronze:
        return bronze.cashback_percent
    return settings.LOYALTY_DEFAULT_CASHBACK_PERCENT


def _refresh_tier(account: LoyaltyAccount) -> None:
    tier = (
        LoyaltyTier.objects.filter(
            is_active=True,
            min_bookings__lte=account.total_bookings,
            min_spent__lte=account.total_spent,
        )
        .order_by("-sort_order")
        .first()
    )
    if tier and tier.pk != account.tier_id:
        logger.info(f"User {account.user_id} moves to loyalty tier {tier.slug}")
        account.tier = tier


def earn(user_id: int, booking) -> Optional[CashbackLedgerEntry]:
    """
    Credit cashback for a settled booking and update loyalty stats.

    The percent comes from the tier held *before* this booking counts
    towards the next one.
    """
    account = lock_account(user_id)
    percent = cashback_percent(account)
    amount = quantize(booking.total_price * percent / Decimal("100"))

    account.total_bookings += 1
    account.total_spent += booking.total_price
    _refresh_tier(account)
    account.save(update_fields=["total_bookings", "total_spent", "tier", "updated_at"])

    if amount <= 0:
        return None
    return post_entry(
        user_id,
        CashbackLedgerEntry.Type.EARNED,
        amount,
        booking=booking,
        description=f"{percent}% cashback on {booking.reference}",
    )


def reverse_for_booking(user_id: int, booking) -> list[CashbackLedgerEntry]:
    """Undo the cashback effects of a settled booking that is being cancelled or refunded."""
    account = lock_account(user_id)
    entries = CashbackLedgerEntry.objects.filter(booking=booking)
    used = -(entries.filter(type=CashbackLedgerEntry.Type.USED).aggregate(total=Sum("amount"))["total"] or ZERO)
    earned = entries.filter(type=CashbackLedgerEntry.Type.EARNED).aggregate(total=Sum("amount"))["total"] or ZERO
    reversals = []

    if used > 0:
        reversals.append(
            post_entry(
                user_id,
                CashbackLedgerEntry.Type.ADJUSTED,
                used,
                booking=booking,
                description=f"Cashback returned, {booking.reference} cancelled",
            )
        )
    if earned > 0:
        # only claw back what is still on the balance
        clawback = min(earned, balance(user_id))
        if clawback > 0:
            reversals.append(
                post_entry(
                    user_id,
                    CashbackLedgerEntry.Type.ADJUSTED,
                    -clawback,
                    booking=booking,
                    description=f"Cashback withdrawn, {booking.reference} cancelled",
                )
            )

    account.total_bookings = max(account.total_bookings - 1, 0)
    account.total_spent = max(account.total_spent - booking.total_price, ZERO)
    account.save(update_fields=["total_bookings", "total_spent", "updated_at"])
    return reversals
