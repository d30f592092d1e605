"""Package bundle pricing."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from apps.catalog.gateway import AddonLine, CatalogGateway
from apps.discounts.quotes import DiscountKind, DiscountQuote, Rejection, RejectionReason
from shared.domain.value_objects import ZERO, quantize

from .models import Package


@dataclass(frozen=True)
class PackageQuote:
    package: Package
    base: Decimal
    included: list[AddonLine]
    discount: DiscountQuote

    @property
    def addon_ids(self) -> set[int]:
        return self.package.addon_ids


def _mismatch(code: str, detail: str) -> Rejection:
    return Rejection(DiscountKind.PACKAGE, RejectionReason.PACKAGE_MISMATCH, code, detail)


def check_fit(package: Package, order) -> str:
    """Return a reason the package cannot be used for ``order``, or an empty string."""
    if not package.is_active:
        return "Package is no longer offered"
    if package.base_type != order.bookable_type:
        return f"Package is for {package.base_type} bookings"
    if package.base_id and int(package.base_id) != int(order.bookable_id):
        return "Package is for a different item"
    if order.party_size < package.min_guests:
        return f"Package needs at least {package.min_guests} guests"
    if package.max_guests is not None and order.party_size > package.max_guests:
        return f"Package allows at most {package.max_guests} guests"
    if order.duration_hours < package.min_duration_hours:
        return f"Package needs at least {package.min_duration_hours} hours"
    return ""


def quote(order, base: Decimal, gateway: CatalogGateway) -> Union[PackageQuote, Rejection]:
    package = Package.objects.filter(pk=order.package_id).first()
    if package is None:
        return _mismatch(str(order.package_id), "Package not found")
    reason = check_fit(package, order)
    if reason:
        return _mismatch(package.slug, reason)

    if base <= 0:
        base = quantize(package.base_price)
    included = gateway.price_addons(package.included_addons or [], order.party_size, order.duration_hours)
    bundle = base + sum((line.amount for line in included), ZERO)
    amount = quantize(bundle * package.discount_percent / Decimal("100"))
    discount = DiscountQuote(
        DiscountKind.PACKAGE,
        package.slug,
        amount,
        details={"package_id": package.pk, "discount_percent": str(package.discount_percent)},
    )
    return PackageQuote(package, base, included, discount)
