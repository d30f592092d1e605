"""Catalog collaborator used by the pricing composer and reservations.

The settlement core depends only on ``CatalogGateway``. The default
implementation reads the local catalog tables; another one can be wired
in with the ``CATALOG_GATEWAY`` setting.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Iterable, Protocol

from django.conf import settings  # type: ignore
from django.utils.module_loading import import_string  # type: ignore

from shared.domain.errors import ValidationError
from shared.domain.value_objects import quantize

from .models import Addon, BookableType, Tour, Vessel


@dataclass(frozen=True)
class Bookable:
    bookable_type: str
    bookable_id: int
    name: str
    capacity: int
    kind: str  # vessel type or tour category

    @property
    def scope(self) -> str:
        """Scope name used by promo codes, gift cards and pricing rules."""
        return "vessels" if self.bookable_type == BookableType.VESSEL else "tours"


@dataclass(frozen=True)
class AddonLine:
    addon_id: int
    name: str
    quantity: int
    amount: Decimal


class CatalogGateway(Protocol):
    def get_bookable(self, bookable_type: str, bookable_id: int) -> Bookable: ...

    def get_rate(
        self,
        bookable_type: str,
        bookable_id: int,
        on_date: date,
        duration_hours: int,
        party_size: int,
    ) -> Decimal: ...

    def price_addons(
        self, items: Iterable[dict], party_size: int, duration_hours: int
    ) -> list[AddonLine]: ...


class DjangoCatalogGateway:
    """Reads vessels, tours and add-ons from the local tables."""

    def _load(self, bookable_type: str, bookable_id: int):
        model = {BookableType.VESSEL.value: Vessel, BookableType.TOUR.value: Tour}.get(str(bookable_type))
        if model is None:
            raise ValidationError(f"Unknown bookable type {bookable_type!r}", code="UNKNOWN_BOOKABLE")
        try:
            return model.objects.get(pk=bookable_id, is_active=True)
        except model.DoesNotExist:
            raise ValidationError(
                f"{bookable_type} {bookable_id} is not available", code="UNKNOWN_BOOKABLE"
            ) from None

    def get_bookable(self, bookable_type: str, bookable_id: int) -> Bookable:
        obj = self._load(bookable_type, bookable_id)
        kind = obj.type if bookable_type == BookableType.VESSEL else obj.category
        return Bookable(bookable_type, obj.pk, obj.name, obj.capacity, kind)

    def get_rate(self, bookable_type, bookable_id, on_date, duration_hours, party_size) -> Decimal:
        obj = self._load(bookable_type, bookable_id)
        if bookable_type == BookableType.VESSEL:
            if duration_hours >= settings.FULL_DAY_HOURS and obj.price_per_day:
                return quantize(obj.price_per_day)
            return quantize(obj.price_per_hour * duration_hours)
        return quantize(obj.price_adult * party_size)

    def price_addons(self, items, party_size, duration_hours) -> list[AddonLine]:
        lines: list[AddonLine] = []
        wanted = {int(item["addon_id"]): int(item.get("quantity", 1)) for item in items}
        if not wanted:
            return lines
        addons = Addon.objects.filter(pk__in=wanted, is_active=True).order_by("pk")
        found = {addon.pk: addon for addon in addons}
        missing = sorted(set(wanted) - set(found))
        if missing:
            raise ValidationError(f"Unknown add-ons: {missing}", code="UNKNOWN_ADDON")
        for addon_id in sorted(found):
            addon = found[addon_id]
            quantity = wanted[addon_id]
            amount = quantize(addon.line_total(quantity, party_size, duration_hours))
            lines.append(AddonLine(addon_id, addon.name, quantity, amount))
        return lines


@lru_cache(maxsize=None)
def _gateway_class(path: str):
    return import_string(path)


def get_catalog_gateway() -> CatalogGateway:
    return _gateway_class(settings.CATALOG_GATEWAY)()
