from __future__ import annotations

from django.core.management.base import BaseCommand  # type: ignore

from apps.discounts.cashback import ensure_default_tiers


class Command(BaseCommand):
    help = "Create the default bronze/silver/gold/platinum loyalty tiers"

    def handle(self, *args, **options):  # type: ignore
        created = ensure_default_tiers()
        self.stdout.write(self.style.SUCCESS(f"Loyalty tiers created: {created}"))
