from django.contrib import admin  # type: ignore

from .models import DailyCounter


@admin.register(DailyCounter)
class DailyCounterAdmin(admin.ModelAdmin):
    list_display = ("day", "metric", "count", "value")
    list_filter = ("metric",)
    date_hierarchy = "day"
