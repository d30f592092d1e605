from django.apps import AppConfig  # type: ignore


class JobsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.jobs"

    def ready(self):  # type: ignore
        from . import handlers  # noqa: F401
