"""Development settings.

Debug on, console e-mail, Celery tasks executed in-process so the beat
schedule is not required for local work. Do not use in production!
"""

from .base import *  # noqa: F401,F403

DEBUG = True

ALLOWED_HOSTS = ['*']

EMAIL_BACKEND = 'django.core.mail.backends.console.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = get_bool('CELERY_TASK_ALWAYS_EAGER', True)  # noqa: F405
