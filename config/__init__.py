"""Django configuration package for the booking settlement service.

Holds the environment specific settings modules and the WSGI
entry point.
"""

# Import the Celery application as soon as Django starts. Without this
# the shared task registry will not be populated.
from .celery import app as celery_app  # noqa: F401
