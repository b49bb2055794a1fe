"""Account identity service: registration, recovery tokens and roles."""

from .api import app
from .worker import celery_app

__all__ = ["app", "celery_app"]
