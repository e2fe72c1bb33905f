"""Celery worker entrypoint: ``celery -A ai_processing.worker worker``."""

from __future__ import annotations

from .config import load_config
from .logging import setup_logging
from .services.celery_app import configure_celery

config = load_config()
setup_logging(config.log_level, redact_contact=config.log_redact_contact_details)
app = configure_celery(config)
