from celery import Celery
from celery.signals import setup_logging

from noticeboard.utils.logging import CustomizeLogger

# Create Celery app
celery = Celery("noticeboard")

# Load configuration from noticeboard.config.celeryconfig module
celery.config_from_object("noticeboard.config.celeryconfig")


@setup_logging.connect
def use_loguru_for_worker_logging(**kwargs):
    # Connecting this signal stops Celery from installing its own root handlers
    CustomizeLogger.intercept_standard_logging()
