from celery import Celery

# Create Celery app; periodic birthday cycles live in app.tasks.cron
celery = Celery("birthday_greeter")

# Load configuration from app.config.celeryconfig module
celery.config_from_object("app.config.celeryconfig")
