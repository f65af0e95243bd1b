"""Gunicorn configuration for the bulk import service.

    gunicorn -c gunicorn.conf.py iam_import.flask_app:app
"""
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
# Commits provision record by record; a large batch can outlive the default 30s.
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "300"))


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    The master imports the app (and may have authenticated a Keycloak
    service client); each worker starts with its own client and logging.
    """
    from iam_import.core import provisioning_service
    from iam_import.logging_setup import configure_logging

    configure_logging(os.environ.get("LOG_LEVEL"))
    provisioning_service.reset_service_client()
    worker.log.info(f"Worker {worker.pid}: service client reset, LOG_LEVEL={os.environ.get('LOG_LEVEL', 'INFO')}")
