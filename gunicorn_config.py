"""Gunicorn settings.

Map sessions live in process memory, so the server runs a single worker by
default and never recycles workers after a request count.
"""

import logging
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"
wsgi_app = "app:app"
proc_name = "tractage"

workers = int(os.environ.get("GUNICORN_WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
preload_app = False

timeout = 60
graceful_timeout = 30
keepalive = 5

loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")
errorlog = "-"
accesslog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(M)sms'


def _console(formatter: str, stream: str) -> dict:
    return {
        "class": "logging.StreamHandler",
        "formatter": formatter,
        "stream": f"ext://sys.{stream}",
    }


logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(process)d] %(levelname)s %(name)s: %(message)s",
        },
        "access": {"format": "%(message)s"},
    },
    "handlers": {
        "stderr": _console("default", "stderr"),
        "stdout": _console("access", "stdout"),
    },
    "loggers": {
        "gunicorn.error": {"handlers": ["stderr"], "propagate": False},
        "gunicorn.access": {"handlers": ["stdout"], "propagate": False},
    },
    "root": {"level": loglevel.upper(), "handlers": ["stderr"]},
}


def on_starting(_server):
    logger = logging.getLogger("gunicorn.error")
    logger.info("Starting tractage with %d worker(s)", workers)
    if workers > 1:
        logger.warning(
            "Map sessions are kept per worker; requests for one session "
            "must reach the same worker",
        )


def worker_exit(_server, worker):
    logging.getLogger("gunicorn.error").info(
        "Worker %d exited, its map sessions are gone",
        worker.pid,
    )
