"""
Logging configuration for POS Rewards.

One call to setup_logging() at app creation; everything else uses
logging.getLogger(__name__) (or current_app.logger inside a request).
"""
import logging
import os
import sys
from logging.config import dictConfig

from flask import g, has_request_context

_configured = False


class RequestIdFilter(logging.Filter):
    """Attach the current request id (or '-') to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = '-'
        if has_request_context():
            request_id = getattr(g, 'request_id', '-')
        record.request_id = request_id
        return True


def setup_logging(level: str = None) -> None:
    """Apply the logging configuration (idempotent)."""
    global _configured
    if _configured:
        return

    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {
            'request_id': {'()': RequestIdFilter},
        },
        'formatters': {
            'default': {
                'format': '%(asctime)s %(levelname)s [%(name)s] [req:%(request_id)s] %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'stream': sys.stdout,
                'formatter': 'default',
                'filters': ['request_id'],
            },
        },
        'loggers': {
            'posrewards': {'handlers': ['console'], 'level': level, 'propagate': False},
            'apscheduler': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
            'sqlalchemy.engine': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
        },
        'root': {'handlers': ['console'], 'level': level},
    })
    _configured = True
