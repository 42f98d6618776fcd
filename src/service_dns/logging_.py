import logging
import os
import sys
import structlog


def _renderer():
    if os.environ.get('LOG_FORMAT', '').lower() == 'json':
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _configure_structlog():
    """Configure structlog on top of the standard library logging module."""
    log_level_name = os.environ.get('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, log_level_name, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # kubernetes client logs every request at debug
    logging.getLogger('kubernetes').setLevel(max(level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Return a configured structured logger."""
    if not getattr(get_logger, "_configured", False):
        _configure_structlog()
        get_logger._configured = True
    return structlog.get_logger(name)
