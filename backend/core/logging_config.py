import logging

from backend.core import config

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())

    if any(getattr(handler, '_booking_handler', False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._booking_handler = True
    root.addHandler(handler)
