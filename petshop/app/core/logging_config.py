from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEBUG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"

NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "alembic.runtime.migration")


def configure_logging(raw_level: str | int = "INFO") -> int:
    """
    Configure le logging racine de l'application.

    - format court en INFO+, format avec numéro de ligne en DEBUG
    - les loggers bavards (SQL, accès HTTP) sont remontés à WARNING hors DEBUG
    """
    level = _coerce_level(raw_level)

    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())

    formatter = logging.Formatter(DEBUG_FORMAT if level <= logging.DEBUG else LOG_FORMAT)
    for handler in root.handlers:
        handler.setFormatter(formatter)

    if level > logging.DEBUG:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    return level


def _coerce_level(raw_level) -> int:
    if isinstance(raw_level, int):
        return raw_level
    if isinstance(raw_level, str):
        candidate = raw_level.strip().upper()
        return getattr(logging, candidate, logging.INFO)
    return logging.INFO
