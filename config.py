"""
config.py — Paths, backend selection and logging setup.

Every path can be overridden through the environment; create_app() test
configs override the environment in turn.
"""

import logging
import os
import sys

import structlog

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def get_db_path() -> str:
    """Indexed store database file."""
    default_path = os.path.join(BASE_DIR, 'data', 'garden.db')
    return os.environ.get('GARDEN_DB_PATH', default_path)


def get_flat_store_path() -> str:
    """Legacy flat store file (the migration source)."""
    default_path = os.path.join(BASE_DIR, 'data', 'garden_flat.db')
    return os.environ.get('GARDEN_FLAT_STORE_PATH', default_path)


def get_backup_dir() -> str:
    return os.environ.get('GARDEN_BACKUP_DIR', os.path.join(BASE_DIR, 'backups'))


def get_storage_backend() -> str:
    """'indexed' (default) or 'flat'."""
    return os.environ.get('GARDEN_STORAGE_BACKEND', 'indexed')


def configure_logging(level: int = logging.INFO) -> None:
    """Route structlog through stdlib logging with a readable console renderer."""
    logging.basicConfig(
        level=level,
        stream=sys.stdout,
        format="%(message)s",
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(pad_event=24),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
