from __future__ import annotations

import logging
import sys

from campusverse.core.config import settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Install a stdout handler for the whole process."""
    lvl = getattr(logging, str(level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party loggers are noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("campusverse")
