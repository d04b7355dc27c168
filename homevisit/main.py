"""Main entry point for HomeVisit."""

import logging
import sys
from typing import Optional

from homevisit.config import get_settings

# Client libraries that log every request or statement at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


def setup_logging(level: Optional[str] = None):
    """Configure logging from settings; ``level`` overrides ``log_level``.

    Outbound routing calls and SQL statements stay at WARNING unless the
    level is DEBUG.
    """
    level_name = (level or get_settings().log_level).upper()
    numeric = getattr(logging, level_name)

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(numeric)

    noisy_level = logging.DEBUG if numeric <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def main():
    """Main entry point - runs CLI."""
    setup_logging()

    from homevisit.cli.commands import app

    app()


if __name__ == "__main__":
    main()
