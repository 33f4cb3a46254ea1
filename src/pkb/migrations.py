"""Programmatic Alembic migration runner for pkb.

Lets the CLI (and tests) run migrations without shelling out to the Alembic
CLI.  There is a single version chain, ``pkb``, under ``alembic/versions/``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config

from alembic import command

logger = logging.getLogger(__name__)

# Root of the alembic directory (sibling to src/)
ALEMBIC_DIR = Path(__file__).resolve().parent.parent.parent / "alembic"

CHAIN = "pkb"


def _build_alembic_config(db_url: str) -> Config:
    """Build an Alembic Config pointing at the pkb version directory.

    Args:
        db_url: SQLAlchemy-compatible database URL.
    """
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    # Alembic Config uses configparser interpolation; percent-encoded DB URLs
    # must escape '%' as '%%'.
    config.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    config.set_main_option("version_locations", str(ALEMBIC_DIR / "versions" / CHAIN))
    return config


def upgrade(db_url: str, revision: str = "head") -> None:
    """Upgrade the schema to *revision* (default: latest)."""
    logger.info("Running migrations to %s", revision)
    command.upgrade(_build_alembic_config(db_url), revision)


def downgrade(db_url: str, revision: str) -> None:
    logger.info("Downgrading migrations to %s", revision)
    command.downgrade(_build_alembic_config(db_url), revision)


async def run_migrations(db_url: str, revision: str = "head") -> None:
    """Async entry point matching the rest of the startup code.

    Alembic itself is synchronous (SQLAlchemy + psycopg2); the call blocks
    until the upgrade finishes.
    """
    upgrade(db_url, revision)
