"""
Alembic runner that needs no alembic.ini.

    python -m territory_api.db.run_migrations upgrade head
    python -m territory_api.db.run_migrations downgrade -1
    python -m territory_api.db.run_migrations current
"""

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def build_config() -> Config:
    """Alembic Config for the bundled migrations and the configured database."""
    from territory_api.db.config import get_settings

    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # ConfigParser interpolation: a '%' in the password must be doubled
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url.replace("%", "%%"))
    return cfg


_COMMANDS: Dict[str, Callable[[Config, List[str]], None]] = {
    "upgrade": lambda cfg, args: command.upgrade(cfg, args[0] if args else "head"),
    "downgrade": lambda cfg, args: command.downgrade(cfg, args[0] if args else "-1"),
    "current": lambda cfg, args: command.current(cfg, verbose="-v" in args),
    "history": lambda cfg, args: command.history(cfg, verbose="-v" in args),
    "heads": lambda cfg, args: command.heads(cfg),
}


# PUBLIC_INTERFACE
def upgrade_head() -> None:
    """Bring the schema to the latest revision; called at application startup."""
    command.upgrade(build_config(), "head")
    logger.info("Database schema is at head")


# PUBLIC_INTERFACE
def main(argv: Optional[List[str]] = None) -> None:
    """Dispatch `argv` (defaults to the process arguments) to an Alembic command."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in _COMMANDS:
        sys.exit(f"usage: run_migrations {{{'|'.join(_COMMANDS)}}} [revision]")
    _COMMANDS[args[0]](build_config(), args[1:])


if __name__ == "__main__":
    main()
