"""CLI for pkb: serve the API, migrate the schema, scan for duplicates."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from pkb.config import ConfigError, PkbConfig, load_config
from pkb.core.logging import configure_logging

logger = logging.getLogger(__name__)


def _load(config_path: Path | None) -> PkbConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)
    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
    )
    return config


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to pkb.toml (defaults to $PKB_CONFIG or ./pkb.toml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """pkb: personal relationship-management backend."""
    ctx.obj = _load(config_path)


@cli.command()
@click.option("--host", default=None, help="Bind address (overrides [api].host)")
@click.option("--port", type=int, default=None, help="Port (overrides [api].port)")
@click.pass_obj
def serve(config: PkbConfig, host: str | None, port: int | None) -> None:
    """Run the HTTP API."""
    import uvicorn

    from pkb.api.app import create_app

    app = create_app(config)
    uvicorn.run(
        app,
        host=host or config.api.host,
        port=port or config.api.port,
        log_config=None,
    )


@cli.command()
@click.option("--revision", default="head", show_default=True, help="Target revision")
@click.option("--create-db/--no-create-db", default=True, help="Create the database if missing")
@click.pass_obj
def migrate(config: PkbConfig, revision: str, create_db: bool) -> None:
    """Apply schema migrations."""
    from pkb.migrations import run_migrations

    db = config.database.build()
    if create_db:
        asyncio.run(db.provision())
    asyncio.run(run_migrations(db.dsn, revision))
    click.echo(f"Database {db.db_name} migrated to {revision}")


@cli.command()
@click.option(
    "--threshold",
    type=click.FloatRange(0.5, 1.0),
    default=None,
    help="Minimum name similarity (default 0.85)",
)
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of a table")
@click.pass_obj
def duplicates(config: PkbConfig, threshold: float | None, as_json: bool) -> None:
    """List likely-duplicate contact pairs."""
    pairs = asyncio.run(_find_duplicates(config, threshold))
    if as_json:
        click.echo(json.dumps(pairs, default=str, indent=2))
        return
    if not pairs:
        click.echo("No duplicate candidates found")
        return
    for pair in pairs:
        a = pair["contact_a_detail"]["display_name"]
        b = pair["contact_b_detail"]["display_name"]
        click.echo(f"{pair['confidence']:.2f}  {pair['reason']:<13} {a}  <->  {b}")


async def _find_duplicates(config: PkbConfig, threshold: float | None) -> list[dict]:
    from pkb.tools.duplicates import NAME_SIMILARITY_THRESHOLD, find_duplicates

    db = config.database.build()
    pool = await db.connect()
    try:
        pairs = await find_duplicates(
            pool,
            threshold=threshold or NAME_SIMILARITY_THRESHOLD,
            batch_size=config.smart_lists.scan_batch_size,
        )
    finally:
        await db.close()
    return [
        {
            "contact_a": str(p["contact_a"]),
            "contact_b": str(p["contact_b"]),
            "reason": p["reason"],
            "confidence": p["confidence"],
            "contact_a_detail": {"display_name": p["contact_a_detail"]["display_name"]},
            "contact_b_detail": {"display_name": p["contact_b_detail"]["display_name"]},
        }
        for p in pairs
    ]


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
