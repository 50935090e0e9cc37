import click


@click.group()
def main() -> None:
    """Repodeck - Git working copy provisioning service."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from REPODECK_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from REPODECK_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the workspace HTTP service."""
    import uvicorn

    from repodeck.runtime.settings import RepodeckSettings

    settings = RepodeckSettings()

    uvicorn.run(
        "repodeck.runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
def reconcile() -> None:
    """Remove directories under the workspaces root that no record references.

    Requires REPODECK_DATABASE_URL: without persisted records every
    directory would count as orphaned.
    """
    import asyncio

    from repodeck.runtime.log import setup_logging
    from repodeck.runtime.settings import RepodeckSettings

    settings = RepodeckSettings()
    setup_logging(settings.log_level)
    if not settings.database_url:
        raise click.ClickException("REPODECK_DATABASE_URL is not set. Refusing to reconcile without records.")

    removed = asyncio.run(_reconcile(settings))
    if removed:
        click.echo(f"Removed {len(removed)} orphaned entries:")
        for name in removed:
            click.echo(f"  {name}")
    else:
        click.echo("No orphaned entries found.")


async def _reconcile(settings) -> list[str]:
    from repodeck.runtime.app import build_manager
    from repodeck.runtime.db.engine import create_engine, create_session_factory
    from repodeck.runtime.store.sql import SqlWorkspaceStore

    engine = create_engine(settings.database_url)
    try:
        manager = build_manager(settings, SqlWorkspaceStore(create_session_factory(engine)))
        return await manager.reconcile()
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


def _alembic_config():
    """Build an Alembic Config from the package's alembic.ini.

    Both alembic.ini and the alembic/ directory live inside the package,
    so this works whether running from source or from an installed package.
    """
    from pathlib import Path

    from alembic.config import Config

    ini_path = Path(__file__).parent / "runtime" / "alembic.ini"
    return Config(str(ini_path))


@main.group()
def db() -> None:
    """Database migration and management commands."""


@db.command()
@click.option("--revision", default="head", help="Target revision (default: head).")
def upgrade(revision: str) -> None:
    """Run database migrations forward."""
    from alembic import command

    command.upgrade(_alembic_config(), revision)
    click.echo(f"Database upgraded to {revision}.")


@db.command()
@click.option("--revision", default="-1", help="Target revision (default: -1, one step back).")
def downgrade(revision: str) -> None:
    """Roll back database migrations."""
    from alembic import command

    command.downgrade(_alembic_config(), revision)
    click.echo(f"Database downgraded to {revision}.")


@db.command()
@click.argument("message")
def migrate(message: str) -> None:
    """Autogenerate a new migration from model changes."""
    from alembic import command

    command.revision(_alembic_config(), message=message, autogenerate=True)
    click.echo(f"Migration generated: {message}")


@db.command()
def current() -> None:
    """Show current database revision."""
    from alembic import command

    command.current(_alembic_config(), verbose=True)


@db.command()
def history() -> None:
    """Show migration history."""
    from alembic import command

    command.history(_alembic_config(), verbose=True)


if __name__ == "__main__":
    main()
