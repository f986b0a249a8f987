"""CLI commands for Folio."""

import asyncio
import json
import os
import re
import secrets
import sys
from pathlib import Path

import click


@click.group()
@click.version_option(package_name="folio")
def cli():
    """Folio - content review workflow and publishing scheduler."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, log_level):
    """Run the Folio server.

    The content scheduler runs inside the server process when enabled in
    app.yaml. Run a single worker per scheduler you want active.
    """
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "folio.asgi:create_asgi_app()"
    config.bind = [f"{host}:{port}"]
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from folio.asgi import create_asgi_app

    app = create_asgi_app()
    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


@cli.command()
@click.option(
    "--write",
    type=click.Path(),
    default=None,
    help="Write SECRET_KEY to a .env file",
)
@click.option("--length", default=32, type=int, help="Number of random bytes")
def secret(write, length):
    """Generate a secret key for session cookies."""
    key = secrets.token_urlsafe(length)

    if not write:
        click.echo(key)
        return

    env_path = Path(write)
    env_content = env_path.read_text() if env_path.exists() else ""

    secret_key_pattern = re.compile(r"^SECRET_KEY=.*$", re.MULTILINE)
    new_line = f"SECRET_KEY={key}"
    if secret_key_pattern.search(env_content):
        env_content = secret_key_pattern.sub(new_line, env_content)
    else:
        if env_content and not env_content.endswith("\n"):
            env_content += "\n"
        env_content += new_line + "\n"

    env_path.write_text(env_content)
    click.echo(f"SECRET_KEY written to {env_path}")


@cli.group()
def scheduler():
    """Inspect and drive the content scheduler."""
    pass


async def _run_scheduler_once() -> dict:
    from folio.asgi import create_db_config, create_workflow
    from folio.config import get_settings

    settings = get_settings()
    db_config = create_db_config(settings)
    _, content_scheduler = create_workflow(settings, db_config.create_session_maker())
    try:
        run = await content_scheduler.run_once()
    finally:
        await db_config.get_engine().dispose()
    return run.to_dict()


@scheduler.command("run")
def scheduler_run():
    """Run one scheduler tick against the configured database.

    Suitable for cron when the in-process scheduler is disabled. Exits with
    status 1 if the tick recorded errors.
    """
    result = asyncio.run(_run_scheduler_once())
    click.echo(json.dumps(result, indent=2))
    if result["errors"]:
        sys.exit(1)


@cli.group()
def user():
    """Manage workflow users."""
    pass


async def _create_user(username: str, role: str, display_name: str | None):
    from folio.asgi import create_db_config
    from folio.config import get_settings
    from folio.db.services.user_service import create_user

    db_config = create_db_config(get_settings())
    try:
        async with db_config.get_session() as session:
            return await create_user(session, username, role=role, display_name=display_name)
    finally:
        await db_config.get_engine().dispose()


@user.command("create")
@click.argument("username")
@click.option("--role", default="author", help="Role name (admin, editor, author)")
@click.option("--display-name", default=None, help="Name shown in review history")
def user_create(username, role, display_name):
    """Create a user that can act on content."""
    try:
        created = asyncio.run(_create_user(username, role, display_name))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    click.echo(f"Created {created.role} '{created.username}' ({created.id})")


def _run_alembic(project_root: Path, args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    folio_dir = Path(__file__).parent

    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = folio_dir / "alembic.ini"
        if not alembic_ini.exists():
            click.echo("Error: Could not find alembic.ini", err=True)
            sys.exit(1)

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(folio_dir / "alembic"))

    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        folio db upgrade head      # Apply all migrations
        folio db downgrade -1      # Rollback one migration
        folio db current           # Show current revision
        folio db revision -m "description" --autogenerate
    """
    project_root = Path.cwd()
    if not (project_root / "app.yaml").exists():
        project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    if not ctx.args:
        click.echo(ctx.get_help())
        return

    _run_alembic(project_root, ctx.args)


if __name__ == "__main__":
    cli()
