"""Admin CLI for Taskdeck."""

from __future__ import annotations

import asyncio
import os
import uuid
from datetime import datetime, timezone

import click


def run_async(coro):
    """Run an async function in a new event loop."""
    return asyncio.run(coro)


@click.group()
def cli():
    """Taskdeck administration CLI."""
    pass


# --- Setup ---


@cli.command()
def setup():
    """Run migrations and create the MinIO image bucket."""
    click.echo("Running database migrations...")
    _run_migrations()

    click.echo("Creating MinIO bucket if not exists...")
    _create_minio_bucket()

    click.echo("Setup complete.")


def _run_migrations():
    """Run Alembic migrations using the Python API."""
    from alembic import command
    from alembic.config import Config

    # Look for alembic.ini in /app (Docker) or alongside this script (local)
    for candidate in ["/app/alembic.ini", os.path.join(os.path.dirname(__file__), "alembic.ini")]:
        if os.path.exists(candidate):
            alembic_cfg = Config(candidate)
            script_dir = os.path.join(os.path.dirname(candidate), "alembic")
            if os.path.isdir(script_dir):
                alembic_cfg.set_main_option("script_location", script_dir)
            db_url = os.environ.get("DATABASE_URL")
            if db_url:
                alembic_cfg.set_main_option("sqlalchemy.url", db_url)
            command.upgrade(alembic_cfg, "head")
            return

    click.echo("  Warning: alembic.ini not found, skipping migrations.")


def _create_minio_bucket():
    from shared.config import get_settings
    from shared.errors import StorageError
    from shared.storage import MinioBlobStore

    store = MinioBlobStore(get_settings())
    try:
        store.ensure_bucket()
        click.echo(f"  Bucket ready: {store.bucket}")
    except StorageError as e:
        click.echo(f"  Warning: {e.message}")


# --- User Management ---


@cli.group()
def user():
    """User management commands."""
    pass


@user.command("create")
@click.option("--email", required=True, help="Login email")
@click.option("--name", required=True, help="Display name")
def create_user(email, name):
    """Create a user."""
    run_async(_create_user(email.strip().lower(), name.strip()))


async def _create_user(email, name):
    from sqlalchemy import select

    from shared.database import dispose_engine, get_session_factory
    from shared.models.user import User

    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none():
            click.echo(f"Error: a user with email {email} already exists.")
        else:
            user = User(
                id=uuid.uuid4(),
                email=email,
                name=name,
                created_at=datetime.now(timezone.utc),
            )
            session.add(user)
            await session.commit()
            click.echo(f"Created user: {user.id} ({email})")

    await dispose_engine()


@user.command("token")
@click.option("--email", required=True, help="Email of an existing user")
def issue_token(email):
    """Print a portal access token for a user."""
    run_async(_issue_token(email.strip().lower()))


async def _issue_token(email):
    from sqlalchemy import select

    from portal.auth import create_access_token
    from shared.database import dispose_engine, get_session_factory
    from shared.models.user import User

    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

    await dispose_engine()

    if not user:
        click.echo(f"User not found: {email}")
        return
    click.echo(create_access_token(user.id, email=user.email, name=user.name))


# --- Maintenance ---


@cli.command("sweep-trash")
def sweep_trash():
    """Purge tasks that have been in the trash past the retention window."""
    purged = run_async(_sweep_trash())
    if purged is None:
        click.echo("Another sweep is running; skipped.")
    else:
        click.echo(f"Purged {purged} task(s).")


async def _sweep_trash():
    from modules.trash_sweeper.worker import run_sweep_once
    from shared.config import get_settings
    from shared.database import dispose_engine, get_session_factory
    from shared.redis import close_redis, get_redis
    from shared.storage import MinioBlobStore

    settings = get_settings()
    try:
        return await run_sweep_once(
            get_session_factory(), MinioBlobStore(settings), await get_redis(), settings
        )
    finally:
        await close_redis()
        await dispose_engine()


if __name__ == "__main__":
    cli()
