import asyncio
import json
import os
from pathlib import Path
import subprocess
from typing import Annotated

from rich import print
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
import typer

from app.core.config import settings

app = typer.Typer()


async def clear_alembic_task():
    """
    Delete every row of the `alembic_version` table.

    Connects to `DATABASE_URL` and resets Alembic's record of applied
    revisions. A missing table is reported and skipped.

    Raises:
        typer.Exit: If the `DATABASE_URL` environment variable is not set.
    """
    print("[yellow]Clearing Alembic version history[/yellow]")
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("[red]Error: DATABASE_URL environment variable is not set[/red]")
        raise typer.Exit(1)

    engine = create_async_engine(database_url, echo=False)
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("DELETE FROM alembic_version"))
            await connection.commit()
            if result.rowcount > 0:
                print(
                    f"[green]Alembic version history cleared ({result.rowcount} rows)[/green]"
                )
            else:
                print("[cyan]Alembic version history is already empty[/cyan]")
    except SQLAlchemyError as e:
        print(f"[red]Error clearing Alembic version history:[/red] {str(e)}")
        if "alembic_version" in str(e):
            print("[cyan]alembic_version table does not exist; skipping clear[/cyan]")
        else:
            print(
                "[yellow]Skipping Alembic clear; leaving migration history unchanged[/yellow]"
            )
    finally:
        await engine.dispose()


async def init_db_task() -> None:
    """Create every table directly from the models."""
    from app.core.db import dispose_db, init_db

    try:
        await init_db()
        print("[green]Database tables created[/green]")
    finally:
        await dispose_db()


async def purge_challenges_task(retention_days: int) -> int:
    """Run the expired challenge purge once."""
    from app.core.db import dispose_db
    from app.infrastructure.scheduler.jobs import purge_expired_challenges

    try:
        return await purge_expired_challenges(retention_days=retention_days)
    finally:
        await dispose_db()


@app.command()
def clearalembic():
    """
    Clears Alembic migration history.

    Usage:
        python manage.py clearalembic
    """
    asyncio.run(clear_alembic_task())


@app.command("init-db")
def initdb():
    """
    Create the database tables without Alembic.

    Meant for local development; deployed databases use `migrate`.
    """
    asyncio.run(init_db_task())


@app.command("purge-challenges")
def purgechallenges(
    retention_days: Annotated[
        int,
        typer.Option(
            "--retention-days",
            "-d",
            min=0,
            help="Delete challenges that expired more than this many days ago",
        ),
    ] = settings.OTP_RETENTION_DAYS,
):
    """
    Delete expired OTP challenges now instead of waiting for the scheduler.

    Examples:
        python manage.py purge-challenges
        python manage.py purge-challenges --retention-days 0
    """
    deleted = asyncio.run(purge_challenges_task(retention_days))
    print(f"[green]Purged {deleted} expired challenge(s)[/green]")


@app.command()
def makemigrations(comment: Annotated[str, typer.Argument()] = "auto"):
    """
    Creates a new Alembic revision with an autogenerated migration script.

    Args:
        comment (str, optional): The message for the revision. Defaults to "auto".
    """
    try:
        revision_command = f'alembic revision --autogenerate -m "{comment}"'
        print(f"Running Alembic migrations: {revision_command}")
        subprocess.run(revision_command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise
    print("[green]Make migrations complete[/green]")


@app.command()
def showmigrations():
    """Shows the Alembic migration history."""
    try:
        history_command = "alembic history"
        print(f"Running Alembic history: {history_command}")
        subprocess.run(history_command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise
    print("[green]Show migrations complete[/green]")


@app.command()
def migrate():
    """Upgrade the database schema to the latest revision."""
    try:
        upgrade_command = "alembic upgrade head"
        print(f"Running Alembic upgrade: {upgrade_command}")
        subprocess.run(upgrade_command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise
    print("[green]Migration complete[/green]")


@app.command()
def runserver():
    try:
        server_command = (
            "uvicorn app.main:app --host 127.0.0.1 --port 8000 --reload"
            if settings.DEBUG
            else "uvicorn app.main:app --host 0.0.0.0 --port 8000"
        )
        print(f"Running FastAPI server: {server_command}")
        subprocess.run(server_command, shell=True, check=True)
    except subprocess.CalledProcessError as e:
        print(f"[red]Error:[/red] {e}")
        raise


@app.command()
def generateopenapi():
    """Write the OpenAPI schema of the application to openapi.json."""
    from app.main import app as fastapi_app

    openapi_path = Path("openapi.json")
    with openapi_path.open("w", encoding="utf-8") as f:
        json.dump(fastapi_app.openapi(), f, ensure_ascii=False, indent=2)
    print(f"[green]OpenAPI schema generated at {openapi_path.name}[/green]")


@app.callback()
def main(ctx: typer.Context):
    print(f"Executing the command: {ctx.invoked_subcommand}")


if __name__ == "__main__":
    app()
