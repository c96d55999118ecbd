"""Operator CLI for the knowledge vector store.

Usage:
    vector-kb upload [FILE]
    vector-kb upload-avatars [FILE]
    vector-kb clear [clear-all|preview|duplicates]
    vector-kb query "refund policy"
    vector-kb health

Credentials are read from the environment; missing values are filled from
`conf/secrets.yml` when that file exists.
"""

import asyncio
import contextlib
import signal
import sys
from collections.abc import Awaitable, Callable, Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
from loguru import logger

from vector_kb.config import load_config, load_secrets_into_env
from vector_kb.errors import (
    BackendUnavailableError,
    RecordValidationError,
    SizeLimitError,
    VectorKBError,
)
from vector_kb.models import ClearCommand, IngestionStats
from vector_kb.service import KnowledgeBaseService

T = TypeVar("T")

SECRETS_PATH = Path(__file__).parent.parent.parent / "conf" / "secrets.yml"


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format="<level>{message}</level>")


def get_service(ctx: click.Context) -> KnowledgeBaseService:
    """Build the service on first use from the group's config options."""
    obj: dict[str, Any] = ctx.ensure_object(dict)
    if obj.get("service") is None:
        config = load_config(obj.get("config_name", "default"), overrides=obj.get("overrides"))
        obj["service"] = KnowledgeBaseService(config)
    return obj["service"]


def run_or_exit(factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
    """Run a coroutine and turn known failures into exit code 1."""
    try:
        return asyncio.run(factory())
    except RecordValidationError as e:
        logger.error(str(e))
        for problem in e.errors:
            click.echo(f"  - {problem}", err=True)
        sys.exit(1)
    except SizeLimitError as e:
        logger.error(f"Upload aborted: {e}")
        for line in e.guidance():
            click.echo(f"  - {line}", err=True)
        sys.exit(1)
    except BackendUnavailableError as e:
        logger.error(f"{e}. No changes were made.")
        sys.exit(1)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except VectorKBError as e:
        logger.error(f"Operation failed: {e}")
        sys.exit(1)


async def _upload_with_cancel(
    upload: Callable[[asyncio.Event], Awaitable[IngestionStats]],
) -> IngestionStats:
    """Run an upload; SIGINT stops it after the batch in progress."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    try:
        return await upload(cancel_event)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)


def _exit_for_stats(stats: IngestionStats) -> None:
    if not stats.is_complete_success:
        sys.exit(1)


@click.group()
@click.option("--config-name", default="default", help="Hydra config name in conf/vector_kb/")
@click.option(
    "--override",
    "-o",
    "overrides",
    multiple=True,
    help="Config override, e.g. -o backend.active=pinecone",
)
@click.option("--log-level", default="INFO", help="Log level (DEBUG, INFO, WARNING, ...)")
@click.pass_context
def cli(ctx: click.Context, config_name: str, overrides: tuple[str, ...], log_level: str) -> None:
    """Manage the knowledge base stored in Qdrant or Pinecone."""
    configure_logging(log_level)
    applied = load_secrets_into_env(SECRETS_PATH)
    if applied:
        logger.debug(f"Loaded {', '.join(applied)} from {SECRETS_PATH}")

    obj = ctx.ensure_object(dict)
    obj.setdefault("config_name", config_name)
    obj.setdefault("overrides", list(overrides))


@cli.command()
@click.argument("file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def upload(ctx: click.Context, file: Path | None) -> None:
    """Upload a knowledge file (JSON array of items)."""
    service = get_service(ctx)
    stats = run_or_exit(
        lambda: _upload_with_cancel(lambda event: service.upload_data(file, event))
    )
    _exit_for_stats(stats)


@cli.command("upload-avatars")
@click.argument("file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def upload_avatars(ctx: click.Context, file: Path | None) -> None:
    """Upload the business avatars knowledge file."""
    service = get_service(ctx)
    stats = run_or_exit(
        lambda: _upload_with_cancel(lambda event: service.upload_avatar_data(file, event))
    )
    _exit_for_stats(stats)


@cli.command()
@click.argument(
    "command",
    required=False,
    default=ClearCommand.CLEAR_ALL.value,
    type=click.Choice([c.value for c in ClearCommand]),
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, command: str, yes: bool) -> None:
    """Clear the knowledge base (clear-all, preview or duplicates)."""
    clear_command = ClearCommand(command)
    if clear_command is not ClearCommand.PREVIEW and not yes:
        click.confirm(f"Run '{clear_command}' against the knowledge base?", abort=True)

    service = get_service(ctx)
    report = run_or_exit(lambda: service.clear_data(clear_command))
    click.echo(report.message)
    if not report.success:
        sys.exit(1)


@cli.command()
@click.argument("text", type=str)
@click.pass_context
def query(ctx: click.Context, text: str) -> None:
    """Print the knowledge texts relevant to TEXT."""
    service = get_service(ctx)
    results = run_or_exit(lambda: service.query_knowledge_base(text))
    if not results:
        click.echo("No relevant knowledge found.")
        return
    for i, result in enumerate(results, 1):
        click.echo(f"[{i}] {result}")


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check that the active backend responds."""
    service = get_service(ctx)
    status = run_or_exit(service.get_detailed_health_status)
    click.echo(f"{status.backend_name}: {status.message}")
    if not status.is_healthy:
        sys.exit(1)


if __name__ == "__main__":
    cli()
