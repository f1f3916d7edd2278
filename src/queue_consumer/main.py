"""CLI entrypoint for queue-consumer."""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import rich_click as click

from queue_consumer import __version__
from queue_consumer.consumer.controllers import (
    ConsumerCliController,
    EnqueueCommand,
    FailedFlushCommand,
    FailedListCommand,
    FailedMutateCommand,
    SizeCommand,
    WorkCommand,
)
from queue_consumer.errors import QueueConsumerError

click.rich_click.USE_MARKDOWN = True
CONSUMER_CONTROLLER = ConsumerCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="queue-consumer")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Root logger level.",
)
def queue_consumer(log_level: str) -> None:
    """Queue consumer CLI.

    Run `work` under a process supervisor: a job that overruns its timeout
    kills the whole consumer process.
    """

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@queue_consumer.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", default=None, help="Queue name. Defaults to QUEUE_CONSUMER_QUEUE.")
@click.option(
    "--handler",
    required=True,
    help="`module:callable` or a built-in handler (echo, sleep, fail, append_line).",
)
@click.option(
    "--args",
    "args_json",
    default="{}",
    show_default=True,
    help="Handler keyword arguments as a JSON object.",
)
@click.option("--on-failure", default=None, help="Failure hook `module:callable`.")
@click.option(
    "--max-attempts",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Attempt budget; 0 retries forever.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Per-job deadline; 0 disables it.",
)
@click.option(
    "--delay-seconds",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Keep the job invisible for this long.",
)
def enqueue(  # noqa: PLR0913
    db_path: Path | None,
    queue: str | None,
    handler: str,
    args_json: str,
    on_failure: str | None,
    max_attempts: int,
    timeout_seconds: int,
    delay_seconds: int,
) -> None:
    """Push one job onto a queue."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.enqueue(
                EnqueueCommand(
                    db_path=db_path,
                    queue=queue,
                    handler=handler,
                    args=_parse_args(args_json),
                    on_failure=on_failure,
                    max_attempts=max_attempts,
                    timeout_seconds=timeout_seconds,
                    delay_seconds=delay_seconds,
                ),
            ),
        )


@queue_consumer.command("work")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", default=None, help="Queue name. Defaults to QUEUE_CONSUMER_QUEUE.")
@click.option(
    "--sleep",
    "sleep_seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Seconds to wait when the queue is empty or the consumer is paused.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=0),
    default=None,
    help="Stop after this many processed jobs; 0 is unbounded.",
)
@click.option(
    "--max-runtime",
    "max_runtime_seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Stop after this many seconds; 0 is unbounded.",
)
@click.option(
    "--memory",
    "memory_limit_mb",
    type=click.IntRange(min=1),
    default=None,
    help="Stop once resident memory reaches this many megabytes.",
)
@click.option(
    "--stop-on-empty/--no-stop-on-empty",
    default=None,
    help="Stop as soon as the queue has no available job.",
)
@click.option(
    "--stop-on-error/--no-stop-on-error",
    default=None,
    help="Stop on the first job error that still has attempts left.",
)
def work(  # noqa: PLR0913
    db_path: Path | None,
    queue: str | None,
    sleep_seconds: int | None,
    max_jobs: int | None,
    max_runtime_seconds: int | None,
    memory_limit_mb: int | None,
    stop_on_empty: bool | None,
    stop_on_error: bool | None,
) -> None:
    """Consume jobs until a stop condition holds.

    SIGTERM, SIGINT and SIGQUIT stop after the current job, SIGUSR2 pauses,
    SIGCONT resumes.
    """

    with _cli_errors():
        result = CONSUMER_CONTROLLER.work(
            WorkCommand(
                db_path=db_path,
                queue=queue,
                sleep_seconds=sleep_seconds,
                max_jobs=max_jobs,
                max_runtime_seconds=max_runtime_seconds,
                memory_limit_mb=memory_limit_mb,
                stop_on_empty=stop_on_empty,
                stop_on_error=stop_on_error,
            ),
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Consumer stopped on a job error.")


@queue_consumer.command("size")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", default=None, help="Queue name. Defaults to QUEUE_CONSUMER_QUEUE.")
def size(db_path: Path | None, queue: str | None) -> None:
    """Count queued and reserved jobs."""

    with _cli_errors():
        _emit_lines(CONSUMER_CONTROLLER.size(SizeCommand(db_path=db_path, queue=queue)))


@queue_consumer.group()
def failed() -> None:
    """Failed job commands."""


@failed.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", default=None, help="Only show failures from this queue.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max number of records to print.",
)
def failed_list(db_path: Path | None, queue: str | None, limit: int) -> None:
    """List failed jobs, newest first."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.list_failed(
                FailedListCommand(db_path=db_path, queue=queue, limit=limit),
            ),
        )


@failed.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--id", "failed_id", type=int, required=True, help="Failed job record id.")
def failed_show(db_path: Path | None, failed_id: int) -> None:
    """Print one failed job with its traceback."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.show_failed(
                FailedMutateCommand(db_path=db_path, failed_id=failed_id),
            ),
        )


@failed.command("retry")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--id", "failed_id", type=int, required=True, help="Failed job record id.")
@click.option("--queue", default=None, help="Target queue. Defaults to the original queue.")
def failed_retry(db_path: Path | None, failed_id: int, queue: str | None) -> None:
    """Push a failed job back onto a queue."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.retry_failed(
                FailedMutateCommand(db_path=db_path, failed_id=failed_id, queue=queue),
            ),
        )


@failed.command("forget")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--id", "failed_id", type=int, required=True, help="Failed job record id.")
def failed_forget(db_path: Path | None, failed_id: int) -> None:
    """Delete one failed job record."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.forget_failed(
                FailedMutateCommand(db_path=db_path, failed_id=failed_id),
            ),
        )


@failed.command("flush")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--queue", default=None, help="Only delete failures from this queue.")
def failed_flush(db_path: Path | None, queue: str | None) -> None:
    """Delete all failed job records."""

    with _cli_errors():
        _emit_lines(
            CONSUMER_CONTROLLER.flush_failed(FailedFlushCommand(db_path=db_path, queue=queue)),
        )


def _parse_args(raw: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as error:
        raise click.BadParameter(f"not valid JSON: {error}", param_hint="--args") from error
    if not isinstance(value, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")
    return value


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except (QueueConsumerError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    queue_consumer()
