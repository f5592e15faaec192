"""
Command line entry point.

    callbatch INPUT.csv [OUTPUT.csv]

Loads the call records, deploys the application, runs every call through
the engine queue, writes the report and exits once all jobs have settled.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from functools import partial
from typing import Callable

import anyio

from callbatch.config import Settings, get_settings
from callbatch.engine.factory import get_engine
from callbatch.engine.interface import CallingEngine, EngineError
from callbatch.jobs.coordinator import JobCoordinator
from callbatch.jobs.models import new_job_key
from callbatch.jobs.shutdown import ShutdownTimer
from callbatch.jobs.store import CorrelationStore
from callbatch.records.loader import RecordLoader
from callbatch.reports.writer import ReportSchema, ReportWriter
from callbatch.shared.exceptions import RecordLoadError, RecordParseError
from callbatch.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)

REPORT_NAME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def default_report_path(now: datetime | None = None) -> str:
    """Report file name derived from the current local time."""
    return f"{(now or datetime.now()).strftime(REPORT_NAME_FORMAT)}.csv"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callbatch",
        description="Place outbound AI calls for every row of a CSV file and report the outcomes.",
    )
    parser.add_argument("input", help="CSV file with one call record per row")
    parser.add_argument(
        "output",
        nargs="?",
        default=None,
        help="Report CSV path (default: <YYYY-MM-DD_HH-mm-ss>.csv)",
    )
    return parser


def resolve_output_path(output: str | None, now: datetime | None = None) -> str:
    if output:
        return output
    path = default_report_path(now)
    print("path for report file was not specified")
    print(f"report will be saved as {path}")
    return path


async def run(
    input_path: str,
    output_path: str,
    settings: Settings,
    engine: CallingEngine | None = None,
    shutdown: ShutdownTimer | None = None,
    key_factory: Callable[[], str] = new_job_key,
) -> int:
    """Run one batch. Returns a process exit code unless the shutdown timer exits first."""
    engine = engine or get_engine(settings)
    shutdown = shutdown or ShutdownTimer(delay_seconds=settings.shutdown_grace_seconds)

    try:
        application = await engine.deploy(settings.project_path, settings.group_name)
    except EngineError as e:
        logger.error("Deployment failed: %s: %s. Reason %s", e.name, e, e.reason)
        await engine.close()
        return 1

    loader = RecordLoader(
        delimiter=settings.csv_delimiter,
        quotechar=settings.csv_quotechar,
        encoding=settings.csv_encoding,
    )
    try:
        records = await anyio.to_thread.run_sync(partial(loader.load, input_path))
    except (RecordLoadError, RecordParseError) as e:
        logger.error("Cannot load call records: %s", e, extra={"input": input_path})
        await application.stop()
        await engine.close()
        return 1

    writer = ReportWriter(output_path, ReportSchema.from_fieldnames(loader.fieldnames))
    try:
        with writer:
            coordinator = JobCoordinator(
                application,
                CorrelationStore(),
                writer,
                settings,
                key_factory=key_factory,
            )
            coordinator.enqueue(records)
            await application.start(concurrency=settings.concurrency)
            await coordinator.wait_drained()
    finally:
        await application.stop()
        await engine.close()

    logger.info(
        "Report written",
        extra={"path": output_path, "rows": writer.rows_written, "summary": coordinator.summary()},
    )
    await shutdown.fire()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    setup_logging(settings)

    output_path = resolve_output_path(args.output)
    sys.exit(asyncio.run(run(args.input, output_path, settings)))


if __name__ == "__main__":
    main()
