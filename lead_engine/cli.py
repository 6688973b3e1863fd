"""Command line interface for running and inspecting lead acquisition jobs."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import ConfigurationError, load_configuration
from .errors import LeadEngineError
from .export import build_export_filename, write_export
from .factory import build_engine
from .models import Job, LeadList
from .orchestrator import JobEngine, JobRunner

LOGGER = logging.getLogger(__name__)


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Run simulated lead acquisition jobs and manage lead lists")
    parser.add_argument("--config", help="Path to an engine configuration file (YAML or JSON)")
    parser.add_argument("--store", help="Path to the JSON file holding job history and lists")
    parser.add_argument("--seed", type=int, default=None, help="Seed for repeatable record generation")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Start a job and drive it to completion")
    run.add_argument("location", help='Where to search, e.g. "New York, NY"')
    run.add_argument("keyword", help='Business type, e.g. "restaurants"')
    run.add_argument("--count", type=int, default=500, help="Number of records to collect")
    run.add_argument("--list", dest="list_name", help="Lead list the results are added to")
    run.add_argument(
        "--tick-interval",
        type=float,
        default=None,
        help="Seconds between progress steps (defaults to the configured cadence)",
    )
    run.add_argument("--output", help="Export file (.csv, .tsv or .xlsx) or directory for an auto-named CSV")

    history = subparsers.add_parser("history", help="Show finished jobs, most recent first")
    history.add_argument("--limit", type=int, default=None)

    subparsers.add_parser("lists", help="Show lead lists")

    export_list = subparsers.add_parser("export-list", help="Export every retained record of a lead list")
    export_list.add_argument("name")
    export_list.add_argument("output", help="Destination file (.csv, .tsv or .xlsx)")

    delete_job = subparsers.add_parser("delete-job", help="Remove a job from history")
    delete_job.add_argument("job_id")

    delete_list = subparsers.add_parser("delete-list", help="Remove a lead list")
    delete_list.add_argument("name")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _format_job(job: Job) -> str:
    return (
        f"{job.id}  {job.status.value:<9}  {job.keyword} in {job.location}  "
        f"{job.found_count}/{job.target_count} records  "
        f"{job.aggregates.with_email} with email  avg rating {job.aggregates.avg_rating:.1f}"
    )


def _format_list(lead_list: LeadList) -> str:
    return f"{lead_list.name}  {lead_list.total_records} records from {len(lead_list.job_ids)} job(s)"


def _run_job(engine: JobEngine, args: argparse.Namespace) -> int:
    job = engine.start_job(args.location, args.keyword, args.count, args.list_name)
    runner = JobRunner(engine, tick_interval=args.tick_interval)
    try:
        job = runner.run_to_completion(
            job.id,
            progress_callback=lambda current: LOGGER.info(
                "%s: %.0f%% (%s records, ~%ss left)",
                current.id,
                current.progress,
                current.found_count,
                current.estimated_seconds_remaining(runner.tick_interval, engine.settings.mean_progress_step),
            ),
        )
    finally:
        runner.shutdown()

    print(_format_job(job))
    if args.output:
        destination = Path(args.output)
        if destination.is_dir():
            destination = destination / build_export_filename(job.location, job.keyword, job.list_name)
        write_export(job.results, destination)
        LOGGER.info("Exported %s records to %s", job.found_count, destination.resolve())
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        config = load_configuration(args.config) if args.config else {}
        engine = build_engine(config, store_path=args.store, seed=args.seed)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 1

    try:
        if args.command == "run":
            return _run_job(engine, args)
        if args.command == "history":
            jobs = engine.list_job_history(args.limit)
            if not jobs:
                print("No jobs in history.")
            for job in jobs:
                print(_format_job(job))
            return 0
        if args.command == "lists":
            lists = engine.list_all_lists()
            if not lists:
                print("No lead lists.")
            for lead_list in lists:
                print(_format_list(lead_list))
            return 0
        if args.command == "export-list":
            records = engine.list_records(args.name)
            destination = write_export(records, args.output)
            LOGGER.info("Exported %s records from %r to %s", len(records), args.name, destination.resolve())
            return 0
        if args.command == "delete-job":
            engine.delete_job(args.job_id)
            return 0
        if args.command == "delete-list":
            engine.delete_list(args.name)
            return 0
    except LeadEngineError as exc:
        LOGGER.error("%s", exc)
        return 1
    return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
