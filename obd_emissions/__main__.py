"""CLI entry point: ``python -m obd_emissions [--dry-run] [--ticks N] [--replay PATH]``."""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog


def _configure_logging(level: str, fmt: str) -> None:
    """Set up structlog with console or JSON rendering."""
    import logging

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
    )

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="obd_emissions",
        description="Record an OBD-II trip and estimate its CO2 emissions",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log the finished trip locally; never POST it",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Stop after N ticks (default: run until interrupted)",
    )
    parser.add_argument(
        "--replay",
        metavar="PATH",
        default=None,
        help="Replay a python-OBD TSV log instead of polling an adapter",
    )
    return parser


def main() -> None:
    args = _build_parser().parse_args()

    # Load settings from env / .env file first, then override with CLI flags.
    from obd_emissions.config import TrackerSettings

    settings = TrackerSettings()
    if args.dry_run is True:
        settings.dry_run = True

    _configure_logging(settings.log_level, settings.log_format)

    logger = structlog.get_logger("obd_emissions")
    logger.info(
        "tracker_starting",
        version=__import__("obd_emissions").__version__,
        mode="replay" if args.replay else (
            "simulation" if settings.is_simulation else "live"
        ),
        dry_run=settings.dry_run,
        ticks=args.ticks,
        port=settings.obd_port,
        vehicle_id=settings.vehicle_id,
    )

    if args.replay:
        from obd_emissions.log_replay import replay_log_file

        try:
            result = replay_log_file(args.replay)
        except (OSError, ValueError):
            logger.exception("replay_failed", path=args.replay)
            sys.exit(1)
        summary = result.summary
        avg = summary.avg_co2_g_per_km
        print(
            f"Distance: {summary.distance_km:.2f} km\n"
            f"CO2:      {summary.total_co2_g / 1000.0:.2f} kg\n"
            f"Average:  {f'{avg:.1f} g/km' if avg is not None else 'n/a'}\n"
            f"Stale:    {result.stale_ticks}/{len(result.ticks)} ticks"
        )
        return

    from obd_emissions.summary_formatter import format_trip_report, render_text
    from obd_emissions.trip_loop import run_trip

    try:
        record = asyncio.run(run_trip(settings, max_ticks=args.ticks))
    except KeyboardInterrupt:
        logger.info("tracker_interrupted")
        sys.exit(0)

    print(render_text(format_trip_report(record.model_dump())))


if __name__ == "__main__":
    main()
