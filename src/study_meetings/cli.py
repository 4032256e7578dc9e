"""Command-line interface for the recurrence engine."""

import argparse
import logging
import sys
from datetime import datetime, timezone

from dateutil.parser import isoparse
from pydantic import ValidationError

from study_meetings.config import get_settings
from study_meetings.recurrence import (
    DAY_NAMES_TO_NUMBERS,
    RecurrenceSpec,
    generate_occurrences,
)


def parse_days(value: str) -> list[int]:
    """Parse "1,3" or "monday,wed" into day numbers (Sunday=0)."""
    days = []
    for item in value.split(","):
        item = item.strip().lower()
        if not item:
            continue
        if item.lstrip("-").isdigit():
            days.append(int(item))
            continue
        matches = [num for name, num in DAY_NAMES_TO_NUMBERS.items() if name.startswith(item)]
        if len(item) < 2 or len(matches) != 1:
            raise argparse.ArgumentTypeError(f"Unknown day: {item!r}")
        days.append(matches[0])
    return days


def parse_datetime(value: str) -> datetime:
    try:
        return isoparse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO-8601 datetime: {value!r}") from e


def _add_spec_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("pattern", help="daily, weekly or monthly")
    parser.add_argument("--interval", type=int, default=1, help="Step between occurrences")
    parser.add_argument(
        "--days",
        type=parse_days,
        default=None,
        help="Days of week, e.g. 1,3 or mon,wed (Sunday=0)",
    )
    parser.add_argument("--until", type=parse_datetime, default=None, help="End date")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="study-meetings",
        description="Study Meetings - recurrence rules and occurrences for study groups",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_spec_arguments(subparsers.add_parser("validate", help="Check recurrence parameters"))
    _add_spec_arguments(subparsers.add_parser("rrule", help="Print the RRULE text"))
    _add_spec_arguments(subparsers.add_parser("describe", help="Print a readable summary"))

    next_parser = subparsers.add_parser("next", help="Next occurrence after now")
    _add_spec_arguments(next_parser)
    next_parser.add_argument("--start", type=parse_datetime, required=True)

    occurrences_parser = subparsers.add_parser("occurrences", help="List occurrences")
    _add_spec_arguments(occurrences_parser)
    occurrences_parser.add_argument("--start", type=parse_datetime, required=True)
    occurrences_parser.add_argument("--end", type=parse_datetime, required=True)
    occurrences_parser.add_argument("--max", type=int, default=52, dest="max_occurrences")

    return parser


def run(args: argparse.Namespace) -> int:
    spec = RecurrenceSpec(
        pattern=args.pattern,
        interval=args.interval,
        days_of_week=args.days,
        end_date=args.until,
    )

    errors = spec.check()
    if errors:
        for error in errors:
            print(f"error: {error}", file=sys.stderr)
        return 1

    if args.command == "validate":
        print("OK")
    elif args.command == "rrule":
        print(spec.to_rule())
    elif args.command == "describe":
        print(spec.describe())
    elif args.command == "next":
        occurrence = spec.next_occurrence(args.start)
        print(occurrence.isoformat() if occurrence else "none")
    elif args.command == "occurrences":
        until = args.until
        if until is not None and until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        for occurrence in generate_occurrences(
            args.start,
            args.end,
            spec.pattern,
            spec.interval,
            spec.days_of_week,
            args.max_occurrences,
        ):
            if until is not None and occurrence > until:
                break
            print(occurrence.isoformat())
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        level = get_settings().log_level
    except ValidationError:
        # Recurrence commands do not need the database or OAuth settings
        level = "INFO"
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    return run(args)


if __name__ == "__main__":
    sys.exit(main())
