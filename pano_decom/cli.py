"""
OVERVIEW:

Identifies decommissioned hosts and removes their address objects from Panorama. Hosts listed in an input
file are pinged; the ones that do not answer are matched against the address objects of every Device Group
(and Shared). Matched objects are stripped out of address groups, Security rules and NAT rules, then deleted.
A CSV report of the candidates is written first and nothing is changed until the operator types DELETE.

Python side:
- Prompts for anything not given on the command line (Panorama host, username), password via getpass
- Reads hosts from a CSV (first column) or any text file
- Pings all hosts concurrently, indexes and matches objects concurrently
- Writes a candidate CSV report and an after-removal outcome CSV report
- Logs progress to console and to a timestamped log file

Panorama side:
- Uses pan-os-python only
- Edits and deletes land in the CANDIDATE config
- NO commit is performed; review and commit from the GUI or CLI
"""

import argparse
import functools
import getpass
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from panos.errors import PanDeviceError

from pano_decom.errors import DecomError
from pano_decom.hosts import read_hosts
from pano_decom.liveness import PROBE_COUNT, PROBE_TIMEOUT, probe
from pano_decom.models import ALL_GROUPINGS, DecomResult
from pano_decom.panorama import PanoramaPolicyStore, WriteRateLimiter
from pano_decom.pipeline import execute, plan
from pano_decom.reports import setup_logging, write_candidate_report, write_outcome_report


@dataclass
class Settings:
    hosts_file: str
    panorama: str
    username: str
    password: str
    scope: Optional[str]
    workers: Optional[int]
    count: int
    timeout: float
    max_writes: int
    pause: float
    min_spacing: float
    assume_yes: bool


def argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pano-decom",
        description="Remove address objects of unreachable hosts from Panorama (candidate config, no commit).",
    )
    parser.add_argument("hosts_file", help="CSV (first column) or text file listing host IP addresses")
    parser.add_argument("--panorama", help="Panorama management IP/hostname (prompted if omitted)")
    parser.add_argument("--username", help="Panorama username (prompted if omitted)")
    parser.add_argument("--scope", help=f"Device Group name, 'shared' or '{ALL_GROUPINGS}' (menu if omitted)")
    parser.add_argument("--workers", type=int, help="Bound on concurrent tasks per phase (default: one per item)")
    parser.add_argument("--count", type=int, default=PROBE_COUNT, help="Echo requests per host [%(default)s]")
    parser.add_argument("--timeout", type=float, default=PROBE_TIMEOUT, help="Probe timeout in seconds [%(default)s]")
    parser.add_argument("--max-writes", type=int, default=25, help="Max writes before pause, 0 disables [%(default)s]")
    parser.add_argument("--pause", type=float, default=5.0, help="Pause duration in seconds [%(default)s]")
    parser.add_argument("--min-spacing", type=float, default=0.2, help="Minimum seconds between writes [%(default)s]")
    parser.add_argument("--yes", dest="assume_yes", action="store_true", help="Skip the DELETE confirmation")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug detail to console and log file")
    return parser


def prompt_required(prompt: str) -> str:
    value = input(f"{prompt}: ").strip()
    if not value:
        raise SystemExit(f"ERROR: {prompt} cannot be blank.")
    return value


def resolve_settings(args: argparse.Namespace) -> Settings:
    if args.workers is not None and args.workers <= 0:
        raise SystemExit("ERROR: --workers must be a positive integer.")
    if args.count < 1:
        raise SystemExit("ERROR: --count must be at least 1.")
    if args.timeout <= 0:
        raise SystemExit("ERROR: --timeout must be greater than 0.")

    panorama = args.panorama or prompt_required("Panorama management IP/hostname")
    username = args.username or prompt_required("Username")
    password = getpass.getpass("Password: ")
    if not password:
        raise SystemExit("ERROR: Password cannot be blank.")

    return Settings(
        hosts_file=args.hosts_file,
        panorama=panorama,
        username=username,
        password=password,
        scope=args.scope,
        workers=args.workers,
        count=args.count,
        timeout=args.timeout,
        max_writes=args.max_writes,
        pause=args.pause,
        min_spacing=args.min_spacing,
        assume_yes=args.assume_yes,
    )


def choose_scope(groupings: List[str], requested: Optional[str]) -> str:
    choices = list(groupings) + [ALL_GROUPINGS]
    if requested:
        if requested not in choices:
            raise DecomError(f"Scope '{requested}' is not one of: {', '.join(choices)}")
        return requested

    print("\n--- Removal scope ---")
    for i, name in enumerate(choices, start=1):
        print(f"  {i:>3}) {name}")
    raw = input(f"Select scope [1-{len(choices)}]: ").strip()
    try:
        index = int(raw)
    except ValueError:
        raise DecomError(f"Invalid scope selection: '{raw}'") from None
    if not 1 <= index <= len(choices):
        raise DecomError(f"Invalid scope selection: {index}")
    return choices[index - 1]


def log_summary(logger: logging.Logger, result: DecomResult, write_count: int) -> None:
    logger.info("=== Removal Summary (candidate config only; no commit performed) ===")
    logger.info("Scope: %s", result.scope)
    logger.info("Fresh hosts: %d | Stale hosts: %d", len(result.plan.partition.fresh), len(result.plan.partition.stale))
    logger.info("Matched objects: %d", len(result.plan.matched))
    for stage, counts in result.summary().items():
        logger.info("%-18s OK: %d | FAILED: %d", stage, counts["OK"], counts["FAILED"])
    for failure in result.failures:
        logger.warning(
            "FAILED [%s] %s (%s): %s", failure.grouping, failure.object_name, failure.stage.value, failure.detail
        )
    logger.info("Write calls made: %d", write_count)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = argument_parser().parse_args(argv)
    logger, log_path = setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    logger.info("=== Panorama Stale Host Decommissioner (all Device Groups + Shared) ===")

    try:
        settings = resolve_settings(args)
        hosts = read_hosts(settings.hosts_file)

        logger.info(
            "User rate limits: max_writes=%s, pause_seconds=%s, min_spacing=%s",
            settings.max_writes, settings.pause, settings.min_spacing,
        )
        limiter = WriteRateLimiter(
            max_writes_before_pause=settings.max_writes,
            pause_seconds=settings.pause,
            min_seconds_between_writes=settings.min_spacing,
        )
        store = PanoramaPolicyStore(
            hostname=settings.panorama,
            username=settings.username,
            password=settings.password,
            limiter=limiter,
        )
        store.connect()

        groupings = store.list_groupings()
        scope = choose_scope(groupings, settings.scope)
        logger.info("Removal scope: %s", scope)

        probe_fn = functools.partial(probe, count=settings.count, timeout=settings.timeout)
        decom_plan = plan(store, hosts, probe_fn=probe_fn, max_workers=settings.workers, groupings=groupings)

        for err in decom_plan.index_errors:
            logger.warning("Index incomplete: %s", err)

        report_host = settings.panorama.replace(":", "_")
        if not decom_plan.matched:
            logger.info("No address objects reference the unresponsive hosts. Nothing to remove.")
            logger.info("Log: %s", log_path)
            return 0

        candidates = write_candidate_report(report_host, decom_plan.matched, logger)

        if not settings.assume_yes:
            print("\n============================================================")
            print(f"CANDIDATE REPORT GENERATED: {candidates}")
            print(f"{len(decom_plan.matched)} object(s) will be removed from scope '{scope}'.")
            print("This tool WILL NOT commit.")
            print("============================================================\n")
            confirm = input("Type 'DELETE' to proceed with removal, or anything else to exit: ").strip()
            if confirm != "DELETE":
                logger.info("User did not confirm removal. Exiting without changes.")
                logger.info("Log: %s", log_path)
                return 0

        result = execute(store, decom_plan, scope, max_workers=settings.workers)
        outcome_report = write_outcome_report(report_host, result.outcomes, logger)

        log_summary(logger, result, limiter.write_count)
        logger.info("Candidate report: %s", candidates)
        logger.info("Outcome report  : %s", outcome_report)
        logger.info("Log: %s", log_path)
        logger.info("*** Host(s) cleanup completed! Review and commit the changes. ***")
        return 0

    except (DecomError, PanDeviceError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("Aborted by user.")
        return 1
    except Exception as e:
        logger.exception("Unhandled exception: %s", e)
        logger.error("Exiting. Log file: %s", log_path)
        return 1


if __name__ == "__main__":
    sys.exit(main())
