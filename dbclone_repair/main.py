import argparse
import json
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path

from dbclone_repair.config import settings
from dbclone_repair.config.settings import STORE_MODES
from dbclone_repair.logging import LoggerFactory, operation_context, setup_logging
from dbclone_repair.services.repair import build_engine, normalize_hostnames
from dbclone_repair.storage.exceptions import InvalidInvocationError


EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_INVALID = 2


def build_parser():
    parser = argparse.ArgumentParser(
        prog="dbclone-repair",
        description="Re-mount and re-attach database clones after their disks were detached",
    )
    parser.add_argument("hosts", nargs="+", metavar="HOST", help="Host(s) whose clones to repair")
    parser.add_argument("--store-mode", choices=STORE_MODES, help="Where the clone registry lives")
    parser.add_argument("--store-server", help="SQL Server instance holding the clone registry")
    parser.add_argument("--store-database", help="Database holding the clone registry")
    parser.add_argument("--store-path", help="Directory of the JSON clone registry (file mode)")
    parser.add_argument("--sql-username", help="SQL login (disables Windows authentication)")
    parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Repair up to N hosts at once (clones on one instance stay serialized)",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Enable trace output (very verbose)")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    return parser


def _overrides_from_args(args) -> dict:
    overrides = {
        "store_mode": args.store_mode,
        "store_server": args.store_server,
        "store_database": args.store_database,
        "store_path": args.store_path,
        "sql_username": args.sql_username,
    }
    if args.sql_username:
        overrides["trusted_connection"] = False
    return overrides


@contextmanager
def cancel_on_interrupt(cancel_event):
    """Turn Ctrl-C into a cancellation request while the block runs.

    The clone being repaired finishes, then the engine returns the outcomes
    collected so far. Only the main thread can install signal handlers.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def format_report(report) -> list[str]:
    lines = []
    for outcome in report:
        line = f"{outcome.host_name:<20} {outcome.label():<40} {outcome.status.value}"
        if outcome.message:
            line += f"  {outcome.message}"
        lines.append(line)
    lines.append(report.summary_line())
    return lines


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = LoggerFactory.for_system()
    settings.load_settings()

    try:
        hosts = normalize_hostnames(args.hosts)
        config = settings.resolve_store_config(_overrides_from_args(args))
        parallel = settings.resolve_parallel_hosts(args.parallel)
        engine = build_engine(config, parallel_hosts=parallel)
    except InvalidInvocationError as error:
        log.error(str(error))
        print(f"error: {error}", file=sys.stderr)
        return EXIT_INVALID

    cancel_event = threading.Event()
    with cancel_on_interrupt(cancel_event), operation_context("repair", hosts=hosts):
        report = engine.repair(hosts, cancel_event=cancel_event)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        for line in format_report(report):
            print(line)
    return EXIT_OK if report.ok and not report.cancelled else EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())
