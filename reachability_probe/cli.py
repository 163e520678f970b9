"""One-shot command line probe.

Usage examples:
  reachability-probe ws-001 ws-002 srv-db01
  reachability-probe --filter "WS-*" --timeout-ms 250
  reachability-probe --method tcp --json 10.0.0.5 10.0.0.6
"""

import argparse
import asyncio
import json
import logging
import sys

from .checks import build_primitive
from .config import settings
from .directory import DirectoryError, build_directory
from .prober import PlatformUnsupported, ProbeReport, ReachabilityProber, resolve_targets

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 2


def build_argparser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="reachability-probe",
        description="Print the hosts that answer a reachability check",
    )
    ap.add_argument(
        "hosts", nargs="*", help="Hosts to check (default: configured directory)"
    )
    ap.add_argument(
        "--filter", dest="name_filter", default="*",
        help="Wildcard applied to directory computer names",
    )
    ap.add_argument(
        "--concurrency", type=int, default=settings.concurrency_limit,
        help="Maximum checks in flight",
    )
    ap.add_argument(
        "--timeout-ms", type=int, default=settings.per_check_timeout_ms,
        help="Deadline for each check (milliseconds)",
    )
    ap.add_argument(
        "--overall-timeout-ms", type=int, default=settings.overall_timeout_ms,
        help="Deadline for the whole probe (0 disables)",
    )
    ap.add_argument(
        "--method", default=settings.check_method, choices=["icmp", "tcp"],
        help="Check method",
    )
    ap.add_argument("--json", action="store_true", help="Print the full report as JSON")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


async def run(args: argparse.Namespace) -> ProbeReport:
    prober = ReachabilityProber(
        build_primitive(args.method, settings.tcp_ports_list),
        concurrency_limit=args.concurrency,
        per_check_timeout_ms=args.timeout_ms,
        local_host=settings.local_host or None,
        overall_timeout_ms=args.overall_timeout_ms or None,
    )
    prober.ensure_supported()

    directory = None if args.hosts else build_directory(settings)
    targets = await resolve_targets(args.hosts or None, directory, args.name_filter)
    return await prober.probe(targets)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)
    if args.concurrency < 1:
        ap.error("--concurrency must be at least 1")
    if args.timeout_ms <= 0:
        ap.error("--timeout-ms must be positive")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        report = asyncio.run(run(args))
    except (PlatformUnsupported, DirectoryError) as e:
        logger.error(str(e))
        return EXIT_FAILURE

    if args.json:
        print(
            json.dumps(
                {
                    "probe_id": report.probe_id,
                    "reachable": report.reachable,
                    "duration_ms": report.duration_ms,
                    "outcomes": [o.to_dict() for o in report.outcomes],
                },
                indent=2,
            )
        )
    else:
        for host in report.reachable:
            print(host)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
