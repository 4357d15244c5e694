"""
Rightsizer CLI -- unattended right-sizing runs.

Defaults come from RIGHTSIZER_* environment variables; every flag given
on the command line overrides them. Runs read-only unless --apply.

Exit codes: 0 ok, 1 at least one resource failed, 2 configuration or
connection error.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .core.config import RightsizeConfig
from .core.errors import ConfigurationError, ProviderConnectionError
from .core.logging import configure_logging, get_logger
from .providers.factory import ProviderFactory
from .report.writers import get_writer
from .runner import run_rightsizing

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rightsizer",
        description="Right-size vSphere VM CPU/memory from vROps recommendations",
    )

    # Connections
    parser.add_argument("--vcenter", dest="vcenter_host", help="vCenter host")
    parser.add_argument("--vrops", dest="vrops_host", help="vROps host")
    parser.add_argument("--username", help="Account used for both vCenter and vROps")
    parser.add_argument("--password", help="Password (prefer RIGHTSIZER_PASSWORD)")
    parser.add_argument("--auth-source", dest="vrops_auth_source", help="vROps auth source")
    parser.add_argument("--no-verify-ssl", dest="verify_ssl", action="store_false", default=None,
                        help="Skip TLS certificate verification")

    # Decision
    parser.add_argument("--tolerance", dest="tolerance_fraction", type=float,
                        help="Minimum relative deviation before resizing (default: 0.15)")
    parser.add_argument("--buffer", dest="buffer_fraction", type=float,
                        help="Fraction of the gap to the recommendation applied (default: 0.15)")
    parser.add_argument("--lookback-days", dest="lookback_days", type=int,
                        help="Monitoring query window in days (default: 5)")

    # Scheduling
    parser.add_argument("--max-jobs", dest="max_concurrent_jobs", type=int,
                        help="Concurrent resource workflows (default: 4)")
    parser.add_argument("--max-run-minutes", dest="max_run_minutes", type=float,
                        help="Stop admitting new jobs after this many minutes (default: 240)")
    parser.add_argument("--shutdown-timeout", dest="shutdown_timeout_seconds", type=float,
                        help="Seconds to wait for power-off (default: 120)")
    parser.add_argument("--startup-timeout", dest="startup_timeout_seconds", type=float,
                        help="Seconds to wait for guest tools after power-on (default: 120)")

    # Scope
    parser.add_argument("--groups", help="Comma-separated group names to process (default: all)")
    parser.add_argument("--vms", help="Comma-separated VM names to restrict the run to")
    parser.add_argument("--no-groups", action="store_true",
                        help="Ignore tag groups and process every VM as one batch")
    parser.add_argument("--report-excluded", dest="report_excluded", action="store_true", default=None,
                        help="Also evaluate (never resize) excluded group members")

    # Mode / output
    parser.add_argument("--apply", action="store_true",
                        help="Read-write mode: power-cycle and resize VMs")
    parser.add_argument("--output", dest="report_path", help="Report file (default: rightsize_report.csv)")
    parser.add_argument("--format", dest="report_format", choices=["csv", "json"], help="Report format")
    parser.add_argument("--check", action="store_true", help="Only check provider connectivity")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument("--log-format", choices=["text", "json"], default=None)
    return parser


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def config_from_args(args: argparse.Namespace, base: Optional[RightsizeConfig] = None) -> RightsizeConfig:
    base = base or RightsizeConfig.from_env()
    overrides = {
        name: getattr(args, name)
        for name in (
            "vcenter_host", "vrops_host", "username", "password", "vrops_auth_source", "verify_ssl",
            "tolerance_fraction", "buffer_fraction", "lookback_days", "max_concurrent_jobs",
            "max_run_minutes", "shutdown_timeout_seconds", "startup_timeout_seconds",
            "report_excluded", "report_path", "report_format",
        )
    }
    if args.apply:
        overrides["read_only"] = False
    return base.with_overrides(**overrides).validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level or args.log_format:
        configure_logging(
            level=args.log_level or "INFO",
            fmt=args.log_format or "text",
            force=True,
        )

    try:
        config = config_from_args(args)
        if args.check:
            statuses = asyncio.run(ProviderFactory.get_all_statuses(config))
            print(json.dumps(statuses, indent=2, default=str))
            ok = all(s.get("authenticated") for k, s in statuses.items() if not k.startswith("_"))
            return EXIT_OK if ok else EXIT_FATAL

        report = asyncio.run(run_rightsizing(
            config,
            group_names=_split(args.groups),
            resource_names=_split(args.vms),
            grouped=not args.no_groups,
        ))
    except (ConfigurationError, ProviderConnectionError) as e:
        logger.error(f"Fatal: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL

    path = get_writer(config.report_format, config.report_path).write(report)

    print("\n--- Right-sizing Summary ---")
    print(f"Mode: {'read-only' if report.read_only else 'read-write'}")
    print(f"Resources evaluated: {len(report.rows)} (failed: {report.failed_count}, "
          f"abandoned at deadline: {len(report.abandoned)})")
    print(f"CPU: +{report.cpu_added} / -{report.cpu_reclaimed}")
    print(f"Memory MB: +{report.memory_added_mb:g} / -{report.memory_reclaimed_mb:g}")
    print(f"Report: {path}")
    print("----------------------------")

    return EXIT_FAILURES if report.failed_count else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
