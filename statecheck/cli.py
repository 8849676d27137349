"""Command line entry point for replica consistency verification."""

import argparse
import sys
from collections.abc import Sequence

import structlog

from statecheck.config import load_settings
from statecheck.domain.exceptions import ConfigurationError, VerificationError
from statecheck.domain.reports import ExitCode, ReportEmitter, ReportFormat
from statecheck.logging_config import configure_logging
from statecheck.verification.pipeline import run_verification

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statecheck",
        description="Verify that replica state-machine stores hold identical data",
    )
    parser.add_argument(
        "replicas",
        nargs="*",
        help="Replica ids (ports, host names or labels); default from settings",
    )
    parser.add_argument("--base-dir", default=None, help="Directory holding one sub-directory per replica")
    parser.add_argument("--state-machine-dir", default=None, help="Store directory name inside each replica")
    parser.add_argument("--baseline", default=None, help="Replica to compare the others against")
    parser.add_argument(
        "--open-timeout",
        type=float,
        default=None,
        help="Seconds allowed for opening one store (0 disables the bound)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Reader thread pool size")
    parser.add_argument(
        "--format",
        choices=[f.value for f in ReportFormat],
        default=None,
        help="Report format written to stdout",
    )
    parser.add_argument("--output", default=None, help="Also write the report to this file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
    )
    parser.add_argument("--log-format", choices=["json", "text"], default=None)
    parser.add_argument(
        "--no-record-log",
        action="store_true",
        help="Do not log every key/value read",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run verification and return exit code.

    Returns:
        0 if every replica holds the same data (or only one was compared).
        1 if replica data diverges.
        2 if a replica could not be read, the configuration is invalid, or
          the report could not be written.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or "INFO", args.log_format or "text")

    try:
        settings = load_settings(
            replica_ids=args.replicas or None,
            base_directory=args.base_dir,
            state_machine_dirname=args.state_machine_dir,
            baseline_replica=args.baseline,
            open_timeout_seconds=args.open_timeout,
            max_workers=args.workers,
            report_format=args.format,
            report_path=args.output,
            log_level=args.log_level,
            log_format=args.log_format,
            log_records=False if args.no_record_log else None,
        )
    except ConfigurationError as e:
        print(f"statecheck: {e.message}", file=sys.stderr)
        return int(ExitCode.INFRASTRUCTURE_FAILURE)

    configure_logging(settings.log_level, settings.log_format)

    try:
        report = run_verification(settings)
        code = ReportEmitter().emit(
            report,
            sys.stdout,
            format=ReportFormat(settings.report_format),
            output_path=settings.report_path,
        )
    except ConfigurationError as e:
        print(f"statecheck: {e.message}", file=sys.stderr)
        return int(ExitCode.INFRASTRUCTURE_FAILURE)
    except (VerificationError, OSError) as e:
        # exit 1 is reserved for diverging data
        logger.error("Verification aborted", error=str(e), exception_type=type(e).__name__)
        print(f"statecheck: {e}", file=sys.stderr)
        return int(ExitCode.INFRASTRUCTURE_FAILURE)

    logger.info("Verification exit", status=report.status.value, exit_code=int(code))
    return int(code)


if __name__ == "__main__":
    sys.exit(main())
