"""
Verification Report Rendering

Renders a VerificationReport as JSON (machine), plain text (human) or CSV,
and maps the verdict to a process exit code.
"""

import csv
import io
from enum import Enum, IntEnum
from pathlib import Path
from typing import TextIO

import structlog

from statecheck.domain.models import (
    CountMismatch,
    MissingKey,
    ValueMismatch,
    VerificationReport,
    VerificationStatus,
    render_bytes,
)

logger = structlog.get_logger(__name__)


class ReportFormat(str, Enum):
    """Supported report output formats."""

    TEXT = "text"
    JSON = "json"
    CSV = "csv"


class ExitCode(IntEnum):
    """Process exit codes."""

    PASS = 0
    CONTENT_DIVERGENCE = 1
    INFRASTRUCTURE_FAILURE = 2


_EXIT_CODES = {
    VerificationStatus.PASS: ExitCode.PASS,
    VerificationStatus.INCONCLUSIVE: ExitCode.PASS,
    VerificationStatus.CONTENT_DIVERGENCE: ExitCode.CONTENT_DIVERGENCE,
    VerificationStatus.INFRASTRUCTURE_FAILURE: ExitCode.INFRASTRUCTURE_FAILURE,
}

_CSV_HEADER = [
    "kind", "replica", "baseline_replica", "key", "expected", "actual", "detail", "key_hex",
]


def exit_code(report: VerificationReport) -> ExitCode:
    """Map a report's verdict to the process exit code."""
    return _EXIT_CODES[report.status]


class ReportEmitter:
    """
    Renders verification reports.

    Has no side effects beyond writing output.
    """

    def render(self, report: VerificationReport, format: ReportFormat = ReportFormat.TEXT) -> str:
        """
        Render report in specified format.

        Raises:
            ValueError: If format not supported
        """
        format = ReportFormat(format)
        if format == ReportFormat.JSON:
            return self._generate_json(report)
        if format == ReportFormat.CSV:
            return self._generate_csv(report)
        if format == ReportFormat.TEXT:
            return self._generate_text(report)
        raise ValueError(f"Unsupported format: {format}")

    def emit(
        self,
        report: VerificationReport,
        stream: TextIO,
        format: ReportFormat = ReportFormat.TEXT,
        output_path: Path | None = None,
    ) -> ExitCode:
        """
        Write the rendered report and return the exit code.

        Args:
            report: Completed verification report
            stream: Destination for the rendering (usually stdout)
            format: Output format
            output_path: Optional file receiving the same rendering

        Returns:
            ExitCode: Process outcome for the report
        """
        content = self.render(report, format)
        stream.write(content)
        if not content.endswith("\n"):
            stream.write("\n")

        if output_path is not None:
            output_path = Path(output_path)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(content, encoding="utf-8")
            logger.info("Report written", path=str(output_path), format=ReportFormat(format).value)

        return exit_code(report)

    def _generate_json(self, report: VerificationReport) -> str:
        return report.model_dump_json(indent=2)

    def _generate_text(self, report: VerificationReport) -> str:
        lines = [f"Replica consistency verification: {report.status.value.upper()}"]
        if report.baseline_replica is not None:
            lines.append(f"Baseline replica: {report.baseline_replica}")

        if report.record_counts:
            lines.append("")
            lines.append("Record counts:")
            for replica, count in report.record_counts.items():
                lines.append(f"  [{replica}] {count}")

        if report.failures:
            lines.append("")
            lines.append(f"Replica failures ({len(report.failures)}):")
            for failure in report.failures:
                lines.append(f"  [{failure.replica}] {failure.error_code.value}: {failure.message}")

        if report.discrepancies:
            lines.append("")
            lines.append(f"Discrepancies ({len(report.discrepancies)}):")
            for discrepancy in report.discrepancies:
                lines.append(f"  {discrepancy.kind}: {discrepancy.describe()}")

        lines.append("")
        if report.status == VerificationStatus.PASS:
            lines.append("All replicas hold identical data.")
        elif report.status == VerificationStatus.INCONCLUSIVE:
            lines.append("Only one replica collected; nothing to compare against.")
        elif report.status == VerificationStatus.CONTENT_DIVERGENCE:
            lines.append("Replica data diverges.")
        else:
            lines.append("One or more replicas could not be read.")
        return "\n".join(lines) + "\n"

    def _generate_csv(self, report: VerificationReport) -> str:
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(_CSV_HEADER)

        for failure in report.failures:
            writer.writerow([
                failure.error_code.value.lower(),
                failure.replica,
                report.baseline_replica or "",
                "",
                "",
                "",
                failure.message,
                "",
            ])

        for discrepancy in report.discrepancies:
            if isinstance(discrepancy, CountMismatch):
                row = ["", str(discrepancy.baseline_count), str(discrepancy.replica_count)]
                key_hex = ""
            elif isinstance(discrepancy, MissingKey):
                row = [render_bytes(discrepancy.key), "", ""]
                key_hex = discrepancy.key_hex
            elif isinstance(discrepancy, ValueMismatch):
                row = [
                    render_bytes(discrepancy.key),
                    render_bytes(discrepancy.expected),
                    render_bytes(discrepancy.actual),
                ]
                key_hex = discrepancy.key_hex
            else:
                raise ValueError(f"Unknown discrepancy: {discrepancy!r}")
            writer.writerow([
                discrepancy.kind,
                discrepancy.replica,
                discrepancy.baseline_replica,
                *row,
                discrepancy.describe(),
                key_hex,
            ])

        return output.getvalue()
