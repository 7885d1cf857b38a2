"""
Report generation for lokiload runs.

This module turns a RunResult into a RunReport with a pass/fail verdict
against a maximum failure rate, and renders it as JSON or Markdown.
"""

import json
import platform
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from lokiload import __version__

from .config import RunConfig
from .loki_api import split_credentials
from .runner import RunResult


@dataclass
class RunnerHostInfo:
    """Information about the host the load was generated from."""

    os_name: str = field(default_factory=lambda: platform.system())
    os_version: str = field(default_factory=lambda: platform.release())
    python_version: str = field(default_factory=lambda: platform.python_version())
    hostname: str = field(default_factory=lambda: platform.node())
    lokiload_version: str = __version__

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "os": self.os_name,
            "os_version": self.os_version,
            "python_version": self.python_version,
            "hostname": self.hostname,
            "lokiload_version": self.lokiload_version,
        }


@dataclass
class RunReport:
    """
    Complete report of one run.

    Attributes:
        run_id: Unique report id
        timestamp: When the run started
        config: Configuration the run used
        result: Run outcome with merged stats
        max_failure_rate: Failure rate threshold (0-1)
        host: Runner host information
    """

    config: dict[str, Any]
    result: dict[str, Any]
    max_failure_rate: float = 0.01
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=datetime.now)
    host: RunnerHostInfo = field(default_factory=RunnerHostInfo)

    @property
    def stats(self) -> dict[str, Any]:
        return self.result.get("stats", {})

    @property
    def failure_rate(self) -> float:
        return float(self.stats.get("failure_rate", 0.0))

    @property
    def passed(self) -> bool:
        """Whether the run stayed within the failure threshold."""
        return (
            self.stats.get("total_checks", 0) > 0
            and self.failure_rate <= self.max_failure_rate
            and not self.result.get("errors")
        )

    @property
    def overall_status(self) -> str:
        return "passed" if self.passed else "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.overall_status,
            "max_failure_rate": self.max_failure_rate,
            "host": self.host.to_dict(),
            "config": self.config,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunReport":
        host_data = data.get("host", {})
        return cls(
            config=data.get("config", {}),
            result=data.get("result", {}),
            max_failure_rate=data.get("max_failure_rate", 0.01),
            run_id=data.get("run_id", ""),
            timestamp=datetime.fromisoformat(data["timestamp"]) if "timestamp" in data else datetime.now(),
            host=RunnerHostInfo(
                os_name=host_data.get("os", ""),
                os_version=host_data.get("os_version", ""),
                python_version=host_data.get("python_version", ""),
                hostname=host_data.get("hostname", ""),
                lokiload_version=host_data.get("lokiload_version", ""),
            ),
        )


class RunReporter:
    """
    Generates run reports in JSON and Markdown.

    Example:
        reporter = RunReporter("results")
        report = reporter.create_report(result, config)
        reporter.save_report(report)
    """

    def __init__(self, output_dir: Optional[Path | str] = None):
        """Initialize the reporter.

        Args:
            output_dir: Directory to save reports (default: ./results)
        """
        self.output_dir = Path(output_dir) if output_dir else Path("./results")

    def create_report(self, result: RunResult, config: RunConfig) -> RunReport:
        """Create a report from a run result."""
        data = config.to_dict()
        # Reports are written to disk; keep basic auth secrets out of them
        data["loki"]["url"] = split_credentials(data["loki"]["url"])[0]
        return RunReport(
            config=data,
            result=result.to_dict(),
            max_failure_rate=config.runner.max_failure_rate,
            timestamp=result.start_time,
        )

    def to_json(self, report: RunReport, indent: int = 2) -> str:
        return json.dumps(report.to_dict(), indent=indent, default=str)

    def to_markdown(self, report: RunReport) -> str:
        """Convert report to Markdown format."""
        status_icon = "✅" if report.passed else "❌"
        stats = report.stats
        result = report.result

        lines = [
            "# Loki Load Test Report",
            "",
            f"**Run ID**: {report.run_id}",
            f"**Timestamp**: {report.timestamp.isoformat()}",
            "",
            "## Summary",
            "",
            f"- **Status**: {status_icon} {report.overall_status.upper()}",
            f"- **Scenario**: {result.get('scenario', '')}",
            f"- **Virtual Users**: {result.get('vus', 0)}",
            f"- **Duration**: {result.get('duration_seconds', 0.0):.2f} seconds",
            f"- **Target**: {report.config.get('loki', {}).get('url', '')}",
            "",
            "### Totals",
            "",
            "| Metric | Value |",
            "|--------|-------|",
            f"| Iterations | {stats.get('iterations', 0)} |",
            f"| Checks | {stats.get('total_checks', 0)} |",
            f"| Failed Checks | {stats.get('failed_checks', 0)} |",
            f"| Failure Rate | {report.failure_rate * 100:.2f}% (max {report.max_failure_rate * 100:.2f}%) |",
            f"| Pushed Bytes | {stats.get('client_uncompressed_bytes', 0)} |",
            f"| Pushed Lines | {stats.get('client_lines', 0)} |",
            f"| Bytes Processed | {stats.get('bytes_processed_total', 0)} |",
            f"| Lines Processed | {stats.get('lines_processed_total', 0)} |",
            "",
        ]

        checks = stats.get("checks", {})
        if checks:
            lines.extend([
                "## Checks",
                "",
                "| Check | Passes | Fails | Pass Rate | p50 (ms) | p90 (ms) | p99 (ms) |",
                "|-------|--------|-------|-----------|----------|----------|----------|",
            ])
            for name, check in checks.items():
                lines.append(
                    f"| {name} | {check['passes']} | {check['fails']} | "
                    f"{check['pass_rate_percent']:.1f}% | {check['p50_ms']} | "
                    f"{check['p90_ms']} | {check['p99_ms']} |"
                )
            lines.append("")

        if result.get("errors"):
            lines.extend(["## Errors", ""])
            lines.extend(f"- {error}" for error in result["errors"])
            lines.append("")

        lines.extend([
            "## Runner Host",
            "",
            f"- **OS**: {report.host.os_name} {report.host.os_version}",
            f"- **Python Version**: {report.host.python_version}",
            f"- **Hostname**: {report.host.hostname}",
            f"- **lokiload Version**: {report.host.lokiload_version}",
            "",
        ])
        return "\n".join(lines)

    def save_report(
        self,
        report: RunReport,
        formats: Optional[list[str]] = None,
        base_name: Optional[str] = None,
    ) -> list[Path]:
        """Save report to files in the given formats (json, markdown).

        Returns:
            List of saved file paths
        """
        formats = formats or ["json", "markdown"]
        self.output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = report.timestamp.strftime("%Y%m%d_%H%M%S")
        base_name = base_name or f"lokiload_report_{timestamp}"

        saved_files = []

        if "json" in formats:
            json_path = self.output_dir / f"{base_name}.json"
            json_path.write_text(self.to_json(report), encoding="utf-8")
            saved_files.append(json_path)

        if "markdown" in formats or "md" in formats:
            md_path = self.output_dir / f"{base_name}.md"
            md_path.write_text(self.to_markdown(report), encoding="utf-8")
            saved_files.append(md_path)

        return saved_files

    def load_report(self, path: Path | str) -> RunReport:
        """Load a report from a JSON file."""
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
        return RunReport.from_dict(data)
