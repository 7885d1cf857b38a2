"""
Workload driver.

A WorkloadDriver belongs to one virtual user. Each iteration it picks an
operation family, asks the StreamSynthesizer or the QueryBuilder for a
concrete request, hands it to the transport and records a pass/fail check
for every request. Transport failures and malformed responses never raise
out of an iteration.
"""

import logging
import random
import statistics
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from .models import (
    ConfigurationError,
    PushBatch,
    QueryKind,
    QueryRequest,
    Scenario,
    Transport,
    TransportError,
    TransportResponse,
)
from .queries import RESERVED_LABEL, QueryBuilder, parse_duration
from .selector import WeightedSelector
from .streams import DEFAULT_MAX_BYTES, DEFAULT_MIN_BYTES, StreamSynthesizer, validate_byte_window

logger = logging.getLogger(__name__)

DEFAULT_QUERY_MIX: tuple[tuple[QueryKind, float], ...] = (
    (QueryKind.LABELS, 0.1),
    (QueryKind.LABEL_VALUES, 0.1),
    (QueryKind.SERIES, 0.1),
    (QueryKind.RANGE, 0.5),
    (QueryKind.INSTANT, 0.2),
)

DEFAULT_DISCOVERY_RANGES: tuple[str, ...] = ("1m", "5m", "10m", "15m")

PUSH_SUCCESS_STATUS = 204
QUERY_SUCCESS_STATUS = 200

WRITE_CHECK = "successful write"
QUERY_CHECKS = {
    QueryKind.LABELS: "successful labels query",
    QueryKind.LABEL_VALUES: "successful label values query",
    QueryKind.SERIES: "successful series query",
    QueryKind.RANGE: "successful range query",
    QueryKind.INSTANT: "successful instant query",
}

# Response bodies are truncated to this many characters in log messages
LOG_BODY_LIMIT = 500


@dataclass
class CheckStats:
    """Pass/fail counts and latencies of one named check.

    Attributes:
        passes: Number of passed checks
        fails: Number of failed checks
        latencies_ms: Request latencies in milliseconds
    """

    passes: int = 0
    fails: int = 0
    latencies_ms: list[float] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def pass_rate(self) -> float:
        """Percentage of passed checks."""
        if self.total == 0:
            return 0.0
        return (self.passes / self.total) * 100

    def percentile(self, q: float) -> float:
        if not self.latencies_ms:
            return 0.0
        ordered = sorted(self.latencies_ms)
        return ordered[min(int(len(ordered) * q), len(ordered) - 1)]

    def merge(self, other: "CheckStats") -> None:
        self.passes += other.passes
        self.fails += other.fails
        self.latencies_ms.extend(other.latencies_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passes": self.passes,
            "fails": self.fails,
            "pass_rate_percent": round(self.pass_rate, 2),
            "p50_ms": round(self.percentile(0.50), 2),
            "p90_ms": round(self.percentile(0.90), 2),
            "p99_ms": round(self.percentile(0.99), 2),
            "avg_ms": round(statistics.mean(self.latencies_ms), 2) if self.latencies_ms else 0.0,
        }


@dataclass
class WorkloadStats:
    """
    Counters collected by one driver, merged across drivers by the runner.

    Attributes:
        checks: Check name to its pass/fail counts
        iterations: Completed iterations
        pushed_bytes: Uncompressed line bytes sent to the push endpoint
        pushed_lines: Lines sent to the push endpoint
        bytes_processed: Bytes processed as reported by query statistics
        lines_processed: Lines processed as reported by query statistics
    """

    checks: dict[str, CheckStats] = field(default_factory=dict)
    iterations: int = 0
    pushed_bytes: int = 0
    pushed_lines: int = 0
    bytes_processed: int = 0
    lines_processed: int = 0

    def record(self, name: str, passed: bool, elapsed_ms: Optional[float] = None) -> None:
        """Record one check result."""
        check = self.checks.setdefault(name, CheckStats())
        if passed:
            check.passes += 1
        else:
            check.fails += 1
        if elapsed_ms is not None:
            check.latencies_ms.append(elapsed_ms)

    @property
    def total_checks(self) -> int:
        return sum(c.total for c in self.checks.values())

    @property
    def failed_checks(self) -> int:
        return sum(c.fails for c in self.checks.values())

    @property
    def failure_rate(self) -> float:
        """Fraction of failed checks (0-1)."""
        total = self.total_checks
        return self.failed_checks / total if total else 0.0

    def merge(self, other: "WorkloadStats") -> "WorkloadStats":
        """Add the counters of another driver into this one."""
        for name, check in other.checks.items():
            self.checks.setdefault(name, CheckStats()).merge(check)
        self.iterations += other.iterations
        self.pushed_bytes += other.pushed_bytes
        self.pushed_lines += other.pushed_lines
        self.bytes_processed += other.bytes_processed
        self.lines_processed += other.lines_processed
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "total_checks": self.total_checks,
            "failed_checks": self.failed_checks,
            "failure_rate": round(self.failure_rate, 4),
            "client_uncompressed_bytes": self.pushed_bytes,
            "client_lines": self.pushed_lines,
            "bytes_processed_total": self.bytes_processed,
            "lines_processed_total": self.lines_processed,
            "checks": {name: check.to_dict() for name, check in sorted(self.checks.items())},
        }


class WorkloadDriver:
    """
    Runs scenario iterations for one virtual user.

    Example:
        >>> driver = WorkloadDriver(Scenario.WRITE, synthesizer, queries, client)
        >>> driver.run_iteration()
        >>> driver.stats.pushed_bytes
    """

    def __init__(
        self,
        scenario: Scenario,
        synthesizer: StreamSynthesizer,
        queries: QueryBuilder,
        transport: Transport,
        rng: Optional[random.Random] = None,
        stats: Optional[WorkloadStats] = None,
        query_mix: Sequence[tuple[QueryKind, float]] = DEFAULT_QUERY_MIX,
        discovery_ranges: Sequence[str] = DEFAULT_DISCOVERY_RANGES,
        streams_min: int = 4,
        streams_max: int = 8,
        min_bytes: int = DEFAULT_MIN_BYTES,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ):
        """Initialize the driver.

        Args:
            scenario: Scenario run by run_iteration()
            synthesizer: Stream synthesizer of this virtual user
            queries: Query builder (may be shared)
            transport: HTTP transport of this virtual user
            rng: Random source for operation choices
            stats: Stats to record into, a fresh WorkloadStats by default
            query_mix: Weighted query kinds of the read scenario
            discovery_ranges: Durations picked uniformly by discovery reads
            streams_min: Minimum streams per pushed batch
            streams_max: Maximum streams per pushed batch
            min_bytes: Minimum line bytes per stream
            max_bytes: Maximum line bytes per stream

        Raises:
            ConfigurationError: If the stream count or byte window is invalid
        """
        validate_byte_window(min_bytes, max_bytes)
        if not 1 <= streams_min <= streams_max:
            raise ConfigurationError(
                f"Invalid stream count range: streams_min={streams_min} streams_max={streams_max}"
            )
        if not discovery_ranges:
            raise ConfigurationError("At least one discovery range must be configured")

        self.scenario = Scenario(scenario)
        self.synthesizer = synthesizer
        self.queries = queries
        self.transport = transport
        self.rng = rng or synthesizer.rng
        self.stats = stats or WorkloadStats()
        self.query_mix: WeightedSelector[QueryKind] = WeightedSelector.from_pairs(query_mix)
        self.discovery_ranges = tuple(discovery_ranges)
        self.streams_min = streams_min
        self.streams_max = streams_max
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes

        for duration in self.discovery_ranges:
            try:
                parse_duration(duration)
            except ValueError as e:
                raise ConfigurationError(f"discovery range: {e}") from e

    def run_iteration(self) -> None:
        """Run one iteration of the configured scenario."""
        if self.scenario is Scenario.WRITE:
            self.write()
        elif self.scenario is Scenario.READ:
            self.read()
        elif self.scenario is Scenario.DISCOVERY:
            self.discover_and_read()
        else:
            self.write()
            self.discover_and_read()
        self.stats.iterations += 1

    # Write

    def write(self) -> bool:
        """Push one batch of randomly many streams.

        Returns:
            True if the push check passed
        """
        streams = self.rng.randint(self.streams_min, self.streams_max)
        batch = self.synthesizer.build_batch(streams, self.min_bytes, self.max_bytes)
        return self.push(batch)

    def push(self, batch: PushBatch) -> bool:
        """Send a batch and record the write check."""
        try:
            response = self.transport.push(batch)
        except TransportError as e:
            logger.warning(f"Push failed: {e}")
            self.stats.record(WRITE_CHECK, False)
            return False

        passed = response.status_code == PUSH_SUCCESS_STATUS
        self.stats.record(WRITE_CHECK, passed, response.elapsed_ms)
        if passed:
            self.stats.pushed_bytes += batch.size_bytes
            self.stats.pushed_lines += batch.line_count
        else:
            self._log_failure(WRITE_CHECK, response)
        return passed

    # Read

    def read(self) -> Optional[TransportResponse]:
        """Run one query picked from the query-type mix."""
        kind = self.query_mix.choose(self.rng)
        time_range = self.queries.pick_time_range(self.rng.random())

        if kind is QueryKind.LABELS:
            request = self.queries.labels_query(time_range)
        elif kind is QueryKind.LABEL_VALUES:
            label = self.rng.choice(self.queries.label_model.label_names())
            request = self.queries.label_values_query(label, time_range)
        elif kind is QueryKind.SERIES:
            selector = self.queries.series_selector(self.rng.random())
            request = self.queries.series_query(selector, time_range)
        elif kind is QueryKind.RANGE:
            expression = self.queries.range_expression(self.rng.random())
            request = self.queries.range_query(expression, time_range)
        else:
            request = self.queries.instant_query(self.queries.instant_expression(self.rng.random()))

        return self.execute(request)

    def execute(self, request: QueryRequest) -> Optional[TransportResponse]:
        """
        Send a query and record its check.

        Returns:
            The response if the check passed, None otherwise
        """
        response = self._send_query(request)
        if response is None:
            return None
        if response.status_code != QUERY_SUCCESS_STATUS:
            self._record_failure(request, response)
            return None

        self.stats.record(QUERY_CHECKS[request.kind], True, response.elapsed_ms)
        if request.kind in (QueryKind.INSTANT, QueryKind.RANGE):
            self._record_query_stats(response)
        return response

    def discover(self, request: QueryRequest) -> list[str]:
        """
        Run a labels or label values query and return the names it lists.

        A 200 response whose body is not a list of strings fails the check
        and yields an empty result.
        """
        response = self._send_query(request)
        if response is None:
            return []
        if response.status_code != QUERY_SUCCESS_STATUS:
            self._record_failure(request, response)
            return []

        data = self._data_list(response)
        self.stats.record(QUERY_CHECKS[request.kind], data is not None, response.elapsed_ms)
        return data or []

    def _send_query(self, request: QueryRequest) -> Optional[TransportResponse]:
        try:
            return self.transport.query(request)
        except TransportError as e:
            logger.warning(f"Query {request.kind.value} failed: {e}")
            self.stats.record(QUERY_CHECKS[request.kind], False)
            return None

    def _record_query_stats(self, response: TransportResponse) -> None:
        try:
            summary = response.json()["data"]["stats"]["summary"]
            self.stats.bytes_processed += int(summary.get("totalBytesProcessed", 0))
            self.stats.lines_processed += int(summary.get("totalLinesProcessed", 0))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"No query statistics in response: {e}")

    # Discovery

    def discover_and_read(self) -> int:
        """
        Discover label names and values, then query what was discovered.

        Ends early when a discovery step yields nothing usable.

        Returns:
            Number of requests sent
        """
        duration = self.rng.choice(self.discovery_ranges)
        time_range = self.queries.time_range(duration)
        sent = 0

        names = self.discover(self.queries.labels_query(time_range))
        sent += 1
        if not names:
            logger.debug("Discovery returned no label names")
            return sent

        values: dict[str, list[str]] = {}
        for name in names:
            if name == RESERVED_LABEL:
                continue
            try:
                request = self.queries.label_values_query(name, time_range)
            except ValueError as e:
                logger.warning(f"Skipping discovered label: {e}")
                continue
            found = self.discover(request)
            sent += 1
            if found:
                values[name] = found
        if not values:
            logger.debug("Discovery returned no label values")
            return sent

        expressions = self.queries.discovered_expressions(values, self.rng)
        if not expressions:
            logger.debug("No discovered label matches the label model")
            return sent

        for expression in expressions:
            self.execute(self.queries.range_query(expression, time_range))
            sent += 1
        for expression in expressions:
            self.execute(self.queries.instant_query(expression))
            sent += 1
        for selector in self.queries.discovered_series_selectors(values, self.rng):
            self.execute(self.queries.series_query(selector, time_range))
            sent += 1
        return sent

    @staticmethod
    def _data_list(response: TransportResponse) -> Optional[list[str]]:
        """Extract the string list in `data`, None if the body is malformed."""
        try:
            data = response.json()["data"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Malformed discovery response: {e}")
            return None
        if not isinstance(data, list):
            logger.warning(f"Malformed discovery response: data is {type(data).__name__}")
            return None
        return [str(item) for item in data if isinstance(item, str) and item]

    def _record_failure(self, request: QueryRequest, response: TransportResponse) -> None:
        check = QUERY_CHECKS[request.kind]
        self.stats.record(check, False, response.elapsed_ms)
        self._log_failure(check, response)

    def _log_failure(self, check: str, response: TransportResponse) -> None:
        logger.warning(
            f"Check '{check}' failed: status={response.status_code} "
            f"body={response.text[:LOG_BODY_LIMIT]}"
        )
