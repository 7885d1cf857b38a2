"""
Local runner for lokiload.

This module provides the LocalRunner class, a thin host for the workload
engine: it runs one WorkloadDriver per virtual user on a thread pool until
an iteration count or a duration is reached, then merges their stats.
"""

import concurrent.futures
import logging
import random
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from lokiload.workload.driver import WorkloadDriver, WorkloadStats
from lokiload.workload.labels import LabelModel
from lokiload.workload.loglines import LogVocabulary
from lokiload.workload.models import ConfigurationError, SamplingError, Transport
from lokiload.workload.queries import QueryBuilder, parse_duration
from lokiload.workload.streams import StreamSynthesizer

from .config import RunConfig
from .loki_api import LokiAPIClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[int], Any]


@dataclass
class RunResult:
    """
    Outcome of a local run.

    Attributes:
        scenario: Scenario that was run
        vus: Number of virtual users
        stats: Stats merged across all virtual users
        start_time: When the run started
        end_time: When the run finished
        errors: Unexpected virtual user failures
        cancelled: Whether the run was interrupted
    """

    scenario: str
    vus: int
    stats: WorkloadStats = field(default_factory=WorkloadStats)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "vus": self.vus,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "cancelled": self.cancelled,
            "errors": list(self.errors),
            "stats": self.stats.to_dict(),
        }


class LocalRunner:
    """
    Runs a scenario with concurrent virtual users on this host.

    The label model, query builder and vocabulary are built once and shared
    read-only; every virtual user gets its own random source, synthesizer,
    HTTP client and stats.

    Example:
        config = load_config("config/write.yaml", vus=4, iterations=10)
        result = LocalRunner(config).run()
        print(result.stats.failure_rate)
    """

    def __init__(
        self,
        config: Optional[RunConfig] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Initialize the runner.

        Args:
            config: Run configuration (loaded from YAML or defaults)
            client_factory: Builds the transport of a virtual user from its
                id; defaults to a LokiAPIClient per virtual user

        Raises:
            ConfigurationError: If the label space or workload is invalid
        """
        self.config = config or RunConfig()
        self.client_factory = client_factory or self._default_client
        self._cancelled = threading.Event()

        labels = self.config.labels
        workload = self.config.workload
        self.label_model: LabelModel = labels.build_model()
        self.queries = QueryBuilder(
            self.label_model,
            time_ranges=workload.time_range_pairs(),
            limit=workload.limit,
        )
        seed = self.config.runner.seed
        self.vocabulary = LogVocabulary.build() if seed is None else LogVocabulary.build(seed=seed)

    def _default_client(self, vu_id: int) -> LokiAPIClient:
        loki = self.config.loki.resolve()
        return LokiAPIClient(
            loki.url,
            timeout=loki.timeout_seconds,
            tenant_id=loki.tenant_id or None,
            user_agent=loki.user_agent,
            vu_id=vu_id,
        )

    def build_driver(self, vu_id: int, transport: Transport) -> WorkloadDriver:
        """Build the driver of one virtual user."""
        seed = self.config.runner.seed
        rng = random.Random(None if seed is None else seed + vu_id)
        synthesizer = StreamSynthesizer(
            self.label_model, rng=rng, vocabulary=self.vocabulary, vu_id=vu_id
        )
        workload = self.config.workload
        return WorkloadDriver(
            self.config.scenario,
            synthesizer,
            self.queries,
            transport,
            query_mix=workload.query_mix_pairs(),
            discovery_ranges=workload.discovery_ranges,
            streams_min=workload.streams_min,
            streams_max=workload.streams_max,
            min_bytes=workload.min_bytes,
            max_bytes=workload.max_bytes,
        )

    def _limits(self) -> tuple[Optional[int], Optional[float]]:
        iterations = self.config.runner.iterations
        duration = self.config.runner.duration
        seconds = parse_duration(duration) / 1e9 if duration else None
        if iterations is None and seconds is None:
            iterations = 1
        return iterations, seconds

    def _run_vu(self, vu_id: int, iterations: Optional[int],
                deadline: Optional[float]) -> WorkloadStats:
        transport = self.client_factory(vu_id)
        try:
            driver = self.build_driver(vu_id, transport)
            done = 0
            while not self._cancelled.is_set():
                if iterations is not None and done >= iterations:
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    break
                driver.run_iteration()
                done += 1
            logger.debug(f"VU {vu_id} finished after {done} iteration(s)")
            return driver.stats
        finally:
            close = getattr(transport, "close", None)
            if close is not None:
                close()

    def run(self) -> RunResult:
        """
        Run the configured scenario.

        Returns:
            RunResult with stats merged across virtual users

        Raises:
            ConfigurationError: If a virtual user hit a configuration error
            SamplingError: If a virtual user drew outside [0, 1)
        """
        vus = self.config.runner.vus
        iterations, seconds = self._limits()
        result = RunResult(scenario=self.config.workload.scenario, vus=vus)
        deadline = time.monotonic() + seconds if seconds is not None else None
        self._cancelled.clear()

        logger.info(
            f"Starting {result.scenario} run: vus={vus} iterations={iterations} "
            f"duration={self.config.runner.duration}"
        )
        previous = self._install_signal_handler()
        try:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=vus, thread_name_prefix="vu"
            ) as executor:
                future_to_vu = {
                    executor.submit(self._run_vu, vu_id, iterations, deadline): vu_id
                    for vu_id in range(1, vus + 1)
                }
                for future in concurrent.futures.as_completed(future_to_vu):
                    vu_id = future_to_vu[future]
                    try:
                        result.stats.merge(future.result())
                    except (ConfigurationError, SamplingError):
                        self._cancelled.set()
                        raise
                    except Exception as e:
                        logger.error(f"VU {vu_id} failed: {e}")
                        result.errors.append(f"vu{vu_id}: {e}")
        finally:
            self._restore_signal_handler(previous)

        result.end_time = datetime.now()
        result.cancelled = self._cancelled.is_set()
        logger.info(
            f"Run finished in {result.duration_seconds:.1f}s: "
            f"iterations={result.stats.iterations} checks={result.stats.total_checks} "
            f"failed={result.stats.failed_checks}"
        )
        return result

    def _install_signal_handler(self) -> Any:
        """Cancel on SIGINT; only possible from the main thread."""
        if threading.current_thread() is not threading.main_thread():
            return None
        return signal.signal(signal.SIGINT, self._handle_shutdown)

    def _restore_signal_handler(self, previous: Any) -> None:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    def _handle_shutdown(self, signum: int, frame: Any) -> None:  # noqa: ARG002
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, stopping virtual users...")
        self.cancel()

    def cancel(self) -> None:
        """Stop all virtual users after their current iteration."""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()
