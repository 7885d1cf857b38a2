"""
Host side of lokiload.

This package provides:
- LokiAPIClient: HTTP transport for the push and query APIs
- RunConfig / load_config: YAML configuration with schema validation
- LocalRunner: Thread-pool host running one driver per virtual user
- RunReporter: JSON and Markdown run reports
"""

from .config import (
    ConfigValidationError,
    LabelsConfig,
    LokiConfig,
    RunConfig,
    RunnerSettings,
    WorkloadConfig,
    load_config,
    parse_size,
)
from .loki_api import (
    LokiAPIClient,
    LokiAPIError,
    LokiConnectionError,
    LokiQueryError,
    LokiTimeoutError,
)
from .reporter import RunReport, RunReporter
from .runner import LocalRunner, RunResult

__all__ = [
    # Config
    "RunConfig",
    "LokiConfig",
    "LabelsConfig",
    "WorkloadConfig",
    "RunnerSettings",
    "ConfigValidationError",
    "load_config",
    "parse_size",
    # Transport
    "LokiAPIClient",
    "LokiAPIError",
    "LokiConnectionError",
    "LokiQueryError",
    "LokiTimeoutError",
    # Runner and reports
    "LocalRunner",
    "RunResult",
    "RunReport",
    "RunReporter",
]
