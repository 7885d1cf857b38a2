"""
Configuration management for lokiload.

This module handles loading, parsing, and validating run configurations
from YAML files and command-line arguments.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from jsonschema import Draft7Validator

from lokiload.workload.driver import DEFAULT_DISCOVERY_RANGES, DEFAULT_QUERY_MIX
from lokiload.workload.labels import DEFAULT_CARDINALITIES, LabelModel, LabelSamplingPolicy
from lokiload.workload.models import QueryKind, Scenario
from lokiload.workload.queries import DEFAULT_LIMIT, DEFAULT_TIME_RANGES
from lokiload.workload.streams import DEFAULT_MAX_BYTES, DEFAULT_MIN_BYTES

from .loki_api import DEFAULT_USER_AGENT

SIZE_PATTERN = "^[0-9]+\\s*(B|[KMG]i?B)?$"
DURATION_PATTERN = "^([0-9]+(\\.[0-9]*)?(ns|us|µs|ms|s|m|h))+$"
SCENARIOS = [s.value for s in Scenario]

_size_or_int = {
    "oneOf": [
        {"type": "integer", "minimum": 0},
        {"type": "string", "pattern": SIZE_PATTERN},
    ]
}

# JSON Schema for configuration validation
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "loki": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "minLength": 1},
                "tenant_id": {"type": "string"},
                "timeout_ms": {"type": "integer", "minimum": 1},
                "user_agent": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        "labels": {
            "type": "object",
            "properties": {
                "policy": {
                    "type": "string",
                    "enum": [p.value for p in LabelSamplingPolicy],
                },
                "top_label_probability": {"type": "number", "minimum": 0, "maximum": 1},
                "include_base_labels": {"type": "boolean"},
                "cardinality": {
                    "type": "object",
                    "minProperties": 1,
                    "propertyNames": {"pattern": "^[a-zA-Z_][a-zA-Z0-9_]*$"},
                    "additionalProperties": {
                        "oneOf": [
                            {"type": "integer", "minimum": 1},
                            {
                                "type": "array",
                                "items": {"type": "string"},
                                "minItems": 1,
                            },
                        ]
                    },
                },
            },
            "additionalProperties": False,
        },
        "workload": {
            "type": "object",
            "properties": {
                "scenario": {"type": "string", "enum": SCENARIOS},
                "streams_min": {"type": "integer", "minimum": 1},
                "streams_max": {"type": "integer", "minimum": 1},
                "min_bytes": _size_or_int,
                "max_bytes": _size_or_int,
                "limit": {"type": "integer", "minimum": 0},
                "query_mix": {
                    "type": "object",
                    "propertyNames": {"enum": [k.value for k in QueryKind]},
                    "additionalProperties": {"type": "number", "minimum": 0},
                },
                "time_ranges": {
                    "type": "object",
                    "minProperties": 1,
                    "propertyNames": {"pattern": DURATION_PATTERN},
                    "additionalProperties": {"type": "number", "exclusiveMinimum": 0},
                },
                "discovery_ranges": {
                    "type": "array",
                    "minItems": 1,
                    "items": {"type": "string", "pattern": DURATION_PATTERN},
                },
            },
            "additionalProperties": False,
        },
        "runner": {
            "type": "object",
            "properties": {
                "vus": {"type": "integer", "minimum": 1},
                "iterations": {"type": ["integer", "null"], "minimum": 1},
                "duration": {"type": ["string", "null"], "pattern": DURATION_PATTERN},
                "seed": {"type": ["integer", "null"]},
                "max_failure_rate": {"type": "number", "minimum": 0, "maximum": 1},
                "output_dir": {"type": "string"},
                "report_formats": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["json", "markdown"]},
                },
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []


def validate_config(data: dict[str, Any]) -> list[str]:
    """
    Validate configuration data against the schema.

    Args:
        data: Configuration dictionary to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = Draft7Validator(CONFIG_SCHEMA)
    errors = []
    for error in validator.iter_errors(data):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


def expand_env_vars(value: str) -> str:
    """
    Expand environment variables in a string.

    Supports ${VAR_NAME} syntax; unset variables expand to "".
    """
    if not isinstance(value, str):
        return value

    def replace_env(match):
        return os.environ.get(match.group(1), "")

    return re.sub(r"\$\{([^}]+)\}", replace_env, value)


_SIZE_UNITS = {"": 1, "B": 1, "KB": 1024, "KIB": 1024, "MB": 1024 ** 2, "MIB": 1024 ** 2,
               "GB": 1024 ** 3, "GIB": 1024 ** 3}


def parse_size(value: Any) -> int:
    """
    Parse a byte size such as 800KB, 1MB or 1048576.

    Units are binary: 1KB is 1024 bytes.

    Raises:
        ValueError: If the value is not a valid size
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Invalid size: {value!r}")
        return value
    match = re.fullmatch(r"\s*([0-9]+)\s*(B|[KMG]i?B)?\s*", str(value), re.IGNORECASE)
    if not match or (match.group(2) or "").upper() not in _SIZE_UNITS:
        raise ValueError(f"Invalid size: {value!r}")
    return int(match.group(1)) * _SIZE_UNITS[(match.group(2) or "").upper()]


@dataclass
class LokiConfig:
    """Connection settings of the target Loki."""

    url: str = "http://localhost:3100"
    tenant_id: str = ""
    timeout_ms: int = 10000
    user_agent: str = DEFAULT_USER_AGENT

    def resolve(self) -> "LokiConfig":
        """Resolve environment variables in the URL, tenant and user agent."""
        return LokiConfig(
            url=expand_env_vars(self.url),
            tenant_id=expand_env_vars(self.tenant_id),
            timeout_ms=self.timeout_ms,
            user_agent=expand_env_vars(self.user_agent),
        )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class LabelsConfig:
    """Label space of the synthetic streams.

    Attributes:
        cardinality: Label name to a cardinality or a list of values
        policy: Label value sampling policy
        top_label_probability: Weight of the top value under top_weighted
        include_base_labels: Add the format and os labels
    """

    cardinality: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_CARDINALITIES))
    policy: str = LabelSamplingPolicy.UNIFORM.value
    top_label_probability: float = 0.9
    include_base_labels: bool = True

    def build_model(self) -> LabelModel:
        """
        Build the label model.

        Raises:
            ConfigurationError: If the label space is invalid
        """
        policy = LabelSamplingPolicy(self.policy)
        if self.include_base_labels:
            return LabelModel.from_cardinalities(
                self.cardinality, policy=policy, top_label_probability=self.top_label_probability
            )
        return LabelModel(
            self.cardinality, policy=policy, top_label_probability=self.top_label_probability
        )


@dataclass
class WorkloadConfig:
    """Scenario and request shape settings."""

    scenario: str = Scenario.WRITE.value
    streams_min: int = 4
    streams_max: int = 8
    min_bytes: int = DEFAULT_MIN_BYTES
    max_bytes: int = DEFAULT_MAX_BYTES
    limit: int = DEFAULT_LIMIT
    query_mix: dict[str, float] = field(
        default_factory=lambda: {kind.value: ratio for kind, ratio in DEFAULT_QUERY_MIX}
    )
    time_ranges: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TIME_RANGES))
    discovery_ranges: list[str] = field(default_factory=lambda: list(DEFAULT_DISCOVERY_RANGES))

    def query_mix_pairs(self) -> list[tuple[QueryKind, float]]:
        """Query mix as selector pairs; kinds with ratio 0 are left out."""
        return [(QueryKind(kind), ratio) for kind, ratio in self.query_mix.items() if ratio > 0]

    def time_range_pairs(self) -> list[tuple[str, float]]:
        return list(self.time_ranges.items())


@dataclass
class RunnerSettings:
    """Settings of the local runner and its report."""

    vus: int = 1
    iterations: Optional[int] = None
    duration: Optional[str] = None
    seed: Optional[int] = None
    max_failure_rate: float = 0.01
    output_dir: str = "results"
    report_formats: list[str] = field(default_factory=lambda: ["json", "markdown"])


@dataclass
class RunConfig:
    """
    Main configuration of a lokiload run.

    Attributes:
        loki: Target Loki connection settings
        labels: Label space
        workload: Scenario and request shapes
        runner: Local runner and report settings
    """

    loki: LokiConfig = field(default_factory=LokiConfig)
    labels: LabelsConfig = field(default_factory=LabelsConfig)
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    runner: RunnerSettings = field(default_factory=RunnerSettings)

    def __post_init__(self):
        """Validate cross-field constraints after initialization."""
        if self.workload.scenario not in SCENARIOS:
            raise ValueError(
                f"Invalid scenario: {self.workload.scenario}. Must be one of {SCENARIOS}"
            )
        if self.workload.streams_min > self.workload.streams_max:
            raise ValueError(
                f"streams_min ({self.workload.streams_min}) must not exceed "
                f"streams_max ({self.workload.streams_max})"
            )
        if self.workload.min_bytes > self.workload.max_bytes:
            raise ValueError(
                f"min_bytes ({self.workload.min_bytes}) must not exceed "
                f"max_bytes ({self.workload.max_bytes})"
            )
        if self.runner.vus < 1:
            raise ValueError(f"vus must be positive, got {self.runner.vus}")

    @property
    def scenario(self) -> Scenario:
        return Scenario(self.workload.scenario)

    @classmethod
    def from_yaml(cls, path: Path | str, validate: bool = True) -> "RunConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file
            validate: Whether to validate the configuration against schema

        Returns:
            RunConfig instance with loaded values

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If the YAML is invalid
            ConfigValidationError: If validation fails
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if validate:
            errors = validate_config(data)
            if errors:
                raise ConfigValidationError(
                    f"Configuration validation failed with {len(errors)} error(s)",
                    errors=errors,
                )

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Dictionary containing configuration values

        Returns:
            RunConfig instance with loaded values
        """
        loki_data = data.get("loki", {})
        loki = LokiConfig(
            url=loki_data.get("url", "http://localhost:3100"),
            tenant_id=loki_data.get("tenant_id", ""),
            timeout_ms=loki_data.get("timeout_ms", 10000),
            user_agent=loki_data.get("user_agent", DEFAULT_USER_AGENT),
        )

        labels_data = data.get("labels", {})
        labels = LabelsConfig(
            cardinality=dict(labels_data.get("cardinality", DEFAULT_CARDINALITIES)),
            policy=labels_data.get("policy", LabelSamplingPolicy.UNIFORM.value),
            top_label_probability=labels_data.get("top_label_probability", 0.9),
            include_base_labels=labels_data.get("include_base_labels", True),
        )

        defaults = WorkloadConfig()
        workload_data = data.get("workload", {})
        workload = WorkloadConfig(
            scenario=workload_data.get("scenario", defaults.scenario),
            streams_min=workload_data.get("streams_min", defaults.streams_min),
            streams_max=workload_data.get("streams_max", defaults.streams_max),
            min_bytes=parse_size(workload_data.get("min_bytes", defaults.min_bytes)),
            max_bytes=parse_size(workload_data.get("max_bytes", defaults.max_bytes)),
            limit=workload_data.get("limit", defaults.limit),
            query_mix=dict(workload_data.get("query_mix", defaults.query_mix)),
            time_ranges=dict(workload_data.get("time_ranges", defaults.time_ranges)),
            discovery_ranges=list(workload_data.get("discovery_ranges", defaults.discovery_ranges)),
        )

        runner_data = data.get("runner", {})
        runner = RunnerSettings(
            vus=runner_data.get("vus", 1),
            iterations=runner_data.get("iterations"),
            duration=runner_data.get("duration"),
            seed=runner_data.get("seed"),
            max_failure_rate=runner_data.get("max_failure_rate", 0.01),
            output_dir=runner_data.get("output_dir", "results"),
            report_formats=list(runner_data.get("report_formats", ["json", "markdown"])),
        )

        return cls(loki=loki, labels=labels, workload=workload, runner=runner)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "loki": {
                "url": self.loki.url,
                "tenant_id": self.loki.tenant_id,
                "timeout_ms": self.loki.timeout_ms,
                "user_agent": self.loki.user_agent,
            },
            "labels": {
                "cardinality": dict(self.labels.cardinality),
                "policy": self.labels.policy,
                "top_label_probability": self.labels.top_label_probability,
                "include_base_labels": self.labels.include_base_labels,
            },
            "workload": {
                "scenario": self.workload.scenario,
                "streams_min": self.workload.streams_min,
                "streams_max": self.workload.streams_max,
                "min_bytes": self.workload.min_bytes,
                "max_bytes": self.workload.max_bytes,
                "limit": self.workload.limit,
                "query_mix": dict(self.workload.query_mix),
                "time_ranges": dict(self.workload.time_ranges),
                "discovery_ranges": list(self.workload.discovery_ranges),
            },
            "runner": {
                "vus": self.runner.vus,
                "iterations": self.runner.iterations,
                "duration": self.runner.duration,
                "seed": self.runner.seed,
                "max_failure_rate": self.runner.max_failure_rate,
                "output_dir": self.runner.output_dir,
                "report_formats": list(self.runner.report_formats),
            },
        }

    def merge_cli_args(
        self,
        scenario: Optional[str] = None,
        url: Optional[str] = None,
        tenant_id: Optional[str] = None,
        vus: Optional[int] = None,
        iterations: Optional[int] = None,
        duration: Optional[str] = None,
        seed: Optional[int] = None,
        output_dir: Optional[str] = None,
    ) -> "RunConfig":
        """
        Merge command-line arguments into the configuration.

        CLI arguments take precedence over file configuration.

        Returns:
            New RunConfig with merged values
        """
        new_config = RunConfig.from_dict(self.to_dict())

        if scenario:
            new_config.workload.scenario = scenario
        if url:
            new_config.loki.url = url
        if tenant_id:
            new_config.loki.tenant_id = tenant_id
        if vus:
            new_config.runner.vus = vus
        if iterations:
            new_config.runner.iterations = iterations
        if duration:
            new_config.runner.duration = duration
        if seed is not None:
            new_config.runner.seed = seed
        if output_dir:
            new_config.runner.output_dir = output_dir

        # Re-validate after merging
        new_config.__post_init__()

        return new_config


def load_config(
    config_path: Optional[Path | str] = None,
    scenario: Optional[str] = None,
    url: Optional[str] = None,
    tenant_id: Optional[str] = None,
    vus: Optional[int] = None,
    iterations: Optional[int] = None,
    duration: Optional[str] = None,
    seed: Optional[int] = None,
    output_dir: Optional[str] = None,
    validate: bool = True,
) -> RunConfig:
    """
    Load and merge configuration from file and CLI arguments.

    This is the main entry point for loading configuration.

    Args:
        config_path: Path to YAML configuration file (optional)
        scenario: Scenario override
        url: Loki URL override
        tenant_id: Tenant override
        vus: Virtual users override
        iterations: Iterations per virtual user override
        duration: Run duration override
        seed: Random seed override
        output_dir: Report directory override
        validate: Whether to validate configuration

    Returns:
        RunConfig with merged values
    """
    if config_path:
        config = RunConfig.from_yaml(config_path, validate=validate)
    else:
        config = RunConfig()

    return config.merge_cli_args(
        scenario=scenario,
        url=url,
        tenant_id=tenant_id,
        vus=vus,
        iterations=iterations,
        duration=duration,
        seed=seed,
        output_dir=output_dir,
    )
