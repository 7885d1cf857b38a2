"""
Data models for the Loki workload engine.

This module defines the core data structures shared by the label model,
the stream synthesizer, the query builder and the workload driver,
together with the error taxonomy used across the engine.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Protocol, Union


class ConfigurationError(Exception):
    """Raised when the workload configuration is invalid.

    Configuration errors are fatal: they abort the run instead of
    degrading silently.
    """


class InvalidCardinalityError(ConfigurationError):
    """Raised when a label cardinality is not a positive integer."""


class EmptyLabelDomainError(ConfigurationError):
    """Raised when a label has no candidate values."""


class InvalidByteWindowError(ConfigurationError):
    """Raised when a byte window has min_bytes > max_bytes or a negative bound."""

    def __init__(self, min_bytes: int, max_bytes: int):
        super().__init__(
            f"Invalid byte window: min_bytes={min_bytes} max_bytes={max_bytes}"
        )
        self.min_bytes = min_bytes
        self.max_bytes = max_bytes


class SamplingError(ValueError):
    """Raised when a random draw falls outside [0, 1).

    This signals a broken random source in the caller and is not recoverable.
    """


class TransportError(Exception):
    """Base exception for failures of the HTTP transport.

    The workload driver records these as failed checks and carries on.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class Scenario(Enum):
    """Workload scenarios a driver can run."""

    WRITE = "write"
    READ = "read"
    DISCOVERY = "discovery"
    READ_WRITE = "read_write"


class QueryKind(Enum):
    """Query families understood by the Loki query API."""

    INSTANT = "instant"
    RANGE = "range"
    LABELS = "labels"
    LABEL_VALUES = "label_values"
    SERIES = "series"

    @property
    def endpoint(self) -> str:
        """Path template of the endpoint serving this query kind."""
        return _QUERY_ENDPOINTS[self]


_QUERY_ENDPOINTS = {
    QueryKind.INSTANT: "/loki/api/v1/query",
    QueryKind.RANGE: "/loki/api/v1/query_range",
    QueryKind.LABELS: "/loki/api/v1/labels",
    QueryKind.LABEL_VALUES: "/loki/api/v1/label/{label}/values",
    QueryKind.SERIES: "/loki/api/v1/series",
}

PUSH_ENDPOINT = "/loki/api/v1/push"

LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


# Label domains ---------------------------------------------------------------


@dataclass(frozen=True)
class Enumerated:
    """A label domain given as an explicit list of candidate values."""

    values: tuple[str, ...]

    def __post_init__(self):
        if not self.values:
            raise EmptyLabelDomainError("Enumerated label domain must not be empty")


@dataclass(frozen=True)
class Generated:
    """A label domain of `count` synthetic values named "{label}-{i}"."""

    count: int

    def __post_init__(self):
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            raise InvalidCardinalityError(
                f"Label cardinality must be a positive integer, got {self.count!r}"
            )


LabelDomain = Union[Enumerated, Generated]


def label_domain(value: Any) -> LabelDomain:
    """Convert a raw configuration value into a label domain.

    Args:
        value: An integer cardinality or a list of candidate strings

    Returns:
        Generated for integers, Enumerated for sequences of strings

    Raises:
        ConfigurationError: If the value is neither
    """
    if isinstance(value, (Enumerated, Generated)):
        return value
    if isinstance(value, bool):
        raise InvalidCardinalityError(f"Label cardinality must be an integer, got {value!r}")
    if isinstance(value, int):
        return Generated(value)
    if isinstance(value, (list, tuple)):
        return Enumerated(tuple(str(v) for v in value))
    raise ConfigurationError(
        f"Label domain must be an integer cardinality or a list of values, got {value!r}"
    )


# Streams ---------------------------------------------------------------------


class LabelSet(Mapping[str, str]):
    """Immutable, ordered mapping of label name to value."""

    __slots__ = ("_labels",)

    def __init__(self, labels: Mapping[str, str]):
        self._labels = MappingProxyType(dict(labels))

    def __getitem__(self, key: str) -> str:
        return self._labels[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._labels.items())))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._labels) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"LabelSet({self})"

    def __str__(self) -> str:
        """Render in the selector syntax Loki uses for stream identity."""
        pairs = ", ".join(
            f"{name}={json.dumps(value)}" for name, value in sorted(self._labels.items())
        )
        return "{" + pairs + "}"


@dataclass(frozen=True)
class LogEntry:
    """A single log line with its timestamp in Unix nanoseconds."""

    timestamp_ns: int
    line: str

    @property
    def size_bytes(self) -> int:
        return len(self.line.encode("utf-8"))


@dataclass(frozen=True)
class LogStream:
    """A uniquely labelled sequence of log lines pushed as one unit.

    Attributes:
        labels: Stream labels
        entries: Ordered log entries
    """

    labels: LabelSet
    entries: tuple[LogEntry, ...] = ()

    @property
    def size_bytes(self) -> int:
        """Total serialized size of all lines in bytes."""
        return sum(entry.size_bytes for entry in self.entries)

    @property
    def format(self) -> Optional[str]:
        return self.labels.get("format")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the Loki JSON push representation."""
        return {
            "stream": dict(self.labels),
            "values": [[str(e.timestamp_ns), e.line] for e in self.entries],
        }


@dataclass(frozen=True)
class PushBatch:
    """A batch of streams handed to the push endpoint."""

    streams: tuple[LogStream, ...] = ()

    @property
    def size_bytes(self) -> int:
        return sum(stream.size_bytes for stream in self.streams)

    @property
    def line_count(self) -> int:
        return sum(len(stream.entries) for stream in self.streams)

    def __len__(self) -> int:
        return len(self.streams)

    def __iter__(self) -> Iterator[LogStream]:
        return iter(self.streams)

    def to_dict(self) -> dict[str, Any]:
        return {"streams": [stream.to_dict() for stream in self.streams]}

    def encode_json(self) -> bytes:
        """Encode the batch as a JSON push request body."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


# Queries ---------------------------------------------------------------------


@dataclass(frozen=True)
class TimeRange:
    """An absolute [start, end] interval in Unix nanoseconds."""

    start_ns: int
    end_ns: int
    duration: str = ""


@dataclass(frozen=True)
class InstantQuery:
    """Evaluate a LogQL expression at a single point in time."""

    query: str
    time_ns: int
    limit: int = 0
    kind: QueryKind = field(default=QueryKind.INSTANT, init=False)

    @property
    def endpoint(self) -> str:
        return self.kind.endpoint

    def params(self) -> dict[str, str]:
        params = {"query": self.query}
        if self.time_ns > 0:
            params["time"] = str(self.time_ns)
        if self.limit > 0:
            params["limit"] = str(self.limit)
        return params


@dataclass(frozen=True)
class RangeQuery:
    """Evaluate a LogQL expression over a time interval."""

    query: str
    time_range: TimeRange
    limit: int = 0
    kind: QueryKind = field(default=QueryKind.RANGE, init=False)

    @property
    def endpoint(self) -> str:
        return self.kind.endpoint

    def params(self) -> dict[str, str]:
        params = {"query": self.query}
        params.update(_range_params(self.time_range))
        if self.limit > 0:
            params["limit"] = str(self.limit)
        return params


@dataclass(frozen=True)
class SeriesQuery:
    """List the label sets matching a selector within a time range."""

    match: str
    time_range: TimeRange
    kind: QueryKind = field(default=QueryKind.SERIES, init=False)

    @property
    def endpoint(self) -> str:
        return self.kind.endpoint

    def params(self) -> dict[str, str]:
        params = {"match[]": self.match}
        params.update(_range_params(self.time_range))
        return params


@dataclass(frozen=True)
class LabelsQuery:
    """List the known label names within a time range."""

    time_range: TimeRange
    kind: QueryKind = field(default=QueryKind.LABELS, init=False)

    @property
    def endpoint(self) -> str:
        return self.kind.endpoint

    def params(self) -> dict[str, str]:
        return _range_params(self.time_range)


@dataclass(frozen=True)
class LabelValuesQuery:
    """List the values of one label within a time range."""

    label: str
    time_range: TimeRange
    kind: QueryKind = field(default=QueryKind.LABEL_VALUES, init=False)

    @property
    def endpoint(self) -> str:
        return self.kind.endpoint.format(label=self.label)

    def params(self) -> dict[str, str]:
        return _range_params(self.time_range)


QueryRequest = Union[InstantQuery, RangeQuery, SeriesQuery, LabelsQuery, LabelValuesQuery]


def _range_params(time_range: TimeRange) -> dict[str, str]:
    params = {}
    if time_range.start_ns > 0:
        params["start"] = str(time_range.start_ns)
    if time_range.end_ns > 0:
        params["end"] = str(time_range.end_ns)
    return params


# Transport -------------------------------------------------------------------


@dataclass(frozen=True)
class TransportResponse:
    """
    Outcome of one request to the Loki API.

    Attributes:
        status_code: HTTP status code
        body: Raw response body
        elapsed_ms: Round-trip time in milliseconds
    """

    status_code: int
    body: bytes = b""
    elapsed_ms: float = 0.0

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.body)


class Transport(Protocol):
    """What the workload driver needs from an HTTP client."""

    def push(self, batch: PushBatch) -> TransportResponse:
        ...

    def query(self, request: QueryRequest) -> TransportResponse:
        ...
