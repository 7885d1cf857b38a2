"""
Workload engine for Loki load tests.

This package provides:
- LabelModel: Label names and value pools bounding stream cardinality
- WeightedSelector: Ratio-interval sampler behind every random choice
- StreamSynthesizer: Byte-bounded batches of synthetic log streams
- QueryBuilder: LogQL expressions and query requests over the label space
- WorkloadDriver: Per virtual user scenario iterations
"""

from .driver import (
    DEFAULT_DISCOVERY_RANGES,
    DEFAULT_QUERY_MIX,
    CheckStats,
    WorkloadDriver,
    WorkloadStats,
)
from .labels import (
    DEFAULT_CARDINALITIES,
    LabelModel,
    LabelSamplingPolicy,
)
from .loglines import SUPPORTED_FORMATS, LogLineFactory, LogVocabulary
from .models import (
    ConfigurationError,
    EmptyLabelDomainError,
    Enumerated,
    Generated,
    InstantQuery,
    InvalidByteWindowError,
    InvalidCardinalityError,
    LabelSet,
    LabelsQuery,
    LabelValuesQuery,
    LogEntry,
    LogStream,
    PushBatch,
    QueryKind,
    QueryRequest,
    RangeQuery,
    SamplingError,
    Scenario,
    SeriesQuery,
    TimeRange,
    Transport,
    TransportError,
    TransportResponse,
)
from .queries import (
    DEFAULT_TIME_RANGES,
    QueryBuilder,
    QueryTemplate,
    format_matchers,
    parse_duration,
)
from .selector import WeightedChoice, WeightedSelector
from .streams import StreamSynthesizer

__all__ = [
    # Driver
    "WorkloadDriver",
    "WorkloadStats",
    "CheckStats",
    "DEFAULT_QUERY_MIX",
    "DEFAULT_DISCOVERY_RANGES",
    # Labels
    "LabelModel",
    "LabelSamplingPolicy",
    "DEFAULT_CARDINALITIES",
    # Lines and streams
    "SUPPORTED_FORMATS",
    "LogLineFactory",
    "LogVocabulary",
    "StreamSynthesizer",
    # Queries
    "QueryBuilder",
    "QueryTemplate",
    "DEFAULT_TIME_RANGES",
    "format_matchers",
    "parse_duration",
    # Selector
    "WeightedChoice",
    "WeightedSelector",
    # Models
    "ConfigurationError",
    "EmptyLabelDomainError",
    "InvalidByteWindowError",
    "InvalidCardinalityError",
    "SamplingError",
    "TransportError",
    "Enumerated",
    "Generated",
    "LabelSet",
    "LogEntry",
    "LogStream",
    "PushBatch",
    "Scenario",
    "QueryKind",
    "QueryRequest",
    "InstantQuery",
    "RangeQuery",
    "SeriesQuery",
    "LabelsQuery",
    "LabelValuesQuery",
    "TimeRange",
    "Transport",
    "TransportResponse",
]
