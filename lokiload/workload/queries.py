"""
LogQL query workload generation.

The QueryBuilder composes query requests for the five query families of the
Loki read API. Expressions come from a registry of templates: each
QueryTemplate identifier maps to a pure renderer taking the label model and
a uniform draw, so every template can be exercised deterministically.
"""

import json
import logging
import random
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from .labels import FORMAT_LABEL, INSTANCE_LABEL, LabelModel
from .models import (
    LABEL_NAME_RE,
    ConfigurationError,
    InstantQuery,
    LabelsQuery,
    LabelValuesQuery,
    RangeQuery,
    SeriesQuery,
    TimeRange,
)
from .selector import WeightedSelector

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000

DEFAULT_TIME_RANGES: tuple[tuple[str, float], ...] = (
    ("15m", 0.2),
    ("30m", 0.2),
    ("1h", 0.3),
    ("3h", 0.2),
    ("12h", 0.1),
)

# Label never queried through discovery
RESERVED_LABEL = "__name__"

_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> int:
    """
    Parse a Go-style duration string into nanoseconds.

    Accepts one or more number/unit pairs, e.g. "90s", "1h30m", "1.5h" or
    "500ms". A bare "0" is accepted as zero.

    Args:
        value: Duration string

    Returns:
        Duration in nanoseconds

    Raises:
        ValueError: If the string is not a valid non-negative duration
    """
    text = value.strip() if isinstance(value, str) else ""
    if text == "0":
        return 0
    if not text:
        raise ValueError(f"Invalid duration {value!r}")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"Invalid duration {value!r}")
    return int(total)


def quote(value: str) -> str:
    """Render a LogQL string literal."""
    return json.dumps(str(value))


def format_matchers(matchers: Union[Mapping[str, str], Iterable[tuple[str, str]]]) -> str:
    """
    Render equality matchers as a stream selector.

    Example:
        >>> format_matchers({"app": "app-1", "format": "json"})
        '{app="app-1", format="json"}'

    Raises:
        ValueError: If there are no matchers or a label name is invalid
    """
    pairs = list(matchers.items()) if isinstance(matchers, Mapping) else list(matchers)
    if not pairs:
        raise ValueError("A stream selector needs at least one matcher")
    rendered = []
    for name, value in pairs:
        if not isinstance(name, str) or not LABEL_NAME_RE.match(name):
            raise ValueError(f"Invalid label name {name!r}")
        rendered.append(f"{name}={quote(value)}")
    return "{" + ", ".join(rendered) + "}"


def primary_label(model: LabelModel) -> str:
    """The label that query templates select streams by.

    "app" when configured, otherwise the first label that is neither the
    format nor the instance label.
    """
    if "app" in model:
        return "app"
    for name in model.label_names():
        if name not in (FORMAT_LABEL, INSTANCE_LABEL):
            return name
    return FORMAT_LABEL


def group_label(model: LabelModel) -> str:
    """The label that aggregating templates group by."""
    return "namespace" if "namespace" in model else primary_label(model)


def _selector(model: LabelModel, draw: float, **extra: str) -> str:
    name = primary_label(model)
    if name in extra:
        # A fixed matcher on the primary label replaces the drawn one
        return format_matchers(extra)
    return format_matchers([(name, model.pick_value(name, draw)), *extra.items()])


def _has_format(log_format: str) -> Callable[[LabelModel], bool]:
    def applies(model: LabelModel) -> bool:
        return model.has_value(FORMAT_LABEL, log_format)
    return applies


def _always(model: LabelModel) -> bool:
    return True


class QueryTemplate(Enum):
    """Identifiers of the query expression templates."""

    RATE = "rate"
    SUM_RATE = "sum_rate"
    SUM_RATE_REGEX = "sum_rate_regex"
    SUM_RATE_LINE_FILTER = "sum_rate_line_filter"
    SUM_RATE_JSON_STATUS = "sum_rate_json_status"
    SUM_RATE_LOGFMT_METHOD = "sum_rate_logfmt_method"
    SUM_OVER_TIME_BYTES = "sum_over_time_bytes"
    QUANTILE_BYTES = "quantile_bytes"
    STREAM = "stream"
    STREAM_NEGATED_FILTER = "stream_negated_filter"
    STREAM_REGEX = "stream_regex"
    JSON_STATUS_FILTER = "json_status_filter"


@dataclass(frozen=True)
class TemplateSpec:
    """
    Definition of one query template.

    Attributes:
        render: Pure function of (label model, uniform draw) to expression
        range_only: Raw stream selection, only valid for range queries
        applies: Whether the template can be rendered for a model
    """

    render: Callable[[LabelModel, float], str]
    range_only: bool = False
    applies: Callable[[LabelModel], bool] = _always


TEMPLATES: Mapping[QueryTemplate, TemplateSpec] = {
    QueryTemplate.RATE: TemplateSpec(
        lambda m, d: f"rate({_selector(m, d)}[5m])",
    ),
    QueryTemplate.SUM_RATE: TemplateSpec(
        lambda m, d: f"sum by ({group_label(m)}) (rate({_selector(m, d)} [5m]))",
    ),
    QueryTemplate.SUM_RATE_REGEX: TemplateSpec(
        lambda m, d: f'sum by ({group_label(m)}) (rate({_selector(m, d)} |~ ".*a" [5m]))',
    ),
    QueryTemplate.SUM_RATE_LINE_FILTER: TemplateSpec(
        lambda m, d: f'sum by ({group_label(m)}) (rate({_selector(m, d)} |= "USB" [5m]))',
    ),
    QueryTemplate.SUM_RATE_JSON_STATUS: TemplateSpec(
        lambda m, d: f'sum by (status) (rate({_selector(m, d)} | json | __error__ = "" [5m]))',
        applies=_has_format("json"),
    ),
    QueryTemplate.SUM_RATE_LOGFMT_METHOD: TemplateSpec(
        lambda m, d: (
            f'sum by (method) (rate({_selector(m, d)} | logfmt | __error__ = "" '
            f'| method != "" [5m]))'
        ),
        applies=_has_format("logfmt"),
    ),
    QueryTemplate.SUM_OVER_TIME_BYTES: TemplateSpec(
        lambda m, d: (
            f"sum by ({group_label(m)}) (sum_over_time({_selector(m, d)} "
            f'| json | __error__ = "" | unwrap bytes [5m]))'
        ),
        applies=_has_format("json"),
    ),
    QueryTemplate.QUANTILE_BYTES: TemplateSpec(
        lambda m, d: (
            f"quantile_over_time(0.99, {_selector(m, d)} "
            f'| json | __error__ = "" | unwrap bytes [5m]) by ({group_label(m)})'
        ),
        applies=_has_format("json"),
    ),
    QueryTemplate.STREAM: TemplateSpec(
        lambda m, d: _selector(m, d),
        range_only=True,
    ),
    QueryTemplate.STREAM_NEGATED_FILTER: TemplateSpec(
        lambda m, d: f'{_selector(m, d)} |= "USB" != "USB"',
        range_only=True,
    ),
    QueryTemplate.STREAM_REGEX: TemplateSpec(
        lambda m, d: f'{_selector(m, d)} |~ "US.*(a|o)"',
        range_only=True,
    ),
    QueryTemplate.JSON_STATUS_FILTER: TemplateSpec(
        lambda m, d: f"{_selector(m, d, format='json')} | json | status < 300",
        range_only=True,
        applies=_has_format("json"),
    ),
}


class QueryBuilder:
    """
    Builds query requests and expressions over a label model.

    Every expression references only label names and values of the model
    it was built with. The builder holds no mutable state besides its
    clock, so it can be shared by all virtual users.

    Example:
        >>> builder = QueryBuilder(LabelModel.from_cardinalities({"app": 2}))
        >>> builder.render(QueryTemplate.RATE, 0.0)
        'rate({app="app-0"}[5m])'
    """

    def __init__(
        self,
        label_model: LabelModel,
        time_ranges: Sequence[tuple[str, float]] = DEFAULT_TIME_RANGES,
        limit: int = DEFAULT_LIMIT,
        clock: Callable[[], int] = time.time_ns,
    ):
        """Initialize the query builder.

        Args:
            label_model: Shared, read-only label model
            time_ranges: Weighted (duration, ratio) pool for time ranges
            limit: Default result limit of instant and range queries
            clock: Returns the current time in Unix nanoseconds

        Raises:
            ConfigurationError: If a time range duration is invalid
        """
        self.label_model = label_model
        self.limit = limit
        self.clock = clock

        for duration, _ in time_ranges:
            try:
                parse_duration(duration)
            except ValueError as e:
                raise ConfigurationError(f"time range: {e}") from e
        self.time_ranges: WeightedSelector[str] = WeightedSelector.from_pairs(time_ranges)

        applicable = [t for t, template in TEMPLATES.items() if template.applies(label_model)]
        self.instant_templates = WeightedSelector.uniform(
            [t for t in applicable if not TEMPLATES[t].range_only]
        )
        self.range_templates = WeightedSelector.uniform(applicable)

    # Time ranges

    def time_range(self, duration: str) -> TimeRange:
        """Return the interval of the given length ending now."""
        end = self.clock()
        return TimeRange(start_ns=end - parse_duration(duration), end_ns=end, duration=duration)

    def pick_time_range(self, draw: float) -> TimeRange:
        """Pick a time range from the weighted pool."""
        return self.time_range(self.time_ranges.select(draw))

    def _resolve(self, time_range: Union[TimeRange, str]) -> TimeRange:
        if isinstance(time_range, TimeRange):
            return time_range
        return self.time_range(time_range)

    # Request builders

    def labels_query(self, time_range: Union[TimeRange, str]) -> LabelsQuery:
        return LabelsQuery(time_range=self._resolve(time_range))

    def label_values_query(
        self, label_name: str, time_range: Union[TimeRange, str]
    ) -> LabelValuesQuery:
        """Build a query for the values of one label.

        Raises:
            ValueError: If label_name is not a valid label name
        """
        if not isinstance(label_name, str) or not LABEL_NAME_RE.match(label_name):
            raise ValueError(f"Invalid label name {label_name!r}")
        return LabelValuesQuery(label=label_name, time_range=self._resolve(time_range))

    def series_query(self, selector: str, time_range: Union[TimeRange, str]) -> SeriesQuery:
        """Build a series query.

        Raises:
            ValueError: If selector is not a non-empty "{...}" matcher list
        """
        text = selector.strip()
        if not (text.startswith("{") and text.endswith("}")) or "=" not in text[1:-1]:
            raise ValueError(f"Series selector must be a non-empty matcher list, got {selector!r}")
        return SeriesQuery(match=text, time_range=self._resolve(time_range))

    def instant_query(self, expression: str, limit: Optional[int] = None) -> InstantQuery:
        return InstantQuery(
            query=expression,
            time_ns=self.clock(),
            limit=self.limit if limit is None else limit,
        )

    def range_query(
        self,
        expression: str,
        time_range: Union[TimeRange, str],
        limit: Optional[int] = None,
    ) -> RangeQuery:
        return RangeQuery(
            query=expression,
            time_range=self._resolve(time_range),
            limit=self.limit if limit is None else limit,
        )

    # Expression generators

    def render(self, template: QueryTemplate, draw: float) -> str:
        """Render one template; draw picks the label value."""
        return TEMPLATES[template].render(self.label_model, draw)

    def instant_expression(self, draw: float) -> str:
        """Pick and render an expression valid for instant queries."""
        template, rest = self.instant_templates.split(draw)
        return self.render(template, rest)

    def range_expression(self, draw: float) -> str:
        """Pick and render an expression valid for range queries."""
        template, rest = self.range_templates.split(draw)
        return self.render(template, rest)

    def series_selector(self, draw: float, terms: int = 1) -> str:
        """
        Build a selector of `terms` matchers over distinct model labels.

        Raises:
            ValueError: If terms is not within [1, number of labels]
        """
        names = list(self.label_model.label_names())
        if not 1 <= terms <= len(names):
            raise ValueError(f"terms must be within [1, {len(names)}], got {terms}")

        matchers = []
        for _ in range(terms):
            name, draw = WeightedSelector.uniform(names).split(draw)
            value, draw = self.label_model.value_selector(name).split(draw)
            matchers.append((name, value))
            names.remove(name)
        return format_matchers(matchers)

    def _discovered(self, values: Mapping[str, Sequence[str]]) -> dict[str, Sequence[str]]:
        # Only values the model knows; labels left without any are dropped
        found = {}
        for name, pool in values.items():
            if name == RESERVED_LABEL or name not in self.label_model:
                continue
            known = [value for value in pool if self.label_model.has_value(name, value)]
            if known:
                found[name] = known
        return found

    def discovered_expressions(
        self, values: Mapping[str, Sequence[str]], rng: random.Random
    ) -> list[str]:
        """
        Build log queries from label values returned by discovery queries.

        Args:
            values: Discovered label name to values
            rng: Random source for the value picks

        Returns:
            Expressions, empty when no usable label was discovered
        """
        found = self._discovered(values)
        expressions = []
        if "app" in found:
            app = format_matchers({"app": rng.choice(found["app"])})
            expressions.append(f'{app} |= "GET" != "GET"')
        if "namespace" in found:
            namespace = format_matchers({"namespace": rng.choice(found["namespace"])})
            expressions.append(f'{namespace} |~ "GET|POST"')
        if "json" in found.get(FORMAT_LABEL, ()):
            json_streams = format_matchers({FORMAT_LABEL: "json"})
            expressions.append(f'{json_streams} | json | method = "GET"')
            expressions.append(f"{json_streams} | json | bytes > 10000")

        if not expressions and found:
            name = rng.choice(sorted(found))
            expressions.append(f'{format_matchers({name: rng.choice(found[name])})} |= "GET"')
        return expressions

    def discovered_series_selectors(
        self, values: Mapping[str, Sequence[str]], rng: random.Random
    ) -> list[str]:
        """One single-matcher selector per discovered label."""
        return [
            format_matchers({name: rng.choice(pool)})
            for name, pool in self._discovered(values).items()
        ]
