"""
Tests for LogQL query generation.

Expressions must only reference label names and values of the model they
were built from, and request builders must reject malformed input.
"""

import random
import re

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lokiload.workload.labels import LabelModel
from lokiload.workload.models import (
    ConfigurationError,
    InstantQuery,
    LabelValuesQuery,
    QueryKind,
    RangeQuery,
    TimeRange,
)
from lokiload.workload.queries import (
    TEMPLATES,
    QueryBuilder,
    QueryTemplate,
    format_matchers,
    parse_duration,
    primary_label,
)

NOW_NS = 1_700_000_000 * 10**9
SECOND = 10**9

SELECTOR_RE = re.compile(r"\{([^{}]*)\}")
MATCHER_RE = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')

unit_draws = st.floats(min_value=0.0, max_value=1.0, exclude_max=True, allow_nan=False)


@st.composite
def label_models(draw):
    """Generate label models with a few generated and enumerated labels."""
    cardinalities = draw(st.dictionaries(
        st.sampled_from(["app", "namespace", "pod", "cluster", "region"]),
        st.one_of(
            st.integers(min_value=1, max_value=30),
            st.lists(st.sampled_from(["eu", "us", "ap", "sa"]), min_size=1, max_size=4),
        ),
        max_size=5,
    ))
    formats = draw(st.lists(
        st.sampled_from(["json", "logfmt", "apache_common", "rfc5424"]),
        min_size=1,
        max_size=4,
        unique=True,
    ))
    return LabelModel.from_cardinalities({**cardinalities, "format": formats})


def matchers_of(expression):
    """Return every (name, value) equality matcher inside stream selectors."""
    found = []
    for selector in SELECTOR_RE.findall(expression):
        found.extend(MATCHER_RE.findall(selector))
    return found


def make_builder(model=None, **kwargs):
    model = model or LabelModel.from_cardinalities({"app": 2, "namespace": 1})
    return QueryBuilder(model, clock=lambda: NOW_NS, **kwargs)


class TestParseDuration:
    """Tests for Go-style duration parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("90s", 90 * SECOND),
        ("15m", 15 * 60 * SECOND),
        ("1h30m", 90 * 60 * SECOND),
        ("1.5h", 90 * 60 * SECOND),
        ("500ms", SECOND // 2),
        ("0", 0),
    ])
    def test_valid_durations(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "5", "1x", "-5m", "m", "5m garbage", None])
    def test_invalid_durations(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestFormatMatchers:
    """Tests for stream selector rendering."""

    def test_renders_matchers_in_order(self):
        assert format_matchers({"app": "app-1", "format": "json"}) == '{app="app-1", format="json"}'

    def test_escapes_quotes(self):
        assert format_matchers([("app", 'a"b')]) == '{app="a\\"b"}'

    def test_empty_selector_is_rejected(self):
        with pytest.raises(ValueError):
            format_matchers({})

    def test_invalid_label_name_is_rejected(self):
        with pytest.raises(ValueError):
            format_matchers({"bad-name": "x"})


class TestQueryBuilder:
    """Example-based tests for QueryBuilder."""

    def test_rate_template(self):
        assert make_builder().render(QueryTemplate.RATE, 0.0) == 'rate({app="app-0"}[5m])'

    def test_sum_rate_groups_by_namespace(self):
        assert (
            make_builder().render(QueryTemplate.SUM_RATE, 0.6)
            == 'sum by (namespace) (rate({app="app-1"} [5m]))'
        )

    def test_json_status_filter_narrows_to_json_streams(self):
        expression = make_builder().render(QueryTemplate.JSON_STATUS_FILTER, 0.0)
        assert expression == '{app="app-0", format="json"} | json | status < 300'

    def test_json_status_filter_on_format_only_model(self):
        model = LabelModel({"format": ["rfc3164", "json"]})
        assert primary_label(model) == "format"
        for draw in (0.0, 0.9):
            expression = make_builder(model).render(QueryTemplate.JSON_STATUS_FILTER, draw)
            assert expression == '{format="json"} | json | status < 300'

    def test_primary_label_falls_back_without_app(self):
        model = LabelModel.from_cardinalities({"cluster": 2})
        assert primary_label(model) == "cluster"

    def test_range_only_templates_are_not_used_for_instant_queries(self):
        builder = make_builder()
        instant = set(builder.instant_templates.items)
        assert all(not TEMPLATES[t].range_only for t in instant)
        assert instant < set(builder.range_templates.items)
        assert QueryTemplate.STREAM in builder.range_templates.items

    def test_json_templates_need_json_streams(self):
        model = LabelModel.from_cardinalities({"format": ["logfmt"], "app": 2})
        builder = make_builder(model)
        assert QueryTemplate.JSON_STATUS_FILTER not in builder.range_templates.items
        assert QueryTemplate.SUM_RATE_JSON_STATUS not in builder.instant_templates.items
        assert QueryTemplate.SUM_RATE_LOGFMT_METHOD in builder.instant_templates.items

    def test_invalid_time_range_pool_is_rejected(self):
        with pytest.raises(ConfigurationError):
            make_builder(time_ranges=[("bogus", 1.0)])

    def test_time_range_ends_now(self):
        time_range = make_builder().time_range("1h")
        assert time_range == TimeRange(start_ns=NOW_NS - 3600 * SECOND, end_ns=NOW_NS, duration="1h")

    @pytest.mark.parametrize("draw,duration", [(0.1, "15m"), (0.5, "1h"), (0.95, "12h")])
    def test_pick_time_range_follows_weights(self, draw, duration):
        assert make_builder().pick_time_range(draw).duration == duration

    def test_instant_query_params(self):
        request = make_builder().instant_query('rate({app="app-0"}[5m])')
        assert isinstance(request, InstantQuery)
        assert request.endpoint == "/loki/api/v1/query"
        assert request.params() == {
            "query": 'rate({app="app-0"}[5m])',
            "time": str(NOW_NS),
            "limit": "1000",
        }

    def test_range_query_params(self):
        request = make_builder(limit=50).range_query('{app="app-0"}', "5m")
        assert isinstance(request, RangeQuery)
        assert request.kind is QueryKind.RANGE
        assert request.params() == {
            "query": '{app="app-0"}',
            "start": str(NOW_NS - 300 * SECOND),
            "end": str(NOW_NS),
            "limit": "50",
        }

    def test_label_values_query_endpoint(self):
        request = make_builder().label_values_query("app", "15m")
        assert isinstance(request, LabelValuesQuery)
        assert request.endpoint == "/loki/api/v1/label/app/values"

    @pytest.mark.parametrize("name", ["", "bad-name", "app/../x"])
    def test_label_values_query_rejects_invalid_name(self, name):
        with pytest.raises(ValueError):
            make_builder().label_values_query(name, "15m")

    def test_series_query_params(self):
        request = make_builder().series_query('{app="app-0"}', "10m")
        assert request.params()["match[]"] == '{app="app-0"}'
        assert request.endpoint == "/loki/api/v1/series"

    @pytest.mark.parametrize("selector", ["", "{}", "app", '{app="x"', "{ }"])
    def test_series_query_rejects_invalid_selector(self, selector):
        with pytest.raises(ValueError):
            make_builder().series_query(selector, "10m")

    def test_labels_query_accepts_time_range(self):
        time_range = TimeRange(start_ns=1, end_ns=2)
        assert make_builder().labels_query(time_range).time_range is time_range

    @pytest.mark.parametrize("terms", [0, 10])
    def test_series_selector_rejects_invalid_term_count(self, terms):
        with pytest.raises(ValueError):
            make_builder().series_selector(0.5, terms=terms)

    def test_discovered_expressions_cover_known_labels(self):
        builder = make_builder()
        expressions = builder.discovered_expressions(
            {"app": ["app-1"], "namespace": ["namespace-0"], "format": ["json", "logfmt"]},
            random.Random(1),
        )
        assert expressions == [
            '{app="app-1"} |= "GET" != "GET"',
            '{namespace="namespace-0"} |~ "GET|POST"',
            '{format="json"} | json | method = "GET"',
            '{format="json"} | json | bytes > 10000',
        ]

    def test_discovered_expressions_fall_back_to_any_label(self):
        expressions = make_builder().discovered_expressions(
            {"format": ["logfmt"]}, random.Random(1)
        )
        assert expressions == ['{format="logfmt"} |= "GET"']

    def test_discovered_expressions_ignore_unknown_labels(self):
        builder = make_builder()
        values = {"__name__": ["x"], "cluster": ["c-1"], "app": []}
        assert builder.discovered_expressions(values, random.Random(1)) == []
        assert builder.discovered_series_selectors(values, random.Random(1)) == []

    def test_discovered_values_outside_model_are_dropped(self):
        builder = make_builder(LabelModel.from_cardinalities({"app": 2}))
        values = {"app": ["app-99", "app-1"], "namespace": ["stale-ns"]}
        for seed in range(5):
            rng = random.Random(seed)
            expressions = builder.discovered_expressions(values, rng)
            selectors = builder.discovered_series_selectors(values, rng)
            assert expressions and selectors
            for text in expressions + selectors:
                assert "app-99" not in text
                assert "stale-ns" not in text
        assert builder.discovered_expressions({"app": ["app-99"]}, random.Random(1)) == []
        assert builder.discovered_series_selectors({"app": ["app-99"]}, random.Random(1)) == []

    def test_discovered_series_selectors_use_model_labels_only(self):
        selectors = make_builder().discovered_series_selectors(
            {"app": ["app-0"], "instance": ["vu1.host"], "namespace": ["namespace-0"]},
            random.Random(1),
        )
        assert selectors == ['{app="app-0"}', '{namespace="namespace-0"}']


@pytest.mark.property
class TestQueryBuilderProperties:
    """Properties of generated expressions."""

    @given(model=label_models(), draw=unit_draws)
    @settings(max_examples=100)
    def test_expressions_reference_only_model_labels(self, model, draw):
        """
        Property: every matcher of an instant or range expression names a
        model label and one of its pool values.
        """
        builder = QueryBuilder(model, clock=lambda: NOW_NS)
        for expression in (builder.instant_expression(draw), builder.range_expression(draw)):
            matchers = matchers_of(expression)
            assert matchers
            for name, value in matchers:
                assert name in model
                assert model.has_value(name, value)

    @given(model=label_models(), draw=unit_draws, data=st.data())
    @settings(max_examples=100)
    def test_series_selector_uses_distinct_model_labels(self, model, draw, data):
        """
        Property: a series selector with N terms has N matchers over
        distinct model labels with pool values.
        """
        builder = QueryBuilder(model, clock=lambda: NOW_NS)
        terms = data.draw(st.integers(min_value=1, max_value=len(model.label_names())))
        selector = builder.series_selector(draw, terms=terms)
        matchers = matchers_of(selector)
        assert len(matchers) == terms
        assert len({name for name, _ in matchers}) == terms
        assert all(model.has_value(name, value) for name, value in matchers)
        assert builder.series_query(selector, "1h").match == selector

    @given(model=label_models(), draw=unit_draws)
    @settings(max_examples=100)
    def test_every_applicable_template_renders(self, model, draw):
        """
        Property: each template in the pools renders a non-empty expression
        deterministically for the same draw.
        """
        builder = QueryBuilder(model, clock=lambda: NOW_NS)
        for template in builder.range_templates.items:
            expression = builder.render(template, draw)
            assert expression
            assert builder.render(template, draw) == expression
