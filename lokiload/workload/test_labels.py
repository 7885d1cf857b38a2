"""
Tests for the label cardinality model.
"""

import random

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lokiload.workload.labels import (
    BASE_LABELS,
    DEFAULT_CARDINALITIES,
    LabelModel,
    LabelSamplingPolicy,
)
from lokiload.workload.models import (
    ConfigurationError,
    EmptyLabelDomainError,
    Enumerated,
    Generated,
    InvalidCardinalityError,
)

label_names = st.from_regex(r"[a-z_][a-z0-9_]{0,15}", fullmatch=True).filter(
    lambda name: name not in BASE_LABELS
)


class TestLabelModel:
    """Example-based tests for LabelModel."""

    def test_default_model_has_base_and_default_labels(self):
        model = LabelModel.from_cardinalities()
        assert model.all_label_names() == frozenset(BASE_LABELS) | frozenset(DEFAULT_CARDINALITIES)
        assert model.cardinalities()["pod"] == 50

    def test_generated_values_are_named_after_label(self):
        model = LabelModel.from_cardinalities({"app": 3})
        assert model.synthesize_values("app") == ("app-0", "app-1", "app-2")

    def test_enumerated_values_keep_order_and_drop_duplicates(self):
        model = LabelModel.from_cardinalities({"region": ["eu", "us", "eu", "ap"]})
        assert model.synthesize_values("region") == ("eu", "us", "ap")
        assert isinstance(model.domain("region"), Enumerated)

    @pytest.mark.parametrize("cardinality", [0, -3])
    def test_non_positive_cardinality_is_rejected(self, cardinality):
        with pytest.raises(InvalidCardinalityError):
            LabelModel.from_cardinalities({"app": cardinality})

    def test_boolean_cardinality_is_rejected(self):
        with pytest.raises(InvalidCardinalityError):
            LabelModel.from_cardinalities({"app": True})

    def test_empty_enumeration_is_rejected(self):
        with pytest.raises(EmptyLabelDomainError):
            LabelModel.from_cardinalities({"region": []})

    def test_unsupported_domain_type_is_rejected(self):
        with pytest.raises(ConfigurationError):
            LabelModel.from_cardinalities({"app": 2.5})

    def test_format_label_is_required(self):
        with pytest.raises(ConfigurationError, match="format"):
            LabelModel({"app": 3})

    def test_format_label_must_be_enumerated(self):
        with pytest.raises(ConfigurationError):
            LabelModel({"format": 3})

    def test_unknown_format_is_rejected(self):
        with pytest.raises(ConfigurationError, match="xml"):
            LabelModel({"format": ["json", "xml"]})

    def test_format_can_be_narrowed(self):
        model = LabelModel.from_cardinalities({"format": ["json"], "app": 2})
        assert model.synthesize_values("format") == ("json",)

    @pytest.mark.parametrize("name", ["bad-name", "1app", "", "app name"])
    def test_invalid_label_name_is_rejected(self, name):
        with pytest.raises(ConfigurationError):
            LabelModel({"format": ["json"], name: 2})

    def test_empty_model_is_rejected(self):
        with pytest.raises(ConfigurationError):
            LabelModel({})

    @pytest.mark.parametrize("probability", [-0.1, 1.5])
    def test_top_label_probability_must_be_a_probability(self, probability):
        with pytest.raises(ConfigurationError):
            LabelModel.from_cardinalities(
                {"app": 3},
                policy=LabelSamplingPolicy.TOP_WEIGHTED,
                top_label_probability=probability,
            )

    def test_unknown_label_lookup_raises_key_error(self):
        model = LabelModel.from_cardinalities({"app": 2})
        with pytest.raises(KeyError):
            model.synthesize_values("cluster")
        with pytest.raises(KeyError):
            model.pick_value("cluster", 0.5)

    def test_uniform_policy_spreads_draws_evenly(self):
        model = LabelModel.from_cardinalities({"app": 5})
        assert model.pick_value("app", 0.0) == "app-0"
        assert model.pick_value("app", 0.5) == "app-2"
        assert model.pick_value("app", 0.99) == "app-4"

    def test_top_weighted_policy_favours_first_value(self):
        model = LabelModel.from_cardinalities(
            {"app": 5},
            policy=LabelSamplingPolicy.TOP_WEIGHTED,
            top_label_probability=0.9,
        )
        choices = model.value_selector("app").choices()
        assert choices[0].item == "app-0"
        assert choices[0].ratio == pytest.approx(0.9)
        assert all(c.ratio == pytest.approx(0.025) for c in choices[1:])
        assert model.pick_value("app", 0.5) == "app-0"
        assert model.pick_value("app", 0.95) != "app-0"

    def test_top_weighted_with_certain_top_value(self):
        model = LabelModel.from_cardinalities(
            {"app": 4},
            policy=LabelSamplingPolicy.TOP_WEIGHTED,
            top_label_probability=1.0,
        )
        assert len(model.value_selector("app")) == 1
        assert model.pick_value("app", 0.99) == "app-0"

    def test_sample_label_set_covers_every_label(self):
        model = LabelModel.from_cardinalities({"app": 5, "namespace": 2})
        labels = model.sample_label_set(random.Random(1))
        assert set(labels) == model.all_label_names()
        assert all(model.has_value(name, value) for name, value in labels.items())

    def test_to_dict_rebuilds_same_model(self):
        model = LabelModel.from_cardinalities({"app": 4, "region": ["eu", "us"]})
        rebuilt = LabelModel(model.to_dict())
        assert rebuilt.cardinalities() == model.cardinalities()
        assert rebuilt.synthesize_values("region") == ("eu", "us")
        assert isinstance(rebuilt.domain("app"), Generated)

    def test_contains_checks_label_names(self):
        model = LabelModel.from_cardinalities({"app": 2})
        assert "app" in model
        assert "cluster" not in model


@pytest.mark.property
class TestLabelModelProperties:
    """Properties of generated value pools."""

    @given(name=label_names, cardinality=st.integers(min_value=1, max_value=500))
    @settings(max_examples=100)
    def test_generated_pool_has_exactly_n_distinct_values(self, name, cardinality):
        """
        Property: a cardinality N always yields exactly N distinct values,
        and two models with the same configuration yield the same pool.
        """
        model = LabelModel.from_cardinalities({name: cardinality})
        values = model.synthesize_values(name)
        assert len(values) == cardinality
        assert len(set(values)) == cardinality
        assert LabelModel.from_cardinalities({name: cardinality}).synthesize_values(name) == values

    @given(
        cardinality=st.integers(min_value=1, max_value=50),
        draw=st.floats(min_value=0.0, max_value=1.0, exclude_max=True),
        policy=st.sampled_from(list(LabelSamplingPolicy)),
    )
    @settings(max_examples=100)
    def test_picked_value_belongs_to_pool(self, cardinality, draw, policy):
        """
        Property: under either policy a pick is always a member of the pool.
        """
        model = LabelModel.from_cardinalities({"app": cardinality}, policy=policy)
        assert model.has_value("app", model.pick_value("app", draw))
