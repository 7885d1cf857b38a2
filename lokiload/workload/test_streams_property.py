"""
Property-based tests for stream synthesis.

Every stream of a batch must land inside the requested byte window and
carry labels drawn from the label model.
"""

import json
import random

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lokiload.workload.labels import INSTANCE_LABEL, LabelModel
from lokiload.workload.loglines import LogVocabulary
from lokiload.workload.models import ConfigurationError, InvalidByteWindowError
from lokiload.workload.streams import MB, StreamSynthesizer, validate_byte_window

VOCABULARY = LogVocabulary.build(seed=42, size=16)
MODEL = LabelModel.from_cardinalities({"app": 5, "namespace": 1, "pod": 10})


@st.composite
def byte_windows(draw):
    """Generate a valid (min_bytes, max_bytes) window."""
    min_bytes = draw(st.integers(min_value=0, max_value=4096))
    max_bytes = draw(st.integers(min_value=min_bytes, max_value=min_bytes + 4096))
    return min_bytes, max_bytes


def make_synthesizer(seed=1, model=MODEL, clock=None, vu_id=3):
    kwargs = {"clock": clock} if clock is not None else {}
    return StreamSynthesizer(
        model,
        rng=random.Random(seed),
        vocabulary=VOCABULARY,
        vu_id=vu_id,
        hostname="testhost",
        **kwargs,
    )


class TestStreamSynthesizer:
    """Example-based tests for StreamSynthesizer."""

    def test_megabyte_batch_lands_inside_window(self):
        batch = make_synthesizer().build_batch(4, 1 * MB, 2 * MB)
        assert len(batch) == 4
        for stream in batch:
            assert 1 * MB <= stream.size_bytes <= 2 * MB
            assert stream.labels["app"] in {f"app-{i}" for i in range(5)}
            assert stream.labels["namespace"] == "namespace-0"

    def test_inverted_window_is_rejected_before_any_work(self):
        calls = []

        def clock():
            calls.append(1)
            return 1

        synthesizer = make_synthesizer(clock=clock)
        with pytest.raises(InvalidByteWindowError) as exc_info:
            synthesizer.build_batch(3, 2048, 1024)
        assert exc_info.value.min_bytes == 2048
        assert exc_info.value.max_bytes == 1024
        assert calls == []

    def test_negative_minimum_is_rejected(self):
        with pytest.raises(InvalidByteWindowError):
            validate_byte_window(-1, 10)

    def test_byte_window_error_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            validate_byte_window(10, 1)

    @pytest.mark.parametrize("stream_count", [0, -1])
    def test_non_positive_stream_count_is_rejected(self, stream_count):
        with pytest.raises(ConfigurationError):
            make_synthesizer().build_batch(stream_count, 10, 20)

    def test_zero_window_builds_empty_streams(self):
        batch = make_synthesizer().build_batch(2, 0, 0)
        assert len(batch) == 2
        assert batch.size_bytes == 0
        assert batch.line_count == 0

    def test_instance_label_is_derived_from_vu_and_host(self):
        labels = make_synthesizer(vu_id=7).sample_labels()
        assert labels[INSTANCE_LABEL] == "vu7.testhost"

    def test_configured_instance_label_is_kept(self):
        model = LabelModel.from_cardinalities({"instance": ["fixed"]})
        labels = make_synthesizer(model=model).sample_labels()
        assert labels[INSTANCE_LABEL] == "fixed"

    def test_timestamps_strictly_increase_with_a_frozen_clock(self):
        synthesizer = make_synthesizer(clock=lambda: 1000)
        stream = synthesizer.build_stream(synthesizer.sample_labels(), 4096)
        timestamps = [entry.timestamp_ns for entry in stream.entries]
        assert timestamps == sorted(set(timestamps))
        assert timestamps[0] == 1000

    def test_lines_follow_the_format_label(self):
        model = LabelModel.from_cardinalities({"format": ["json"], "app": 2})
        synthesizer = make_synthesizer(model=model)
        stream = synthesizer.build_stream(synthesizer.sample_labels(), 8192)
        # Only the last line may have been truncated
        for entry in stream.entries[:-1]:
            assert "status" in json.loads(entry.line)

    def test_same_seed_builds_same_labels_and_sizes(self):
        first = make_synthesizer(seed=9, clock=lambda: 1).build_batch(3, 100, 900)
        second = make_synthesizer(seed=9, clock=lambda: 1).build_batch(3, 100, 900)
        assert [s.labels for s in first] == [s.labels for s in second]
        assert [s.size_bytes for s in first] == [s.size_bytes for s in second]

    def test_batch_encodes_as_loki_push_json(self):
        batch = make_synthesizer(clock=lambda: 5).build_batch(2, 50, 100)
        body = json.loads(batch.encode_json())
        assert len(body["streams"]) == 2
        first = body["streams"][0]
        assert first["stream"]["instance"] == "vu3.testhost"
        ts, line = first["values"][0]
        assert ts == "5"
        assert isinstance(line, str)


@pytest.mark.property
class TestStreamSynthesizerProperties:
    """Properties of built batches."""

    @given(
        stream_count=st.integers(min_value=1, max_value=5),
        window=byte_windows(),
        seed=st.integers(min_value=0, max_value=2**32 - 1),
    )
    @settings(max_examples=50)
    def test_every_stream_lands_inside_byte_window(self, stream_count, window, seed):
        """
        Property: a batch has exactly stream_count streams and every
        stream's line bytes fall within [min_bytes, max_bytes].
        """
        min_bytes, max_bytes = window
        batch = make_synthesizer(seed=seed).build_batch(stream_count, min_bytes, max_bytes)
        assert len(batch) == stream_count
        for stream in batch:
            assert min_bytes <= stream.size_bytes <= max_bytes

    @given(seed=st.integers(min_value=0, max_value=2**32 - 1))
    @settings(max_examples=50)
    def test_stream_labels_come_from_label_model(self, seed):
        """
        Property: every label of every stream is either a model label with
        a pool value or the synthesized instance label.
        """
        batch = make_synthesizer(seed=seed).build_batch(3, 0, 64)
        for stream in batch:
            for name, value in stream.labels.items():
                if name == INSTANCE_LABEL:
                    continue
                assert MODEL.has_value(name, value)
            assert set(stream.labels) == MODEL.all_label_names() | {INSTANCE_LABEL}
