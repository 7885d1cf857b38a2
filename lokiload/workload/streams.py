"""
Synthetic log stream generation.

The StreamSynthesizer builds push batches whose streams each carry a label
set sampled from the LabelModel and enough synthetic lines to land inside a
caller-specified byte window.
"""

import logging
import random
import socket
import time
from typing import Callable, Optional

from .labels import FORMAT_LABEL, INSTANCE_LABEL, LabelModel
from .loglines import LogLineFactory, LogVocabulary
from .models import (
    ConfigurationError,
    InvalidByteWindowError,
    LabelSet,
    LogEntry,
    LogStream,
    PushBatch,
)

logger = logging.getLogger(__name__)

KB = 1024
MB = KB * KB

# Defaults of the plain push() call: 5 streams, 800KB-1MB per stream
DEFAULT_STREAMS = 5
DEFAULT_MIN_BYTES = 800 * KB
DEFAULT_MAX_BYTES = 1 * MB


def validate_byte_window(min_bytes: int, max_bytes: int) -> None:
    """Fail fast on an unusable byte window.

    Raises:
        InvalidByteWindowError: If min_bytes is negative or above max_bytes
    """
    if min_bytes < 0 or max_bytes < min_bytes:
        raise InvalidByteWindowError(min_bytes, max_bytes)


class StreamSynthesizer:
    """
    Builds batches of synthetic log streams.

    One synthesizer belongs to one virtual user: it owns a random.Random and
    a line factory, and only reads the shared LabelModel.
    """

    def __init__(
        self,
        label_model: LabelModel,
        rng: Optional[random.Random] = None,
        vocabulary: Optional[LogVocabulary] = None,
        vu_id: int = 0,
        hostname: Optional[str] = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        """Initialize the synthesizer.

        Args:
            label_model: Shared, read-only label model
            rng: Random source for label sampling and line content
            vocabulary: Shared vocabulary for line content
            vu_id: Virtual user id, used for the default instance label
            hostname: Host name for the default instance label
            clock: Returns the current time in Unix nanoseconds
        """
        self.label_model = label_model
        self.rng = rng or random.Random()
        self.lines = LogLineFactory(self.rng, vocabulary)
        self.vu_id = vu_id
        self.hostname = hostname or socket.gethostname() or "localhost"
        self.clock = clock
        self._last_ts = 0

    @property
    def instance(self) -> str:
        return f"vu{self.vu_id}.{self.hostname}"

    def sample_labels(self) -> LabelSet:
        """Sample one value per configured label.

        Adds the instance label derived from VU and host name unless the
        model configures instance itself.
        """
        labels = dict(self.label_model.sample_label_set(self.rng))
        if INSTANCE_LABEL not in labels:
            labels[INSTANCE_LABEL] = self.instance
        return LabelSet(labels)

    def _next_timestamp(self) -> int:
        # Entries of a stream must be strictly ordered
        ts = max(self.clock(), self._last_ts + 1)
        self._last_ts = ts
        return ts

    def build_stream(self, labels: LabelSet, target_bytes: int) -> LogStream:
        """Build one stream of exactly target_bytes of line data.

        The last line is truncated when a whole line would overshoot.
        """
        log_format = labels[FORMAT_LABEL]
        entries = []
        size = 0
        while size < target_bytes:
            ts = self._next_timestamp()
            # ASCII only, so character count equals byte count
            line = self.lines.line(log_format, ts).encode("ascii", "ignore").decode("ascii")
            remaining = target_bytes - size
            if len(line) > remaining:
                line = line[:remaining]
            entries.append(LogEntry(timestamp_ns=ts, line=line))
            size += len(line)
        return LogStream(labels=labels, entries=tuple(entries))

    def build_batch(
        self,
        stream_count: int = DEFAULT_STREAMS,
        min_bytes: int = DEFAULT_MIN_BYTES,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> PushBatch:
        """Build a batch of streams sized to a byte window.

        Args:
            stream_count: Number of streams in the batch
            min_bytes: Minimum line bytes per stream (inclusive)
            max_bytes: Maximum line bytes per stream (inclusive)

        Returns:
            PushBatch with exactly stream_count streams, each within
            [min_bytes, max_bytes]

        Raises:
            InvalidByteWindowError: If min_bytes > max_bytes or min_bytes < 0
            ConfigurationError: If stream_count is not positive
        """
        validate_byte_window(min_bytes, max_bytes)
        if stream_count < 1:
            raise ConfigurationError(f"stream_count must be positive, got {stream_count}")

        streams = []
        for _ in range(stream_count):
            labels = self.sample_labels()
            target = self.rng.randint(min_bytes, max_bytes)
            streams.append(self.build_stream(labels, target))

        batch = PushBatch(streams=tuple(streams))
        logger.debug(
            f"Built batch: streams={len(batch)} lines={batch.line_count} bytes={batch.size_bytes}"
        )
        return batch
