"""
Label cardinality model.

The label model owns the universe of label names and values used by both
the stream synthesizer and the query builder. Each label is either an
explicit enumeration or a cardinality N that expands to the stable value
pool "{label}-0" .. "{label}-{N-1}", so runs with the same configuration
share the same value space.
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .loglines import SUPPORTED_FORMATS
from .models import (
    LABEL_NAME_RE,
    ConfigurationError,
    Enumerated,
    Generated,
    LabelDomain,
    LabelSet,
    label_domain,
)
from .selector import WeightedSelector

logger = logging.getLogger(__name__)

FORMAT_LABEL = "format"
INSTANCE_LABEL = "instance"

DEFAULT_CARDINALITIES = {
    "app": 5,
    "namespace": 10,
    "pod": 50,
}

# Always present when the model is built from cardinalities
BASE_LABELS: dict[str, tuple[str, ...]] = {
    FORMAT_LABEL: SUPPORTED_FORMATS,
    "os": ("darwin", "linux", "windows"),
}


class LabelSamplingPolicy(Enum):
    """How a label value is picked from its pool."""

    UNIFORM = "uniform"
    TOP_WEIGHTED = "top_weighted"


class LabelModel:
    """
    Read-only universe of label names and their value pools.

    All pools and value selectors are computed at construction; nothing is
    written afterwards, so one model can be shared by every virtual user.

    Example:
        >>> model = LabelModel.from_cardinalities({"app": 2})
        >>> model.synthesize_values("app")
        ('app-0', 'app-1')
    """

    def __init__(
        self,
        domains: Mapping[str, Any],
        policy: LabelSamplingPolicy = LabelSamplingPolicy.UNIFORM,
        top_label_probability: float = 0.9,
    ):
        """Initialize the label model.

        Args:
            domains: Mapping of label name to an integer cardinality,
                a list of values, or an Enumerated/Generated domain
            policy: Label value sampling policy
            top_label_probability: Weight of the first value of each pool
                under the TOP_WEIGHTED policy (0-1)

        Raises:
            ConfigurationError: If any label domain is invalid
        """
        if not domains:
            raise ConfigurationError("At least one label must be configured")
        if not 0.0 <= top_label_probability <= 1.0:
            raise ConfigurationError(
                f"top_label_probability must be within [0, 1], got {top_label_probability}"
            )

        self.policy = LabelSamplingPolicy(policy)
        self.top_label_probability = float(top_label_probability)

        parsed: dict[str, LabelDomain] = {}
        for name, value in domains.items():
            if not isinstance(name, str) or not LABEL_NAME_RE.match(name):
                raise ConfigurationError(f"Invalid label name {name!r}")
            try:
                parsed[name] = label_domain(value)
            except ConfigurationError as e:
                raise type(e)(f"label '{name}': {e}") from e
        self._domains = MappingProxyType(parsed)

        self._validate_format_label()

        self._values = MappingProxyType({
            name: self._expand(name, domain) for name, domain in parsed.items()
        })
        self._selectors = MappingProxyType({
            name: self._build_selector(values) for name, values in self._values.items()
        })

        logger.debug(
            f"Label model: policy={self.policy.value} "
            f"cardinalities={self.cardinalities()}"
        )

    @classmethod
    def from_cardinalities(
        cls,
        cardinalities: Optional[Mapping[str, Any]] = None,
        policy: LabelSamplingPolicy = LabelSamplingPolicy.UNIFORM,
        top_label_probability: float = 0.9,
    ) -> "LabelModel":
        """Build a model from cardinalities plus the base format/os labels.

        Args:
            cardinalities: Mapping of label name to a cardinality or a value list
            policy: Label value sampling policy
            top_label_probability: Weight of the top value under TOP_WEIGHTED

        Returns:
            LabelModel with format and os enumerations added
        """
        if cardinalities is None:
            cardinalities = DEFAULT_CARDINALITIES
        domains: dict[str, Any] = {name: Enumerated(values) for name, values in BASE_LABELS.items()}
        domains.update(cardinalities)
        return cls(domains, policy=policy, top_label_probability=top_label_probability)

    def _validate_format_label(self) -> None:
        domain = self._domains.get(FORMAT_LABEL)
        if domain is None:
            raise ConfigurationError(
                f"The '{FORMAT_LABEL}' label is required and must list log formats "
                f"from: {', '.join(SUPPORTED_FORMATS)}"
            )
        if not isinstance(domain, Enumerated):
            raise ConfigurationError(
                f"The '{FORMAT_LABEL}' label must be an explicit list of log formats"
            )
        unknown = [v for v in domain.values if v not in SUPPORTED_FORMATS]
        if unknown:
            raise ConfigurationError(
                f"Unsupported log format(s) {unknown}; supported: {', '.join(SUPPORTED_FORMATS)}"
            )

    @staticmethod
    def _expand(name: str, domain: LabelDomain) -> tuple[str, ...]:
        if isinstance(domain, Generated):
            return tuple(f"{name}-{i}" for i in range(domain.count))
        # Keep first occurrence order, drop duplicates
        return tuple(dict.fromkeys(domain.values))

    def _build_selector(self, values: tuple[str, ...]) -> WeightedSelector[str]:
        if self.policy is LabelSamplingPolicy.UNIFORM or len(values) == 1:
            return WeightedSelector.uniform(values)

        top = self.top_label_probability
        tail = (1.0 - top) / (len(values) - 1)
        pairs = [(values[0], top)] + [(v, tail) for v in values[1:]]
        return WeightedSelector.from_pairs((v, r) for v, r in pairs if r > 0)

    def synthesize_values(self, label_name: str) -> tuple[str, ...]:
        """Return the ordered value pool of a label.

        Raises:
            KeyError: If the label is not configured
        """
        try:
            return self._values[label_name]
        except KeyError:
            raise KeyError(f"Unknown label '{label_name}'") from None

    def value_selector(self, label_name: str) -> WeightedSelector[str]:
        """Return the selector used to sample values of a label."""
        try:
            return self._selectors[label_name]
        except KeyError:
            raise KeyError(f"Unknown label '{label_name}'") from None

    def pick_value(self, label_name: str, draw: float) -> str:
        """Pick one value of a label for a uniform draw in [0, 1)."""
        return self.value_selector(label_name).select(draw)

    def all_label_names(self) -> frozenset[str]:
        return frozenset(self._values)

    def label_names(self) -> tuple[str, ...]:
        """Label names in configuration order."""
        return tuple(self._values)

    def has_value(self, label_name: str, value: str) -> bool:
        return value in self._values.get(label_name, ())

    def domain(self, label_name: str) -> LabelDomain:
        return self._domains[label_name]

    def cardinalities(self) -> dict[str, int]:
        """Number of distinct values per label."""
        return {name: len(values) for name, values in self._values.items()}

    def sample_label_set(self, rng) -> LabelSet:
        """Draw one value per label independently."""
        return LabelSet({
            name: selector.select(rng.random())
            for name, selector in self._selectors.items()
        })

    def __contains__(self, label_name: object) -> bool:
        return label_name in self._values

    def to_dict(self) -> dict[str, Any]:
        """Convert to the configuration representation."""
        return {
            name: (domain.count if isinstance(domain, Generated) else list(domain.values))
            for name, domain in self._domains.items()
        }
