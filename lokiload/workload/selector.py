"""
Weighted ratio selector.

Every randomized choice in the workload (query type, time range, label
value) goes through a WeightedSelector: an immutable interval table built
once from (item, ratio) pairs and sampled with a caller-supplied uniform
draw in [0, 1).
"""

import math
import random
from bisect import bisect_right
from dataclasses import dataclass
from typing import Generic, Iterable, Sequence, TypeVar

from .models import ConfigurationError, SamplingError

T = TypeVar("T")


@dataclass(frozen=True)
class WeightedChoice(Generic[T]):
    """A single (item, ratio) entry of a weighted pool."""

    item: T
    ratio: float


@dataclass(frozen=True)
class WeightedSelector(Generic[T]):
    """
    Sample items by ratio using precomputed cumulative intervals.

    Item i owns the half-open interval [ends[i-1], ends[i]). A draw r is
    scaled by the sum of all ratios, so ratios need not add up to 1.

    Example:
        >>> selector = WeightedSelector.from_pairs([("a", 0.1), ("b", 0.9)])
        >>> selector.select(0.05)
        'a'
    """

    items: tuple[T, ...]
    ends: tuple[float, ...]

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[T, float]]) -> "WeightedSelector[T]":
        """Build a selector from (item, ratio) pairs.

        Args:
            pairs: Ordered (item, ratio) pairs with positive ratios

        Returns:
            WeightedSelector over the given items

        Raises:
            ConfigurationError: If there are no pairs or a ratio is not positive
        """
        items = []
        ends = []
        total = 0.0
        for item, ratio in pairs:
            if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not ratio > 0:
                raise ConfigurationError(
                    f"Ratio for {item!r} must be a positive number, got {ratio!r}"
                )
            total += float(ratio)
            items.append(item)
            ends.append(total)

        if not items:
            raise ConfigurationError("A weighted selector needs at least one choice")

        return cls(items=tuple(items), ends=tuple(ends))

    @classmethod
    def from_choices(cls, choices: Iterable[WeightedChoice[T]]) -> "WeightedSelector[T]":
        """Build a selector from WeightedChoice entries."""
        return cls.from_pairs((c.item, c.ratio) for c in choices)

    @classmethod
    def uniform(cls, items: Sequence[T]) -> "WeightedSelector[T]":
        """Build a selector giving every item the same ratio."""
        return cls.from_pairs((item, 1.0) for item in items)

    @property
    def total(self) -> float:
        """Sum of all ratios."""
        return self.ends[-1]

    def __len__(self) -> int:
        return len(self.items)

    def select(self, r: float) -> T:
        """Return the item whose interval contains r * total.

        Args:
            r: Uniform draw in [0, 1)

        Returns:
            The selected item

        Raises:
            SamplingError: If r is outside [0, 1)
        """
        if not 0.0 <= r < 1.0:
            raise SamplingError(f"random value must be within range [0, 1), got {r!r}")

        value = r * self.total
        # bisect_right puts a value equal to an interval end into the next interval
        index = bisect_right(self.ends, value)
        # r * total can round up to total for r just below 1
        return self.items[min(index, len(self.items) - 1)]

    def split(self, r: float) -> tuple[T, float]:
        """Select an item and return the draw's position inside its interval.

        The second element is rescaled to [0, 1), so one draw can drive a
        chain of dependent choices (template, then label value).
        """
        if not 0.0 <= r < 1.0:
            raise SamplingError(f"random value must be within range [0, 1), got {r!r}")

        value = r * self.total
        index = min(bisect_right(self.ends, value), len(self.items) - 1)
        start = self.ends[index - 1] if index > 0 else 0.0
        residual = (value - start) / (self.ends[index] - start)
        return self.items[index], min(max(residual, 0.0), math.nextafter(1.0, 0.0))

    def choose(self, rng: random.Random) -> T:
        """Select an item with a draw taken from rng."""
        return self.select(rng.random())

    def choices(self) -> list[WeightedChoice[T]]:
        """Return the (item, ratio) entries this selector was built from."""
        result = []
        start = 0.0
        for item, end in zip(self.items, self.ends):
            result.append(WeightedChoice(item=item, ratio=end - start))
            start = end
        return result
