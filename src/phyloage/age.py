"""
Age estimates from Y-STR mutation counts.

Calculates for every clade the average number of downstream Y-STR
mutations, converts it into a TMRCA and formation age, and provides a
95% confidence interval:

- Bottom-up pass: mutation counts of samples and subclades are combined
  into a weighted average with Gaussian error propagation.
- Confidence interval: exact Poisson bounds for small counts, Gaussian
  approximation otherwise.
- Top-down pass: the calibration of each subclade is adjusted so that no
  subclade is older than its parent.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from phyloage.tree import Clade

logger = logging.getLogger(__name__)

# Exact two-sided 95% confidence limits for a Poisson count of 0..14
POISSON_TABLE: tuple[tuple[float, float], ...] = (
    (0.0, 3.689),
    (0.0253, 5.572),
    (0.242, 7.225),
    (0.619, 8.767),
    (1.090, 10.242),
    (1.623, 11.668),
    (2.202, 13.059),
    (2.814, 14.423),
    (3.454, 15.763),
    (4.115, 17.085),
    (4.795, 18.390),
    (5.491, 19.682),
    (6.201, 20.962),
    (6.922, 22.230),
    (7.654, 23.490),
)


@dataclass
class WeightedEntry:
    """
    A value with its variance for weighted averages.

    Attributes:
        value: Mutation count estimate
        sigma2: Variance (square of the standard deviation)
        weight: Normalized weight, set by WeightedAverage.average()
    """

    value: float
    sigma2: float
    weight: float = 0.0


class WeightedAverage:
    """
    Weighted average of mutation counts and its variance.

    Entries are weighted by value / variance, which for Poisson counts
    gives larger branches with more samples more influence.
    """

    def __init__(self) -> None:
        self.entries: list[WeightedEntry] = []

    def add(self, value: float, sigma2: float) -> None:
        """Add a value and its squared standard deviation."""
        self.entries.append(WeightedEntry(value=value, sigma2=sigma2))

    def __len__(self) -> int:
        return len(self.entries)

    def weights(self) -> list[float]:
        """Return the normalized weights of all entries (sum to 1)."""
        total = sum(e.value / e.sigma2 for e in self.entries)
        return [e.value / (total * e.sigma2) for e in self.entries]

    def average(self) -> tuple[float, float] | None:
        """
        Calculate the weighted average.

        Returns:
            Tuple of (average, variance), or None without entries
        """
        if not self.entries:
            return None
        for entry, weight in zip(self.entries, self.weights()):
            entry.weight = weight
        average = sum(e.value * e.weight for e in self.entries)
        sigma2 = sum(e.sigma2 * e.weight * e.weight for e in self.entries)
        return average, sigma2


def poisson_interval(m: float) -> tuple[float, float]:
    """
    95% confidence bounds for an (equivalent) Poisson count.

    Args:
        m: Count; may be a real number

    Returns:
        Tuple of (lower, upper) bounds
    """
    if m < len(POISSON_TABLE):
        return POISSON_TABLE[math.floor(m)]
    spread = 2 * math.sqrt(m + 1)
    return m - spread + 2, m + spread + 2


def confidence_interval(count: float, sigma2: float) -> tuple[float, float] | None:
    """
    95% confidence interval for a mutation count with known variance.

    The squared signal-to-noise ratio M = (count / sigma)^2 is treated as
    an equivalent Poisson count; its bounds are scaled back by count / M.

    Args:
        count: Estimated number of mutations
        sigma2: Variance of the estimate

    Returns:
        Tuple of (lower, upper) in mutations, or None if undefined
    """
    if count <= 0 or sigma2 <= 0:
        return None
    m = count * count / sigma2
    lower, upper = poisson_interval(m)
    scale = count / m
    return lower * scale, upper * scale


class AgeEstimator:
    """
    Calculates TMRCA and formation ages for all clades of a tree.

    Ages are (mutations * generation_time * calibration) + offset.
    """

    def __init__(
        self,
        generation_time: float = 1.0,
        calibration: float = 1.0,
        offset: float = 0.0,
    ):
        """
        Initialize estimator.

        Args:
            generation_time: Years per generation
            calibration: Calibration factor multiplied to the result
            offset: Years added to all ages

        Raises:
            ValueError: If generation_time or calibration is not positive
        """
        if generation_time <= 0:
            raise ValueError(f"Generation time must be positive, got {generation_time}")
        if calibration <= 0:
            raise ValueError(f"Calibration factor must be positive, got {calibration}")
        self.generation_time = generation_time
        self.calibration = calibration
        self.offset = offset

    @property
    def rate(self) -> float:
        """Years per mutation for the base calibration."""
        return self.generation_time * self.calibration

    def run(self, root: Clade, topdown: bool = True) -> None:
        """
        Calculate ages for root and all subclades.

        Args:
            root: Root clade with STR-Counts for samples and subclades
            topdown: Perform the top-down recalibration afterwards
        """
        self.estimate(root)
        if topdown:
            self.recalibrate(root)

    def estimate(self, clade: Clade) -> None:
        """Bottom-up pass: downstream mutation counts and ages."""
        for subclade in clade.subclades:
            self.estimate(subclade)

        calc = WeightedAverage()

        # Samples form a single branch entry
        counts = [s.str_count for s in clade.samples if s.str_count is not None]
        if counts:
            mean = sum(counts) / len(counts)
            sigma2 = mean / len(counts)
            if sigma2 > 0:
                calc.add(mean, sigma2)

        for subclade in clade.subclades:
            if subclade.str_count is None:
                continue
            total = subclade.str_count
            sigma2 = subclade.str_count
            if subclade.str_count_downstream is not None:
                total += subclade.str_count_downstream
                sigma2 += subclade.variance or 0.0
            if sigma2 > 0:
                calc.add(total, sigma2)

        result = calc.average()
        if result is None:
            clade.str_count_downstream = None
            clade.variance = None
        else:
            clade.str_count_downstream, clade.variance = result
        self.apply_ages(clade, self.calibration)

    def apply_ages(self, clade: Clade, calibration: float) -> None:
        """
        Convert the downstream count of a clade into ages.

        Args:
            clade: Clade with str_count_downstream calculated
            calibration: Calibration factor for this clade
        """
        downstream = clade.str_count_downstream
        if downstream is None:
            clade.tmrca = clade.formed = None
            clade.ci_lower = clade.ci_upper = None
            return

        rate = self.generation_time * calibration
        clade.tmrca = downstream * rate + self.offset
        if clade.str_count is not None:
            clade.formed = (clade.str_count + downstream) * rate + self.offset
        else:
            clade.formed = None

        interval = confidence_interval(downstream, clade.variance or 0.0)
        if interval is None:
            clade.ci_lower = clade.ci_upper = None
        else:
            clade.ci_lower = interval[0] * rate + self.offset
            clade.ci_upper = interval[1] * rate + self.offset

    def recalibrate(self, root: Clade) -> None:
        """
        Top-down pass: adjust subclade calibrations to the parent's TMRCA.

        The root's calibration is taken as ground truth. A subclade formed at
        its parent's TMRCA, so its calibration is chosen to make both equal.
        """
        self.apply_ages(root, self.calibration)
        self._recalibrate(root, self.calibration)

    def _recalibrate(self, clade: Clade, calibration: float) -> None:
        for subclade in clade.subclades:
            adjusted = self.child_calibration(clade, subclade, calibration)
            self.apply_ages(subclade, adjusted)
            self._clamp_to_parent(clade, subclade)
            logger.debug(
                "Calibration for %s: %.4f (parent %.4f)", subclade.label, adjusted, calibration
            )
            self._recalibrate(subclade, adjusted)

    @staticmethod
    def _clamp_to_parent(parent: Clade, child: Clade) -> None:
        # Rescaled ages may overshoot the parent by a rounding step
        if parent.tmrca is None:
            return
        if child.tmrca is not None and child.tmrca > parent.tmrca:
            child.tmrca = parent.tmrca
        if child.formed is not None and child.formed > parent.tmrca:
            child.formed = parent.tmrca

    def child_calibration(self, parent: Clade, child: Clade, calibration: float) -> float:
        """
        Calibration factor for a subclade given its parent's ages.

        Args:
            parent: Parent clade with ages already recalibrated
            child: Subclade
            calibration: Calibration factor used for the parent

        Returns:
            Adjusted calibration factor for the subclade and its descendants
        """
        downstream = child.str_count_downstream
        if parent.tmrca is None or downstream is None:
            return calibration

        span = parent.tmrca - self.offset
        if child.str_count is not None and child.str_count + downstream > 0:
            return span / ((child.str_count + downstream) * self.generation_time)
        if downstream > 0:
            return min(calibration, span / (downstream * self.generation_time))
        return calibration
