"""
Modal haplotype reconstruction.

Calculates an ancestral Y-STR haplotype (modal haplotype) for every clade
of a tree from the haplotypes of its samples and subclades.

Processing stages:

1. Resolve each marker bottom-up with the selected policy. Maximum
   parsimony often has no unique answer; such markers stay UNCERTAIN
   unless the parent's value settles them later.
2. Fill remaining UNCERTAIN markers with averages of the children.
3. Map every value to the closest real-world marker value. Values
   without a unique closest neighbor become UNCERTAIN. This stage is
   for visualization and debugging.
4. Force a result: map the root onto real-world values, then
   recalculate uncertain values top down from parent and children.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from enum import IntEnum
from typing import Literal

from phyloage.distance import MUTATION_MODELS, MutationModel, marker_distance
from phyloage.markers import (
    ABSENT,
    UNCERTAIN,
    Haplotype,
    MarkerStatistics,
    MarkerVector,
    count_uncertain,
)
from phyloage.tree import Clade

logger = logging.getLogger(__name__)

ModalMethod = Literal["averaging", "parsimony"]
MODAL_METHODS: tuple[str, ...] = ("averaging", "parsimony")


class Stage(IntEnum):
    """Processing stages of the modal haplotype calculation."""

    RESOLVE = 1
    BACKFILL = 2
    SNAP = 3
    FORCE = 4


def _contributing(values: Sequence[float]) -> list[float]:
    """Return the values that hold a repeat count (drops absent and UNCERTAIN)."""
    return [v for v in values if v > 0]


class ReconstructionPolicy:
    """Calculates the ancestral value of one marker from descendant values."""

    name: str = ""

    def aggregate(self, values: Sequence[float]) -> float:
        """
        Calculate the ancestral value for a marker.

        Args:
            values: Marker values of the descendants; values <= 0 are ignored

        Returns:
            Ancestral value, or UNCERTAIN if it cannot be determined
        """
        raise NotImplementedError


class AveragingPolicy(ReconstructionPolicy):
    """
    Ancestral value as the average of descendant values.

    Works with real numbers: the average is not rounded, although real
    mutation values are whole numbers.
    """

    name = "averaging"

    def aggregate(self, values: Sequence[float]) -> float:
        vals = _contributing(values)
        if not vals:
            return UNCERTAIN
        if len(vals) == 1:
            return vals[0]
        return sum(vals) / len(vals)


class ParsimonyPolicy(ReconstructionPolicy):
    """
    Ancestral value satisfying the maximum parsimony criterion.

    Every descendant value is a candidate; the candidate that needs the
    fewest mutations to reach all descendant values wins. If different
    candidates need the same minimal number of mutations the result is
    UNCERTAIN.
    """

    name = "parsimony"

    def __init__(self, model: MutationModel = "stepwise") -> None:
        self.model = model

    def aggregate(self, values: Sequence[float]) -> float:
        vals = _contributing(values)
        if not vals:
            return UNCERTAIN

        best: set[float] = set()
        min_dist = math.inf
        for candidate in set(vals):
            dist = sum(marker_distance(candidate, v, self.model) for v in vals)
            if dist < min_dist:
                min_dist = dist
                best = {candidate}
            elif dist == min_dist:
                best.add(candidate)

        if len(best) == 1:
            return best.pop()
        return UNCERTAIN


def get_policy(method: ModalMethod, model: MutationModel = "stepwise") -> ReconstructionPolicy:
    """
    Create the reconstruction policy for a method name.

    Raises:
        ValueError: If the method is unknown
    """
    if method == "averaging":
        return AveragingPolicy()
    elif method == "parsimony":
        return ParsimonyPolicy(model)
    raise ValueError(f"Unknown method to calculate modal haplotypes: {method}")


_AVERAGE = AveragingPolicy()


def _child_vectors(clade: Clade) -> list[MarkerVector]:
    """Marker vectors of the samples and subclades directly below clade."""
    vectors = [s.haplotype.markers for s in clade.samples if s.haplotype is not None]
    vectors.extend(c.haplotype.markers for c in clade.subclades if c.haplotype is not None)
    return vectors


def _column(vectors: Sequence[MarkerVector], marker: int) -> list[float]:
    return [vector[marker] for vector in vectors]


class ModalHaplotypeEngine:
    """
    Calculates modal haplotypes for all clades of a tree.

    Each pass replaces a clade's haplotype with a new one; vectors are
    tuples and never shared between a clade and its relatives.
    """

    def __init__(
        self,
        statistics: MarkerStatistics | None = None,
        method: ModalMethod = "parsimony",
        model: MutationModel = "stepwise",
        stage: int = Stage.FORCE,
    ):
        """
        Initialize engine.

        Args:
            statistics: Observed real-world marker values; required for stages 3 and 4.
                If None, statistics are taken from the samples of the tree.
            method: Policy for stage 1, "parsimony" or "averaging"
            model: Mutation model used by the parsimony policy
            stage: Last processing stage to run (1-4)

        Raises:
            ValueError: If method, model or stage is invalid
        """
        if model not in MUTATION_MODELS:
            raise ValueError(f"Unknown mutation model: {model}")
        if stage not in tuple(Stage):
            raise ValueError(f"Processing stage must be 1, 2, 3 or 4, got {stage}")
        self.policy = get_policy(method, model)
        self.statistics = statistics
        self.model = model
        self.stage = Stage(stage)

    def run(self, root: Clade) -> None:
        """
        Calculate modal haplotypes for root and all subclades.

        Args:
            root: Root clade; samples must have haplotypes attached

        Raises:
            ValueError: If sample haplotypes differ in length
        """
        size = self._marker_count(root)
        if size is None:
            logger.debug("No sample haplotypes below %s, nothing to do", root.label)
            return

        self._resolve(root, size)
        self._log_stage(root, Stage.RESOLVE)
        if self.stage >= Stage.BACKFILL:
            self._backfill(root)
            self._log_stage(root, Stage.BACKFILL)
        if self.stage == Stage.SNAP:
            self._snap(root, self._statistics_for(root))
            self._log_stage(root, Stage.SNAP)
        if self.stage >= Stage.FORCE:
            statistics = self._statistics_for(root)
            self._force_root(root, statistics)
            for subclade in root.subclades:
                self._fill(subclade, root.haplotype.markers, statistics)  # type: ignore[union-attr]
            self._log_stage(root, Stage.FORCE)

    def _marker_count(self, root: Clade) -> int | None:
        size: int | None = None
        for sample in root.iter_samples():
            if sample.haplotype is None:
                continue
            if size is None:
                size = len(sample.haplotype.markers)
            elif len(sample.haplotype.markers) != size:
                raise ValueError(
                    f"Sample {sample.id} has {len(sample.haplotype.markers)} markers, "
                    f"expected {size}"
                )
        return size

    def _statistics_for(self, root: Clade) -> MarkerStatistics:
        if self.statistics is not None:
            return self.statistics
        return MarkerStatistics.from_haplotypes(
            s.haplotype for s in root.iter_samples() if s.haplotype is not None
        )

    def _log_stage(self, root: Clade, stage: Stage) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            uncertain = sum(
                count_uncertain(c.haplotype.markers)
                for c in root.iter_clades()
                if c.haplotype is not None
            )
            logger.debug("Stage %d (%s): %d uncertain marker values", stage, stage.name, uncertain)

    @staticmethod
    def _assign(clade: Clade, markers: MarkerVector) -> None:
        clade.haplotype = Haplotype(id=clade.label, name=clade.label, markers=markers)

    # Stage 1

    def _resolve(self, clade: Clade, size: int) -> None:
        """Resolve markers bottom-up, then let resolved values settle children."""
        for subclade in clade.subclades:
            self._resolve(subclade, size)

        vectors = _child_vectors(clade)
        markers = tuple(self.policy.aggregate(_column(vectors, i)) for i in range(size))
        self._assign(clade, markers)

        resolved = [i for i, value in enumerate(markers) if value > 0]
        if resolved:
            for subclade in clade.subclades:
                self._reconsider(subclade, markers, resolved)

    def _reconsider(
        self, clade: Clade, parent_markers: MarkerVector, candidates: list[int]
    ) -> None:
        """
        Recalculate UNCERTAIN markers including the parent's value.

        A marker that cannot be resolved from a clade's own children may be
        settled by the parent value, which is known from parallel subclades.
        Newly resolved markers are passed on to the subclades.
        """
        if clade.haplotype is None:
            return
        markers = list(clade.haplotype.markers)
        vectors = _child_vectors(clade)
        changed: list[int] = []
        for i in candidates:
            if markers[i] != UNCERTAIN:
                continue
            value = self.policy.aggregate([parent_markers[i]] + _column(vectors, i))
            if value != UNCERTAIN:
                markers[i] = value
                changed.append(i)

        if not changed:
            return
        resolved = tuple(markers)
        self._assign(clade, resolved)
        for subclade in clade.subclades:
            self._reconsider(subclade, resolved, changed)

    # Stage 2

    def _backfill(self, clade: Clade) -> None:
        """Replace UNCERTAIN markers by the average of the children, bottom-up."""
        for subclade in clade.subclades:
            self._backfill(subclade)

        markers = clade.haplotype.markers  # type: ignore[union-attr]
        if UNCERTAIN not in markers:
            return
        vectors = _child_vectors(clade)
        self._assign(
            clade,
            tuple(
                _AVERAGE.aggregate(_column(vectors, i)) if value == UNCERTAIN else value
                for i, value in enumerate(markers)
            ),
        )

    # Stage 3

    def _snap(self, clade: Clade, statistics: MarkerStatistics) -> None:
        """Map values to real-world values; ambiguous ones become UNCERTAIN."""
        snapped: list[float] = []
        for i, value in enumerate(clade.haplotype.markers):  # type: ignore[union-attr]
            closest, is_unique = statistics.closest(i, value)
            snapped.append(closest if is_unique else UNCERTAIN)
        self._assign(clade, tuple(snapped))

        for subclade in clade.subclades:
            self._snap(subclade, statistics)

    # Stage 4

    def _force_root(self, root: Clade, statistics: MarkerStatistics) -> None:
        """Map every root value onto the closest, smallest real-world value."""
        forced: list[float] = []
        for i, value in enumerate(root.haplotype.markers):  # type: ignore[union-attr]
            if value == UNCERTAIN:
                # No data for this marker anywhere below the root
                forced.append(ABSENT)
            else:
                forced.append(statistics.closest(i, value)[0])
        self._assign(root, tuple(forced))

    def _is_settled(self, marker: int, value: float, statistics: MarkerStatistics) -> bool:
        if value == UNCERTAIN:
            return False
        return statistics.closest(marker, value)[1]

    def _fill(
        self, clade: Clade, parent_markers: MarkerVector, statistics: MarkerStatistics
    ) -> None:
        """
        Recalculate uncertain markers top-down.

        Uses the average of the parent value, the samples and the resolved
        subclade values, mapped to the closest real-world value.
        """
        vectors = _child_vectors(clade)
        filled: list[float] = []
        for i, value in enumerate(clade.haplotype.markers):  # type: ignore[union-attr]
            if self._is_settled(i, value, statistics):
                filled.append(value)
                continue
            average = _AVERAGE.aggregate([parent_markers[i]] + _column(vectors, i))
            if average == UNCERTAIN:
                filled.append(ABSENT)
            else:
                filled.append(statistics.closest(i, average)[0])
        markers = tuple(filled)
        self._assign(clade, markers)

        for subclade in clade.subclades:
            self._fill(subclade, markers, statistics)


def calculate_modal_haplotypes(
    root: Clade,
    statistics: MarkerStatistics | None = None,
    method: ModalMethod = "parsimony",
    model: MutationModel = "stepwise",
    stage: int = Stage.FORCE,
) -> None:
    """
    Convenience function to calculate modal haplotypes for a tree.

    Args:
        root: Root clade with sample haplotypes attached
        statistics: Observed real-world marker values
        method: "parsimony" or "averaging"
        model: Mutation model for parsimony
        stage: Last processing stage to run (1-4)
    """
    ModalHaplotypeEngine(statistics, method=method, model=model, stage=stage).run(root)
