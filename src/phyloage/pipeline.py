"""
End-to-end age calculation for a tree.

Wires the modal haplotype engine, the distance calculation and the age
estimator together in the order they depend on each other.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from phyloage.age import AgeEstimator
from phyloage.distance import MUTATION_MODELS, MutationModel, calculate_distances
from phyloage.markers import Haplotype, MarkerStatistics
from phyloage.modal import MODAL_METHODS, ModalHaplotypeEngine, ModalMethod, Stage
from phyloage.tree import Clade

logger = logging.getLogger(__name__)


@dataclass
class PhyloAgeConfig:
    """
    Settings for an age calculation.

    Attributes:
        model: Mutation model, "stepwise" or "infinite"
        method: Modal haplotype method, "parsimony" or "averaging"
        stage: Last processing stage of the modal haplotype calculation (1-4)
        generation_time: Years per generation
        calibration: Calibration factor for TMRCA calculation
        offset: Years added to all calculated ages
        topdown: Perform the top-down recalibration
    """

    model: MutationModel = "stepwise"
    method: ModalMethod = "parsimony"
    stage: int = Stage.FORCE
    generation_time: float = 1.0
    calibration: float = 1.0
    offset: float = 0.0
    topdown: bool = True

    def __post_init__(self) -> None:
        if self.model not in MUTATION_MODELS:
            raise ValueError(f"Unknown mutation model: {self.model}")
        if self.method not in MODAL_METHODS:
            raise ValueError(f"Unknown method to calculate modal haplotypes: {self.method}")
        if self.stage not in tuple(Stage):
            raise ValueError(f"Processing stage must be 1, 2, 3 or 4, got {self.stage}")
        if self.generation_time <= 0:
            raise ValueError(f"Generation time must be positive, got {self.generation_time}")
        if self.calibration <= 0:
            raise ValueError(f"Calibration factor must be positive, got {self.calibration}")


def run_pipeline(
    tree: Clade,
    haplotypes: Sequence[Haplotype] = (),
    config: PhyloAgeConfig | None = None,
    statistics: MarkerStatistics | None = None,
) -> Clade:
    """
    Calculate modal haplotypes, STR-Counts and ages for a tree.

    Without haplotypes the ages are calculated from the STR-Counts already
    present in the tree (e.g. read from the tree file).

    Args:
        tree: Root clade
        haplotypes: Haplotypes of tested persons, matched to samples by ID
        config: Settings (defaults if None)
        statistics: Observed marker values; built from haplotypes if None

    Returns:
        The same tree, annotated in place
    """
    if config is None:
        config = PhyloAgeConfig()

    if haplotypes:
        inserted = tree.insert_haplotypes(haplotypes)
        logger.info("Attached %d of %d haplotypes to samples", inserted, len(haplotypes))
        if statistics is None:
            statistics = MarkerStatistics.from_haplotypes(haplotypes)

        engine = ModalHaplotypeEngine(
            statistics,
            method=config.method,
            model=config.model,
            stage=config.stage,
        )
        engine.run(tree)
        calculate_distances(tree, config.model)

    estimator = AgeEstimator(
        generation_time=config.generation_time,
        calibration=config.calibration,
        offset=config.offset,
    )
    estimator.run(tree, topdown=config.topdown)
    return tree
