"""
Genetic distance between Y-STR haplotypes.

Supports two mutation models:
- stepwise: each repeat unit of difference counts as one mutation
- infinite: any difference counts as a single mutation (infinite alleles)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

from phyloage.markers import has_data
from phyloage.tree import Clade

logger = logging.getLogger(__name__)

MutationModel = Literal["stepwise", "infinite"]
MUTATION_MODELS: tuple[str, ...] = ("stepwise", "infinite")


def marker_distance(a: float, b: float, model: MutationModel = "stepwise") -> float:
    """
    Distance between two values of a single marker.

    Args:
        a: First repeat count
        b: Second repeat count
        model: Mutation model

    Returns:
        Number of mutations between a and b
    """
    if model == "stepwise":
        return abs(a - b)
    elif model == "infinite":
        return 0.0 if a == b else 1.0
    else:
        raise ValueError(f"Unknown mutation model: {model}")


def distance(
    a: Sequence[float],
    b: Sequence[float],
    model: MutationModel = "stepwise",
) -> float:
    """
    Genetic distance between two marker vectors.

    Markers that are absent (0) or unresolved on either side do not
    contribute to the distance.

    Args:
        a: First marker vector
        b: Second marker vector
        model: Mutation model

    Returns:
        Sum of per-marker distances

    Raises:
        ValueError: If the vectors differ in length or the model is unknown
    """
    if len(a) != len(b):
        raise ValueError(f"Marker vectors differ in length: {len(a)} != {len(b)}")
    if model not in MUTATION_MODELS:
        raise ValueError(f"Unknown mutation model: {model}")

    total = 0.0
    for x, y in zip(a, b):
        if x <= 0 or y <= 0:
            continue
        total += marker_distance(x, y, model)
    return total


def calculate_distances(clade: Clade, model: MutationModel = "stepwise") -> None:
    """
    Set the STR-Count of every sample and subclade from haplotype distances.

    The STR-Count of a sample or subclade is its distance to the modal
    haplotype of the parent clade. Samples without usable haplotype data,
    and subclades without any such sample below them, keep their previous
    STR-Count.

    Args:
        clade: Root of the (sub)tree; modal haplotypes must be calculated
        model: Mutation model
    """
    for subclade in clade.subclades:
        calculate_distances(subclade, model)

    if clade.haplotype is None or not has_data(clade.haplotype.markers):
        logger.debug("No modal haplotype for %s, keeping STR-Counts", clade.label)
        return
    modal = clade.haplotype.markers

    for sample in clade.samples:
        if sample.haplotype is not None and has_data(sample.haplotype.markers):
            sample.str_count = distance(sample.haplotype.markers, modal, model)
    for subclade in clade.subclades:
        if subclade.haplotype is None or not _has_sample_data(subclade):
            continue
        if has_data(subclade.haplotype.markers):
            subclade.str_count = distance(subclade.haplotype.markers, modal, model)


def _has_sample_data(clade: Clade) -> bool:
    """True if any sample below clade carries marker values."""
    return any(
        sample.haplotype is not None and has_data(sample.haplotype.markers)
        for sample in clade.iter_samples()
    )
