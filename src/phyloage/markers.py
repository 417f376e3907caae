"""
Y-STR marker vectors, haplotypes and empirical marker statistics.

A marker vector holds one repeat count per marker of a fixed panel.
Slot values follow a small convention shared by the whole package:

- ``ABSENT`` (0): marker not measured
- positive value: observed (or reconstructed) repeat count
- ``UNCERTAIN`` (-1): value could not be resolved
"""

from __future__ import annotations

import csv
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

ABSENT: float = 0.0
UNCERTAIN: float = -1.0

# One slot per marker of the panel.
MarkerVector = tuple[float, ...]

# Cell values in haplotype CSV files that mean "not measured".
_EMPTY_CELLS = frozenset(["", "-", "n/a", "na"])


def is_resolved(value: float) -> bool:
    """Return True if value is an observed or reconstructed repeat count."""
    return value > 0


def has_data(markers: Sequence[float]) -> bool:
    """Return True if at least one slot of the vector holds a repeat count."""
    return any(value > 0 for value in markers)


def count_uncertain(markers: Sequence[float]) -> int:
    """Return the number of UNCERTAIN slots in a vector."""
    return sum(1 for value in markers if value == UNCERTAIN)


@dataclass(frozen=True)
class Haplotype:
    """
    Y-STR haplotype of a tested person or of a reconstructed ancestor.

    Attributes:
        id: Identifier used to match samples in the tree (usually the kit number)
        markers: Marker vector, one slot per panel marker
        name: Display name (the defining SNP for reconstructed ancestors)
    """

    id: str
    markers: MarkerVector
    name: str = ""

    def __len__(self) -> int:
        return len(self.markers)


def closest_value(target: float, observed: Iterable[float]) -> tuple[float, bool]:
    """
    Find the observed marker value closest to target.

    Real repeat counts are whole numbers while reconstructed values are
    often averages, so reconstructed values are mapped back onto values
    that were actually seen in the population.

    Args:
        target: Value to look up
        observed: Marker values seen in the population

    Returns:
        Tuple of (closest value, is_unique). If two observed values are
        equally close, the lower one is returned with is_unique=False.
        Targets <= 0 (absent or uncertain) are returned unchanged, as is
        any target when nothing was observed.
    """
    if target <= 0:
        return target, True

    below: float | None = None
    above: float | None = None
    for value in observed:
        if value == target:
            return value, True
        if value < target:
            if below is None or value > below:
                below = value
        elif above is None or value < above:
            above = value

    if below is None and above is None:
        return target, True
    if below is None:
        return above, True  # type: ignore[return-value]
    if above is None:
        return below, True

    low_dist = target - below
    high_dist = above - target
    if low_dist == high_dist:
        # Prefer the smaller mutation value
        return below, False
    if low_dist < high_dist:
        return below, True
    return above, True


class MarkerStatistics:
    """
    Observed marker values and their occurrence counts.

    Acts as a read-only lookup service for the modal haplotype engine,
    which only needs the closest observed value for a marker.
    """

    def __init__(
        self,
        occurrences: Sequence[dict[float, int]],
        panel: Sequence[str] | None = None,
    ) -> None:
        """
        Initialize statistics.

        Args:
            occurrences: For each marker index, a mapping of value -> count
            panel: Optional marker names, same order as occurrences
        """
        self._occurrences = [dict(counts) for counts in occurrences]
        self.panel: list[str] = list(panel) if panel is not None else []

    @classmethod
    def from_haplotypes(
        cls,
        haplotypes: Iterable[Haplotype],
        panel: Sequence[str] | None = None,
    ) -> MarkerStatistics:
        """
        Count the marker values of a set of haplotypes.

        Only positive values are counted; absent and uncertain slots are ignored.

        Args:
            haplotypes: Haplotypes of tested persons
            panel: Optional marker names

        Returns:
            MarkerStatistics for all markers of the haplotypes

        Raises:
            ValueError: If the haplotypes have different numbers of markers
        """
        counters: list[Counter[float]] = []
        size: int | None = None
        for haplotype in haplotypes:
            if size is None:
                size = len(haplotype.markers)
                counters = [Counter() for _ in range(size)]
            elif len(haplotype.markers) != size:
                raise ValueError(
                    f"Haplotype {haplotype.id} has {len(haplotype.markers)} markers, "
                    f"expected {size}"
                )
            for i, value in enumerate(haplotype.markers):
                if value > 0:
                    counters[i][value] += 1
        return cls([dict(c) for c in counters], panel)

    def __len__(self) -> int:
        """Return number of markers."""
        return len(self._occurrences)

    def values(self, marker: int) -> dict[float, int]:
        """Return observed value -> occurrence count for a marker."""
        if marker >= len(self._occurrences):
            return {}
        return dict(self._occurrences[marker])

    def closest(self, marker: int, target: float) -> tuple[float, bool]:
        """
        Return the observed value of a marker closest to target.

        See closest_value() for the tie and edge case rules.
        """
        if marker >= len(self._occurrences):
            return target, True
        return closest_value(target, self._occurrences[marker])

    def marker_name(self, marker: int) -> str:
        """Return the panel name of a marker, or its 1-based index."""
        if marker < len(self.panel):
            return self.panel[marker]
        return f"#{marker + 1}"

    def __str__(self) -> str:
        lines = ["Marker statistics (value: occurrences)"]
        for i, counts in enumerate(self._occurrences):
            values = ", ".join(
                f"{value:g}: {count}" for value, count in sorted(counts.items())
            )
            lines.append(f"{self.marker_name(i)}\t{values}")
        return "\n".join(lines) + "\n"


def read_haplotypes(path: Path | str) -> tuple[list[str], list[Haplotype]]:
    """
    Load haplotypes from a CSV file.

    Expected columns: id, then one column per marker (the header row names
    the markers). Empty cells and "-" mean the marker was not measured.

    Args:
        path: Path to CSV file

    Returns:
        Tuple of (marker panel, haplotypes)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the header is missing or a cell is not a number
    """
    path = Path(path)
    haplotypes: list[Haplotype] = []

    with open(path, newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if not header or header[0].strip().lower() != "id":
            raise ValueError(f"Missing 'id' header column in {path}")
        panel = [name.strip() for name in header[1:]]

        for row_no, row in enumerate(reader, start=2):
            if not row or not row[0].strip():
                continue
            cells = row[1:] + [""] * (len(panel) - len(row) + 1)
            markers = tuple(_parse_cell(cell, path, row_no) for cell in cells[: len(panel)])
            haplotypes.append(Haplotype(id=row[0].strip(), markers=markers))

    return panel, haplotypes


def _parse_cell(cell: str, path: Path, row_no: int) -> float:
    """Parse a marker value cell of a haplotype CSV file."""
    text = cell.strip()
    if text.lower() in _EMPTY_CELLS:
        return ABSENT
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"{path}, row {row_no}: invalid marker value {text!r}") from None
