"""
Phylogenetic tree data structures.

A tree is made of clades (haplogroups defined by SNPs) with samples
(tested persons) attached as leaves. Clades carry a reconstructed
ancestral haplotype and the age statistics computed from Y-STR mutations.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from phyloage.markers import ABSENT, UNCERTAIN, Haplotype


@dataclass
class Element:
    """
    Fields shared by clades and samples.

    Attributes:
        snps: Defining SNP names, in the order they were listed
        str_count: Y-STR mutations on the branch leading to this element
            (None if unknown)
        haplotype: Haplotype of a tested person or reconstructed ancestor
    """

    snps: list[str] = field(default_factory=list)
    str_count: float | None = None
    haplotype: Haplotype | None = None

    def add_snp(self, name: str) -> None:
        """Append a SNP name unless it is already listed."""
        if name not in self.snps:
            self.snps.append(name)

    @property
    def label(self) -> str:
        """Return the first SNP name, used to name reconstructed ancestors."""
        return self.snps[0] if self.snps else ""


@dataclass
class Sample(Element):
    """
    Genetic sample of an individual; a leaf of the tree.

    Attributes:
        id: Sample ID, usually the kit number
    """

    id: str = ""


@dataclass
class Clade(Element):
    """
    A haplogroup or subclade; a node of the tree.

    Attributes:
        samples: Samples directly below this clade
        subclades: Child clades
        str_count_downstream: Weighted average of downstream Y-STR mutations
        variance: Variance of str_count_downstream
        formed: Years before present when this clade formed
        tmrca: Time to the most recent common ancestor of all downstream samples
        ci_lower: Lower bound of the 95% confidence interval for tmrca
        ci_upper: Upper bound of the 95% confidence interval for tmrca
    """

    samples: list[Sample] = field(default_factory=list)
    subclades: list[Clade] = field(default_factory=list)
    str_count_downstream: float | None = None
    variance: float | None = None
    formed: float | None = None
    tmrca: float | None = None
    ci_lower: float | None = None
    ci_upper: float | None = None

    def add_sample(self, sample: Sample) -> None:
        self.samples.append(sample)

    def add_subclade(self, clade: Clade) -> None:
        self.subclades.append(clade)

    def insert_haplotypes(self, haplotypes: Iterable[Haplotype]) -> int:
        """
        Attach haplotypes to samples with a matching ID.

        Args:
            haplotypes: Haplotypes of tested persons

        Returns:
            Number of samples that received a haplotype
        """
        by_id = {haplotype.id: haplotype for haplotype in haplotypes}
        return self._insert_haplotypes(by_id)

    def _insert_haplotypes(self, by_id: dict[str, Haplotype]) -> int:
        inserted = 0
        for sample in self.samples:
            haplotype = by_id.get(sample.id)
            if haplotype is not None:
                sample.haplotype = haplotype
                inserted += 1
        for clade in self.subclades:
            inserted += clade._insert_haplotypes(by_id)
        return inserted

    def iter_clades(self) -> Iterator[Clade]:
        """
        Iterate through clades in depth-first pre-order (parents first).

        Yields:
            This clade followed by all subclades
        """
        stack: list[Clade] = [self]
        while stack:
            clade = stack.pop()
            yield clade
            # Add children in reverse order so leftmost is processed first
            stack.extend(reversed(clade.subclades))

    def iter_clades_bottom_up(self) -> Iterator[Clade]:
        """
        Iterate through clades in depth-first post-order (children first).

        Yields:
            All subclades followed by this clade
        """
        for clade in self.subclades:
            yield from clade.iter_clades_bottom_up()
        yield self

    def iter_samples(self) -> Iterator[Sample]:
        """Iterate through all samples below this clade in pre-order."""
        for clade in self.iter_clades():
            yield from clade.samples

    def find(self, snp: str) -> Clade | None:
        """
        Find the first clade defined by a SNP.

        Args:
            snp: SNP name (e.g., "U106")

        Returns:
            Matching Clade or None if not found
        """
        for clade in self.iter_clades():
            if snp in clade.snps:
                return clade
        return None

    def haplotypes(self) -> list[Haplotype]:
        """
        Collect all haplotypes of this clade and everything below it.

        Returns:
            Haplotypes in pre-order, each clade's ancestor before its samples
        """
        result: list[Haplotype] = []
        for clade in self.iter_clades():
            if clade.haplotype is not None:
                result.append(clade.haplotype)
            result.extend(s.haplotype for s in clade.samples if s.haplotype is not None)
        return result

    def trace(self, markers: Sequence[str], panel: Sequence[str]) -> str:
        """
        Render the tree with the values of selected markers.

        Args:
            markers: Marker names to show
            panel: Marker names of the haplotype vectors

        Returns:
            Indented text, one line per clade and sample

        Raises:
            ValueError: If a marker is not part of the panel
        """
        indices: list[int] = []
        for name in markers:
            if name not in panel:
                raise ValueError(f"Unknown marker: {name}")
            indices.append(list(panel).index(name))

        header = "\t".join(markers)
        lines = [f"Trace: {header}"]
        self._trace(lines, indices, 0)
        return "\n".join(lines) + "\n"

    def _trace(self, lines: list[str], indices: list[int], depth: int) -> None:
        lines.append("\t" * depth + f"{self.label}: {_trace_values(self.haplotype, indices)}")
        for sample in self.samples:
            lines.append(
                "\t" * (depth + 1)
                + f"id:{sample.id}: {_trace_values(sample.haplotype, indices)}"
            )
        for clade in self.subclades:
            clade._trace(lines, indices, depth + 1)

    def inspect(self, terms: Iterable[str]) -> str:
        """
        Describe every clade defined by any of the given SNP names.

        Args:
            terms: SNP names to search for

        Returns:
            Text report, empty if nothing matches
        """
        wanted = set(terms)
        blocks: list[str] = []
        for clade in self.iter_clades():
            if wanted.intersection(clade.snps):
                blocks.append(clade._describe())
        return "\n".join(blocks)

    def _describe(self) -> str:
        lines = [f"Clade: {', '.join(self.snps)}"]
        lines.append(f"  STR-Count: {_describe_value(self.str_count)}")
        lines.append(f"  STRs Downstream: {_describe_value(self.str_count_downstream)}")
        lines.append(f"  Variance: {_describe_value(self.variance)}")
        lines.append(f"  Formed: {_describe_value(self.formed)}")
        lines.append(f"  TMRCA: {_describe_value(self.tmrca)}")
        if self.ci_lower is not None and self.ci_upper is not None:
            lines.append(f"  CI: [{self.ci_lower:.0f}, {self.ci_upper:.0f}]")
        lines.append(f"  Samples: {len(self.samples)}")
        lines.append(f"  Subclades: {len(self.subclades)}")
        if self.haplotype is not None:
            lines.append(f"  Modal haplotype: {_format_vector(self.haplotype.markers)}")
        return "\n".join(lines) + "\n"


def _format_marker(value: float) -> str:
    if value == UNCERTAIN:
        return "?"
    if value == ABSENT:
        return "-"
    return f"{value:g}"


def _format_vector(markers: Sequence[float]) -> str:
    return " ".join(_format_marker(value) for value in markers)


def _trace_values(haplotype: Haplotype | None, indices: list[int]) -> str:
    if haplotype is None:
        return "no data"
    return "\t".join(_format_marker(haplotype.markers[i]) for i in indices)


def _describe_value(value: float | None) -> str:
    return "unknown" if value is None else f"{value:.1f}"
