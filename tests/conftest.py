"""
Pytest configuration and fixtures for phyloage tests.
"""

from pathlib import Path

import pytest

from phyloage.markers import Haplotype
from phyloage.tree import Clade, Sample


@pytest.fixture
def sample_tree_text() -> str:
    """
    Return a small tree in text format.

    Structure:
        P312
        ├── id:K1
        ├── U152
        │   ├── id:K2
        │   └── id:K3
        └── L21
            ├── id:K4
            └── DF13
                ├── id:K5
                └── id:K6
    """
    return """// Test tree
P312, S116, STR-Count: 2
\tid:K1
\tU152, S28
\t\tid:K2
\t\tid:K3, STR-Count: 5
\tL21, M529    // comment after clade
\t\tid:K4

\t\tDF13
\t\t\tid:K5
\t\t\tid:K6
"""


@pytest.fixture
def sample_haplotypes() -> list[Haplotype]:
    """Haplotypes for the samples of sample_tree_text (3 markers)."""
    return [
        Haplotype(id="K1", markers=(13.0, 24.0, 14.0)),
        Haplotype(id="K2", markers=(13.0, 23.0, 14.0)),
        Haplotype(id="K3", markers=(13.0, 23.0, 15.0)),
        Haplotype(id="K4", markers=(14.0, 24.0, 0.0)),
        Haplotype(id="K5", markers=(13.0, 24.0, 14.0)),
        Haplotype(id="K6", markers=(12.0, 25.0, 14.0)),
    ]


@pytest.fixture
def haplotypes_csv(tmp_path: Path) -> Path:
    """Create a haplotype CSV file for testing."""
    csv_content = """id,DYS393,DYS390,DYS19
K1,13,24,14
K2,13,24,14
K3,14,23,14
"""
    csv_path = tmp_path / "persons.csv"
    csv_path.write_text(csv_content)
    return csv_path


@pytest.fixture
def flat_tree_file(tmp_path: Path) -> Path:
    """Create a tree file with one clade and the samples of haplotypes_csv."""
    tree_path = tmp_path / "tree.txt"
    tree_path.write_text("R1b\n\tid:K1\n\tid:K2\n\tid:K3\n")
    return tree_path


def _make_clade(
    snp: str,
    *sample_values: tuple[float, ...],
    subclades: list[Clade] | None = None,
) -> Clade:
    clade = Clade(snps=[snp])
    for i, markers in enumerate(sample_values):
        sample_id = f"{snp}-{i}"
        clade.add_sample(
            Sample(id=sample_id, haplotype=Haplotype(id=sample_id, markers=markers))
        )
    for subclade in subclades or []:
        clade.add_subclade(subclade)
    return clade


@pytest.fixture
def make_clade():
    """Return a factory building a clade whose samples carry the given marker vectors."""
    return _make_clade
