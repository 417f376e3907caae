"""
phyloage: Age estimates for Y-chromosome phylogenetic trees.

Combines a SNP-based tree topology with Y-STR haplotypes to reconstruct
ancestral haplotypes and estimate TMRCA and formation ages with
confidence intervals.
"""

__version__ = "0.3.0"

from phyloage.pipeline import PhyloAgeConfig, run_pipeline
from phyloage.tree import Clade, Sample
from phyloage.treefile import format_tree, parse_tree, read_tree

__all__ = [
    "Clade",
    "Sample",
    "PhyloAgeConfig",
    "run_pipeline",
    "parse_tree",
    "read_tree",
    "format_tree",
    "__version__",
]
