"""
Command-line interface for phyloage.

Reads a tree and Y-STR results, calculates modal haplotypes and ages and
writes the annotated tree.
"""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

import click

from phyloage import __version__
from phyloage.markers import Haplotype, MarkerStatistics, read_haplotypes
from phyloage.pipeline import PhyloAgeConfig, run_pipeline
from phyloage.treefile import format_tree, read_tree, write_tree


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_persons(paths: list[str]) -> tuple[list[str], list[Haplotype]]:
    """Load haplotypes from one or more CSV files sharing the same marker panel."""
    panel: list[str] = []
    haplotypes: list[Haplotype] = []
    for filename in paths:
        file_panel, file_haplotypes = read_haplotypes(filename)
        if panel and file_panel != panel:
            raise ValueError(f"Marker columns of {filename} differ from previous files")
        panel = file_panel
        haplotypes.extend(file_haplotypes)
    return panel, haplotypes


@click.command()
@click.version_option(version=__version__, prog_name="phyloage")
@click.option(
    "--treein",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Input filename for phylogenetic tree (.txt)",
)
@click.option(
    "--treeout",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output filename for phylogenetic tree [default: stdout]",
)
@click.option(
    "--personsin",
    type=str,
    default=None,
    help="Comma separated list of haplotype CSV files (id column plus one column per marker)",
)
@click.option("--gentime", type=float, default=1.0, help="Generation time in years [default: 1]")
@click.option("--cal", type=float, default=1.0, help="Calibration factor for TMRCA calculation [default: 1]")
@click.option("--offset", type=float, default=0.0, help="Offset added to all calculated ages [default: 0]")
@click.option(
    "--topdown/--no-topdown",
    default=True,
    help="Perform a top down recalculation [default: on]",
)
@click.option(
    "--method",
    type=click.Choice(["parsimony", "averaging"]),
    default="parsimony",
    help="Method to calculate modal haplotypes [default: parsimony]",
)
@click.option(
    "--stage",
    type=click.IntRange(1, 4),
    default=4,
    help="Processing stage for modal haplotype calculation: 1, 2, 3, 4 [default: 4]",
)
@click.option(
    "--model",
    type=click.Choice(["stepwise", "infinite"]),
    default="stepwise",
    help="Mutation model [default: stepwise]",
)
@click.option("--subclade", type=str, default=None, help="Select the branch defined by this SNP")
@click.option("--statistics", is_flag=True, help="Print marker statistics")
@click.option("--trace", type=str, default=None, help="Comma separated list of STR names to trace")
@click.option("--inspect", type=str, default=None, help="Comma separated list of SNP names to inspect")
@click.option("--verbose", "-v", is_flag=True, help="Print debug messages")
def main(
    treein: Path,
    treeout: Path | None,
    personsin: str | None,
    gentime: float,
    cal: float,
    offset: float,
    topdown: bool,
    method: str,
    stage: int,
    model: str,
    subclade: str | None,
    statistics: bool,
    trace: str | None,
    inspect: str | None,
    verbose: bool,
) -> None:
    """
    phyloage: Y-STR based age estimates for phylogenetic trees.

    Calculates modal haplotypes, TMRCA and formation ages with confidence
    intervals for every clade of a SNP-based tree.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        click.echo(f"Loading tree from {treein}...", err=True)
        tree = read_tree(treein)

        if subclade:
            selected = tree.find(subclade)
            if selected is None:
                raise ValueError(f"Could not find specified subclade {subclade}")
            tree = selected

        config = PhyloAgeConfig(
            model=model,  # type: ignore
            method=method,  # type: ignore
            stage=stage,
            generation_time=gentime,
            calibration=cal,
            offset=offset,
            topdown=topdown,
        )

        panel: list[str] = []
        haplotypes: list[Haplotype] = []
        marker_stats: MarkerStatistics | None = None
        if personsin:
            panel, haplotypes = _load_persons(_split(personsin))
            click.echo(f"Loaded {len(haplotypes)} haplotypes", err=True)
            marker_stats = MarkerStatistics.from_haplotypes(haplotypes, panel)
            if statistics:
                click.echo(str(marker_stats))

        run_pipeline(tree, haplotypes, config, marker_stats)

        if treeout:
            header = [
                "This tree was created by the phyloage program.",
                "Command used:",
                " ".join(["phyloage"] + sys.argv[1:]),
                date.today().strftime("%Y %b %d"),
            ]
            write_tree(tree, treeout, header)
            click.echo(f"Tree written to {treeout}", err=True)
        else:
            click.echo(format_tree(tree))

        if trace:
            click.echo(tree.trace(_split(trace), panel))

        if inspect:
            click.echo(tree.inspect(_split(inspect)))

    except FileNotFoundError as e:
        click.echo(f"Error: File not found: {e}", err=True)
        sys.exit(10)
    except ValueError as e:
        click.echo(f"Error: Invalid input: {e}", err=True)
        sys.exit(11)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(99)


if __name__ == "__main__":
    main()
