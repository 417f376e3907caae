"""
Unit tests for phyloage.tree module.
"""

from __future__ import annotations

import pytest

from phyloage.markers import UNCERTAIN, Haplotype
from phyloage.tree import Clade, Element, Sample
from phyloage.treefile import parse_tree


class TestElement:
    """Tests for Element, Sample and Clade dataclasses."""

    def test_element_defaults(self) -> None:
        """Unknown counts are None, never zero."""
        element = Element()
        assert element.snps == []
        assert element.str_count is None
        assert element.haplotype is None

    def test_add_snp_keeps_order_and_skips_duplicates(self) -> None:
        element = Element()
        element.add_snp("P312")
        element.add_snp("S116")
        element.add_snp("P312")
        assert element.snps == ["P312", "S116"]

    def test_label(self) -> None:
        assert Clade(snps=["U106", "S21"]).label == "U106"
        assert Clade().label == ""

    def test_clade_statistics_unset(self) -> None:
        clade = Clade()
        assert clade.str_count_downstream is None
        assert clade.tmrca is None
        assert clade.formed is None
        assert clade.ci_lower is None

    def test_mutable_defaults_not_shared(self) -> None:
        a = Clade()
        b = Clade()
        a.add_sample(Sample(id="K1"))
        assert b.samples == []


class TestClade:
    """Tests for tree queries."""

    @pytest.fixture
    def tree(self, sample_tree_text: str) -> Clade:
        return parse_tree(sample_tree_text)

    def test_iter_clades_pre_order(self, tree: Clade) -> None:
        labels = [clade.label for clade in tree.iter_clades()]
        assert labels == ["P312", "U152", "L21", "DF13"]

    def test_iter_clades_bottom_up(self, tree: Clade) -> None:
        """Children are visited before their parents."""
        labels = [clade.label for clade in tree.iter_clades_bottom_up()]
        assert labels == ["U152", "DF13", "L21", "P312"]

    def test_iter_samples(self, tree: Clade) -> None:
        ids = [sample.id for sample in tree.iter_samples()]
        assert ids == ["K1", "K2", "K3", "K4", "K5", "K6"]

    def test_find(self, tree: Clade) -> None:
        clade = tree.find("M529")
        assert clade is not None
        assert clade.label == "L21"
        assert tree.find("NOT_EXISTS") is None

    def test_insert_haplotypes(self, tree: Clade, sample_haplotypes: list[Haplotype]) -> None:
        extra = Haplotype(id="UNKNOWN", markers=(1.0, 1.0, 1.0))

        inserted = tree.insert_haplotypes(sample_haplotypes + [extra])

        assert inserted == 6
        df13 = tree.find("DF13")
        assert df13 is not None
        assert df13.samples[1].haplotype == sample_haplotypes[5]

    def test_haplotypes(self, tree: Clade, sample_haplotypes: list[Haplotype]) -> None:
        tree.insert_haplotypes(sample_haplotypes)
        tree.haplotype = Haplotype(id="P312", markers=(13.0, 24.0, 14.0))

        haplotypes = tree.haplotypes()

        assert haplotypes[0].id == "P312"
        assert [h.id for h in haplotypes[1:]] == ["K1", "K2", "K3", "K4", "K5", "K6"]

    def test_trace(self, tree: Clade, sample_haplotypes: list[Haplotype]) -> None:
        tree.insert_haplotypes(sample_haplotypes)
        tree.haplotype = Haplotype(id="P312", markers=(13.0, UNCERTAIN, 14.5))
        panel = ["DYS393", "DYS390", "DYS19"]

        text = tree.trace(["DYS19", "DYS390"], panel)

        lines = text.splitlines()
        assert lines[0] == "Trace: DYS19\tDYS390"
        assert lines[1] == "P312: 14.5\t?"
        assert lines[2] == "\tid:K1: 14\t24"
        assert "\tU152: no data" in lines

    def test_trace_unknown_marker_raises(self, tree: Clade) -> None:
        with pytest.raises(ValueError, match="Unknown marker: DYS999"):
            tree.trace(["DYS999"], ["DYS393"])

    def test_inspect(self, tree: Clade) -> None:
        clade = tree.find("L21")
        assert clade is not None
        clade.str_count_downstream = 4.0
        clade.tmrca = 120.0

        report = tree.inspect(["M529", "NOT_EXISTS"])

        assert report.startswith("Clade: L21, M529")
        assert "TMRCA: 120.0" in report
        assert "Formed: unknown" in report
        assert "Samples: 1" in report
        assert "Subclades: 1" in report

    def test_inspect_no_match(self, tree: Clade) -> None:
        assert tree.inspect(["NOT_EXISTS"]) == ""
