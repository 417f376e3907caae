"""
Unit tests for phyloage.treefile module.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from phyloage.tree import Clade, Sample
from phyloage.treefile import (
    TreeParseError,
    format_clade,
    format_sample,
    format_tree,
    parse_tree,
    read_tree,
    strip_comment,
    write_tree,
)


def _structure(clade: Clade) -> tuple:
    """SNP names, IDs and STR-Counts of a tree, ignoring computed statistics."""
    return (
        tuple(clade.snps),
        clade.str_count,
        tuple((s.id, tuple(s.snps), s.str_count) for s in clade.samples),
        tuple(_structure(c) for c in clade.subclades),
    )


class TestParseTree:
    """Tests for reading trees."""

    def test_parse_structure(self, sample_tree_text: str) -> None:
        tree = parse_tree(sample_tree_text)

        assert tree.snps == ["P312", "S116"]
        assert tree.str_count == 2.0
        assert [s.id for s in tree.samples] == ["K1"]
        assert [c.label for c in tree.subclades] == ["U152", "L21"]

        l21 = tree.subclades[1]
        assert l21.snps == ["L21", "M529"]
        assert [s.id for s in l21.samples] == ["K4"]
        assert l21.subclades[0].label == "DF13"
        assert [s.id for s in l21.subclades[0].samples] == ["K5", "K6"]

    def test_sample_fields(self, sample_tree_text: str) -> None:
        tree = parse_tree(sample_tree_text)
        k3 = tree.subclades[0].samples[1]
        assert k3.id == "K3"
        assert k3.str_count == 5.0
        assert k3.snps == []

    def test_unknown_str_count_is_none(self, sample_tree_text: str) -> None:
        tree = parse_tree(sample_tree_text)
        assert tree.subclades[0].str_count is None
        assert tree.samples[0].str_count is None

    def test_space_indentation(self) -> None:
        tree = parse_tree("A\n    B\n        id:1\n    C\n")
        assert [c.label for c in tree.subclades] == ["B", "C"]
        assert tree.subclades[0].samples[0].id == "1"

    def test_indented_root(self) -> None:
        """The root's indentation is the baseline."""
        tree = parse_tree("  A\n    B\n    C\n")
        assert [c.label for c in tree.subclades] == ["B", "C"]

    def test_block_ends_at_shallower_line(self) -> None:
        tree = parse_tree("A\n\tB\n\t\tC\n\t\t\tD\n\tE\n")
        assert [c.label for c in tree.subclades] == ["B", "E"]
        assert tree.subclades[0].subclades[0].subclades[0].label == "D"

    def test_clade_without_children_followed_by_sibling(self) -> None:
        tree = parse_tree("A\n\tB\n\tC\n\t\tid:1\n")
        assert tree.subclades[0].subclades == []
        assert tree.subclades[0].samples == []
        assert tree.subclades[1].samples[0].id == "1"

    def test_sample_snps(self) -> None:
        tree = parse_tree("A\n\tid:42, FGC123, STR-Count: 3\n")
        sample = tree.samples[0]
        assert sample.id == "42"
        assert sample.snps == ["FGC123"]
        assert sample.str_count == 3.0

    def test_legacy_fields_discarded(self) -> None:
        """Computed fields of a previous run are ignored."""
        text = "A, STR-Count: 2, STRs Downstream: 35, formed: 1184, TMRCA: 1120, CI:[882, 1422]\n"
        tree = parse_tree(text)
        assert tree.snps == ["A"]
        assert tree.str_count == 2.0
        assert tree.tmrca is None

    def test_empty_raises(self) -> None:
        with pytest.raises(TreeParseError, match="Empty tree file"):
            parse_tree("")

    def test_only_comments_raises(self) -> None:
        with pytest.raises(TreeParseError, match="Empty tree file"):
            parse_tree("// nothing here\n   \n\t// still nothing\n")

    def test_invalid_str_count_has_line_number(self) -> None:
        text = "// header\nA\n\tB, STR-Count: many\n"
        with pytest.raises(TreeParseError, match="line 3") as exc_info:
            parse_tree(text)
        assert exc_info.value.line_no == 3

    def test_negative_str_count_raises(self) -> None:
        with pytest.raises(TreeParseError, match="must not be negative") as exc_info:
            parse_tree("A\n\tid:1, STR-Count: -1\n")
        assert exc_info.value.line_no == 2

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_tree("A, STR-Count: x\n")

    def test_inconsistent_indentation_raises(self) -> None:
        with pytest.raises(TreeParseError, match="Inconsistent indentation"):
            parse_tree("A\n    B\n  C\n")

    def test_children_of_sample_raise(self) -> None:
        with pytest.raises(TreeParseError, match="Unexpected indentation") as exc_info:
            parse_tree("A\n\tid:1\n\t\tB\n")
        assert exc_info.value.line_no == 3

    def test_multiple_roots_raise(self) -> None:
        with pytest.raises(TreeParseError, match="Multiple root elements"):
            parse_tree("A\n\tB\nC\n")

    def test_read_tree(self, tmp_path: Path, sample_tree_text: str) -> None:
        path = tmp_path / "tree.txt"
        path.write_text(sample_tree_text, encoding="utf-8")
        assert read_tree(path).label == "P312"

    def test_read_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_tree(tmp_path / "missing.txt")


class TestStripComment:
    """Tests for comment removal."""

    def test_strip(self) -> None:
        assert strip_comment("A, B // comment") == "A, B "
        assert strip_comment("// only comment") == ""
        assert strip_comment("no comment") == "no comment"


class TestFormatTree:
    """Tests for writing trees."""

    def test_format_sample(self) -> None:
        assert format_sample(Sample(id="K1")) == "id:K1"
        assert format_sample(Sample(id="K1", snps=["Z1"], str_count=3.4)) == "id:K1, Z1, STR-Count: 3.4"

    def test_format_clade_with_statistics(self) -> None:
        clade = Clade(
            snps=["P312", "S116"],
            str_count=2.0,
            str_count_downstream=35.2,
            formed=1184.4,
            tmrca=1120.0,
            ci_lower=882.36,
            ci_upper=1421.64,
        )
        assert format_clade(clade) == (
            "P312, S116, STR-Count: 2, STRs Downstream: 35, formed: 1184, "
            "TMRCA: 1120, CI:[882, 1422]"
        )

    def test_format_clade_without_statistics(self) -> None:
        assert format_clade(Clade(snps=["U152"])) == "U152"

    def test_format_indentation(self) -> None:
        tree = parse_tree("A\n    id:1\n    B\n        id:2\n")
        assert format_tree(tree) == "A\n\tid:1\n\tB\n\t\tid:2\n"

    def test_round_trip(self, sample_tree_text: str) -> None:
        tree = parse_tree(sample_tree_text)
        again = parse_tree(format_tree(tree))
        assert _structure(again) == _structure(tree)

    def test_round_trip_with_statistics(self, sample_tree_text: str) -> None:
        """Computed fields do not disturb the structure when read back."""
        tree = parse_tree(sample_tree_text)
        tree.str_count_downstream = 12.0
        tree.formed = 400.0
        tree.tmrca = 300.0
        tree.ci_lower = 200.0
        tree.ci_upper = 450.0

        again = parse_tree(format_tree(tree))

        assert _structure(again) == _structure(tree)

    def test_write_tree_with_header(self, tmp_path: Path, sample_tree_text: str) -> None:
        tree = parse_tree(sample_tree_text)
        path = tmp_path / "out.txt"

        write_tree(tree, path, header=["Created by test"])

        text = path.read_text(encoding="utf-8")
        assert text.startswith("// Created by test\n\n")
        assert _structure(read_tree(path)) == _structure(tree)

    def test_fractional_str_count_round_trip(self) -> None:
        tree = parse_tree("A, STR-Count: 2.5\n\tid:1, STR-Count: 0.25\n")
        again = parse_tree(format_tree(tree))
        assert again.str_count == 2.5
        assert again.samples[0].str_count == 0.25
