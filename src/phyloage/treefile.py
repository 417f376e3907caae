"""
Text format for phylogenetic trees.

Trees are written one element per line, nested by indentation:

    P312, STR-Count: 3          // a clade
        id:12345, STR-Count: 7  // a sample of P312
        U152                    // a subclade of P312

A line containing "id:" is a sample, every other line is a clade.
Everything after "//" is a comment. Output trees carry additional
computed fields (STRs Downstream, formed, TMRCA, CI) that are ignored
when such a tree is read back in.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from phyloage.tree import Clade, Element, Sample

COMMENT = "//"
SAMPLE_KEY = "id:"
STR_COUNT_KEY = "STR-Count:"

# Computed fields from previous runs; recognised and discarded on input
_LEGACY_KEYS = ("STRs Downstream:", "formed:", "TMRCA:")
_LEGACY_CI = re.compile(r"CI:\s*\[[^\]]*\]")


class TreeParseError(ValueError):
    """Raised when a tree file cannot be parsed."""

    def __init__(self, message: str, line_no: int | None = None) -> None:
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


@dataclass
class _Line:
    """A non-empty line of a tree file."""

    line_no: int
    indent: int
    text: str


def parse_tree(text: str) -> Clade:
    """
    Parse a tree from its text representation.

    Args:
        text: Tree in indented text format

    Returns:
        Root clade of the tree

    Raises:
        TreeParseError: If the text is empty or malformed
    """
    lines = _read_lines(text)
    if not lines:
        raise TreeParseError("Empty tree file, nothing to do")

    first = lines[0]
    root = _parse_clade(first)
    pos = _parse_block(root, first.indent, lines, 1)
    if pos < len(lines):
        raise TreeParseError("Multiple root elements", lines[pos].line_no)
    return root


def read_tree(path: Path | str) -> Clade:
    """
    Load a tree from a text file.

    Args:
        path: Path to tree file

    Returns:
        Root clade of the tree

    Raises:
        FileNotFoundError: If file doesn't exist
        TreeParseError: If the file is empty or malformed
    """
    return parse_tree(Path(path).read_text(encoding="utf-8"))


def _read_lines(text: str) -> list[_Line]:
    lines: list[_Line] = []
    for line_no, raw in enumerate(text.splitlines(), start=1):
        body = strip_comment(raw)
        if not body.strip():
            continue
        indent = len(body) - len(body.lstrip())
        lines.append(_Line(line_no=line_no, indent=indent, text=body.strip()))
    return lines


def strip_comment(line: str) -> str:
    """Remove a // comment from a line of text."""
    idx = line.find(COMMENT)
    if idx >= 0:
        return line[:idx]
    return line


def _parse_block(parent: Clade, parent_indent: int, lines: list[_Line], pos: int) -> int:
    """
    Parse the children of parent, starting at lines[pos].

    The indentation of the first line deeper than the parent defines the
    indentation of all siblings of the block. Each clade line is followed
    by a recursive call for its own children.

    Returns:
        Index of the first line that does not belong to this block
    """
    child_indent: int | None = None
    while pos < len(lines):
        line = lines[pos]
        if line.indent <= parent_indent:
            return pos
        if child_indent is None:
            child_indent = line.indent
        if line.indent < child_indent:
            raise TreeParseError("Inconsistent indentation", line.line_no)
        if line.indent > child_indent:
            # Deeper lines are only valid right below a clade
            raise TreeParseError("Unexpected indentation", line.line_no)

        if SAMPLE_KEY in line.text:
            parent.add_sample(_parse_sample(line))
            pos += 1
        else:
            clade = _parse_clade(line)
            parent.add_subclade(clade)
            pos = _parse_block(clade, line.indent, lines, pos + 1)
    return pos


def _tokens(text: str) -> list[str]:
    text = _LEGACY_CI.sub("", text)
    return [token.strip() for token in text.split(",") if token.strip()]


def _parse_token(element: Element, token: str, line_no: int) -> None:
    """Apply a clade/sample token to element."""
    if token.startswith(STR_COUNT_KEY):
        value = token[len(STR_COUNT_KEY) :].strip()
        try:
            count = float(value)
        except ValueError:
            raise TreeParseError(
                f"Could not convert STR-Count to a number: {value!r}", line_no
            ) from None
        if count < 0:
            raise TreeParseError(f"STR-Count must not be negative: {value!r}", line_no)
        element.str_count = count
    elif token.startswith(_LEGACY_KEYS):
        return
    else:
        element.add_snp(token)


def _parse_clade(line: _Line) -> Clade:
    """Create a clade from a line like 'SNP1, SNP2, STR-Count: 11'."""
    clade = Clade()
    for token in _tokens(line.text):
        _parse_token(clade, token, line.line_no)
    return clade


def _parse_sample(line: _Line) -> Sample:
    """Create a sample from a line like 'id:12345, SNP1, STR-Count: 11'."""
    sample = Sample()
    for token in _tokens(line.text):
        if token.startswith(SAMPLE_KEY):
            sample.id = token[len(SAMPLE_KEY) :].strip()
        else:
            _parse_token(sample, token, line.line_no)
    return sample


def _format_count(value: float) -> str:
    # Display rounding only
    return f"{max(value, 0.0):.0f}"


def format_element(element: Element) -> str:
    """Render the SNP names and STR-Count of an element."""
    parts = list(element.snps)
    if element.str_count is not None:
        parts.append(f"{STR_COUNT_KEY} {element.str_count:g}")
    return ", ".join(parts)


def format_sample(sample: Sample) -> str:
    body = format_element(sample)
    if body:
        return f"{SAMPLE_KEY}{sample.id}, {body}"
    return f"{SAMPLE_KEY}{sample.id}"


def format_clade(clade: Clade) -> str:
    """Render a clade line including its computed age estimates."""
    body = format_element(clade)
    parts = [body] if body else []
    if clade.str_count_downstream is not None:
        parts.append(f"STRs Downstream: {_format_count(clade.str_count_downstream)}")
    if clade.formed is not None:
        parts.append(f"formed: {_format_count(clade.formed)}")
    if clade.tmrca is not None:
        parts.append(f"TMRCA: {_format_count(clade.tmrca)}")
    if clade.ci_lower is not None and clade.ci_upper is not None:
        parts.append(
            f"CI:[{_format_count(clade.ci_lower)}, {_format_count(clade.ci_upper)}]"
        )
    return ", ".join(parts)


def format_tree(root: Clade) -> str:
    """
    Render a tree in indented text format.

    Args:
        root: Root clade

    Returns:
        Tree text, one tab of indentation per level
    """
    lines: list[str] = []
    _format(root, 0, lines)
    return "\n".join(lines) + "\n"


def _format(clade: Clade, depth: int, lines: list[str]) -> None:
    lines.append("\t" * depth + format_clade(clade))
    for sample in clade.samples:
        lines.append("\t" * (depth + 1) + format_sample(sample))
    for subclade in clade.subclades:
        _format(subclade, depth + 1, lines)


def write_tree(root: Clade, path: Path | str, header: Sequence[str] = ()) -> None:
    """
    Write a tree to a text file.

    Args:
        root: Root clade
        path: Output file
        header: Lines written as // comments above the tree
    """
    comment = "".join(f"{COMMENT} {line}\n" for line in header)
    if comment:
        comment += "\n"
    Path(path).write_text(comment + format_tree(root), encoding="utf-8")
