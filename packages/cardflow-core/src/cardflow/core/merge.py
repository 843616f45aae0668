"""Splicing generated content into persistent flow documents.

A flow document has two regions: the GENERATED region between the marker
lines (owned by the generator, replaced on every run) and the developer
region (everything else). ``parse_document`` splits a document into
``before`` / ``generated`` / ``after``; a document with exactly one valid
marker pair is replaced in place, a document without markers keeps its text
below the new block, and anything in between is a ``MarkerError``.

The primary document is stricter: its developer region is re-commented on
every run so nothing outside the GENERATED region is ever live.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from cardflow.core.exception import MarkerError

BEGIN_MARKER = "# BEGIN GENERATED (cardflow)"
END_MARKER = "# END GENERATED (cardflow)"
DEVELOPER_HEADER = "# Developer space below (preserved on regen)"
PRIMARY_DEVELOPER_HEADER = "# Developer space below (preserved on regen; keep it commented)"


@dataclass(frozen=True)
class FlowDocument:
    before: str
    generated: Optional[str]
    after: str

    @property
    def has_markers(self) -> bool:
        return self.generated is not None

    def developer_text(self) -> str:
        return self.before + self.after


def parse_document(text: str, *, path: str | None = None) -> FlowDocument:
    """Split text into the regions around the marker pair.

    ``generated`` spans from the begin marker line through the end marker line
    (inclusive, with its newline); it is None when neither marker is present.
    """
    lines = text.splitlines(keepends=True)
    begins = [i for i, line in enumerate(lines) if line.strip() == BEGIN_MARKER]
    ends = [i for i, line in enumerate(lines) if line.strip() == END_MARKER]

    if not begins and not ends:
        return FlowDocument(before=text, generated=None, after="")
    if len(begins) > 1 or len(ends) > 1:
        raise MarkerError(
            f"expected one GENERATED marker pair, found {len(begins)} begin and {len(ends)} end markers",
            path=path,
        )
    if not begins or not ends:
        which = "end" if begins else "begin"
        raise MarkerError(f"GENERATED {which} marker is missing", path=path)

    start, end = begins[0], ends[0]
    if end < start:
        raise MarkerError(
            f"GENERATED end marker (line {end + 1}) precedes begin marker (line {start + 1})",
            path=path,
        )
    return FlowDocument(
        before="".join(lines[:start]),
        generated="".join(lines[start:end + 1]),
        after="".join(lines[end + 1:]),
    )


def wrap_generated(body: str) -> str:
    return f"{BEGIN_MARKER}\n{body.rstrip()}\n{END_MARKER}\n"


def comment_block(text: str) -> str:
    """Comment out every line: blank -> ``#``, otherwise ``# `` + line."""
    if not text.strip():
        return ""
    out: List[str] = []
    for line in text.splitlines():
        out.append("#" if not line.strip() else f"# {line}")
    return "\n".join(out)


def _strip_primary_header(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip() != PRIMARY_DEVELOPER_HEADER]
    return "\n".join(lines).strip()


def new_document(block: str, *, primary: bool = False) -> str:
    header = PRIMARY_DEVELOPER_HEADER if primary else DEVELOPER_HEADER
    return f"{block}\n{header}\n"


def replace_generated_block(existing: str, block: str, *, path: str | None = None) -> str:
    """Merge ``block`` into a non-primary document, keeping the developer region verbatim."""
    doc = parse_document(existing, path=path)
    if doc.has_markers:
        return f"{doc.before}{block}{doc.after}"
    if not existing.strip():
        return new_document(block)
    # no markers: nothing existing is ever deleted
    return f"{block}\n{existing}"


def merge_primary_document(existing: str, block: str, *, path: str | None = None) -> str:
    """Merge ``block`` into the primary document, re-commenting its developer region."""
    doc = parse_document(existing, path=path)
    dev = _strip_primary_header(doc.developer_text())
    commented = comment_block(dev)
    if not commented:
        return new_document(block, primary=True)
    return f"{block}\n{PRIMARY_DEVELOPER_HEADER}\n{commented}\n"


def merge_flow_document(existing: Optional[str], block: str, *, primary: bool = False, path: str | None = None) -> str:
    if existing is None:
        return new_document(block, primary=primary)
    if primary:
        return merge_primary_document(existing, block, path=path)
    return replace_generated_block(existing, block, path=path)
