"""Turn retrieved chunks into prompt context for the host's generation backend.

- ``format_context()`` keeps the best passage per document, formatted as
  ``From "<document id>":\\n<text>``.
- ``describe_style()`` samples stored chunks and summarises how the vault's
  notes are written (length, bullet lists, headings) for a system prompt.
"""

from __future__ import annotations

import re
from typing import Sequence

from vaultrag.db.models import EmbeddingRecord, SearchHit

_LIST_RE = re.compile(r"^[-*]\s", re.MULTILINE)
_HEADING_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)

_STYLE_SAMPLES = 10
_CONCISE_CHARS = 300
_DETAILED_CHARS = 800


def format_context(hits: Sequence[SearchHit]) -> list[str]:
    """One passage per document, in ranking order."""
    seen: set[str] = set()
    passages: list[str] = []
    for hit in hits:
        if hit.document_id in seen:
            continue
        seen.add(hit.document_id)
        passages.append(f'From "{hit.document_id}":\n{hit.chunk_text}')
    return passages


def describe_style(records: Sequence[EmbeddingRecord]) -> str:
    """Return a one-line description of the notes' style, or '' if nothing stands out.

    Samples up to 10 chunks spread evenly across *records* (which should be in
    a stable order, e.g. ``IndexSnapshot.records``).
    """
    if not records:
        return ""

    sample_size = min(_STYLE_SAMPLES, len(records))
    step = max(1, len(records) // sample_size)
    samples = [r.chunk.text for r in records[::step][:sample_size]]

    avg_length = sum(len(s) for s in samples) / len(samples)
    notes: list[str] = []
    if avg_length < _CONCISE_CHARS:
        notes.append("concise, brief notes")
    elif avg_length > _DETAILED_CHARS:
        notes.append("detailed, comprehensive notes")
    if any(_LIST_RE.search(s) for s in samples):
        notes.append("uses bullet lists")
    if any(_HEADING_RE.search(s) for s in samples):
        notes.append("uses headings for structure")

    if not notes:
        return ""
    return f"The user's typical note style: {', '.join(notes)}."
