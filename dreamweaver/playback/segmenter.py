"""Sentence segmentation of chapter prose."""

import re

from ..models.story import Sentence

# Terminal punctuation, optionally closed by a quote or bracket, then whitespace.
# Blank lines also end a sentence so headings and unpunctuated paragraphs split.
_BOUNDARY = re.compile(r"(?<=[.!?])\s+|(?<=[.!?][\"'”’)\]])\s+|\n\s*\n")
_WHITESPACE = re.compile(r"\s+")


def split_sentences(prose: str) -> list[str]:
    """Split prose into trimmed, non-empty sentence strings."""
    fragments = _BOUNDARY.split(prose)
    return [_WHITESPACE.sub(" ", f).strip() for f in fragments if f and f.strip()]


def segment(prose: str, chapter_index: int, start_index: int = 0) -> list[Sentence]:
    """Turn a chapter's prose into sentences with session-global indices.

    ``start_index`` is the number of sentences already in the session, so
    indices keep increasing across chapter boundaries.
    """
    return [
        Sentence(global_index=start_index + offset, text=text, chapter_index=chapter_index)
        for offset, text in enumerate(split_sentences(prose))
    ]
