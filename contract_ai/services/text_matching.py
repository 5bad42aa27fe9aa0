"""
Locate AI-quoted contract text inside the original document.

The model is asked to quote passages verbatim, but quotes often come back
with different whitespace, letter case or typographic punctuation.  Lookup
therefore runs in two tiers:

1. exact ``str.find``;
2. fuzzy: both sides lower-cased, whitespace runs collapsed to a single
   space, curly quotes / dashes folded to ASCII, then mapped back to the
   original offsets through a per-character index map.

A passage that cannot be found gets ``start == end == 0`` and
``match_type == "none"`` so the editor can still list the suggestion.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MATCH_EXACT = "exact"
MATCH_FUZZY = "fuzzy"
MATCH_NONE = "none"

# One character in, one character out, so offsets survive folding
_CHAR_FOLDS: Dict[str, str] = {
    "‘": "'",
    "’": "'",
    "‚": "'",
    "‛": "'",
    "“": '"',
    "”": '"',
    "„": '"',
    "–": "-",
    "—": "-",
    "−": "-",
}

_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)*")


@dataclasses.dataclass
class TextPosition:
    """Character span of a suggestion inside the contract text."""

    start: int
    end: int
    line: Optional[int] = None      # 1-based
    column: Optional[int] = None    # 1-based
    paragraph: Optional[int] = None  # 0-based, blank-line separated
    match_type: str = MATCH_NONE

    @property
    def found(self) -> bool:
        return self.match_type != MATCH_NONE

    def as_dict(self) -> Dict[str, Optional[int]]:
        return dataclasses.asdict(self)


def normalize_with_map(text: str) -> Tuple[str, List[int]]:
    """
    Normalise *text* for fuzzy comparison.

    Returns ``(normalised, index_map)`` where ``index_map[i]`` is the offset
    in *text* of the character that produced ``normalised[i]``.  A collapsed
    whitespace run maps to the offset of its first character.  Leading and
    trailing whitespace is dropped.
    """
    chars: List[str] = []
    index_map: List[int] = []
    pending_space: Optional[int] = None

    for i, ch in enumerate(text):
        ch = _CHAR_FOLDS.get(ch, ch)
        if ch.isspace():
            if pending_space is None:
                pending_space = i
            continue

        if pending_space is not None:
            if chars:
                chars.append(" ")
                index_map.append(pending_space)
            pending_space = None

        # str.lower() can expand a character (e.g. "İ" → "i̇")
        for lowered in ch.lower():
            chars.append(lowered)
            index_map.append(i)

    return "".join(chars), index_map


def normalize_text(text: str) -> str:
    """Lower-case, fold punctuation and collapse whitespace."""
    return normalize_with_map(text)[0]


def fuzzy_find_position(search_text: str, full_text: str) -> Optional[Tuple[int, int]]:
    """
    Find *search_text* in *full_text* ignoring case and whitespace layout.

    Returns ``(start, end)`` offsets into the **original** *full_text*, or
    ``None`` when there is no normalised match.
    """
    normalized_search = normalize_text(search_text)
    if not normalized_search:
        return None

    normalized_full, index_map = normalize_with_map(full_text)
    index = normalized_full.find(normalized_search)
    if index == -1:
        return None

    start = index_map[index]
    end = index_map[index + len(normalized_search) - 1] + 1
    return start, end


def find_text_position(search_text: str, full_text: str) -> TextPosition:
    """Locate *search_text* in *full_text*; exact match first, then fuzzy."""
    if not search_text:
        return TextPosition(start=0, end=0)

    index = full_text.find(search_text)
    if index != -1:
        start, end = index, index + len(search_text)
        match_type = MATCH_EXACT
    else:
        span = fuzzy_find_position(search_text, full_text)
        if span is None:
            logger.warning(
                "Could not find position for text: %s...", search_text[:50]
            )
            return TextPosition(start=0, end=0)
        start, end = span
        match_type = MATCH_FUZZY

    before = full_text[:start]
    lines = before.split("\n")

    return TextPosition(
        start=start,
        end=end,
        line=len(lines),
        column=len(lines[-1]) + 1,
        paragraph=len(_PARAGRAPH_BREAK.findall(before)),
        match_type=match_type,
    )
