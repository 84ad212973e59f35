"""Deterministic input compression to keep extraction requests small."""

import re
from typing import Dict

TRUNCATION_MARKER = " [...text truncated...] "
HEAD_SHARE = 0.6

_WHITESPACE = re.compile(r"\s+")

# Five-word windows longer than this many characters count as segments
SEGMENT_WORDS = 5
SEGMENT_MIN_CHARS = 20
REPEAT_THRESHOLD = 2


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def collapse_repeated_segments(text: str) -> str:
    """
    Replace boilerplate repeated more than twice with one annotated copy.

    Boilerplate such as cookie banners or signatures repeated across a
    scraped page is reduced to its first occurrence followed by
    "[repeated N times]"; later occurrences are removed.
    """
    words = text.split(" ")
    counts: Dict[str, int] = {}
    for i in range(len(words) - SEGMENT_WORDS + 1):
        segment = " ".join(words[i:i + SEGMENT_WORDS])
        if len(segment) > SEGMENT_MIN_CHARS:
            counts[segment] = counts.get(segment, 0) + 1

    for segment, count in counts.items():
        if count <= REPEAT_THRESHOLD:
            continue
        # Whole-word matches only; earlier collapses may have removed copies
        pattern = re.compile(r"(?<!\S)" + re.escape(segment) + r"(?!\S)")
        matches = list(pattern.finditer(text))
        if len(matches) <= REPEAT_THRESHOLD:
            continue
        first = matches[0].end()
        rest = pattern.sub("", text[first:])
        text = text[:first] + f" [repeated {count} times]" + rest
        text = collapse_whitespace(text)
    return text


def truncate_middle(text: str, max_length: int) -> str:
    """Keep the head (60%) and tail (40%) of over-long text around a marker."""
    if len(text) <= max_length:
        return text
    head = int(max_length * HEAD_SHARE)
    tail = max_length - head
    return text[:head] + TRUNCATION_MARKER + text[len(text) - tail:]


def minify_text(text: str, max_length: int = 4000) -> str:
    """
    Compress text before it is sent for extraction.

    Args:
        text: Raw input text
        max_length: Character ceiling before head/tail truncation

    Returns:
        Minified text; empty string for empty input
    """
    if not text:
        return ""
    result = collapse_whitespace(text)
    result = collapse_repeated_segments(result)
    return truncate_middle(result, max_length)
