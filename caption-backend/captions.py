"""
Helpers for working with transcribed caption words.
"""

import re
from typing import Iterable, List

from schemas import CaptionPage, CaptionWord

MAX_WORDS_PER_PAGE = 3
PAGE_BREAK_PATTERN = re.compile(r"[.!?,]$")


def order_words(words: Iterable[CaptionWord]) -> List[CaptionWord]:
    """Return the words sorted by start time, keeping ties in their original order."""
    return sorted(words, key=lambda word: word.start_ms)


def transcript_text(words: Iterable[CaptionWord]) -> str:
    return " ".join(word.text for word in words)


def group_into_pages(words: Iterable[CaptionWord], max_words: int = MAX_WORDS_PER_PAGE) -> List[CaptionPage]:
    """
    Split words into on-screen pages. A page closes after `max_words` words
    or at a word ending in punctuation.
    """
    pages: List[CaptionPage] = []
    current: List[CaptionWord] = []

    for word in words:
        current.append(word)
        if len(current) >= max_words or PAGE_BREAK_PATTERN.search(word.text):
            pages.append(CaptionPage(words=current, start_ms=current[0].start_ms, end_ms=current[-1].end_ms))
            current = []

    if current:
        pages.append(CaptionPage(words=current, start_ms=current[0].start_ms, end_ms=current[-1].end_ms))

    return pages


def format_srt_timestamp(ms: int) -> str:
    hours, rest = divmod(ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def pages_to_srt(pages: Iterable[CaptionPage]) -> str:
    """Render caption pages as an SRT document, one cue per page."""
    cues = []
    for index, page in enumerate(pages, start=1):
        cues.append(
            f"{index}\n"
            f"{format_srt_timestamp(page.start_ms)} --> {format_srt_timestamp(page.end_ms)}\n"
            f"{page.text.upper()}\n"
        )
    return "\n".join(cues)
