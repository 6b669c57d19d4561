from __future__ import annotations

import re
from typing import Iterable, Sequence


def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Case-insensitive pattern for `keyword` bounded by string edges or non-alphanumerics.

    `\\b` is not used because underscores count as word characters there, and
    "CS_final.pdf" has to match "CS". `[^\\W_]` is any Unicode letter or digit.
    """
    return re.compile(rf"(?<![^\W_]){re.escape(keyword.strip())}(?![^\W_])", re.I)


def matches(text: str, keyword: str) -> bool:
    return keyword_pattern(keyword).search(text or "") is not None


def is_excluded(filename: str, subject: str, body: str, exclusion_terms: Iterable[str]) -> bool:
    """True if any exclusion term appears anywhere, as a plain substring, in the three texts."""
    haystacks = [(filename or "").lower(), (subject or "").lower(), (body or "").lower()]
    for term in exclusion_terms:
        needle = term.strip().lower()
        if needle and any(needle in h for h in haystacks):
            return True
    return False


class KeywordMatcher:
    """Keyword list compiled once, matched against attachment filenames."""

    def __init__(self, keywords: Sequence[str]) -> None:
        self.keywords = tuple(k for k in keywords if k.strip())
        self._patterns = [keyword_pattern(k) for k in self.keywords]

    def __call__(self, text: str) -> bool:
        return any(p.search(text or "") for p in self._patterns)

    def __repr__(self) -> str:
        return f"KeywordMatcher({list(self.keywords)!r})"
