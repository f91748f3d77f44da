"""Trigram similarity with the same semantics as PostgreSQL pg_trgm.

Used by the in-memory catalog so fuzzy tiers behave as they do against
``similarity()`` in the database.
"""

import re

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)


def trigrams(text: str | None) -> set[str]:
    """Trigram set of ``text``: lower-cased alphanumeric words, each padded
    with two leading blanks and one trailing blank."""
    result: set[str] = set()
    if not text:
        return result
    for word in _WORD_RE.findall(text.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            result.add(padded[i : i + 3])
    return result


def similarity(a: str | None, b: str | None) -> float:
    """Shared trigrams over union of trigrams, 0.0 when either side is empty."""
    ta = trigrams(a)
    tb = trigrams(b)
    if not ta or not tb:
        return 0.0
    shared = len(ta & tb)
    return shared / (len(ta) + len(tb) - shared)


def best_similarity(query: str, *fields: str | None) -> float:
    """Greatest similarity of ``query`` against any of ``fields``."""
    return max((similarity(f, query) for f in fields), default=0.0)
