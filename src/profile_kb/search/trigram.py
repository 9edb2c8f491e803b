"""Trigram similarity with pg_trgm semantics.

Registered as the ``similarity()`` SQL function on SQLite connections so the
embedded store and PostgreSQL score lexical matches identically.
"""

import re

_WORD_RE = re.compile(r"[^\W_]+")


def trigrams(text: str | None) -> set[str]:
    """Extract the trigram set of a string.

    Words are lower-cased alphanumeric runs, padded with two spaces in front
    and one behind before slicing, as pg_trgm does.
    """
    if not text:
        return set()
    grams: set[str] = set()
    for word in _WORD_RE.findall(text.lower()):
        padded = f"  {word} "
        grams.update(padded[i : i + 3] for i in range(len(padded) - 2))
    return grams


def trigram_similarity(a: str | None, b: str | None) -> float:
    """Shared trigrams over total distinct trigrams, in [0, 1]."""
    ta = trigrams(a)
    tb = trigrams(b)
    if not ta or not tb:
        return 0.0
    shared = len(ta & tb)
    return shared / (len(ta) + len(tb) - shared)
