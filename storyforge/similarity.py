"""Normalized token-overlap similarity.

Every threshold in the pipeline (deduplication, coverage, actor matching,
traceability enrichment, reference-story evaluation) is calibrated against
``overlap``, so all call sites must go through this module.
"""

import re
import unicodedata

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")

MIN_TOKEN_LENGTH = 3


def strip_diacritics(text: str) -> str:
    """Remove combining marks after NFD decomposition (``canción`` -> ``cancion``)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(text: str | None) -> str:
    """Lowercase, remove diacritics, drop non-alphanumerics and collapse whitespace."""
    value = strip_diacritics(str(text or "").lower())
    value = _NON_ALNUM_RE.sub(" ", value)
    return _WHITESPACE_RE.sub(" ", value).strip()


def tokens(text: str | None) -> set[str]:
    """Return the set of normalized tokens with at least three characters."""
    return {t for t in normalize(text).split(" ") if len(t) >= MIN_TOKEN_LENGTH}


def overlap(a: str | None, b: str | None) -> float:
    """Shared-token ratio relative to the larger token set.

    Returns 0.0 when either side has no qualifying tokens.
    """
    ta = tokens(a)
    tb = tokens(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / max(len(ta), len(tb))


def join_text(*parts: str | list[str] | None) -> str:
    """Join strings and string lists into one space-separated text."""
    pieces: list[str] = []
    for part in parts:
        if part is None:
            continue
        if isinstance(part, list):
            pieces.extend(str(p) for p in part if p)
        elif part:
            pieces.append(str(part))
    return " ".join(pieces).strip()
