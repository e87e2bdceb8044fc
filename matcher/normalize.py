"""
Canonical form of artist and performer names for equality checks.
"""
import re
import unicodedata
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize(name: Optional[str]) -> str:
    """
    Strip diacritics, unify apostrophes, lowercase, collapse everything outside
    [a-z0-9] to single spaces. "Beyoncé" and "beyonce" normalize equally.
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.replace("’", "'")
    return _NON_ALNUM.sub(" ", stripped.lower()).strip()


def same_artist(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize(a)
    return bool(na) and na == normalize(b)
