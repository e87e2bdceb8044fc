"""
Title guard: reject name-matched events whose title points to a tribute act,
an orchestral program or a themed night rather than the artist themself.
"""
from enum import Enum
from typing import List, Optional, Tuple

from matcher.normalize import normalize


class TitleFlag(str, Enum):
    TRIBUTE = "tribute"
    MUSIC_OF = "music_of"
    VERSUS = "versus"
    THEMED_NIGHT = "themed_night"
    PARTY = "party"
    ORCHESTRAL = "orchestral"
    CANDLELIGHT = "candlelight"
    CHAMBER = "chamber"
    EXPERIENCE = "experience"
    FILM_CONCERT = "film_concert"
    GUEST_BILLING = "guest_billing"


# Longer markers first so the reported reason is the most specific one.
TITLE_RULES: List[Tuple[str, TitleFlag]] = [
    ("performs the music of", TitleFlag.MUSIC_OF),
    ("performing the music of", TitleFlag.MUSIC_OF),
    ("plays the music of", TitleFlag.MUSIC_OF),
    ("the music of", TitleFlag.MUSIC_OF),
    ("music of", TitleFlag.MUSIC_OF),
    ("a tribute to", TitleFlag.TRIBUTE),
    ("tribute", TitleFlag.TRIBUTE),
    ("in concert with", TitleFlag.GUEST_BILLING),
    ("film concert", TitleFlag.FILM_CONCERT),
    ("string quartet", TitleFlag.CHAMBER),
    ("ensemble", TitleFlag.CHAMBER),
    ("orchestra", TitleFlag.ORCHESTRAL),
    ("symphony", TitleFlag.ORCHESTRAL),
    ("philharmonic", TitleFlag.ORCHESTRAL),
    ("candlelight", TitleFlag.CANDLELIGHT),
    ("experience", TitleFlag.EXPERIENCE),
    ("night", TitleFlag.THEMED_NIGHT),
    ("party", TitleFlag.PARTY),
    ("vs", TitleFlag.VERSUS),
]


def title_flag(title: Optional[str]) -> Optional[Tuple[str, TitleFlag]]:
    """Return the first (marker, flag) rule hit by the title, or None. Markers match whole words."""
    padded = f" {normalize(title)} "
    for marker, flag in TITLE_RULES:
        if f" {marker} " in padded:
            return marker, flag
    return None
