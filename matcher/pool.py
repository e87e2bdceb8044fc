"""
Artist pool: Liked → Top → Followed, ignore-filtered, deduped by name, capped.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set, Union

from models import ArtistRef, Tier

logger = logging.getLogger(__name__)

ArtistLike = Union[ArtistRef, str]


@dataclass
class ArtistPool:
    artists: List[ArtistRef] = field(default_factory=list)
    liked: Set[str] = field(default_factory=set)
    top: Set[str] = field(default_factory=set)
    followed: Set[str] = field(default_factory=set)
    preferred: Set[str] = field(default_factory=set)

    @property
    def names(self) -> List[str]:
        return [a.name for a in self.artists]


def parse_ignore(*raw: str) -> Set[str]:
    """Comma-separated ignore lists → lowercase name set."""
    out: Set[str] = set()
    for chunk in raw:
        for name in (chunk or "").split(","):
            name = name.strip().lower()
            if name:
                out.add(name)
    return out


def _as_ref(item: ArtistLike) -> ArtistRef:
    if isinstance(item, ArtistRef):
        return item
    return ArtistRef(name=item)


def _kept(items: Sequence[ArtistLike], ignore: Set[str]) -> List[ArtistRef]:
    refs = [_as_ref(i) for i in items]
    return [r for r in refs if r.name and r.name.lower() not in ignore]


def build_artist_pool(
    liked: Sequence[ArtistLike],
    top: Sequence[ArtistLike],
    followed: Sequence[ArtistLike],
    ignore: Iterable[str] = (),
    cap: int = 820,
) -> ArtistPool:
    """
    Liked artists come first so truncation never drops them in favour of
    broader signals. A name that reappears in a later tier keeps its first
    position and gains that tier.
    """
    ignore_set = {i.lower() for i in ignore}
    tiers = [
        (Tier.LIKED, _kept(liked, ignore_set)),
        (Tier.TOP, _kept(top, ignore_set)),
        (Tier.FOLLOWED, _kept(followed, ignore_set)),
    ]

    by_name: Dict[str, ArtistRef] = {}
    for tier, refs in tiers:
        for ref in refs:
            key = ref.name.lower()
            existing = by_name.get(key)
            if existing is None:
                by_name[key] = ArtistRef(
                    name=ref.name, id=ref.id, genres=list(ref.genres), tiers={tier}
                )
            else:
                existing.tiers.add(tier)
                if not existing.genres and ref.genres:
                    existing.genres = list(ref.genres)

    artists = list(by_name.values())[: max(cap, 0)]
    pool = ArtistPool(
        artists=artists,
        liked={r.name.lower() for r in tiers[0][1]},
        top={r.name.lower() for r in tiers[1][1]},
        followed={r.name.lower() for r in tiers[2][1]},
        preferred={a.name.lower() for a in artists},
    )
    logger.info(
        "Artist pool: %d artists (liked=%d top=%d followed=%d, cap=%d)",
        len(pool.artists),
        len(pool.liked),
        len(pool.top),
        len(pool.followed),
        cap,
    )
    return pool
