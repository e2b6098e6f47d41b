import logging
import math
import random
from datetime import datetime, timezone
from typing import Optional

from models import PopularityQuadrants, Track, TrackWithPopularity

logger = logging.getLogger(__name__)

RECENCY_WINDOW_DAYS = 730  # two years
RECENCY_MAX_BONUS = 20.0
MAX_POPULARITY = 100.0


def parse_release_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a catalog release date of year, month or day precision."""
    if not value or not isinstance(value, str):
        return None
    for fmt in ("%Y-%m-%d", "%Y-%m", "%Y"):
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def recency_bonus(release_date: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    days_since_release = (now - release_date).total_seconds() / 86400
    if days_since_release >= RECENCY_WINDOW_DAYS:
        return 0.0
    # future release dates get the full bonus, never more
    return min(RECENCY_MAX_BONUS, max(0.0, RECENCY_MAX_BONUS * (1 - days_since_release / RECENCY_WINDOW_DAYS)))


def with_popularity(track: Track, recency_boost: bool = False, now: Optional[datetime] = None) -> TrackWithPopularity:
    base = track.popularity or 0
    release_date = parse_release_date(track.album.release_date if track.album else None)
    release_year = release_date.year if release_date else None

    bonus = 0.0
    if recency_boost and release_date is not None:
        bonus = recency_bonus(release_date, now)

    return TrackWithPopularity(
        **track.track_fields(),
        adjusted_popularity=min(MAX_POPULARITY, base + bonus),
        base_popularity=base,
        recency_bonus=round(bonus, 1),
        release_year=release_year,
    )


def sort_by_popularity(tracks: list[TrackWithPopularity]) -> list[TrackWithPopularity]:
    # sorted() is stable, so equal scores keep their source order
    return sorted(tracks, key=lambda t: t.adjusted_popularity, reverse=True)


def shuffle_quadrants(quadrants: PopularityQuadrants, rng: Optional[random.Random] = None) -> PopularityQuadrants:
    """Fisher-Yates shuffle inside each quadrant; quadrant membership is untouched."""
    rng = rng or random.Random()

    def _shuffled(items: list[TrackWithPopularity]) -> list[TrackWithPopularity]:
        copy = list(items)
        rng.shuffle(copy)
        return copy

    return PopularityQuadrants(
        top_hits=_shuffled(quadrants.top_hits),
        popular=_shuffled(quadrants.popular),
        moderate=_shuffled(quadrants.moderate),
        deep_cuts=_shuffled(quadrants.deep_cuts),
    )


def build_quadrants(
    tracks: list[Track],
    recency_boost: bool = False,
    shuffle_within_groups: bool = False,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> PopularityQuadrants:
    """
    Split one source into four popularity tiers.

    Tracks are scored (optionally with a recency bonus), sorted by descending
    adjusted popularity and cut into contiguous slices of ceil(n/4); the last
    slice takes whatever remains.
    """
    scored = sort_by_popularity([with_popularity(t, recency_boost, now) for t in tracks])
    quarter = math.ceil(len(scored) / 4)

    quadrants = PopularityQuadrants(
        top_hits=scored[:quarter],
        popular=scored[quarter : quarter * 2],
        moderate=scored[quarter * 2 : quarter * 3],
        deep_cuts=scored[quarter * 3 :],
    )
    if shuffle_within_groups:
        quadrants = shuffle_quadrants(quadrants, rng)
    return quadrants


def build_pools(
    sources: dict[str, list[Track]],
    recency_boost: bool = False,
    shuffle_within_groups: bool = False,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> dict[str, PopularityQuadrants]:
    pools = {}
    for source_id, tracks in sources.items():
        pools[source_id] = build_quadrants(tracks, recency_boost, shuffle_within_groups, rng, now)
        logger.debug(f"Quadrants for {source_id}: {quadrant_stats(pools[source_id])['sizes']}")
    return pools


def quadrant_stats(quadrants: PopularityQuadrants) -> dict:
    groups = {
        "top_hits": quadrants.top_hits,
        "popular": quadrants.popular,
        "moderate": quadrants.moderate,
        "deep_cuts": quadrants.deep_cuts,
    }
    return {
        "sizes": {name: len(items) for name, items in groups.items()},
        "average_popularity": {
            name: round(sum(t.adjusted_popularity for t in items) / len(items), 1) if items else 0.0
            for name, items in groups.items()
        },
    }


def validate_quadrants(quadrants: PopularityQuadrants, tracks: list[Track]) -> bool:
    """True when the quadrants partition `tracks` exactly by id."""
    ids = [t.id for t in quadrants.all_tracks()]
    return len(ids) == len(tracks) and len(set(ids)) == len(ids) and set(ids) == {t.id for t in tracks}


def popularity_metrics(tracks: list[TrackWithPopularity]) -> dict:
    if not tracks:
        return {
            "total_tracks": 0,
            "average_popularity": 0.0,
            "average_recency_bonus": 0.0,
            "popularity_range": {"min": 0.0, "max": 0.0},
            "recency_bonus_range": {"min": 0.0, "max": 0.0},
            "release_year_range": {"min": None, "max": None},
            "popularity_distribution": {"top_hits": 0, "popular": 0, "moderate": 0, "deep_cuts": 0},
        }

    popularity = [t.adjusted_popularity for t in tracks]
    bonuses = [t.recency_bonus for t in tracks]
    years = [t.release_year for t in tracks if t.release_year is not None]

    return {
        "total_tracks": len(tracks),
        "average_popularity": round(sum(popularity) / len(tracks), 1),
        "average_recency_bonus": round(sum(bonuses) / len(tracks), 1),
        "popularity_range": {"min": min(popularity), "max": max(popularity)},
        "recency_bonus_range": {"min": min(bonuses), "max": max(bonuses)},
        "release_year_range": {"min": min(years) if years else None, "max": max(years) if years else None},
        "popularity_distribution": {
            "top_hits": sum(1 for p in popularity if p >= 80),
            "popular": sum(1 for p in popularity if 60 <= p < 80),
            "moderate": sum(1 for p in popularity if 40 <= p < 60),
            "deep_cuts": sum(1 for p in popularity if p < 40),
        },
    }
