"""
Track factories shared by the mixer tests.

Tracks are plain catalog-shaped objects; durations default to 3 minutes so
count and time arithmetic stay easy to follow.
"""

from models import Album, Artist, RatioConfigItem, Track

DEFAULT_DURATION_MS = 180_000


def make_track(track_id, popularity=50, duration_ms=DEFAULT_DURATION_MS, release_date=None, name=None):
    return Track(
        id=track_id,
        uri=f"spotify:track:{track_id}",
        name=name or f"Song {track_id}",
        artists=[Artist(name=f"Artist {track_id}")],
        album=Album(name=f"Album {track_id}", release_date=release_date),
        duration_ms=duration_ms,
        popularity=popularity,
    )


def make_track_dict(track_id, popularity=50, duration_ms=DEFAULT_DURATION_MS, release_date=None):
    return make_track(track_id, popularity, duration_ms, release_date).to_dict()


def make_source(prefix, count, duration_ms=DEFAULT_DURATION_MS):
    """`count` tracks with strictly decreasing popularity: prefix1 is the biggest hit."""
    return [make_track(f"{prefix}{i}", popularity=100 - i, duration_ms=duration_ms) for i in range(1, count + 1)]


def ratio(weight=1, min_=1, max_=1, weight_type="frequency"):
    return RatioConfigItem(min=min_, max=max_, weight=weight, weight_type=weight_type)
