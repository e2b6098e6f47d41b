import random
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_source, make_track
from popularity import (
    build_pools,
    build_quadrants,
    parse_release_date,
    popularity_metrics,
    quadrant_stats,
    recency_bonus,
    validate_quadrants,
    with_popularity,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_parse_release_date_precisions():
    assert parse_release_date("2020-05-17") == datetime(2020, 5, 17, tzinfo=timezone.utc)
    assert parse_release_date("2020-05") == datetime(2020, 5, 1, tzinfo=timezone.utc)
    assert parse_release_date("2020") == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert parse_release_date("not a date") is None
    assert parse_release_date(None) is None


def test_recency_bonus_decays_over_two_years():
    assert recency_bonus(NOW, NOW) == pytest.approx(20.0)
    assert recency_bonus(NOW - timedelta(days=365), NOW) == pytest.approx(10.0)
    assert recency_bonus(NOW - timedelta(days=730), NOW) == 0.0
    assert recency_bonus(NOW - timedelta(days=3000), NOW) == 0.0


def test_with_popularity_applies_boost_only_when_enabled():
    track = make_track("t1", popularity=50, release_date="2023-06-02")

    plain = with_popularity(track, recency_boost=False, now=NOW)
    assert plain.adjusted_popularity == 50
    assert plain.recency_bonus == 0.0
    assert plain.release_year == 2023

    boosted = with_popularity(track, recency_boost=True, now=NOW)
    assert boosted.base_popularity == 50
    assert boosted.adjusted_popularity == pytest.approx(50 + 20 * (1 - 365 / 730))
    assert boosted.recency_bonus == 10.0


def test_with_popularity_caps_at_100_and_ignores_unknown_dates():
    hit = with_popularity(make_track("t1", popularity=95, release_date="2024-06-01"), True, NOW)
    assert hit.adjusted_popularity == 100

    undated = with_popularity(make_track("t2", popularity=40), True, NOW)
    assert undated.adjusted_popularity == 40
    assert undated.release_year is None


@pytest.mark.parametrize("n", [0, 1, 2, 3, 4, 5, 7, 10, 13])
def test_quadrants_partition_the_source(n):
    tracks = make_source("t", n)
    quadrants = build_quadrants(tracks)

    sizes = [len(quadrants.top_hits), len(quadrants.popular), len(quadrants.moderate), len(quadrants.deep_cuts)]
    assert sum(sizes) == n
    assert validate_quadrants(quadrants, tracks)


def test_quadrants_are_ceil_sized_and_ordered():
    quadrants = build_quadrants(make_source("t", 10))
    assert [t.id for t in quadrants.top_hits] == ["t1", "t2", "t3"]
    assert [t.id for t in quadrants.popular] == ["t4", "t5", "t6"]
    assert [t.id for t in quadrants.moderate] == ["t7", "t8", "t9"]
    assert [t.id for t in quadrants.deep_cuts] == ["t10"]


def test_recency_boost_can_promote_a_track():
    old_hit = make_track("old", popularity=60, release_date="1999")
    new_song = make_track("new", popularity=50, release_date="2024-05-31")
    filler = [make_track(f"f{i}", popularity=10) for i in range(6)]

    quadrants = build_quadrants([old_hit, new_song, *filler], recency_boost=True, now=NOW)
    assert quadrants.top_hits[0].id == "new"


def test_shuffle_keeps_quadrant_membership():
    tracks = make_source("t", 40)
    ordered = build_quadrants(tracks)
    shuffled = build_quadrants(tracks, shuffle_within_groups=True, rng=random.Random(7))

    for name in ("top_hits", "popular", "moderate", "deep_cuts"):
        assert {t.id for t in getattr(shuffled, name)} == {t.id for t in getattr(ordered, name)}
    assert [t.id for t in shuffled.all_tracks()] != [t.id for t in ordered.all_tracks()]


def test_pools_are_built_per_source():
    pools = build_pools({"A": make_source("a", 4), "B": [make_track("b1", popularity=1)]})
    assert [t.id for t in pools["A"].top_hits] == ["a1"]
    # a lone unpopular track is still its own source's top hit
    assert [t.id for t in pools["B"].top_hits] == ["b1"]


def test_validate_quadrants_detects_overlap():
    tracks = make_source("t", 4)
    quadrants = build_quadrants(tracks)
    quadrants.deep_cuts.append(quadrants.top_hits[0])
    assert not validate_quadrants(quadrants, tracks)


def test_quadrant_stats():
    stats = quadrant_stats(build_quadrants(make_source("t", 5)))
    assert stats["sizes"] == {"top_hits": 2, "popular": 2, "moderate": 1, "deep_cuts": 0}
    assert stats["average_popularity"]["top_hits"] == 98.5
    assert stats["average_popularity"]["deep_cuts"] == 0.0


def test_popularity_metrics():
    tracks = [
        with_popularity(make_track("a", popularity=90, release_date="2001"), now=NOW),
        with_popularity(make_track("b", popularity=65, release_date="2010"), now=NOW),
        with_popularity(make_track("c", popularity=45), now=NOW),
        with_popularity(make_track("d", popularity=10), now=NOW),
    ]
    metrics = popularity_metrics(tracks)

    assert metrics["total_tracks"] == 4
    assert metrics["average_popularity"] == 52.5
    assert metrics["popularity_range"] == {"min": 10, "max": 90}
    assert metrics["release_year_range"] == {"min": 2001, "max": 2010}
    assert metrics["popularity_distribution"] == {"top_hits": 1, "popular": 1, "moderate": 1, "deep_cuts": 1}


def test_popularity_metrics_empty():
    metrics = popularity_metrics([])
    assert metrics["total_tracks"] == 0
    assert metrics["release_year_range"] == {"min": None, "max": None}


def test_future_release_gets_no_more_than_the_full_bonus():
    assert recency_bonus(NOW + timedelta(days=365), NOW) == 20.0

    track = with_popularity(make_track("t1", popularity=50, release_date="2025-06-01"), recency_boost=True, now=NOW)
    assert track.recency_bonus == 20.0
    assert track.adjusted_popularity == 70.0
