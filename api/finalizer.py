import logging

import numpy as np
from models import (
    LengthEstimate,
    MixedTrack,
    MixingState,
    MixOptions,
    MixResult,
    PopularityQuadrants,
    RatioConfigItem,
    WeightType,
)
from popularity import popularity_metrics

logger = logging.getLogger(__name__)


def format_duration(duration_ms: int) -> str:
    if duration_ms is None or duration_ms < 0:
        return "0:00"
    total_seconds = int(duration_ms // 1000)
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"


def trim_to_duration(tracks: list[MixedTrack], target_minutes: float) -> list[MixedTrack]:
    """Longest prefix whose running duration stays within the target."""
    limit_ms = target_minutes * 60000
    kept: list[MixedTrack] = []
    running = 0
    for track in tracks:
        if running + track.duration_ms > limit_ms:
            break
        running += track.duration_ms
        kept.append(track)
    return kept


def drained_sources(tracks: list[MixedTrack], pools: dict[str, PopularityQuadrants]) -> set[str]:
    used = {t.id for t in tracks}
    return {
        source_id
        for source_id, quadrants in pools.items()
        if all(t.id in used for t in quadrants.all_tracks())
    }


def ratio_compliance(tracks: list[MixedTrack], ratio_config: dict[str, RatioConfigItem]) -> float:
    if not tracks or not ratio_config:
        return 1.0

    weight_sum = sum(item.weight for item in ratio_config.values())
    total_count = len(tracks)
    total_ms = sum(t.duration_ms for t in tracks)

    scores = []
    for source_id, item in ratio_config.items():
        own = [t for t in tracks if t.source_playlist == source_id]
        if item.weight_type == WeightType.TIME and total_ms > 0:
            actual = sum(t.duration_ms for t in own) / total_ms
        else:
            actual = len(own) / total_count
        expected = item.weight / weight_sum
        scores.append(max(0.0, 1 - abs(expected - actual)))
    return float(np.mean(scores))


def mix_statistics(
    tracks: list[MixedTrack],
    ratio_config: dict[str, RatioConfigItem],
    pools: dict[str, PopularityQuadrants],
    estimate: LengthEstimate,
) -> dict:
    total_ms = sum(t.duration_ms for t in tracks)
    distribution = {}
    for source_id in ratio_config:
        own = [t for t in tracks if t.source_playlist == source_id]
        distribution[source_id] = {
            "count": len(own),
            "duration_ms": sum(t.duration_ms for t in own),
            "percentage": round(len(own) / len(tracks) * 100, 1) if tracks else 0.0,
        }

    average_popularity = round(float(np.mean([t.popularity for t in tracks])), 1) if tracks else 0.0

    return {
        "total_tracks": len(tracks),
        "total_duration_ms": total_ms,
        "total_duration_minutes": round(total_ms / 60000),
        "total_duration": format_duration(total_ms),
        "distribution": distribution,
        "average_popularity": average_popularity,
        "ratio_compliance": round(ratio_compliance(tracks, ratio_config), 3),
        "estimated_total": estimate.estimated_total,
        "target_counts": dict(estimate.target_counts),
        "source_metrics": {source_id: popularity_metrics(q.all_tracks()) for source_id, q in pools.items()},
    }


def finalize(
    state: MixingState,
    ratio_config: dict[str, RatioConfigItem],
    options: MixOptions,
    pools: dict[str, PopularityQuadrants],
    estimate: LengthEstimate,
) -> MixResult:
    tracks = list(state.mixed_tracks)
    if options.use_time_limit and not options.use_all_songs:
        trimmed = trim_to_duration(tracks, options.target_duration)
        if len(trimmed) < len(tracks):
            logger.info(f"Trimmed {len(tracks) - len(trimmed)} track(s) to fit {options.target_duration} minutes")
        tracks = trimmed

    # Sources flagged during mixing stay flagged; fully drained ones are added.
    exhausted = set(state.exhausted_ids()) | drained_sources(tracks, pools)
    stopped_early = bool(exhausted) and not options.continue_when_playlist_empty

    return MixResult(
        tracks=tracks,
        exhausted_playlists=exhausted,
        stopped_early=stopped_early,
        statistics=mix_statistics(tracks, ratio_config, pools, estimate),
    )
