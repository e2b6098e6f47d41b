import logging
import math
from typing import Any, Optional

from estimator import AVERAGE_TRACK_MINUTES, average_duration_s
from models import MixOptions, RatioConfigItem, Track, WeightType
from normalizer import clean_ratio_config, clean_source_tracks

logger = logging.getLogger(__name__)

IMBALANCE_THRESHOLD = 0.9


def _format_minutes(total_ms: float) -> str:
    total_minutes = math.floor(total_ms / 60000)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


def _available_minutes(sources: dict[str, list[Track]]) -> int:
    total = 0.0
    for tracks in sources.values():
        if any(t.duration_ms > 0 for t in tracks):
            total += len(tracks) * average_duration_s(tracks) / 60
        else:
            total += len(tracks) * AVERAGE_TRACK_MINUTES
    return round(total)


def exceeds_limit(sources: dict[str, list[Track]], options: MixOptions) -> Optional[dict]:
    """Requested length larger than everything the sources hold."""
    if not sources or options.use_all_songs:
        return None

    if options.use_time_limit:
        available = _available_minutes(sources)
        if options.target_duration > available:
            return {
                "type": "time",
                "requested": options.target_duration,
                "available": available,
                "requested_formatted": _format_minutes(options.target_duration * 60000),
                "available_formatted": _format_minutes(available * 60000),
            }
        return None

    available = sum(len(tracks) for tracks in sources.values())
    if options.total_songs > available:
        return {
            "type": "songs",
            "requested": options.total_songs,
            "available": available,
            "requested_formatted": f"{options.total_songs} songs",
            "available_formatted": f"{available} songs",
        }
    return None


def ratio_imbalance(
    sources: dict[str, list[Track]], ratio_config: dict[str, RatioConfigItem], options: MixOptions
) -> Optional[dict]:
    """The source that runs dry first under its ratio, if that happens before the target."""
    if len(ratio_config) < 2:
        return None

    weight_sum = sum(item.weight for item in ratio_config.values())
    by_duration = options.use_time_limit or options.use_all_songs

    limiting_source = None
    min_point = math.inf
    for source_id, item in ratio_config.items():
        available = len(sources[source_id])
        avg_s = average_duration_s(sources[source_id])
        target_ratio = item.weight / weight_sum

        if item.weight_type == WeightType.TIME:
            mix_seconds = available * avg_s / target_ratio
            if not math.isfinite(mix_seconds):
                continue
            point = mix_seconds * 1000 if by_duration else math.floor(mix_seconds / avg_s)
        else:
            mix_songs = available * weight_sum / item.weight
            if not math.isfinite(mix_songs):
                continue
            point = mix_songs * avg_s * 1000 if by_duration else math.floor(mix_songs)

        if point < min_point:
            min_point = point
            limiting_source = source_id

    if limiting_source is None:
        return None

    if by_duration:
        display: Any = _format_minutes(min_point)
        unit = ""
    else:
        display = round(min_point)
        unit = "songs"

    warning = {
        "limiting_source": limiting_source,
        "imbalanced_at": display,
        "unit": unit,
        "will_stop_early": not options.continue_when_playlist_empty,
        "is_use_all_songs": options.use_all_songs,
    }
    if options.use_all_songs:
        return warning

    target = options.target_duration * 60000 if options.use_time_limit else options.total_songs
    if min_point < target * IMBALANCE_THRESHOLD:
        logger.info(f"Ratio imbalance: {limiting_source} runs out at {display} {unit}".rstrip())
        return warning
    return None


def mix_warnings(sources: Any, ratio_config: Any, options: MixOptions) -> dict:
    cleaned = clean_source_tracks(sources)
    ratios = clean_ratio_config(ratio_config, cleaned)
    return {
        "exceeds_limit": exceeds_limit(cleaned, options),
        "ratio_imbalance": ratio_imbalance(cleaned, ratios, options),
    }
