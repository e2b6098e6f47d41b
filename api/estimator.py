import logging
import math

import numpy as np
from models import LengthEstimate, MixOptions, RatioConfigItem, Track, WeightType

logger = logging.getLogger(__name__)

AVERAGE_TRACK_MINUTES = 3.5
MAX_TIME_BASED_SONGS = 200
DEFAULT_TRACK_SECONDS = 210.0
USE_ALL_BUFFER = 1.05


def total_weight(ratio_config: dict[str, RatioConfigItem]) -> float:
    return sum(item.weight for item in ratio_config.values())


def average_duration_s(tracks: list[Track]) -> float:
    """Mean track length in seconds, ignoring tracks without a known duration."""
    durations = np.array([t.duration_ms for t in tracks if t.duration_ms > 0], dtype=float)
    if durations.size == 0:
        return DEFAULT_TRACK_SECONDS
    return float(durations.mean() / 1000)


def optimal_length_by_frequency(
    sources: dict[str, list[Track]], ratio_config: dict[str, RatioConfigItem], weight_sum: float
) -> int:
    limits = []
    for source_id, item in ratio_config.items():
        target_ratio = item.weight / weight_sum
        available = len(sources[source_id])
        max_if_limiting = available / target_ratio
        if not math.isfinite(max_if_limiting):
            # a vanishing share never limits the mix
            continue
        max_if_limiting = math.floor(max_if_limiting)
        limits.append(max_if_limiting)
        logger.debug(
            f"{source_id}: {available} songs, {round(target_ratio * 100)}% freq ratio -> max total {max_if_limiting}"
        )
    if not limits:
        return 0
    return math.floor(min(limits) * USE_ALL_BUFFER)


def optimal_length_by_time(
    sources: dict[str, list[Track]], ratio_config: dict[str, RatioConfigItem], weight_sum: float
) -> int:
    averages = {source_id: average_duration_s(sources[source_id]) for source_id in ratio_config}

    limits = []
    for source_id, item in ratio_config.items():
        target_ratio = item.weight / weight_sum
        available_s = len(sources[source_id]) * averages[source_id]
        max_duration_if_limiting = available_s / target_ratio
        if not math.isfinite(max_duration_if_limiting):
            continue
        limits.append(max_duration_if_limiting)
        logger.debug(
            f"{source_id}: {round(available_s / 60)}m available, {round(target_ratio * 100)}% time ratio "
            f"-> max total {round(max_duration_if_limiting / 60)}m"
        )

    if not limits:
        return 0
    overall_average_s = float(np.mean(list(averages.values())))
    return math.floor(min(limits) / overall_average_s * USE_ALL_BUFFER)


def optimal_length(sources: dict[str, list[Track]], ratio_config: dict[str, RatioConfigItem]) -> int:
    """Longest mix the sources can fill at their target ratios.

    When any source is time weighted the whole estimate is computed on
    durations; otherwise it is computed on track counts.
    """
    weight_sum = total_weight(ratio_config)
    if weight_sum <= 0:
        return 0
    if any(item.weight_type == WeightType.TIME for item in ratio_config.values()):
        return optimal_length_by_time(sources, ratio_config, weight_sum)
    return optimal_length_by_frequency(sources, ratio_config, weight_sum)


def estimate_length(
    sources: dict[str, list[Track]], ratio_config: dict[str, RatioConfigItem], options: MixOptions
) -> LengthEstimate:
    if options.use_all_songs:
        estimated = optimal_length(sources, ratio_config)
    elif options.use_time_limit:
        estimated = min(math.ceil(options.target_duration / AVERAGE_TRACK_MINUTES), MAX_TIME_BASED_SONGS)
    else:
        estimated = options.total_songs

    weight_sum = total_weight(ratio_config)
    target_counts = {
        source_id: round(estimated * item.weight / weight_sum) if weight_sum > 0 else 0
        for source_id, item in ratio_config.items()
    }
    logger.info(f"Estimated mix length: {estimated} songs, targets {target_counts}")
    return LengthEstimate(estimated_total=estimated, target_counts=target_counts)
