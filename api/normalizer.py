import logging
import math
from typing import Any, Optional

from models import MixOptions, RatioConfigItem, Track, ValidationResult, WeightType

logger = logging.getLogger(__name__)


def validate_track(track: Any) -> bool:
    """A track is usable when it carries a non-empty id, uri and name."""
    if isinstance(track, Track):
        values = (track.id, track.uri, track.name)
    elif isinstance(track, dict):
        values = (track.get("id"), track.get("uri"), track.get("name"))
    else:
        return False
    return all(isinstance(v, str) and v for v in values)


def _as_track_list(raw: Any) -> list:
    if isinstance(raw, list):
        return raw
    # Some callers hand over the catalog's paging object instead of the bare list
    if isinstance(raw, dict) and isinstance(raw.get("tracks"), list):
        return raw["tracks"]
    return []


def _to_track(raw: Any) -> Optional[Track]:
    if isinstance(raw, Track):
        return raw
    try:
        return Track.from_dict(raw)
    except (TypeError, ValueError):
        return None


def clean_source_tracks(sources: Any) -> dict[str, list[Track]]:
    """Drop malformed tracks, duplicate ids within a source, and sources left empty."""
    if not isinstance(sources, dict):
        return {}

    cleaned: dict[str, list[Track]] = {}
    for source_id, raw in sources.items():
        raw_tracks = _as_track_list(raw)
        tracks: list[Track] = []
        seen: set[str] = set()
        for item in raw_tracks:
            if not validate_track(item):
                continue
            track = _to_track(item)
            if track is None or track.id in seen:
                continue
            seen.add(track.id)
            tracks.append(track)
        logger.debug(f"Cleaned source {source_id}: {len(tracks)} valid tracks from {len(raw_tracks)} total")
        if tracks:
            cleaned[source_id] = tracks
    return cleaned


def _to_ratio_item(raw: Any) -> Optional[RatioConfigItem]:
    if isinstance(raw, RatioConfigItem):
        try:
            item = RatioConfigItem(
                min=int(raw.min), max=int(raw.max), weight=float(raw.weight), weight_type=WeightType(raw.weight_type)
            )
        except (TypeError, ValueError, OverflowError):
            return None
    elif isinstance(raw, dict):
        try:
            item = RatioConfigItem(
                min=int(raw.get("min", 1)),
                max=int(raw.get("max", 2)),
                weight=float(raw.get("weight", 1)),
                weight_type=WeightType(raw.get("weight_type", raw.get("weightType", "frequency"))),
            )
        except (TypeError, ValueError, OverflowError):
            return None
    else:
        return None

    item.min = max(1, item.min)
    item.max = max(item.min, item.max)
    return item


def clean_ratio_config(ratio_config: Any, sources: dict[str, list[Track]]) -> dict[str, RatioConfigItem]:
    """Keep enabled ratio entries (weight > 0) whose source has at least one track."""
    if not isinstance(ratio_config, dict):
        return {}

    cleaned: dict[str, RatioConfigItem] = {}
    for source_id, raw in ratio_config.items():
        if source_id not in sources:
            logger.info(f"Dropping ratio entry for {source_id}: source missing or empty")
            continue
        item = _to_ratio_item(raw)
        if item is None or not math.isfinite(item.weight) or item.weight <= 0:
            logger.info(f"Dropping ratio entry for {source_id}: disabled or malformed")
            continue
        cleaned[source_id] = item

    # A share that rounds to nothing cannot be scheduled
    weight_sum = sum(item.weight for item in cleaned.values())
    for source_id in list(cleaned):
        if not math.isfinite(weight_sum) or cleaned[source_id].weight / weight_sum <= 0:
            logger.info(f"Dropping ratio entry for {source_id}: weight share unusable")
            del cleaned[source_id]
    return cleaned


def validate_inputs(sources: Any, ratio_config: Any, options: Optional[MixOptions]) -> ValidationResult:
    errors: list[str] = []

    if not sources or not isinstance(sources, dict):
        errors.append("sources is empty or invalid")

    if not ratio_config or not isinstance(ratio_config, dict):
        errors.append("ratio_config is empty or invalid")

    if options is None:
        errors.append("options is required")
    elif options.use_time_limit and not options.use_all_songs:
        if not options.target_duration or options.target_duration <= 0:
            errors.append("target_duration must be positive when use_time_limit is true")
    elif not options.use_all_songs and (not options.total_songs or options.total_songs <= 0):
        errors.append("total_songs must be positive when not using time limit or all songs")

    cleaned_sources = clean_source_tracks(sources)
    if not cleaned_sources:
        errors.append("No valid sources found after cleaning")

    cleaned_ratio = clean_ratio_config(ratio_config, cleaned_sources)
    if cleaned_sources and ratio_config and not cleaned_ratio:
        errors.append("No enabled ratio entries reference a source with tracks")

    if errors:
        logger.warning(f"Input validation failed: {errors}")

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        cleaned_sources=cleaned_sources,
        ratio_config=cleaned_ratio,
    )
