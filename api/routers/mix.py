import logging
from typing import Any

from database import get_config, get_float_config, get_int_config
from fastapi import APIRouter, HTTPException
from mix_warnings import mix_warnings
from models import MixOptions, MixResult, PopularityStrategy, RatioConfigItem, WeightType
from pydantic import BaseModel, Field
from scheduler import mix_playlists, preview_mix

logger = logging.getLogger(__name__)
router = APIRouter()


class RatioConfigIn(BaseModel):
    min: int = Field(1, ge=1)
    max: int = Field(2, ge=1)
    weight: float = Field(1.0, ge=0, allow_inf_nan=False)
    weight_type: WeightType = WeightType.FREQUENCY


class MixOptionsIn(BaseModel):
    total_songs: int | None = None
    target_duration: float | None = None
    use_time_limit: bool = False
    use_all_songs: bool = False
    popularity_strategy: PopularityStrategy | None = None
    recency_boost: bool = False
    shuffle_within_groups: bool = False
    continue_when_playlist_empty: bool = False


class MixRequest(BaseModel):
    # Raw catalog track objects; malformed entries are filtered, not rejected
    sources: dict[str, list[Any]]
    ratio_config: dict[str, RatioConfigIn]
    options: MixOptionsIn = Field(default_factory=MixOptionsIn)


def _options_from(options: MixOptionsIn) -> MixOptions:
    """Fill unset request options from the stored defaults."""
    return MixOptions(
        total_songs=options.total_songs
        if options.total_songs is not None
        else get_int_config("default_total_songs"),
        target_duration=options.target_duration
        if options.target_duration is not None
        else get_float_config("default_target_duration"),
        use_time_limit=options.use_time_limit,
        use_all_songs=options.use_all_songs,
        popularity_strategy=options.popularity_strategy
        or PopularityStrategy(get_config("default_popularity_strategy")),
        recency_boost=options.recency_boost,
        shuffle_within_groups=options.shuffle_within_groups,
        continue_when_playlist_empty=options.continue_when_playlist_empty,
    )


def _ratio_config_from(ratio_config: dict[str, RatioConfigIn]) -> dict[str, RatioConfigItem]:
    return {
        source_id: RatioConfigItem(min=item.min, max=item.max, weight=item.weight, weight_type=item.weight_type)
        for source_id, item in ratio_config.items()
    }


def _respond(result: MixResult) -> dict:
    if result.errors:
        raise HTTPException(400, "; ".join(result.errors))
    return result.to_dict()


@router.post("/mix")
def create_mix(request: MixRequest):
    result = mix_playlists(request.sources, _ratio_config_from(request.ratio_config), _options_from(request.options))
    logger.info(
        f"Mix created: {len(result.tracks)} tracks, exhausted={sorted(result.exhausted_playlists)} "
        f"stopped_early={result.stopped_early}"
    )
    return _respond(result)


@router.post("/mix/preview")
def create_preview(request: MixRequest):
    limit = get_int_config("preview_track_limit")
    result = preview_mix(
        request.sources,
        _ratio_config_from(request.ratio_config),
        _options_from(request.options),
        limit=limit,
    )
    return _respond(result)


@router.post("/mix/warnings")
def get_warnings(request: MixRequest):
    return mix_warnings(request.sources, _ratio_config_from(request.ratio_config), _options_from(request.options))
