import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

from estimator import estimate_length, total_weight
from finalizer import finalize
from models import (
    LengthEstimate,
    MixingState,
    MixOptions,
    MixResult,
    PopularityQuadrants,
    RatioConfigItem,
    Track,
    WeightType,
)
from normalizer import validate_inputs
from popularity import build_pools
from strategies import Selector, get_strategy, resolve_strategy

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_SONGS = 100
ITERATION_CAP_MULTIPLIER = 10
USE_ALL_CAP_MULTIPLIER = 2
CATCH_UP_THRESHOLD = 0.8
DEFAULT_PREVIEW_LIMIT = 20


@dataclass
class MixingContext:
    sources: dict[str, list[Track]]
    ratio_config: dict[str, RatioConfigItem]
    options: MixOptions
    pools: dict[str, PopularityQuadrants]
    estimate: LengthEstimate
    total_weight: float
    select: Selector

    @property
    def source_ids(self) -> list[str]:
        return list(self.ratio_config)

    def target_ratio(self, source_id: str) -> float:
        return self.ratio_config[source_id].weight / self.total_weight


def should_continue(options: MixOptions, state: MixingState, estimated_total: int) -> bool:
    if options.use_all_songs:
        has_available = any(not done for done in state.exhausted.values())
        below_target = len(state.mixed_tracks) < estimated_total
        return (below_target and has_available) or (options.continue_when_playlist_empty and has_available)

    if options.use_time_limit:
        return state.total_duration_ms() / 60000 < options.target_duration

    return len(state.mixed_tracks) < options.total_songs


def should_stop_for_exhaustion(continue_when_empty: bool, state: MixingState, log: logging.Logger = logger) -> bool:
    exhausted = state.exhausted_ids()
    if not continue_when_empty and exhausted:
        log.info(f"Stopping: exhausted source(s) {', '.join(exhausted)}")
        return True
    if state.exhausted and len(exhausted) == len(state.exhausted):
        log.info("Stopping: all sources exhausted")
        return True
    return False


def iteration_cap(options: MixOptions, estimated_total: int) -> int:
    if options.use_all_songs:
        return estimated_total * USE_ALL_CAP_MULTIPLIER
    if options.use_time_limit:
        # total_songs plays no part in a time budget
        return (estimated_total or DEFAULT_TOTAL_SONGS) * ITERATION_CAP_MULTIPLIER
    return (options.total_songs or DEFAULT_TOTAL_SONGS) * ITERATION_CAP_MULTIPLIER


def current_ratio(source_id: str, item: RatioConfigItem, state: MixingState) -> float:
    if item.weight_type == WeightType.TIME:
        total = state.total_duration_ms()
        return state.durations[source_id] / total if total > 0 else 0.0
    total = len(state.mixed_tracks)
    return state.counts[source_id] / total if total > 0 else 0.0


def has_unused(candidates: list[Track], state: MixingState) -> bool:
    return any(t.id not in state.used_ids for t in candidates)


def select_next_source(ctx: MixingContext, state: MixingState, log: logging.Logger = logger) -> Optional[str]:
    """Pick the non-exhausted source furthest below its target share.

    Sources whose candidate pool has no unused tracks left are marked
    exhausted on the way. Ties go to the source listed first.
    """
    best_id = None
    best_deficit = float("-inf")
    position = len(state.mixed_tracks)

    for source_id in ctx.source_ids:
        if state.exhausted[source_id]:
            continue

        item = ctx.ratio_config[source_id]
        deficit = ctx.target_ratio(source_id) - current_ratio(source_id, item, state)

        candidates = ctx.select(ctx.pools, source_id, position, ctx.estimate.estimated_total)
        if not has_unused(candidates, state):
            state.exhausted[source_id] = True
            log.info(f"Source {source_id} is now exhausted")
            continue

        if deficit > best_deficit:
            best_deficit = deficit
            best_id = source_id

    return best_id


def burst_size(ctx: MixingContext, state: MixingState, source_id: str) -> int:
    item = ctx.ratio_config[source_id]
    size = item.min
    if item.max > item.min:
        expected_share = state.total_duration_ms() * ctx.target_ratio(source_id)
        if state.durations[source_id] < expected_share * CATCH_UP_THRESHOLD:
            size = item.max
    return size


def add_burst(ctx: MixingContext, state: MixingState, source_id: str, log: logging.Logger = logger) -> int:
    position = len(state.mixed_tracks)
    candidates = ctx.select(ctx.pools, source_id, position, ctx.estimate.estimated_total)
    size = burst_size(ctx, state, source_id)
    log.debug(f"Adding up to {size} from {source_id} (position {position}/{ctx.estimate.estimated_total})")

    added = 0
    remaining = list(candidates)
    while added < size and should_continue(ctx.options, state, ctx.estimate.estimated_total):
        track = next((t for t in remaining if t.id not in state.used_ids), None)
        if track is None:
            break
        state.append(track, source_id)
        remaining.remove(track)
        added += 1
        artist = track.artists[0].name if track.artists else "unknown"
        log.debug(f"Added: {track.name} by {artist}")
    return added


def run_mixing_loop(ctx: MixingContext, state: MixingState, log: logging.Logger = logger) -> MixingState:
    cap = iteration_cap(ctx.options, ctx.estimate.estimated_total)
    continue_when_empty = ctx.options.continue_when_playlist_empty

    while should_continue(ctx.options, state, ctx.estimate.estimated_total):
        if state.attempts >= cap:
            log.warning(f"Iteration cap of {cap} reached; returning partial mix of {len(state.mixed_tracks)} tracks")
            break
        state.attempts += 1

        if should_stop_for_exhaustion(continue_when_empty, state, log):
            break

        source_id = select_next_source(ctx, state, log)
        if source_id is None:
            break

        if add_burst(ctx, state, source_id, log) == 0:
            state.exhausted[source_id] = True

        if should_stop_for_exhaustion(continue_when_empty, state, log):
            break

    log.info(f"Mixing complete: {len(state.mixed_tracks)} tracks in {state.attempts} iterations")
    return state


def build_context(
    sources: dict[str, list[Track]],
    ratio_config: dict[str, RatioConfigItem],
    options: MixOptions,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> MixingContext:
    pools = build_pools(
        {source_id: sources[source_id] for source_id in ratio_config},
        recency_boost=options.recency_boost,
        shuffle_within_groups=options.shuffle_within_groups,
        rng=rng,
        now=now,
    )
    return MixingContext(
        sources=sources,
        ratio_config=ratio_config,
        options=options,
        pools=pools,
        estimate=estimate_length(sources, ratio_config, options),
        total_weight=total_weight(ratio_config),
        select=get_strategy(options.popularity_strategy),
    )


def mix_playlists(
    sources: dict[str, Any],
    ratio_config: dict[str, Any],
    options: Optional[MixOptions],
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    log: Optional[logging.Logger] = None,
) -> MixResult:
    """
    Main scheduling entry point. Interleaves the sources into one ordered mix
    according to their weights, the popularity strategy and the termination
    mode in `options`. Invalid input yields an empty result carrying the
    validation errors; nothing is raised.
    """
    log = log or logger
    validation = validate_inputs(sources, ratio_config, options)
    if not validation.is_valid:
        return MixResult(errors=validation.errors)

    log.info(
        f"Mixing {len(validation.ratio_config)} sources, strategy={resolve_strategy(options.popularity_strategy).value}, "
        f"recency_boost={options.recency_boost}"
    )
    ctx = build_context(validation.cleaned_sources, validation.ratio_config, options, rng, now)
    state = run_mixing_loop(ctx, MixingState.for_sources(ctx.source_ids), log)
    return finalize(state, ctx.ratio_config, options, ctx.pools, ctx.estimate)


def preview_options(options: MixOptions, limit: int = DEFAULT_PREVIEW_LIMIT) -> MixOptions:
    """Count-mode copy of `options` capped at `limit` tracks."""
    total = options.total_songs if not (options.use_all_songs or options.use_time_limit) else limit
    return replace(
        options,
        total_songs=min(limit, total or limit),
        use_time_limit=False,
        use_all_songs=False,
    )


def preview_mix(
    sources: dict[str, Any],
    ratio_config: dict[str, Any],
    options: Optional[MixOptions],
    limit: int = DEFAULT_PREVIEW_LIMIT,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
    log: Optional[logging.Logger] = None,
) -> MixResult:
    if options is None:
        return mix_playlists(sources, ratio_config, None, rng, now, log)
    result = mix_playlists(sources, ratio_config, preview_options(options, limit), rng, now, log)
    result.is_preview = True
    return result
