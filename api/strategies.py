import logging
from typing import Callable, Union

from models import PopularityQuadrants, PopularityStrategy, TrackWithPopularity

logger = logging.getLogger(__name__)

# (upper bound of positionRatio, quadrant names); the last band has no bound
Band = tuple[float, tuple[str, ...]]

STRATEGY_BANDS: dict[PopularityStrategy, list[Band]] = {
    PopularityStrategy.FRONT_LOADED: [
        (0.3, ("top_hits", "popular")),
        (0.7, ("moderate", "popular")),
        (float("inf"), ("deep_cuts", "moderate")),
    ],
    PopularityStrategy.MID_PEAK: [
        (0.2, ("moderate", "deep_cuts")),
        (0.4, ("popular", "moderate")),
        (0.6, ("top_hits", "popular")),
        (0.8, ("popular", "moderate")),
        (float("inf"), ("moderate", "deep_cuts")),
    ],
    PopularityStrategy.CRESCENDO: [
        (0.3, ("deep_cuts", "moderate")),
        (0.6, ("moderate", "popular")),
        (float("inf"), ("popular", "top_hits")),
    ],
}

Selector = Callable[[dict[str, PopularityQuadrants], str, int, int], list[TrackWithPopularity]]


def position_ratio(position: int, total_length: int) -> float:
    if total_length <= 0:
        return 0.0
    return position / total_length


def quadrant_names_for(strategy: PopularityStrategy, ratio: float) -> tuple[str, ...]:
    if strategy == PopularityStrategy.MIXED:
        return ("top_hits", "popular", "moderate", "deep_cuts")
    for upper, names in STRATEGY_BANDS[strategy]:
        if ratio < upper:
            return names
    return STRATEGY_BANDS[strategy][-1][1]


def add_fallback_tracks(
    strategy_tracks: list[TrackWithPopularity], all_tracks: list[TrackWithPopularity]
) -> list[TrackWithPopularity]:
    """Widen a strategy pool with the rest of the source, strategy picks first."""
    if not strategy_tracks:
        return list(all_tracks)
    preferred = {t.id for t in strategy_tracks}
    return strategy_tracks + [t for t in all_tracks if t.id not in preferred]


def get_candidates(
    pools: dict[str, PopularityQuadrants],
    source_id: str,
    position: int,
    total_length: int,
    strategy: PopularityStrategy,
) -> list[TrackWithPopularity]:
    quadrants = pools.get(source_id)
    if quadrants is None:
        return []

    ratio = position_ratio(position, total_length)
    names = quadrant_names_for(strategy, ratio)
    selected = [t for name in names for t in getattr(quadrants, name)]
    logger.debug(
        f"Position {position}/{total_length} ({round(ratio * 100)}%) strategy={strategy.value} "
        f"quadrants={'+'.join(names)} available={len(selected)}"
    )

    if strategy == PopularityStrategy.MIXED:
        return selected
    return add_fallback_tracks(selected, quadrants.all_tracks())


def _selector_for(strategy: PopularityStrategy) -> Selector:
    def select(pools, source_id, position, total_length):
        return get_candidates(pools, source_id, position, total_length, strategy)

    select.__name__ = f"select_{strategy.name.lower()}"
    return select


_REGISTRY: dict[PopularityStrategy, Selector] = {s: _selector_for(s) for s in PopularityStrategy}


def resolve_strategy(name: Union[PopularityStrategy, str, None]) -> PopularityStrategy:
    if isinstance(name, PopularityStrategy):
        return name
    try:
        return PopularityStrategy(name)
    except ValueError:
        logger.warning(f"Unknown strategy {name!r}, falling back to 'mixed'")
        return PopularityStrategy.MIXED


def get_strategy(name: Union[PopularityStrategy, str, None]) -> Selector:
    return _REGISTRY[resolve_strategy(name)]


def all_strategies() -> list[PopularityStrategy]:
    return list(_REGISTRY)
