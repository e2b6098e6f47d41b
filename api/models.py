from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class PopularityStrategy(str, Enum):
    MIXED = "mixed"
    FRONT_LOADED = "front-loaded"
    MID_PEAK = "mid-peak"
    CRESCENDO = "crescendo"


class WeightType(str, Enum):
    FREQUENCY = "frequency"
    TIME = "time"


@dataclass
class Artist:
    name: str
    id: Optional[str] = None


@dataclass
class Album:
    name: str = ""
    release_date: Optional[str] = None  # 'YYYY' | 'YYYY-MM' | 'YYYY-MM-DD'


@dataclass
class Track:
    id: str
    uri: str
    name: str
    artists: list[Artist] = field(default_factory=list)
    album: Optional[Album] = None
    duration_ms: int = 0
    popularity: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        album = data.get("album")
        return cls(
            id=data["id"],
            uri=data["uri"],
            name=data["name"],
            artists=[
                Artist(name=str(a.get("name", "")), id=a.get("id"))
                for a in data.get("artists") or []
                if isinstance(a, dict)
            ],
            album=Album(name=str(album.get("name", "")), release_date=album.get("release_date"))
            if isinstance(album, dict)
            else None,
            duration_ms=int(data.get("duration_ms") or 0),
            popularity=int(data.get("popularity") or 0),
        )

    def track_fields(self) -> dict:
        """Shallow copy of the catalog fields only."""
        return {f.name: getattr(self, f.name) for f in fields(Track)}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uri": self.uri,
            "name": self.name,
            "artists": [{"name": a.name, "id": a.id} for a in self.artists],
            "album": {"name": self.album.name, "release_date": self.album.release_date} if self.album else None,
            "duration_ms": self.duration_ms,
            "popularity": self.popularity,
        }


@dataclass
class TrackWithPopularity(Track):
    adjusted_popularity: float = 0.0
    base_popularity: int = 0
    recency_bonus: float = 0.0
    release_year: Optional[int] = None


@dataclass
class MixedTrack(Track):
    source_playlist: str = ""

    @classmethod
    def from_track(cls, track: Track, source_id: str) -> "MixedTrack":
        return cls(**track.track_fields(), source_playlist=source_id)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["source_playlist"] = self.source_playlist
        return data


@dataclass
class PopularityQuadrants:
    top_hits: list[TrackWithPopularity] = field(default_factory=list)
    popular: list[TrackWithPopularity] = field(default_factory=list)
    moderate: list[TrackWithPopularity] = field(default_factory=list)
    deep_cuts: list[TrackWithPopularity] = field(default_factory=list)

    def all_tracks(self) -> list[TrackWithPopularity]:
        return [*self.top_hits, *self.popular, *self.moderate, *self.deep_cuts]


@dataclass
class RatioConfigItem:
    min: int = 1
    max: int = 2
    weight: float = 1.0
    weight_type: WeightType = WeightType.FREQUENCY


@dataclass
class MixOptions:
    total_songs: int = 50
    target_duration: float = 60.0  # minutes
    use_time_limit: bool = False
    use_all_songs: bool = False
    popularity_strategy: PopularityStrategy = PopularityStrategy.MIXED
    recency_boost: bool = False
    shuffle_within_groups: bool = False
    continue_when_playlist_empty: bool = False


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    cleaned_sources: dict[str, list[Track]] = field(default_factory=dict)
    ratio_config: dict[str, RatioConfigItem] = field(default_factory=dict)


@dataclass
class LengthEstimate:
    estimated_total: int
    target_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class MixingState:
    """Working state for a single mix invocation."""

    mixed_tracks: list[MixedTrack] = field(default_factory=list)
    used_ids: set[str] = field(default_factory=set)
    counts: dict[str, int] = field(default_factory=dict)
    durations: dict[str, int] = field(default_factory=dict)
    exhausted: dict[str, bool] = field(default_factory=dict)
    attempts: int = 0

    @classmethod
    def for_sources(cls, source_ids: list[str]) -> "MixingState":
        return cls(
            counts={sid: 0 for sid in source_ids},
            durations={sid: 0 for sid in source_ids},
            exhausted={sid: False for sid in source_ids},
        )

    def append(self, track: Track, source_id: str) -> MixedTrack:
        mixed = MixedTrack.from_track(track, source_id)
        self.mixed_tracks.append(mixed)
        self.used_ids.add(track.id)
        self.counts[source_id] += 1
        self.durations[source_id] += track.duration_ms
        return mixed

    def total_duration_ms(self) -> int:
        return sum(self.durations.values())

    def exhausted_ids(self) -> list[str]:
        return [sid for sid, done in self.exhausted.items() if done]


@dataclass
class MixResult:
    tracks: list[MixedTrack] = field(default_factory=list)
    exhausted_playlists: set[str] = field(default_factory=set)
    stopped_early: bool = False
    statistics: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    is_preview: bool = False

    def to_dict(self) -> dict:
        return {
            "tracks": [t.to_dict() for t in self.tracks],
            "exhausted_playlists": sorted(self.exhausted_playlists),
            "stopped_early": self.stopped_early,
            "statistics": self.statistics,
            "is_preview": self.is_preview,
        }
