from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Literal, Union
from uuid import uuid4


SignalSource = Literal["session", "genre", "playtime", "platform", "integration"]

SessionType = Literal["main", "side", "social", "coop"]

MOOD_AXES: tuple[str, ...] = ("calm", "competitive", "curious", "social", "focused")

FEATURE_NAMES: tuple[str, ...] = (
    "engagement_volatility",
    "challenge_seeking",
    "social_openness",
    "exploration_bias",
    "focus_stability",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw: str | datetime) -> datetime:
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    return ensure_utc(datetime.fromisoformat(str(raw).replace("Z", "+00:00")))


# ── Inputs from the library manager ──────────────────────────────


@dataclass(slots=True)
class PlaySession:
    game_id: str
    start_time: datetime
    mood: str
    intensity: float = 5.0
    completed: bool = False
    end_time: datetime | None = None
    duration: float | None = None
    tags: list[str] = field(default_factory=list)
    platform: str | None = None
    session_type: SessionType = "main"
    achievements: int = 0
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        self.start_time = ensure_utc(self.start_time)
        if self.end_time is not None:
            self.end_time = ensure_utc(self.end_time)

    @property
    def minutes(self) -> float:
        """Session length in minutes (explicit duration wins over timestamps)."""
        if self.duration is not None:
            return max(0.0, float(self.duration))
        if self.end_time is not None:
            return max(0.0, (self.end_time - self.start_time).total_seconds() / 60.0)
        return 0.0

    @property
    def finished_at(self) -> datetime:
        if self.end_time is not None:
            return self.end_time
        return self.start_time + timedelta(minutes=self.minutes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "game_id": self.game_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "mood": self.mood,
            "intensity": self.intensity,
            "completed": self.completed,
            "tags": list(self.tags),
            "platform": self.platform,
            "session_type": self.session_type,
            "achievements": self.achievements,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PlaySession":
        end_raw = raw.get("end_time")
        duration = raw.get("duration")
        return cls(
            id=str(raw.get("id") or uuid4()),
            game_id=str(raw["game_id"]),
            start_time=parse_datetime(raw["start_time"]),
            end_time=parse_datetime(end_raw) if end_raw else None,
            duration=float(duration) if duration is not None else None,
            mood=str(raw.get("mood", "")),
            intensity=float(raw.get("intensity", 5.0)),
            completed=bool(raw.get("completed", False)),
            tags=[str(t) for t in raw.get("tags") or []],
            platform=raw.get("platform"),
            session_type=raw.get("session_type", "main"),
            achievements=int(raw.get("achievements", 0)),
        )


@dataclass(slots=True)
class Game:
    id: str
    title: str = ""
    genres: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    rating: float | None = None

    @property
    def primary_genre(self) -> str:
        if not self.genres:
            return "unknown"
        return self.genres[0].strip().lower()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Game":
        rating = raw.get("rating")
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title", "")),
            genres=[str(g) for g in raw.get("genres") or []],
            platforms=[str(p) for p in raw.get("platforms") or []],
            rating=float(rating) if rating is not None else None,
        )


@dataclass(slots=True)
class Activity:
    """Platform integration event (Steam/GOG sync, achievement unlock, ...)."""

    type: str
    timestamp: datetime
    platform: str | None = None
    game_id: str | None = None

    def __post_init__(self) -> None:
        self.timestamp = ensure_utc(self.timestamp)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Activity":
        return cls(
            type=str(raw["type"]),
            timestamp=parse_datetime(raw["timestamp"]),
            platform=raw.get("platform"),
            game_id=raw.get("game_id"),
        )


# ── Behavioral signals ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SessionSignalData:
    source: ClassVar[str] = "session"

    game_id: str
    minutes: float
    intensity: float
    completed: bool
    session_type: SessionType
    achievements: int = 0


@dataclass(frozen=True, slots=True)
class GenreSignalData:
    source: ClassVar[str] = "genre"

    from_genre: str
    to_genre: str


@dataclass(frozen=True, slots=True)
class PlaytimeSignalData:
    source: ClassVar[str] = "playtime"

    day_of_week: int
    session_count: int
    average_minutes: float
    consistency: float


@dataclass(frozen=True, slots=True)
class PlatformSignalData:
    source: ClassVar[str] = "platform"

    from_platform: str
    to_platform: str
    platform_preference: float


@dataclass(frozen=True, slots=True)
class IntegrationSignalData:
    source: ClassVar[str] = "integration"

    activity_type: str
    platform: str | None
    social_interaction: bool


SignalData = Union[
    SessionSignalData,
    GenreSignalData,
    PlaytimeSignalData,
    PlatformSignalData,
    IntegrationSignalData,
]


@dataclass(frozen=True, slots=True)
class BehavioralSignal:
    timestamp: datetime
    source: SignalSource
    data: SignalData
    weight: float

    def __post_init__(self) -> None:
        if self.data.source != self.source:
            raise ValueError(f"payload {type(self.data).__name__} does not belong to source {self.source!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "data": asdict(self.data),
            "weight": self.weight,
        }


# ── Features and moods ───────────────────────────────────────────


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(slots=True)
class NormalizedFeatures:
    engagement_volatility: float = 0.5
    challenge_seeking: float = 0.5
    social_openness: float = 0.5
    exploration_bias: float = 0.5
    focus_stability: float = 0.5

    def as_list(self) -> list[float]:
        return [getattr(self, name) for name in FEATURE_NAMES]

    def to_dict(self) -> dict[str, float]:
        return {name: round(getattr(self, name), 4) for name in FEATURE_NAMES}

    def clamped(self) -> "NormalizedFeatures":
        return NormalizedFeatures(*(_clamp01(v) for v in self.as_list()))


@dataclass(slots=True)
class FeatureConfidence:
    overall: float
    per_feature: dict[str, float]


@dataclass(slots=True)
class MoodVector:
    calm: float = 0.5
    competitive: float = 0.5
    curious: float = 0.5
    social: float = 0.5
    focused: float = 0.5

    def as_dict(self) -> dict[str, float]:
        return {axis: getattr(self, axis) for axis in MOOD_AXES}

    def to_dict(self) -> dict[str, float]:
        return {axis: round(getattr(self, axis), 4) for axis in MOOD_AXES}

    def clamped(self) -> "MoodVector":
        return MoodVector(**{axis: _clamp01(getattr(self, axis)) for axis in MOOD_AXES})

    @classmethod
    def from_mapping(cls, raw: dict[str, float]) -> "MoodVector":
        return cls(**{axis: float(raw.get(axis, 0.5)) for axis in MOOD_AXES})


@dataclass(slots=True)
class MoodInferenceWeights:
    engagement_volatility: float = 0.15
    challenge_seeking: float = 0.25
    social_openness: float = 0.20
    exploration_bias: float = 0.20
    focus_stability: float = 0.20

    def as_list(self) -> list[float]:
        return [getattr(self, name) for name in FEATURE_NAMES]

    def to_dict(self) -> dict[str, float]:
        return {name: round(getattr(self, name), 4) for name in FEATURE_NAMES}


@dataclass(frozen=True, slots=True)
class DominantMood:
    primary: str
    value: float
    secondary: str | None = None
    secondary_value: float | None = None


@dataclass(frozen=True, slots=True)
class WeightFeedback:
    predicted_mood: str
    actual_mood: str
    confidence: float = 0.5


@dataclass(slots=True)
class MoodAnalysisResult:
    mood_vector: MoodVector
    confidence: float
    signal_count: int
    last_updated: datetime
    features: NormalizedFeatures
    dominant_mood: str
    secondary_mood: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mood_vector": self.mood_vector.to_dict(),
            "confidence": round(self.confidence, 4),
            "signal_count": self.signal_count,
            "last_updated": self.last_updated.isoformat(),
            "features": self.features.to_dict(),
            "dominant_mood": self.dominant_mood,
            "secondary_mood": self.secondary_mood,
        }
