from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from gamemood.catalog import GameCatalog
from gamemood.defaults import (
    GENRE_HISTORY_WINDOW as HISTORY_WINDOW,
    GENRE_SEQUENCE_LENGTHS as SEQUENCE_LENGTHS,
    SESSION_LENGTH_BUCKET_MINUTES as BUCKET_MINUTES,
)
from gamemood.model import Game, PlaySession, utc_now
from gamemood.pipeline.events import BEHAVIOR_UPDATED, EventBus
from gamemood.storage.store import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "behavior:"


def _top(counter: Counter, limit: int = 3) -> list[str]:
    return [name for name, _ in sorted(counter.items(), key=lambda item: (-item[1], item[0]))[:limit]]


@dataclass(slots=True)
class TimePattern:
    hour: int
    day_of_week: int
    session_count: int = 0
    total_minutes: float = 0.0
    genre_counts: Counter = field(default_factory=Counter)

    @property
    def preferred_genres(self) -> list[str]:
        return _top(self.genre_counts)

    @property
    def average_session_length(self) -> float:
        return self.total_minutes / self.session_count if self.session_count else 0.0


@dataclass(slots=True)
class SessionLengthPattern:
    bucket_start: int
    mood: str
    session_count: int = 0
    completed_count: int = 0
    total_minutes: float = 0.0
    genre_counts: Counter = field(default_factory=Counter)

    @property
    def completion_rate(self) -> float:
        return self.completed_count / self.session_count if self.session_count else 0.0

    @property
    def average_duration(self) -> float:
        return self.total_minutes / self.session_count if self.session_count else 0.0


@dataclass(slots=True)
class GenreSequence:
    genres: tuple[str, ...]
    frequency: int = 0
    next_counts: Counter = field(default_factory=Counter)

    @property
    def common_next_genres(self) -> list[str]:
        return _top(self.next_counts, limit=len(self.next_counts))


@dataclass(slots=True)
class MoodTransitionRecord:
    from_mood: str
    to_mood: str
    count: int = 0
    trigger_games: list[str] = field(default_factory=list)
    average_gap_minutes: float = 0.0


@dataclass(slots=True)
class DevicePattern:
    device: str
    session_count: int = 0
    total_minutes: float = 0.0
    genre_counts: Counter = field(default_factory=Counter)
    hour_counts: Counter = field(default_factory=Counter)

    @property
    def average_session_length(self) -> float:
        return self.total_minutes / self.session_count if self.session_count else 0.0

    @property
    def preferred_genres(self) -> list[str]:
        return _top(self.genre_counts)


@dataclass(slots=True)
class BehaviorPattern:
    """Per-user accumulation of play habits; buckets are only ever added to."""

    user_id: str
    time_patterns: dict[tuple[int, int], TimePattern] = field(default_factory=dict)
    session_lengths: dict[tuple[int, str], SessionLengthPattern] = field(default_factory=dict)
    genre_sequences: dict[tuple[str, ...], GenreSequence] = field(default_factory=dict)
    mood_transitions: dict[tuple[str, str], MoodTransitionRecord] = field(default_factory=dict)
    devices: dict[str, DevicePattern] = field(default_factory=dict)
    total_sessions: int = 0
    recent_genres: list[str] = field(default_factory=list)
    last_mood: str | None = None
    last_session_end: datetime | None = None
    updated_at: datetime = field(default_factory=utc_now)

    def time_likelihood(self, hour: int, day_of_week: int) -> float:
        slot = self.time_patterns.get((hour, day_of_week))
        if slot is None or not self.total_sessions:
            return 0.0
        return slot.session_count / self.total_sessions

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_sessions": self.total_sessions,
            "time_patterns": [
                {
                    "hour": t.hour,
                    "day_of_week": t.day_of_week,
                    "likelihood": round(self.time_likelihood(t.hour, t.day_of_week), 4),
                    "preferred_genres": t.preferred_genres,
                    "average_session_length": round(t.average_session_length, 1),
                }
                for t in self.time_patterns.values()
            ],
            "session_lengths": [
                {
                    "bucket_start": s.bucket_start,
                    "mood": s.mood,
                    "sessions": s.session_count,
                    "completion_rate": round(s.completion_rate, 4),
                    "average_duration": round(s.average_duration, 1),
                }
                for s in self.session_lengths.values()
            ],
            "genre_sequences": [
                {"genres": list(g.genres), "frequency": g.frequency, "next": g.common_next_genres}
                for g in self.genre_sequences.values()
            ],
            "mood_transitions": [
                {
                    "from_mood": m.from_mood,
                    "to_mood": m.to_mood,
                    "count": m.count,
                    "trigger_games": list(m.trigger_games),
                    "average_gap_minutes": round(m.average_gap_minutes, 1),
                }
                for m in self.mood_transitions.values()
            ],
            "devices": [
                {
                    "device": d.device,
                    "sessions": d.session_count,
                    "average_session_length": round(d.average_session_length, 1),
                    "preferred_genres": d.preferred_genres,
                }
                for d in self.devices.values()
            ],
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class NextGamePrediction:
    genre: str
    confidence: float
    sequence: tuple[str, ...]
    game_id: str | None = None


class BehaviorPatternAnalyzer:
    """Learns time, session-length, genre-sequence, mood and device habits.

    Every update publishes ``behavior.updated`` so dependants such as the
    suggestion cache can invalidate per-user state.
    """

    def __init__(self, store: KeyValueStore | None = None, event_bus: EventBus | None = None) -> None:
        self.store: KeyValueStore = store if store is not None else InMemoryStore()
        self.event_bus = event_bus or EventBus()

    def get_pattern(self, user_id: str) -> BehaviorPattern | None:
        return self.store.get(_KEY_PREFIX + user_id)

    def analyze_sessions(
        self,
        user_id: str,
        sessions: Sequence[PlaySession],
        catalog: GameCatalog,
    ) -> BehaviorPattern:
        """Rebuild the user's pattern from *sessions*, replacing any earlier one."""
        pattern = BehaviorPattern(user_id=user_id)
        for session in sorted(sessions, key=lambda s: s.start_time):
            self._apply(pattern, session, catalog.genre_of(session.game_id))
        self._commit(pattern)
        logger.info("Behavior pattern for %s rebuilt from %d sessions", user_id, len(sessions))
        return pattern

    def update(self, user_id: str, session: PlaySession, catalog: GameCatalog) -> BehaviorPattern:
        pattern = self._get_or_create(user_id)
        self._apply(pattern, session, catalog.genre_of(session.game_id))
        self._commit(pattern)
        return pattern

    def predict_next_game(
        self,
        user_id: str,
        recent_genres: Sequence[str] | None = None,
        candidates: Sequence[Game] = (),
    ) -> NextGamePrediction | None:
        """Match the last genres against learned 2- and 3-grams.

        Returns ``None`` when no learned sequence ends the user's history.
        """
        pattern = self.get_pattern(user_id)
        if pattern is None:
            return None
        history = list(recent_genres if recent_genres is not None else pattern.recent_genres)[-HISTORY_WINDOW:]

        matches = [
            seq for seq in pattern.genre_sequences.values()
            if seq.next_counts
            and len(seq.genres) <= len(history)
            and tuple(history[-len(seq.genres):]) == seq.genres
        ]
        if not matches:
            return None

        best = max(matches, key=lambda seq: (seq.frequency, len(seq.genres)))
        genre = best.common_next_genres[0]
        confidence = best.next_counts[genre] / sum(best.next_counts.values())
        game_id = next((g.id for g in candidates if g.primary_genre == genre), None)
        return NextGamePrediction(
            genre=genre,
            confidence=round(confidence, 4),
            sequence=best.genres,
            game_id=game_id,
        )

    def reset(self, user_id: str) -> None:
        if self.store.delete(_KEY_PREFIX + user_id):
            self.event_bus.publish(BEHAVIOR_UPDATED, {"user_id": user_id, "reset": True})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_or_create(self, user_id: str) -> BehaviorPattern:
        pattern = self.get_pattern(user_id)
        if pattern is None:
            pattern = BehaviorPattern(user_id=user_id)
        return pattern

    def _commit(self, pattern: BehaviorPattern) -> None:
        pattern.updated_at = utc_now()
        self.store.set(_KEY_PREFIX + pattern.user_id, pattern)
        self.event_bus.publish(BEHAVIOR_UPDATED, {"user_id": pattern.user_id})

    @staticmethod
    def _apply(pattern: BehaviorPattern, session: PlaySession, genre: str) -> None:
        minutes = session.minutes
        start = session.start_time
        pattern.total_sessions += 1

        slot = pattern.time_patterns.setdefault(
            (start.hour, start.weekday()), TimePattern(hour=start.hour, day_of_week=start.weekday())
        )
        slot.session_count += 1
        slot.total_minutes += minutes
        slot.genre_counts[genre] += 1

        bucket = int(minutes // BUCKET_MINUTES) * BUCKET_MINUTES
        length = pattern.session_lengths.setdefault(
            (bucket, session.mood), SessionLengthPattern(bucket_start=bucket, mood=session.mood)
        )
        length.session_count += 1
        length.completed_count += int(session.completed)
        length.total_minutes += minutes
        length.genre_counts[genre] += 1

        # the sequences ending at the previous session are followed by this genre
        history = pattern.recent_genres
        for n in SEQUENCE_LENGTHS:
            if len(history) >= n:
                preceding = pattern.genre_sequences.get(tuple(history[-n:]))
                if preceding is not None:
                    preceding.next_counts[genre] += 1
        history.append(genre)
        del history[:-HISTORY_WINDOW]
        for n in SEQUENCE_LENGTHS:
            if len(history) >= n:
                key = tuple(history[-n:])
                pattern.genre_sequences.setdefault(key, GenreSequence(genres=key)).frequency += 1

        if pattern.last_mood is not None:
            record = pattern.mood_transitions.setdefault(
                (pattern.last_mood, session.mood),
                MoodTransitionRecord(from_mood=pattern.last_mood, to_mood=session.mood),
            )
            gap = 0.0
            if pattern.last_session_end is not None:
                gap = max(0.0, (start - pattern.last_session_end).total_seconds() / 60.0)
            record.count += 1
            record.average_gap_minutes += (gap - record.average_gap_minutes) / record.count
            if session.game_id not in record.trigger_games:
                record.trigger_games.append(session.game_id)
        pattern.last_mood = session.mood
        pattern.last_session_end = session.finished_at

        device = pattern.devices.setdefault(session.platform or "unknown", DevicePattern(device=session.platform or "unknown"))
        device.session_count += 1
        device.total_minutes += minutes
        device.genre_counts[genre] += 1
        device.hour_counts[start.hour] += 1
