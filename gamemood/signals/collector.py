from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from gamemood.catalog import GameCatalog
from gamemood.defaults import (
    PLAYTIME_MIN_SESSIONS_PER_DAY as MIN_SESSIONS_PER_DAY,
    SIGNAL_MAX_AGE_DAYS,
    SIGNAL_WEIGHT_GENRE as WEIGHT_GENRE,
    SIGNAL_WEIGHT_INTEGRATION as WEIGHT_INTEGRATION,
    SIGNAL_WEIGHT_PLATFORM as WEIGHT_PLATFORM,
    SIGNAL_WEIGHT_PLAYTIME as WEIGHT_PLAYTIME,
    SIGNAL_WEIGHT_SESSION as WEIGHT_SESSION,
    SOCIAL_ACTIVITY_TYPES,
)
from gamemood.model import (
    Activity,
    BehavioralSignal,
    GenreSignalData,
    IntegrationSignalData,
    PlatformSignalData,
    PlaySession,
    PlaytimeSignalData,
    SessionSignalData,
    utc_now,
)
from gamemood.utils.math import clamp01, mean, variance

logger = logging.getLogger(__name__)


def _chronological(sessions: Sequence[PlaySession]) -> list[PlaySession]:
    return sorted(sessions, key=lambda s: s.start_time)


def _signal_key(signal: BehavioralSignal) -> tuple:
    return (signal.source, signal.timestamp, repr(signal.data))


class SignalCollector:
    """Turns session history and integration events into weighted signals.

    Each ``collect_from_*`` method owns one signal family and never raises on
    empty input. Collected signals can be kept in a per-user rolling buffer;
    entries older than ``max_signal_age`` are dropped lazily whenever the
    buffer is read or appended to.
    """

    def __init__(self, max_signal_age: timedelta | None = None) -> None:
        self.max_signal_age = max_signal_age or timedelta(days=SIGNAL_MAX_AGE_DAYS)
        self._buffers: dict[str, list[BehavioralSignal]] = defaultdict(list)

    # ── Extraction ───────────────────────────────────────────────

    def collect_from_session_history(self, sessions: Sequence[PlaySession]) -> list[BehavioralSignal]:
        signals: list[BehavioralSignal] = []
        for session in sessions:
            signals.append(
                BehavioralSignal(
                    timestamp=session.end_time or session.start_time,
                    source="session",
                    data=SessionSignalData(
                        game_id=session.game_id,
                        minutes=session.minutes,
                        intensity=float(session.intensity),
                        completed=session.completed,
                        session_type=session.session_type,
                        achievements=session.achievements,
                    ),
                    weight=WEIGHT_SESSION,
                )
            )
        return signals

    def collect_from_genre_transitions(
        self,
        sessions: Sequence[PlaySession],
        catalog: GameCatalog,
    ) -> list[BehavioralSignal]:
        signals: list[BehavioralSignal] = []
        ordered = _chronological(sessions)
        for prev, curr in zip(ordered, ordered[1:]):
            prev_genre = catalog.genre_of(prev.game_id)
            curr_genre = catalog.genre_of(curr.game_id)
            if "unknown" in (prev_genre, curr_genre) or prev_genre == curr_genre:
                continue
            signals.append(
                BehavioralSignal(
                    timestamp=curr.start_time,
                    source="genre",
                    data=GenreSignalData(from_genre=prev_genre, to_genre=curr_genre),
                    weight=WEIGHT_GENRE,
                )
            )
        return signals

    def collect_from_playtime_patterns(self, sessions: Sequence[PlaySession]) -> list[BehavioralSignal]:
        by_day: dict[int, list[PlaySession]] = defaultdict(list)
        for session in sessions:
            by_day[session.start_time.weekday()].append(session)

        signals: list[BehavioralSignal] = []
        for day, day_sessions in sorted(by_day.items()):
            if len(day_sessions) < MIN_SESSIONS_PER_DAY:
                continue
            minutes = [s.minutes for s in day_sessions]
            avg = mean(minutes)
            # squared coefficient of variation, inverted
            consistency = clamp01(1.0 - variance(minutes) / (avg * avg)) if avg > 0 else 0.0
            signals.append(
                BehavioralSignal(
                    timestamp=max(s.start_time for s in day_sessions),
                    source="playtime",
                    data=PlaytimeSignalData(
                        day_of_week=day,
                        session_count=len(day_sessions),
                        average_minutes=avg,
                        consistency=consistency,
                    ),
                    weight=WEIGHT_PLAYTIME,
                )
            )
        return signals

    def collect_from_platform_switching(self, sessions: Sequence[PlaySession]) -> list[BehavioralSignal]:
        ordered = _chronological(sessions)
        platform_counts: dict[str, int] = defaultdict(int)
        for session in ordered:
            if session.platform:
                platform_counts[session.platform] += 1
        total = len(ordered)

        signals: list[BehavioralSignal] = []
        for prev, curr in zip(ordered, ordered[1:]):
            if not prev.platform or not curr.platform or prev.platform == curr.platform:
                continue
            signals.append(
                BehavioralSignal(
                    timestamp=curr.start_time,
                    source="platform",
                    data=PlatformSignalData(
                        from_platform=prev.platform,
                        to_platform=curr.platform,
                        platform_preference=platform_counts[curr.platform] / total,
                    ),
                    weight=WEIGHT_PLATFORM,
                )
            )
        return signals

    def collect_from_integration_activity(self, activities: Sequence[Activity]) -> list[BehavioralSignal]:
        return [
            BehavioralSignal(
                timestamp=activity.timestamp,
                source="integration",
                data=IntegrationSignalData(
                    activity_type=activity.type,
                    platform=activity.platform,
                    social_interaction=activity.type in SOCIAL_ACTIVITY_TYPES,
                ),
                weight=WEIGHT_INTEGRATION,
            )
            for activity in activities
        ]

    def collect_all(
        self,
        sessions: Sequence[PlaySession],
        catalog: GameCatalog,
        activities: Sequence[Activity] = (),
    ) -> list[BehavioralSignal]:
        """Run every extractor; a failing family is logged and skipped."""
        extractors: list[tuple[str, Callable[[], list[BehavioralSignal]]]] = [
            ("session", lambda: self.collect_from_session_history(sessions)),
            ("genre", lambda: self.collect_from_genre_transitions(sessions, catalog)),
            ("playtime", lambda: self.collect_from_playtime_patterns(sessions)),
            ("platform", lambda: self.collect_from_platform_switching(sessions)),
            ("integration", lambda: self.collect_from_integration_activity(activities)),
        ]
        signals: list[BehavioralSignal] = []
        for name, extractor in extractors:
            try:
                signals.extend(extractor())
            except Exception as exc:
                logger.warning("Signal extractor %s failed: %s", name, exc)
        logger.debug("Collected %d signals from %d sessions", len(signals), len(sessions))
        return signals

    # ── Rolling buffer ───────────────────────────────────────────

    def add_signal(self, user_id: str, signal: BehavioralSignal, now: datetime | None = None) -> None:
        self.add_signals(user_id, [signal], now=now)

    def add_signals(
        self,
        user_id: str,
        signals: Sequence[BehavioralSignal],
        now: datetime | None = None,
    ) -> None:
        """Append *signals*, skipping any already buffered for the user."""
        buffer = self._buffers[user_id]
        seen = {_signal_key(s) for s in buffer}
        for signal in signals:
            key = _signal_key(signal)
            if key not in seen:
                seen.add(key)
                buffer.append(signal)
        self._prune(user_id, now)

    def replace_signals(
        self,
        user_id: str,
        signals: Sequence[BehavioralSignal],
        now: datetime | None = None,
    ) -> None:
        self._buffers.pop(user_id, None)
        self.add_signals(user_id, signals, now=now)

    def get_recent_signals(
        self,
        user_id: str,
        max_age: timedelta | None = None,
        now: datetime | None = None,
    ) -> list[BehavioralSignal]:
        """Buffered signals younger than *max_age*, newest first."""
        self._prune(user_id, now)
        cutoff = (now or utc_now()) - (max_age or self.max_signal_age)
        recent = [s for s in self._buffers.get(user_id, []) if s.timestamp >= cutoff]
        return sorted(recent, key=lambda s: s.timestamp, reverse=True)

    def get_signal_stats(self, user_id: str | None = None) -> dict:
        if user_id is None:
            signals = [s for buffer in self._buffers.values() for s in buffer]
        else:
            signals = list(self._buffers.get(user_id, []))

        by_source: dict[str, int] = defaultdict(int)
        for signal in signals:
            by_source[signal.source] += 1
        timestamps = sorted(s.timestamp for s in signals)
        return {
            "total_signals": len(signals),
            "signals_by_source": dict(by_source),
            "average_weight": round(mean([s.weight for s in signals]), 4),
            "oldest_signal": timestamps[0].isoformat() if timestamps else None,
            "newest_signal": timestamps[-1].isoformat() if timestamps else None,
        }

    def clear_signals(self, user_id: str | None = None) -> None:
        if user_id is None:
            self._buffers.clear()
        else:
            self._buffers.pop(user_id, None)

    def _prune(self, user_id: str, now: datetime | None) -> None:
        buffer = self._buffers.get(user_id)
        if not buffer:
            return
        cutoff = (now or utc_now()) - self.max_signal_age
        self._buffers[user_id] = [s for s in buffer if s.timestamp >= cutoff]
