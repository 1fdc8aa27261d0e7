from datetime import datetime, timedelta, timezone
from typing import Any, cast

from gamemood.catalog import GameCatalog
from gamemood.model import Activity, Game, PlaySession
from gamemood.signals.collector import SignalCollector

BASE = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)  # Monday

GAMES = GameCatalog([
    Game(id="arena", title="Arena", genres=["Action"]),
    Game(id="kingdoms", title="Kingdoms", genres=["Strategy"]),
    Game(id="tiles", title="Tiles", genres=["Puzzle"]),
])


def _session(game_id, start, mood="calm", minutes=60.0, **kwargs):
    return PlaySession(game_id=game_id, start_time=start, mood=mood, duration=minutes, **kwargs)


def _collector():
    return SignalCollector()


def test_one_session_signal_per_session():
    sessions = [_session("arena", BASE), _session("tiles", BASE + timedelta(hours=2))]
    signals = _collector().collect_from_session_history(sessions)

    assert len(signals) == 2
    assert all(s.source == "session" for s in signals)
    assert all(s.weight == 0.8 for s in signals)
    assert signals[0].data.minutes == 60.0


def test_genre_transitions_skip_repeats_and_unknown_games():
    sessions = [
        _session("arena", BASE),
        _session("arena", BASE + timedelta(hours=1)),
        _session("kingdoms", BASE + timedelta(hours=2)),
        _session("missing", BASE + timedelta(hours=3)),
        _session("tiles", BASE + timedelta(hours=4)),
    ]
    signals = _collector().collect_from_genre_transitions(sessions, GAMES)

    assert [(s.data.from_genre, s.data.to_genre) for s in signals] == [("action", "strategy")]


def test_playtime_signal_needs_two_sessions_on_a_weekday():
    sessions = [
        _session("arena", BASE, minutes=60),
        _session("tiles", BASE + timedelta(hours=1), minutes=60),
        _session("tiles", BASE + timedelta(days=1), minutes=30),
    ]
    signals = _collector().collect_from_playtime_patterns(sessions)

    assert len(signals) == 1
    data = signals[0].data
    assert data.day_of_week == 0
    assert data.session_count == 2
    assert data.consistency == 1.0


def test_platform_switches_carry_preference_share():
    sessions = [
        _session("arena", BASE, platform="steam"),
        _session("arena", BASE + timedelta(hours=1), platform="switch"),
        _session("arena", BASE + timedelta(hours=2), platform="switch"),
        _session("arena", BASE + timedelta(hours=3)),
    ]
    signals = _collector().collect_from_platform_switching(sessions)

    assert len(signals) == 1
    assert signals[0].data.to_platform == "switch"
    assert signals[0].data.platform_preference == 0.5


def test_integration_activity_flags_social_types():
    activities = [
        Activity(type="achievement", timestamp=BASE, platform="steam"),
        Activity(type="library_sync", timestamp=BASE, platform="gog"),
    ]
    signals = _collector().collect_from_integration_activity(activities)

    assert [s.data.social_interaction for s in signals] == [True, False]


def test_failing_extractor_does_not_block_others():
    class _BrokenCatalog:
        def genre_of(self, game_id):
            raise RuntimeError("catalog offline")

    sessions = [_session("arena", BASE), _session("tiles", BASE + timedelta(hours=1))]
    signals = _collector().collect_all(sessions, cast(Any, _BrokenCatalog()))

    sources = {s.source for s in signals}
    assert "session" in sources
    assert "genre" not in sources


def test_empty_history_yields_no_signals():
    assert _collector().collect_all([], GAMES) == []


def test_buffer_drops_signals_older_than_max_age():
    collector = _collector()
    old = _session("arena", BASE - timedelta(days=10))
    fresh = _session("tiles", BASE - timedelta(hours=1))
    signals = collector.collect_from_session_history([old, fresh])

    collector.add_signals("u1", signals, now=BASE)
    recent = collector.get_recent_signals("u1", now=BASE)

    assert len(recent) == 1
    assert recent[0].data.game_id == "tiles"
    assert collector.get_signal_stats("u1")["total_signals"] == 1


def test_recent_signals_are_newest_first_and_clearable():
    collector = _collector()
    sessions = [_session("arena", BASE - timedelta(hours=3)), _session("tiles", BASE - timedelta(hours=1))]
    collector.add_signals("u1", collector.collect_from_session_history(sessions), now=BASE)

    recent = collector.get_recent_signals("u1", now=BASE)
    assert [s.data.game_id for s in recent] == ["tiles", "arena"]

    collector.clear_signals("u1")
    assert collector.get_recent_signals("u1", now=BASE) == []


def test_buffer_skips_signals_it_already_holds():
    collector = _collector()
    signals = collector.collect_from_session_history([_session("tiles", BASE - timedelta(hours=1))])

    collector.add_signals("u1", signals, now=BASE)
    collector.add_signals("u1", signals, now=BASE)
    assert collector.get_signal_stats("u1")["total_signals"] == 1

    collector.replace_signals("u1", [], now=BASE)
    assert collector.get_recent_signals("u1", now=BASE) == []
