from datetime import datetime, timedelta, timezone

import pytest

from gamemood.analytics.behavior import BehaviorPatternAnalyzer
from gamemood.catalog import GameCatalog
from gamemood.model import Game, PlaySession
from gamemood.pipeline.events import EventBus
from gamemood.storage.store import InMemoryStore
from gamemood.suggestions.engine import PredictiveSuggestionEngine, SuggestionContext
from gamemood.suggestions.rating import CatalogRatingPredictor

MONDAY = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)
WEDNESDAY = MONDAY + timedelta(days=2)

ARENA = Game(id="arena", title="Arena Clash", genres=["Action"], rating=4.5)
KINGDOMS = Game(id="kingdoms", title="Kingdoms", genres=["Strategy"], rating=4.0)
TILES = Game(id="tiles", title="Quiet Tiles", genres=["Puzzle"])
LEAGUE = Game(id="league", title="Pitch League", genres=["Sports"], rating=3.5)
BRAWL = Game(id="brawl", title="Brawl Night", genres=["Action"])
GAMES = [ARENA, KINGDOMS, TILES, LEAGUE, BRAWL]
CATALOG = GameCatalog(GAMES)


def _history():
    sessions = []
    for week in range(2):
        start = MONDAY + timedelta(days=7 * week)
        sessions.append(PlaySession(game_id="tiles", start_time=start, mood="calm", duration=40))
        sessions.append(
            PlaySession(game_id="arena", start_time=start + timedelta(hours=1), mood="competitive", duration=60)
        )
    return sessions


@pytest.fixture
def behavior():
    return BehaviorPatternAnalyzer(event_bus=EventBus())


@pytest.fixture
def engine(behavior):
    behavior.analyze_sessions("u1", _history(), CATALOG)
    return PredictiveSuggestionEngine(behavior)


def test_unknown_user_gets_general_fallback(behavior):
    engine = PredictiveSuggestionEngine(behavior)
    many = [Game(id=f"g{i}", genres=["RPG"]) for i in range(7)]

    ranked = engine.generate_suggestions("stranger", many, SuggestionContext())

    assert [s.game.id for s in ranked] == ["g0", "g1", "g2", "g3", "g4"]
    assert {s.confidence for s in ranked} == {0.5}
    assert ranked[0].reasoning == ["General recommendation"]


def test_results_are_sorted_and_capped(engine):
    many = [Game(id=f"g{i}", genres=[g]) for i, g in enumerate(["Action", "Puzzle", "Strategy"] * 5)]

    ranked = engine.generate_suggestions("u1", many, SuggestionContext(timestamp=MONDAY))

    assert len(ranked) == 10
    confidences = [s.confidence for s in ranked]
    assert confidences == sorted(confidences, reverse=True)
    assert all(c > 0.3 for c in confidences)


def test_low_confidence_candidates_are_dropped(behavior):
    class _DudAwareEngine(PredictiveSuggestionEngine):
        def calculate_time_fit(self, game, context, pattern):
            return 0.0 if game.id == "dud" else super().calculate_time_fit(game, context, pattern)

        def calculate_mood_fit(self, game, context, pattern):
            return 0.0 if game.id == "dud" else super().calculate_mood_fit(game, context, pattern)

        def calculate_sequence_fit(self, game, context, pattern):
            return 0.0 if game.id == "dud" else super().calculate_sequence_fit(game, context, pattern)

    behavior.analyze_sessions("u1", _history(), CATALOG)
    engine = _DudAwareEngine(behavior)
    ranked = engine.generate_suggestions("u1", [*GAMES, Game(id="dud")], SuggestionContext(timestamp=MONDAY))

    assert "dud" not in {s.game.id for s in ranked}
    assert len(ranked) == len(GAMES)


def test_repeated_request_hits_cache(engine):
    context = SuggestionContext(timestamp=MONDAY, current_mood="calm", device="pc")
    first = engine.generate_suggestions("u1", GAMES, context)
    second = engine.generate_suggestions("u1", GAMES, SuggestionContext(
        timestamp=MONDAY + timedelta(seconds=30), current_mood="calm", device="pc"
    ))
    assert second is first


def test_behavior_update_invalidates_cached_suggestions(engine, behavior):
    context = SuggestionContext(timestamp=MONDAY, current_mood="calm")
    first = engine.generate_suggestions("u1", GAMES, context)

    engine.update_behavior_patterns(
        "u1",
        PlaySession(game_id="kingdoms", start_time=MONDAY + timedelta(days=14), mood="focused", duration=90),
        CATALOG,
    )

    assert behavior.get_pattern("u1").total_sessions == 5
    assert engine.cache.keys("suggest:u1:") == []
    assert engine.generate_suggestions("u1", GAMES, context) is not first


def test_cached_lists_expire(behavior):
    now = [0.0]
    behavior.analyze_sessions("u1", _history(), CATALOG)
    engine = PredictiveSuggestionEngine(behavior, cache=InMemoryStore(clock=lambda: now[0]), cache_ttl=300)
    context = SuggestionContext(timestamp=MONDAY)

    first = engine.generate_suggestions("u1", GAMES, context)
    now[0] = 301.0
    assert engine.generate_suggestions("u1", GAMES, context) is not first


def test_time_fit_uses_nearby_slots(engine, behavior):
    pattern = behavior.get_pattern("u1")
    monday = SuggestionContext(timestamp=MONDAY + timedelta(minutes=30))
    assert engine.calculate_time_fit(ARENA, monday, pattern) == 0.9
    assert engine.calculate_time_fit(KINGDOMS, monday, pattern) == 0.6
    assert engine.calculate_time_fit(ARENA, SuggestionContext(timestamp=WEDNESDAY), pattern) == 0.5


def test_time_fit_wraps_around_midnight_and_week_end(behavior):
    sunday_late = MONDAY + timedelta(days=6, hours=3)
    late_session = PlaySession(game_id="arena", start_time=sunday_late, mood="calm", duration=30)
    behavior.analyze_sessions("u1", [late_session], CATALOG)
    engine = PredictiveSuggestionEngine(behavior)
    pattern = behavior.get_pattern("u1")

    just_after_midnight = SuggestionContext(timestamp=sunday_late + timedelta(hours=1, minutes=30))
    assert engine.calculate_time_fit(ARENA, just_after_midnight, pattern) == 0.9
    day_later = SuggestionContext(timestamp=sunday_late + timedelta(hours=25))
    assert engine.calculate_time_fit(ARENA, day_later, pattern) == 0.5


def test_mood_fit_rewards_transition_triggers(engine, behavior):
    pattern = behavior.get_pattern("u1")
    calm = SuggestionContext(current_mood="calm")
    assert engine.calculate_mood_fit(ARENA, calm, pattern) == 0.9
    assert engine.calculate_mood_fit(KINGDOMS, calm, pattern) == 0.4
    assert engine.calculate_mood_fit(ARENA, SuggestionContext(current_mood="social"), pattern) == 0.5
    assert engine.calculate_mood_fit(ARENA, SuggestionContext(), pattern) == 0.5


def test_energy_and_social_fit(engine):
    assert engine.calculate_energy_fit(ARENA, SuggestionContext(energy_level=80)) == pytest.approx(1.0)
    assert engine.calculate_energy_fit(TILES, SuggestionContext(energy_level=80)) == pytest.approx(0.4)
    assert engine.calculate_social_fit(TILES, SuggestionContext(social_context="solo")) == pytest.approx(0.8)
    assert engine.calculate_social_fit(LEAGUE, SuggestionContext(social_context="friends")) == pytest.approx(0.9)


def test_sequence_fit_follows_genre_flow(engine, behavior):
    pattern = behavior.get_pattern("u1")
    flow = SuggestionContext(recent_genres=["puzzle", "action"])
    assert engine.calculate_sequence_fit(TILES, flow, pattern) == 0.9
    assert engine.calculate_sequence_fit(KINGDOMS, flow, pattern) == 0.5
    assert engine.calculate_sequence_fit(TILES, SuggestionContext(recent_genres=["rpg"]), pattern) == 0.3
    assert engine.calculate_sequence_fit(TILES, SuggestionContext(), pattern) == 0.5


def test_satisfaction_scales_with_available_time(engine, behavior):
    pattern = behavior.get_pattern("u1")
    playtime = engine.estimate_playtime(ARENA, pattern)
    assert playtime == pytest.approx(60.0)
    assert engine.estimate_playtime(LEAGUE, pattern) == pytest.approx(60.0)

    short = SuggestionContext(available_time=30)
    assert engine.predict_satisfaction("u1", ARENA, short, playtime) == pytest.approx(0.45)
    assert engine.predict_satisfaction("u1", ARENA, SuggestionContext(), playtime) == pytest.approx(0.9)


def test_rating_overrides_take_precedence():
    predictor = CatalogRatingPredictor()
    predictor.set_rating("u1", "tiles", 0.95)
    assert predictor.predict_rating("u1", TILES) == 0.95
    assert predictor.predict_rating("u2", TILES) == 0.5


def test_suggestion_carries_same_genre_alternatives(engine):
    ranked = engine.generate_suggestions("u1", GAMES, SuggestionContext(timestamp=MONDAY))
    arena = next(s for s in ranked if s.game.id == "arena")
    assert [g.id for g in arena.alternatives] == ["brawl"]
    assert arena.to_dict()["alternatives"] == ["brawl"]


def test_insights_report_peak_times_and_flows(engine):
    titles = [insight.title for insight in engine.get_predictive_insights("u1")]
    assert "Peak Gaming Time Detected" in titles
    assert "Gaming Flow Patterns" in titles
    assert "Unusual Gaming Pattern Detected" not in titles
    assert engine.get_predictive_insights("stranger") == []
