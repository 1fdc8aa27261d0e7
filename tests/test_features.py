from datetime import datetime, timedelta, timezone

import pytest

from gamemood.model import (
    FEATURE_NAMES,
    BehavioralSignal,
    GenreSignalData,
    IntegrationSignalData,
    NormalizedFeatures,
    SessionSignalData,
)
from gamemood.mood.features import FeatureExtractor

NOW = datetime(2026, 3, 2, 20, 0, tzinfo=timezone.utc)


def _session_signal(minutes=60.0, intensity=5.0, completed=False, session_type="main", at=NOW):
    return BehavioralSignal(
        timestamp=at,
        source="session",
        data=SessionSignalData(
            game_id="g1",
            minutes=minutes,
            intensity=intensity,
            completed=completed,
            session_type=session_type,
        ),
        weight=0.8,
    )


@pytest.fixture
def extractor():
    return FeatureExtractor()


def test_no_signals_gives_neutral_features(extractor):
    assert extractor.extract_features([]).as_list() == [0.5] * len(FEATURE_NAMES)


def test_volatility_needs_three_sessions(extractor):
    signals = [_session_signal(minutes=10), _session_signal(minutes=200)]
    assert extractor.extract_features(signals).engagement_volatility == 0.5

    signals.append(_session_signal(minutes=90))
    assert extractor.extract_features(signals).engagement_volatility != 0.5


def test_coop_sessions_raise_social_openness(extractor):
    signals = [_session_signal(session_type="coop") for _ in range(4)]
    assert extractor.extract_features(signals).social_openness == pytest.approx(0.9)


def test_social_integrations_add_to_social_openness(extractor):
    signals = [
        BehavioralSignal(
            timestamp=NOW,
            source="integration",
            data=IntegrationSignalData(activity_type="achievement", platform="steam", social_interaction=True),
            weight=0.3,
        )
    ]
    assert extractor.extract_features(signals).social_openness == pytest.approx(0.8)


def test_challenging_genre_switches_raise_challenge_seeking(extractor):
    signals = [
        BehavioralSignal(
            timestamp=NOW,
            source="genre",
            data=GenreSignalData(from_genre="adventure", to_genre="strategy"),
            weight=0.7,
        ),
        _session_signal(intensity=9.0),
    ]
    features = extractor.extract_features(signals)
    assert features.challenge_seeking == pytest.approx(1.0)


def test_features_stay_in_unit_range(extractor):
    signals = [
        _session_signal(minutes=m, intensity=10.0, completed=True, session_type=t)
        for m, t in [(1, "main"), (500, "coop"), (3, "social"), (240, "main")]
    ]
    for value in extractor.extract_features(signals).as_list():
        assert 0.0 <= value <= 1.0


def test_confidence_is_zero_without_signals(extractor):
    confidence = extractor.calculate_feature_confidence([], now=NOW)
    assert confidence.overall == 0.0
    assert set(confidence.per_feature.values()) == {0.0}


def test_older_signals_contribute_less_confidence(extractor):
    fresh = [_session_signal(at=NOW) for _ in range(5)]
    stale = [_session_signal(at=NOW - timedelta(days=14)) for _ in range(5)]

    fresh_conf = extractor.calculate_feature_confidence(fresh, now=NOW)
    stale_conf = extractor.calculate_feature_confidence(stale, now=NOW)

    assert fresh_conf.overall > stale_conf.overall
    assert fresh_conf.per_feature["engagement_volatility"] == 1.0
    assert fresh_conf.per_feature["exploration_bias"] == 0.0


def test_validate_features_reports_out_of_range_and_extremes(extractor):
    issues = extractor.validate_features(NormalizedFeatures(engagement_volatility=1.5))
    assert any("out of range" in issue for issue in issues)
    assert any("extremely high" in issue for issue in issues)

    assert extractor.validate_features(NormalizedFeatures()) == []


def test_feature_weights_cover_every_feature(extractor):
    weights = extractor.get_feature_weights()
    assert set(weights) == set(FEATURE_NAMES)
    assert sum(weights.values()) == pytest.approx(1.0)
