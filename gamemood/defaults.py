"""Centralised algorithm defaults for gamemood.

Every tuneable numeric threshold used by the engine lives here so that the
whole pipeline can be tuned from a single location.

Each module still uses local names and imports from here.
"""

from __future__ import annotations

# ── SignalCollector (gamemood/signals/collector.py) ──────────────
SIGNAL_MAX_AGE_DAYS: int = 7
SIGNAL_WEIGHT_SESSION: float = 0.8
SIGNAL_WEIGHT_GENRE: float = 0.7
SIGNAL_WEIGHT_PLAYTIME: float = 0.5
SIGNAL_WEIGHT_PLATFORM: float = 0.4
SIGNAL_WEIGHT_INTEGRATION: float = 0.3
PLAYTIME_MIN_SESSIONS_PER_DAY: int = 2
SOCIAL_ACTIVITY_TYPES: frozenset[str] = frozenset({"achievement", "session_start"})

# ── FeatureExtractor (gamemood/mood/features.py) ─────────────────
FEATURE_NEUTRAL: float = 0.5
FEATURE_VOLATILITY_MIN_SESSIONS: int = 3
FEATURE_HIGH_INTENSITY: float = 7.0
CHALLENGING_GENRES: frozenset[str] = frozenset({"strategy", "puzzle", "rpg", "action"})
FEATURE_CONFIDENCE_OVERALL_SATURATION: float = 10.0
FEATURE_CONFIDENCE_SATURATION: dict[str, float] = {
    "engagement_volatility": 5.0,
    "challenge_seeking": 8.0,
    "social_openness": 8.0,
    "exploration_bias": 8.0,
    "focus_stability": 8.0,
}
FEATURE_RECENCY_HALF_LIFE_DAYS: float = 7.0
FEATURE_EXTREME_VOLATILITY: float = 0.9
FEATURE_CONTRADICTION_CHALLENGE: float = 0.9
FEATURE_CONTRADICTION_FOCUS: float = 0.2
FEATURE_IMPORTANCE: dict[str, float] = {
    "engagement_volatility": 0.25,
    "challenge_seeking": 0.20,
    "social_openness": 0.20,
    "exploration_bias": 0.20,
    "focus_stability": 0.15,
}

# ── MoodInferencer (gamemood/mood/inference.py) ──────────────────
INFERENCE_WEIGHT_STEP: float = 0.05
INFERENCE_WEIGHT_MIN: float = 0.05
INFERENCE_WEIGHT_MAX: float = 1.0
DOMINANT_SECONDARY_MARGIN: float = 0.1
MOOD_WEAK_THRESHOLD: float = 0.3

# ── FeedForwardNetwork (gamemood/analytics/network.py) ───────────
NEURAL_HIDDEN_LAYERS: tuple[int, ...] = (64, 32, 16)
NEURAL_ACTIVATION: str = "relu"
NEURAL_LEARNING_RATE: float = 0.01
NEURAL_MOMENTUM: float = 0.9
NEURAL_BATCH_SIZE: int = 32
NEURAL_EPOCHS: int = 100
NEURAL_INPUT_SIZE: int = 20

# ── NeuralMoodAnalyzer (gamemood/analytics/mood_patterns.py) ─────
NEURAL_MIN_TRAINING_SAMPLES: int = 20
NEURAL_HISTORY_WINDOW: int = 6
FALLBACK_CONFIDENCE: float = 0.5
PATTERN_CONFIDENCE_STEP: float = 0.01
PATTERN_INTENSITY_ALPHA: float = 0.5
PATTERN_TIME_LIKELIHOOD_STEP: float = 0.01
RECOMMENDATION_MAX_GAMES: int = 10
REASONING_THRESHOLD: float = 0.7
LATE_NIGHT_START_HOUR: int = 22
LATE_NIGHT_END_HOUR: int = 4

# ── BehaviorPatternAnalyzer (gamemood/analytics/behavior.py) ─────
SESSION_LENGTH_BUCKET_MINUTES: int = 30
GENRE_SEQUENCE_LENGTHS: tuple[int, ...] = (2, 3)
GENRE_HISTORY_WINDOW: int = 3

# ── PredictiveSuggestionEngine (gamemood/suggestions/engine.py) ──
SUGGESTION_MIN_CONFIDENCE: float = 0.3
SUGGESTION_MAX_RESULTS: int = 10
SUGGESTION_FALLBACK_COUNT: int = 5
SUGGESTION_FALLBACK_CONFIDENCE: float = 0.5
SUGGESTION_MAX_ALTERNATIVES: int = 3
PREDICTION_CACHE_TTL: float = 300.0       # seconds
PREDICTION_CACHE_BUCKET: int = 60         # seconds
TIME_FIT_HOUR_WINDOW: int = 2
DEFAULT_PLAYTIME_MINUTES: float = 60.0
PEAK_HOUR_RATIO: float = 0.7
FLOW_PATTERN_MIN_FREQUENCY: float = 0.3
ANOMALY_LIKELIHOOD: float = 0.05

# ── SessionResonanceTracker (gamemood/resonance/tracker.py) ──────
RESONANCE_MATCH_WEIGHT: float = 0.7
RESONANCE_CONFIDENCE_WEIGHT: float = 0.3
RESONANCE_TREND_WINDOW: int = 5
RESONANCE_TREND_DELTA: float = 0.1
RESONANCE_MIN_ADJUSTMENT: float = 0.3
RESONANCE_HISTOGRAM_BINS: int = 10
RESONANCE_INSIGHT_TOP: int = 3

# ── ConfidenceCalibrator (gamemood/analytics/calibrator.py) ──────
CALIBRATOR_MIN_SAMPLES: int = 5
CALIBRATOR_MIN_BUCKET: int = 3
CALIBRATOR_BINS: int = 10

# ── Trends (gamemood/analytics/trends.py) ────────────────────────
TREND_MIN_SNAPSHOTS: int = 4
TREND_DELTA: float = 0.05
TREND_TIMEFRAME_DAYS: dict[str, int] = {"week": 7, "month": 30, "quarter": 90}
FORECAST_HORIZON_FACTOR: dict[str, float] = {"week": 0.25, "month": 0.5, "quarter": 1.0}

# ── MoodStorage (gamemood/storage/mood_storage.py) ───────────────
SNAPSHOT_RETENTION: int = 200

# ── MoodEngine (gamemood/engine.py) ──────────────────────────────
NEUTRAL_MOOD_CONFIDENCE: float = 0.3
