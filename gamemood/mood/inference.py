from __future__ import annotations

import logging
from dataclasses import replace

from gamemood.catalog import MoodCatalog, MoodDescription
from gamemood.defaults import (
    DOMINANT_SECONDARY_MARGIN as SECONDARY_MARGIN,
    INFERENCE_WEIGHT_MAX as WEIGHT_MAX,
    INFERENCE_WEIGHT_MIN as WEIGHT_MIN,
    INFERENCE_WEIGHT_STEP as WEIGHT_STEP,
    MOOD_WEAK_THRESHOLD as WEAK_THRESHOLD,
)
from gamemood.model import (
    FEATURE_NAMES,
    MOOD_AXES,
    DominantMood,
    MoodInferenceWeights,
    MoodVector,
    NormalizedFeatures,
    WeightFeedback,
)
from gamemood.utils.math import clamp01, sigmoid, variance

logger = logging.getLogger(__name__)

# Rows: mood axis. Columns follow FEATURE_NAMES:
# volatility, challenge, social, exploration, focus
MOOD_MAPPINGS: dict[str, tuple[float, float, float, float, float]] = {
    "calm": (-0.8, -0.3, -0.2, -0.1, 0.9),
    "competitive": (0.2, 0.9, -0.4, -0.2, 0.3),
    "curious": (0.3, 0.4, 0.3, 0.8, -0.1),
    "social": (0.1, -0.2, 0.9, 0.4, -0.2),
    "focused": (-0.6, 0.3, -0.3, -0.4, 0.8),
}


class MoodInferencer:
    """Heuristic features → mood mapping with confidence scoring.

    Parameters
    ----------
    weights:
        Default feature weights used when :meth:`infer_mood` is called
        without an override.
    moods:
        Catalog providing human-readable descriptions for mood axes.
    """

    def __init__(
        self,
        weights: MoodInferenceWeights | None = None,
        moods: MoodCatalog | None = None,
    ) -> None:
        self.weights = weights or MoodInferenceWeights()
        self.moods = moods or MoodCatalog.default()

    def infer_mood(
        self,
        features: NormalizedFeatures,
        weights: MoodInferenceWeights | None = None,
    ) -> MoodVector:
        active = weights or self.weights
        values = features.as_list()
        weight_values = active.as_list()
        scores: dict[str, float] = {}
        for axis in MOOD_AXES:
            mapping = MOOD_MAPPINGS[axis]
            total = sum(v * m * w for v, m, w in zip(values, mapping, weight_values))
            scores[axis] = clamp01(sigmoid(total))
        return MoodVector(**scores)

    def get_dominant_mood(self, vector: MoodVector) -> DominantMood:
        """Argmax axis plus the runner-up when it is within the margin.

        ``sorted`` is stable, so equal scores keep axis order.
        """
        ranked = sorted(vector.as_dict().items(), key=lambda item: item[1], reverse=True)
        primary, top = ranked[0]
        runner_up, second = ranked[1]
        if top - second <= SECONDARY_MARGIN:
            return DominantMood(primary=primary, value=top, secondary=runner_up, secondary_value=second)
        return DominantMood(primary=primary, value=top)

    def get_inference_confidence(
        self,
        features: NormalizedFeatures,
        vector: MoodVector,
        feature_confidence: float | None = None,
    ) -> float:
        ranked = sorted(vector.as_dict().values(), reverse=True)
        ambiguity = 1.0 - (ranked[0] - ranked[1])
        # population variance of [0,1] values is at most 0.25
        consistency = max(0.0, 1.0 - 4.0 * variance(features.as_list()))
        evidence = ranked[0] if feature_confidence is None else clamp01(feature_confidence)
        confidence = 0.4 * evidence + 0.4 * (1.0 - ambiguity) + 0.2 * consistency
        return round(clamp01(confidence), 4)

    def adjust_weights(
        self,
        current: MoodInferenceWeights,
        feedback: WeightFeedback,
    ) -> MoodInferenceWeights:
        """Nudge weights toward the features that characterise the actual mood.

        The feature with the strongest positive mapping for the actual mood
        gains ``WEIGHT_STEP``; features mapped negatively for it lose the same
        step. Matching or unknown moods leave the weights untouched.
        """
        if feedback.predicted_mood == feedback.actual_mood:
            return replace(current)
        mapping = MOOD_MAPPINGS.get(feedback.actual_mood)
        if mapping is None:
            logger.debug("No weight mapping for mood %s, skipping adjustment", feedback.actual_mood)
            return replace(current)

        strongest = max(range(len(mapping)), key=lambda i: mapping[i])
        updated: dict[str, float] = {}
        for idx, name in enumerate(FEATURE_NAMES):
            value = getattr(current, name)
            if idx == strongest:
                value += WEIGHT_STEP
            elif mapping[idx] < 0:
                value -= WEIGHT_STEP
            updated[name] = max(WEIGHT_MIN, min(WEIGHT_MAX, value))
        logger.info(
            "Adjusted inference weights after %s→%s mismatch: %s",
            feedback.predicted_mood,
            feedback.actual_mood,
            updated,
        )
        return MoodInferenceWeights(**updated)

    def validate_mood_vector(self, vector: MoodVector) -> list[str]:
        issues: list[str] = []
        values = vector.as_dict()
        for axis, value in values.items():
            if not 0.0 <= value <= 1.0:
                issues.append(f"{axis} is out of range [0,1]: {value}")
        if max(values.values()) < WEAK_THRESHOLD:
            issues.append("All mood values are very low - insufficient signal strength")
        return issues

    def get_mood_description(self, mood: MoodVector | str) -> MoodDescription:
        """Descriptive entry for a mood id, or for the dominant axis of a vector."""
        if isinstance(mood, MoodVector):
            mood = self.get_dominant_mood(mood).primary
        return self.moods.describe(mood)
