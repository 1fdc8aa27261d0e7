"""Domain errors raised at the :class:`~gamemood.engine.MoodEngine` boundary.

Internal failures are logged with their original cause and re-raised as one
of these with a fixed message, so callers never see storage or numeric
internals.
"""

from __future__ import annotations


class MoodEngineError(Exception):
    """Base class for every error the engine facade raises."""


class MoodAnalysisError(MoodEngineError):
    pass


class ForecastingError(MoodEngineError):
    pass


class ResonanceRecordingError(MoodEngineError):
    pass


class ResonanceAnalysisError(MoodEngineError):
    pass
