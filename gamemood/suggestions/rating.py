from __future__ import annotations

from typing import Protocol, runtime_checkable

from gamemood.model import Game
from gamemood.utils.math import clamp01


@runtime_checkable
class RatingPredictor(Protocol):
    """Anything that can score how much *user_id* would enjoy *game* in [0,1]."""

    def predict_rating(self, user_id: str, game: Game) -> float: ...


class CatalogRatingPredictor:
    """Scales the library's 0-5 rating to [0,1]; unrated games get *neutral*."""

    def __init__(self, neutral: float = 0.5, overrides: dict[tuple[str, str], float] | None = None) -> None:
        self.neutral = neutral
        self._overrides = dict(overrides or {})

    def set_rating(self, user_id: str, game_id: str, rating: float) -> None:
        self._overrides[(user_id, game_id)] = clamp01(rating)

    def predict_rating(self, user_id: str, game: Game) -> float:
        override = self._overrides.get((user_id, game.id))
        if override is not None:
            return override
        if game.rating is None:
            return self.neutral
        return clamp01(game.rating / 5.0)
