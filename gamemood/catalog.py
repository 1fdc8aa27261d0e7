"""Reference tables for moods and genres.

The engine never reaches for these as ambient state: a :class:`MoodCatalog`
and a :class:`GameCatalog` are handed to the components that need them, so
tests can swap in a smaller vocabulary.

Usage::

    moods = MoodCatalog.default()
    games = GameCatalog([Game(id="g1", title="Arena", genres=["Action"])])
    moods.index("competitive")   # -> 1
    games.genre_of("g1")         # -> "action"
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from gamemood.model import Game

__all__ = [
    "DEFAULT_MOOD_IDS",
    "GENRE_INTENSITY",
    "GENRE_SOCIALNESS",
    "GameCatalog",
    "MoodCatalog",
    "MoodDescription",
]

DEFAULT_MOOD_IDS: tuple[str, ...] = (
    "calm",
    "competitive",
    "curious",
    "social",
    "focused",
    "energetic",
    "creative",
    "story",
    "exploratory",
)

GENRE_INTENSITY: dict[str, float] = {
    "action": 0.8,
    "racing": 0.7,
    "sports": 0.6,
    "rpg": 0.5,
    "strategy": 0.4,
    "adventure": 0.3,
    "puzzle": 0.2,
    "simulation": 0.3,
}

GENRE_SOCIALNESS: dict[str, float] = {
    "sports": 0.9,
    "racing": 0.8,
    "action": 0.7,
    "rpg": 0.6,
    "strategy": 0.5,
    "adventure": 0.4,
    "puzzle": 0.2,
    "simulation": 0.3,
}


@dataclass(frozen=True, slots=True)
class MoodDescription:
    primary: str
    description: str
    traits: tuple[str, ...]
    recommendations: tuple[str, ...]


_DESCRIPTIONS: dict[str, MoodDescription] = {
    "calm": MoodDescription(
        "Calm",
        "Relaxed and peaceful state, ideal for low-stress gaming",
        ("Patient", "Methodical", "Steady", "Reflective"),
        ("Puzzle games", "Simulation games", "Creative sandbox games", "Story-rich adventures"),
    ),
    "competitive": MoodDescription(
        "Competitive",
        "Achievement-oriented and challenge-seeking state",
        ("Driven", "Strategic", "Goal-focused", "Performance-minded"),
        ("Competitive multiplayer", "Ranked matches", "Speedrun challenges", "Tournament play"),
    ),
    "curious": MoodDescription(
        "Curious",
        "Exploratory and discovery-oriented state",
        ("Inquisitive", "Experimental", "Open-minded", "Adventurous"),
        ("Open-world games", "New genres", "Indie titles", "Creative tools"),
    ),
    "social": MoodDescription(
        "Social",
        "Community-oriented and interactive state",
        ("Collaborative", "Communicative", "Team-player", "Community-focused"),
        ("Co-op campaigns", "Guild activities", "Social hubs", "Party games"),
    ),
    "focused": MoodDescription(
        "Focused",
        "Concentrated and goal-directed state",
        ("Attentive", "Determined", "Methodical", "Immersed"),
        ("Strategy games", "Complex puzzles", "Skill-based challenges", "Deep story experiences"),
    ),
}

_ACTIVITIES: dict[str, tuple[str, ...]] = {
    "calm": ("Casual gaming", "Exploration", "Creative building"),
    "competitive": ("Ranked matches", "Tournaments", "Skill training"),
    "focused": ("Strategy games", "Puzzle solving", "Story progression"),
    "social": ("Multiplayer sessions", "Co-op missions", "Community events"),
    "energetic": ("Action games", "Fast-paced challenges", "Sports games"),
    "creative": ("Sandbox games", "Building games", "Art games"),
    "curious": ("Open-world exploration", "New genres", "Discovery"),
    "exploratory": ("Open-world exploration", "New genres", "Discovery"),
    "story": ("Story progression", "Narrative adventures", "Visual novels"),
}

_COMPATIBLE: dict[str, frozenset[str]] = {
    "calm": frozenset({"creative", "story", "exploratory"}),
    "competitive": frozenset({"energetic", "focused", "social"}),
    "energetic": frozenset({"competitive", "social", "focused"}),
    "focused": frozenset({"competitive", "curious"}),
    "social": frozenset({"energetic", "competitive", "calm"}),
    "creative": frozenset({"calm", "story", "exploratory"}),
    "story": frozenset({"calm", "creative", "exploratory"}),
    "exploratory": frozenset({"creative", "story", "calm", "curious"}),
    "curious": frozenset({"exploratory", "creative", "focused"}),
}

# (min, max, ideal) minutes
_SESSION_LENGTHS: dict[str, tuple[float, float, float]] = {
    "calm": (15, 90, 45),
    "competitive": (20, 120, 60),
    "energetic": (15, 90, 45),
    "focused": (30, 180, 90),
    "social": (30, 150, 75),
    "creative": (45, 240, 120),
    "story": (60, 300, 150),
    "exploratory": (45, 240, 120),
    "curious": (45, 240, 120),
}


@dataclass(slots=True)
class MoodCatalog:
    """Ordered mood vocabulary plus per-mood reference data.

    The order of ``mood_ids`` defines the network output layer and the
    index-based mood encoding, so it must stay stable for a trained model.
    """

    mood_ids: tuple[str, ...] = DEFAULT_MOOD_IDS
    fallback_mood: str = "calm"
    descriptions: dict[str, MoodDescription] = field(default_factory=lambda: dict(_DESCRIPTIONS))
    activities: dict[str, tuple[str, ...]] = field(default_factory=lambda: dict(_ACTIVITIES))
    compatible: dict[str, frozenset[str]] = field(default_factory=lambda: dict(_COMPATIBLE))
    session_lengths: dict[str, tuple[float, float, float]] = field(
        default_factory=lambda: dict(_SESSION_LENGTHS)
    )

    def __post_init__(self) -> None:
        if not self.mood_ids:
            raise ValueError("mood catalog must not be empty")
        if len(set(self.mood_ids)) != len(self.mood_ids):
            raise ValueError("mood ids must be unique")

    @classmethod
    def default(cls) -> "MoodCatalog":
        return cls()

    def __len__(self) -> int:
        return len(self.mood_ids)

    def __contains__(self, mood_id: object) -> bool:
        return mood_id in self.mood_ids

    def index(self, mood_id: str) -> int:
        """Position of *mood_id*, or ``-1`` when it is not in the vocabulary."""
        try:
            return self.mood_ids.index(mood_id)
        except ValueError:
            return -1

    def describe(self, mood_id: str) -> MoodDescription:
        return self.descriptions.get(mood_id) or self.descriptions[self.fallback_mood]

    def activities_for(self, mood_id: str) -> list[str]:
        return list(self.activities.get(mood_id, ("General gaming",)))

    def are_compatible(self, predicted: str, actual: str) -> bool:
        return actual in self.compatible.get(predicted, frozenset())


class GameCatalog:
    """Lookup of games by id with genre-derived attributes."""

    def __init__(self, games: Iterable[Game] = ()) -> None:
        self._games: dict[str, Game] = {}
        for game in games:
            self._games[game.id] = game

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, game_id: object) -> bool:
        return game_id in self._games

    def __iter__(self):
        return iter(self._games.values())

    def get(self, game_id: str) -> Game | None:
        return self._games.get(game_id)

    def add(self, game: Game) -> None:
        self._games[game.id] = game

    def extend(self, games: Sequence[Game]) -> None:
        for game in games:
            self.add(game)

    def genre_of(self, game_id: str) -> str:
        game = self._games.get(game_id)
        return game.primary_genre if game else "unknown"

    @staticmethod
    def intensity_of(game: Game) -> float:
        return GENRE_INTENSITY.get(game.primary_genre, 0.5)

    @staticmethod
    def socialness_of(game: Game) -> float:
        return GENRE_SOCIALNESS.get(game.primary_genre, 0.5)
