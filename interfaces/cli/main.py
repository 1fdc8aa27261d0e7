from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from config import LOG_LEVEL
from gamemood.model import Activity, Game, PlaySession, utc_now
from gamemood.suggestions.engine import SuggestionContext
from interfaces.engine_factory import build_engine

logger = logging.getLogger(__name__)


def load_history(path: Path) -> tuple[str, list[PlaySession], list[Game], list[Activity]]:
    """Read ``{"user_id", "sessions", "games", "activities"}`` from a JSON file."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    sessions = [PlaySession.from_dict(item) for item in raw.get("sessions", [])]
    games = [Game.from_dict(item) for item in raw.get("games", [])]
    activities = [Activity.from_dict(item) for item in raw.get("activities", [])]
    return str(raw.get("user_id", "me")), sessions, games, activities


async def run_cli(args: argparse.Namespace) -> dict:
    user_id, sessions, games, activities = load_history(Path(args.sessions_file))
    if args.user:
        user_id = args.user

    engine = build_engine(args.db)
    try:
        report = await engine.learn_from_history(user_id, sessions, games)
        analysis = await engine.analyze_user_mood(user_id, sessions, games, activities)
        recent = sorted(sessions, key=lambda s: s.start_time, reverse=True)
        prediction = engine.predict_current_mood(recent)
        game_index = {g.id: g for g in games}
        context = SuggestionContext(
            timestamp=utc_now(),
            current_mood=prediction.predicted_mood,
            energy_level=args.energy,
            social_context=args.social,
            available_time=args.minutes,
            recent_genres=[
                game_index[s.game_id].primary_genre for s in reversed(recent[:3]) if s.game_id in game_index
            ],
        )
        suggestions = engine.suggest_games(user_id, games, context)
        recommendations = engine.get_mood_recommendations(prediction.predicted_mood, args.target)
        return {
            "user_id": user_id,
            "training": {
                "samples": report.samples,
                "epochs": report.epochs,
                "trained": report.trained,
                "final_loss": report.final_loss,
            },
            "analysis": analysis.to_dict(),
            "issues": engine.validate_mood_analysis(analysis),
            "prediction": {
                "mood": prediction.predicted_mood,
                "confidence": prediction.confidence,
                "reasoning": prediction.reasoning,
            },
            "suggestions": [s.to_dict() for s in suggestions],
            "recommendations": {
                "games": recommendations.suggested_games,
                "activities": recommendations.activities,
                "path": recommendations.transition_path,
            },
        }
    finally:
        await engine.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyze a play-session history and suggest games")
    parser.add_argument("sessions_file", help="JSON file with user_id, sessions, games and activities")
    parser.add_argument("--user", help="Override the user id from the file")
    parser.add_argument("--db", help="SQLite database path (defaults to DB_PATH)")
    parser.add_argument("--target", help="Mood to plan a transition towards")
    parser.add_argument("--energy", type=float, help="Current energy level 0-100")
    parser.add_argument("--social", choices=["solo", "friends", "online"], help="Social context")
    parser.add_argument("--minutes", type=float, help="Available play time in minutes")
    return parser


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args()
    result = asyncio.run(run_cli(args))
    print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
