import argparse
import json
import os
import random
import sys
from datetime import datetime, timedelta, timezone

# project root on sys.path so the script runs from a checkout
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dotenv import load_dotenv

from gamemood.catalog import DEFAULT_MOOD_IDS
from gamemood.model import Activity, Game, PlaySession

load_dotenv()

_DEMO_GAMES: list[Game] = [
    Game(id="arena", title="Arena Clash", genres=["Action"], platforms=["steam"], rating=4.5),
    Game(id="circuit", title="Circuit Rush", genres=["Racing"], platforms=["steam", "xbox"], rating=4.0),
    Game(id="kingdoms", title="Kingdoms at Dusk", genres=["Strategy"], platforms=["steam"], rating=4.7),
    Game(id="lantern", title="Lantern Path", genres=["Adventure"], platforms=["switch"], rating=4.2),
    Game(id="tiles", title="Quiet Tiles", genres=["Puzzle"], platforms=["mobile"], rating=3.9),
    Game(id="harvest", title="Harvest Hollow", genres=["Simulation"], platforms=["switch"], rating=4.4),
    Game(id="saga", title="Ember Saga", genres=["RPG"], platforms=["steam", "playstation"], rating=4.8),
    Game(id="league", title="Pitch League", genres=["Sports"], platforms=["playstation"], rating=3.8),
]

# evening competitive streaks, weekend exploration, calm mornings
_MOOD_GAMES: dict[str, tuple[str, ...]] = {
    "competitive": ("arena", "circuit", "league"),
    "focused": ("kingdoms", "saga"),
    "calm": ("tiles", "harvest"),
    "curious": ("lantern", "saga"),
    "social": ("league", "arena"),
}


def _pick_mood(rng: random.Random, when: datetime) -> str:
    if when.weekday() >= 5:
        return rng.choice(["curious", "social", "calm"])
    if when.hour >= 19:
        return rng.choice(["competitive", "competitive", "focused"])
    return rng.choice(["calm", "focused"])


def generate_history(user_id: str, days: int, seed: int) -> dict:
    rng = random.Random(seed)
    start = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0) - timedelta(days=days)
    platforms = {g.id: g.platforms[0] for g in _DEMO_GAMES}
    sessions: list[PlaySession] = []
    activities: list[Activity] = []
    for day in range(days):
        for _ in range(rng.randint(1, 3)):
            when = start + timedelta(days=day, hours=rng.choice([8, 13, 19, 21, 23]))
            mood = _pick_mood(rng, when)
            mood = mood if mood in DEFAULT_MOOD_IDS else "calm"
            game_id = rng.choice(_MOOD_GAMES[mood])
            completed = rng.random() < 0.6
            sessions.append(
                PlaySession(
                    game_id=game_id,
                    start_time=when,
                    duration=float(rng.randint(20, 150)),
                    mood=mood,
                    intensity=round(rng.uniform(3.0, 9.5), 1),
                    completed=completed,
                    platform=platforms[game_id],
                    session_type=rng.choice(["main", "main", "side", "social", "coop"]),
                    achievements=rng.randint(0, 3) if completed else 0,
                    tags=[mood, when.strftime("%A").lower()],
                )
            )
            if completed:
                activities.append(Activity(type="achievement", timestamp=when, platform=platforms[game_id], game_id=game_id))
    sessions.sort(key=lambda s: s.start_time)
    return {
        "user_id": user_id,
        "sessions": [s.to_dict() for s in sessions],
        "games": [
            {"id": g.id, "title": g.title, "genres": g.genres, "platforms": g.platforms, "rating": g.rating}
            for g in _DEMO_GAMES
        ],
        "activities": [
            {"type": a.type, "timestamp": a.timestamp.isoformat(), "platform": a.platform, "game_id": a.game_id}
            for a in activities
        ],
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate a synthetic play-session history for the CLI")
    parser.add_argument("output", nargs="?", default="data/demo_sessions.json", help="Where to write the JSON file")
    parser.add_argument("--days", type=int, default=21, help="Number of days of history")
    parser.add_argument("--seed", type=int, default=7, help="Random seed")
    parser.add_argument("--user", default="demo", help="User id written to the file")
    args = parser.parse_args()

    payload = generate_history(args.user, max(1, args.days), args.seed)
    os.makedirs(os.path.dirname(os.path.abspath(args.output)), exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, ensure_ascii=False, indent=2)
    print(f"Wrote {len(payload['sessions'])} sessions for {args.user} to {args.output}")
