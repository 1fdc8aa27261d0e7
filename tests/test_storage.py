import asyncio
from datetime import datetime, timedelta, timezone

from gamemood.storage.mood_storage import MoodStorage

BASE = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(idx, user_id="u1", **axes):
    return {
        "id": f"snap-{user_id}-{idx}",
        "user_id": user_id,
        "timestamp": (BASE + timedelta(days=idx)).isoformat(),
        "confidence": 0.6,
        "dominant_mood": "calm",
        "signal_count": 4,
        **axes,
    }


def _resonance(idx, user_id="u1", match=True):
    return {
        "id": f"res-{user_id}-{idx}",
        "user_id": user_id,
        "session_id": f"s{idx}",
        "predicted_mood": "calm",
        "actual_mood": "calm" if match else "social",
        "forecast_confidence": 0.7,
        "match": match,
        "resonance_score": 0.91 if match else 0.21,
        "confidence_delta": 0.3 if match else 0.7,
        "factors": {"mood_alignment": 1.0 if match else 0.0},
        "session_metrics": {"duration": 45, "engagement": 70, "satisfaction": 60, "game_ids": ["tiles"]},
        "created_at": (BASE + timedelta(minutes=idx)).isoformat(),
    }


def test_snapshots_round_trip_and_latest(tmp_path):
    async def scenario() -> None:
        storage = MoodStorage(db_path=tmp_path / "mood.db")
        await storage.save_mood_snapshot(_snapshot(0, calm=0.9))
        await storage.save_mood_snapshot(_snapshot(1, competitive=0.8))

        latest = await storage.get_latest_mood_snapshot("u1")
        assert latest["id"] == "snap-u1-1"
        assert latest["competitive"] == 0.8
        assert latest["calm"] == 0.5
        assert await storage.get_latest_mood_snapshot("nobody") is None
        await storage.close()

    asyncio.run(scenario())


def test_snapshot_retention_keeps_newest(tmp_path):
    async def scenario() -> None:
        storage = MoodStorage(db_path=tmp_path / "mood.db", snapshot_retention=3)
        for idx in range(5):
            await storage.save_mood_snapshot(_snapshot(idx))
        await storage.save_mood_snapshot(_snapshot(0, user_id="u2"))

        rows = await storage.get_mood_snapshots("u1", limit=10)
        assert [r["id"] for r in rows] == ["snap-u1-4", "snap-u1-3", "snap-u1-2"]
        assert await storage.count_mood_snapshots("u2") == 1
        assert await storage.count_mood_snapshots() == 4
        await storage.close()

    asyncio.run(scenario())


def test_snapshots_since_filter(tmp_path):
    async def scenario() -> None:
        storage = MoodStorage(db_path=tmp_path / "mood.db")
        for idx in range(4):
            await storage.save_mood_snapshot(_snapshot(idx))

        since = (BASE + timedelta(days=2)).isoformat()
        rows = await storage.get_mood_snapshots("u1", limit=10, since=since)
        assert [r["id"] for r in rows] == ["snap-u1-3", "snap-u1-2"]
        await storage.close()

    asyncio.run(scenario())


def test_resonance_records_decode_json_and_match(tmp_path):
    async def scenario() -> None:
        storage = MoodStorage(db_path=tmp_path / "mood.db")
        await storage.save_session_resonance(_resonance(0, match=False))
        await storage.save_session_resonance(_resonance(1, match=True))
        await storage.save_session_resonance(_resonance(2, user_id="u2"))

        rows = await storage.get_session_resonances("u1")
        assert [r["id"] for r in rows] == ["res-u1-1", "res-u1-0"]
        assert rows[0]["match"] is True
        assert rows[1]["match"] is False
        assert rows[0]["session_metrics"]["game_ids"] == ["tiles"]
        assert rows[0]["factors"] == {"mood_alignment": 1.0}

        assert len(await storage.get_session_resonances()) == 3
        assert len(await storage.get_session_resonances(limit=1)) == 1
        since = (BASE + timedelta(minutes=1)).isoformat()
        assert len(await storage.get_session_resonances("u1", since=since)) == 1
        assert await storage.count_session_resonances("u2") == 1
        await storage.close()

    asyncio.run(scenario())


def test_delete_user_data_only_touches_that_user(tmp_path):
    async def scenario() -> None:
        storage = MoodStorage(db_path=tmp_path / "mood.db")
        await storage.save_mood_snapshot(_snapshot(0))
        await storage.save_mood_snapshot(_snapshot(0, user_id="u2"))
        await storage.save_session_resonance(_resonance(0))

        removed = await storage.delete_user_data("u1")
        assert removed == {"mood_snapshots": 1, "session_resonance": 1}
        assert await storage.count_mood_snapshots("u2") == 1
        assert await storage.ping() is True
        await storage.close()

    asyncio.run(scenario())
