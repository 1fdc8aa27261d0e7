from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _int_or_none(raw: str | None) -> int | None:
    return int(raw) if raw not in (None, "") else None


DB_PATH = os.getenv("DB_PATH", "data/gamemood.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", os.getenv("GAMEMOOD_LOG_LEVEL", "INFO")).upper()

# ── Caches and buffers ───────────────────────────────────────────
PREDICTION_CACHE_TTL = float(os.getenv("PREDICTION_CACHE_TTL", "300"))
SIGNAL_MAX_AGE_DAYS = int(os.getenv("SIGNAL_MAX_AGE_DAYS", "7"))
STORE_CAPACITY = _int_or_none(os.getenv("STORE_CAPACITY"))

# ── Mood network ─────────────────────────────────────────────────
NEURAL_HIDDEN_LAYERS = tuple(
    int(size) for size in os.getenv("NEURAL_HIDDEN_LAYERS", "64,32,16").split(",") if size.strip()
)
NEURAL_ACTIVATION = os.getenv("NEURAL_ACTIVATION", "relu").lower()
NEURAL_EPOCHS = int(os.getenv("NEURAL_EPOCHS", "100"))
NEURAL_BATCH_SIZE = int(os.getenv("NEURAL_BATCH_SIZE", "32"))
NEURAL_LEARNING_RATE = float(os.getenv("NEURAL_LEARNING_RATE", "0.01"))
NEURAL_SEED = _int_or_none(os.getenv("NEURAL_SEED"))
