from __future__ import annotations

import logging
from datetime import timedelta
from functools import partial

from config import (
    DB_PATH as _DEFAULT_DB_PATH,
    NEURAL_ACTIVATION,
    NEURAL_BATCH_SIZE,
    NEURAL_EPOCHS,
    NEURAL_HIDDEN_LAYERS,
    NEURAL_LEARNING_RATE,
    NEURAL_SEED,
    PREDICTION_CACHE_TTL,
    SIGNAL_MAX_AGE_DAYS,
    STORE_CAPACITY,
)
from gamemood.analytics.network import NetworkConfig
from gamemood.catalog import MoodCatalog
from gamemood.engine import MoodEngine
from gamemood.storage.mood_storage import MoodStorage
from gamemood.storage.store import InMemoryStore

logger = logging.getLogger(__name__)


def build_network_config() -> NetworkConfig:
    try:
        return NetworkConfig(
            hidden_layers=NEURAL_HIDDEN_LAYERS,
            activation=NEURAL_ACTIVATION,
            learning_rate=NEURAL_LEARNING_RATE,
            batch_size=NEURAL_BATCH_SIZE,
            epochs=NEURAL_EPOCHS,
            seed=NEURAL_SEED,
        )
    except ValueError as exc:
        logger.warning("Invalid network settings, using defaults: %s", exc)
        return NetworkConfig(seed=NEURAL_SEED)


def build_engine(db_path: str | None = None, moods: MoodCatalog | None = None) -> MoodEngine:
    resolved = db_path or _DEFAULT_DB_PATH
    storage = MoodStorage(db_path=resolved)
    return MoodEngine(
        storage,
        moods,
        network_config=build_network_config(),
        signal_max_age=timedelta(days=SIGNAL_MAX_AGE_DAYS),
        store_factory=partial(InMemoryStore, capacity=STORE_CAPACITY),
        cache_ttl=PREDICTION_CACHE_TTL,
    )
