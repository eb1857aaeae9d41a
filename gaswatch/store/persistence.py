"""Best-effort persistence of rolling state across restarts.

Design notes:
    - The backing store is a plain key → bytes blob store.  Swap
      implementations (memory, directory of files, anything else) without
      touching the coordinator.
    - Every key is loaded independently.  A missing or malformed value is
      logged and ignored; the rest of the state still loads.
    - Saving never raises into the caller.  Persistence is a convenience,
      not a correctness requirement.
"""

from __future__ import annotations

import logging
import math
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from gaswatch.foundation.calendar import SLOTS_PER_WEEK

logger = logging.getLogger(__name__)

BASELINES_KEY = "hourly_baselines_v1"
ACCUMULATOR_KEY = "hourly_accumulator_v1"
HISTORY_KEY = "price_history_v1"
EXCHANGE_RATE_KEY = "last_exchange_rate_v1"

_float_list = TypeAdapter(list[float])
_accumulator = TypeAdapter(dict[str, list[float]])
_float = TypeAdapter(float)


class KeyValueStore(Protocol):
    """Protocol for key-addressed blob storage."""

    def get(self, key: str) -> bytes | None:
        """Return the stored blob, or None if absent."""
        ...

    def set(self, key: str, value: bytes) -> None:
        """Store *value* under *key*, replacing any previous blob."""
        ...


class MemoryStore:
    """Process-local store; state is lost on exit."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileStore:
    """One file per key inside *directory*, written atomically."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"invalid store key: {key!r}")
        return self._directory / f"{key}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=f".{key}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(value)
            os.replace(tmp, path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise


@dataclass
class PersistedState:
    """Everything gaswatch keeps across restarts."""

    hourly_baselines: list[float] | None = None
    accumulator: dict[int, list[float]] = field(default_factory=dict)
    price_history: list[float] = field(default_factory=list)
    exchange_rate: float | None = None


# ── Load ─────────────────────────────────────────────────────────────────────

def _is_sample(value: float) -> bool:
    return math.isfinite(value) and value >= 0


def load_state(store: KeyValueStore) -> PersistedState:
    """Read whatever valid state the store holds.  Never raises on bad data."""
    state = PersistedState()

    baselines = _decode(store, BASELINES_KEY, _float_list)
    if baselines is not None:
        if len(baselines) == SLOTS_PER_WEEK and all(_is_sample(v) for v in baselines):
            state.hourly_baselines = baselines
        else:
            logger.warning("Discarding persisted baselines: expected %d valid slots", SLOTS_PER_WEEK)

    raw_accumulator = _decode(store, ACCUMULATOR_KEY, _accumulator)
    if raw_accumulator is not None:
        for key, samples in raw_accumulator.items():
            try:
                slot = int(key)
            except ValueError:
                continue
            if 0 <= slot < SLOTS_PER_WEEK:
                state.accumulator[slot] = [v for v in samples if _is_sample(v)]

    history = _decode(store, HISTORY_KEY, _float_list)
    if history is not None:
        if all(_is_sample(v) for v in history):
            state.price_history = history
        else:
            logger.warning("Discarding persisted price history: invalid samples")

    rate = _decode(store, EXCHANGE_RATE_KEY, _float)
    if rate is not None and math.isfinite(rate) and rate > 0:
        state.exchange_rate = rate

    return state


def _decode(store: KeyValueStore, key: str, adapter: TypeAdapter):
    try:
        blob = store.get(key)
    except OSError as exc:
        logger.warning("Could not read persisted %s: %s", key, exc)
        return None
    if blob is None:
        return None
    try:
        return adapter.validate_json(blob)
    except ValidationError as exc:
        logger.warning("Discarding malformed persisted %s: %s", key, exc.errors()[0]["msg"])
        return None


# ── Save ─────────────────────────────────────────────────────────────────────

def save_state(store: KeyValueStore, state: PersistedState) -> bool:
    """Write *state* to *store*.  Returns False (and logs) on any failure."""
    try:
        if state.hourly_baselines is not None and len(state.hourly_baselines) == SLOTS_PER_WEEK:
            store.set(BASELINES_KEY, _float_list.dump_json(state.hourly_baselines))
        store.set(
            ACCUMULATOR_KEY,
            _accumulator.dump_json({str(k): v for k, v in state.accumulator.items()}),
        )
        store.set(HISTORY_KEY, _float_list.dump_json(state.price_history))
        if state.exchange_rate is not None and state.exchange_rate > 0:
            store.set(EXCHANGE_RATE_KEY, _float.dump_json(state.exchange_rate))
    except (OSError, ValueError) as exc:
        logger.warning("Persisting state failed: %s", exc)
        return False
    logger.debug("Persisted %d history samples", len(state.price_history))
    return True
