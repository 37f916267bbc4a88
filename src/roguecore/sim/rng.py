from __future__ import annotations

import logging
import math
import random
import time
from typing import Any

logger = logging.getLogger(__name__)

SEED_MODULUS = 0xFFFFFFFF
SEED_SOURCE_EXPLICIT = "explicit"
SEED_SOURCE_TIME = "time"


def normalize_seed(value: Any) -> int:
    """Coerce a seed into the unsigned 32-bit range used by the session."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("seed must be an integer")
    return value & SEED_MODULUS


def time_derived_seed() -> int:
    return int(time.time() * 1000) % SEED_MODULUS


def _json_list_to_tuple(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_json_list_to_tuple(item) for item in value)
    return value


class RandomService:
    """Single seeded stream shared by generation, AI and combat.

    Every draw in the engine goes through ``next()``; callers must keep their
    call order fixed so a seed reproduces the same maps and fights.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._random = random.Random()
        self._seed = 0
        self.seed_source = SEED_SOURCE_EXPLICIT
        self.draw_count = 0
        if seed is None:
            self.auto_seed()
        else:
            self.reseed(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reseed(self, seed: int) -> None:
        self._seed = normalize_seed(seed)
        self._random.seed(self._seed)
        self.seed_source = SEED_SOURCE_EXPLICIT
        self.draw_count = 0

    def auto_seed(self) -> int:
        seed = time_derived_seed()
        self.reseed(seed)
        self.seed_source = SEED_SOURCE_TIME
        logger.info("no seed supplied; using time-derived seed %d", seed)
        return seed

    def next(self) -> float:
        self.draw_count += 1
        return self._random.random()

    def rand_int(self, lo: int, hi: int) -> int:
        if hi < lo:
            lo, hi = hi, lo
        return int(math.floor(self.next() * (hi - lo + 1))) + lo

    def rand_float(self, lo: float, hi: float, decimals: int = 1) -> float:
        value = lo + self.next() * (hi - lo)
        return round(value, decimals)

    def chance(self, probability: float) -> bool:
        return self.next() < probability

    def choice(self, options: list[Any] | tuple[Any, ...]) -> Any:
        if not options:
            raise ValueError("options must be non-empty")
        return options[self.rand_int(0, len(options) - 1)]

    def state_payload(self) -> dict[str, Any]:
        return {
            "seed": self._seed,
            "seed_source": self.seed_source,
            "draw_count": self.draw_count,
            "state": self._random.getstate(),
        }

    def restore_state(self, payload: dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            raise ValueError("rng_state must be an object")
        self._seed = normalize_seed(int(payload["seed"]))
        self.seed_source = str(payload.get("seed_source", SEED_SOURCE_EXPLICIT))
        self.draw_count = int(payload.get("draw_count", 0))
        self._random.setstate(_json_list_to_tuple(payload["state"]))
