from __future__ import annotations

import hashlib
import json
from typing import Any

from roguecore.sim.core import GameSession
from roguecore.sim.persistence import DungeonSnapshot
from roguecore.sim.world import WorldState


def _canonical_sha256(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def world_hash(world: WorldState) -> str:
    return _canonical_sha256(world.to_dict())


def snapshot_hash(snapshot: DungeonSnapshot) -> str:
    return _canonical_sha256(snapshot.to_dict())


def save_hash(payload: dict[str, Any]) -> str:
    hash_payload = {
        "schema_version": payload["schema_version"],
        "session": payload["session"],
    }
    return _canonical_sha256(hash_payload)


def session_hash(session: GameSession) -> str:
    """Digest of everything that determines future play; narration is excluded."""
    payload = session.session_payload()
    payload.pop("log_lines", None)
    return _canonical_sha256(payload)
