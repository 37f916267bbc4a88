from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from roguecore.sim.core import GameSession, SessionConfig
from roguecore.sim.hash import save_hash, snapshot_hash
from roguecore.sim.persistence import DungeonPersistenceStore, DungeonSnapshot, parse_entrance_key

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
CANONICAL_JSON_INDENT = 2
CANONICAL_JSON_SEPARATORS = (",", ": ")
SNAPSHOT_FILE_SUFFIX = ".dungeon.json"


def _canonical_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload,
        indent=CANONICAL_JSON_INDENT,
        separators=CANONICAL_JSON_SEPARATORS,
        sort_keys=True,
    )


def _write_atomic_json(path: str | Path, payload: dict[str, Any]) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    serialized = _canonical_json(payload)

    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=destination.parent,
            delete=False,
            suffix=".tmp",
        ) as temp_file:
            temp_file.write(serialized)
            temp_file.flush()
            os.fsync(temp_file.fileno())
            temp_path = Path(temp_file.name)
        os.replace(temp_path, destination)
    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def build_save_payload(session: GameSession) -> dict[str, Any]:
    metadata = session.save_metadata if isinstance(session.save_metadata, dict) else {}
    payload: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "session": session.session_payload(),
        "metadata": metadata,
    }
    payload["save_hash"] = save_hash(payload)
    return payload


def verify_save_payload(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("save payload must be an object")
    schema_version = payload.get("schema_version")
    if schema_version != SCHEMA_VERSION:
        raise ValueError(f"unsupported save schema_version: {schema_version}")
    if not isinstance(payload.get("session"), dict):
        raise ValueError("save payload must contain object field: session")
    expected_hash = payload.get("save_hash")
    actual_hash = save_hash(payload)
    if expected_hash != actual_hash:
        raise ValueError(f"save_hash mismatch while loading save (stored={expected_hash}, recomputed={actual_hash})")
    return payload


def session_from_save_payload(payload: dict[str, Any], **collaborators: Any) -> GameSession:
    verify_save_payload(payload)
    session = GameSession.from_session_payload(payload["session"], **collaborators)
    metadata = payload.get("metadata", {})
    session.save_metadata = metadata if isinstance(metadata, dict) else {}
    return session


def save_session_json(path: str | Path, session: GameSession) -> None:
    _write_atomic_json(path, build_save_payload(session))
    logger.info("saved session to %s (turn %d)", path, session.turn_counter)


def load_session_json(path: str | Path, **collaborators: Any) -> GameSession:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return session_from_save_payload(payload, **collaborators)


def load_config_json(path: str | Path) -> SessionConfig:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return SessionConfig.from_dict(payload)


class JsonFileDungeonStore(DungeonPersistenceStore):
    """Dungeon and settlement snapshots as one canonical JSON file per entrance key.

    File names replace the comma with an underscore, e.g. ``10_20.dungeon.json``.
    Each file carries a ``snapshot_hash`` checked on read.
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        x, y = parse_entrance_key(key)
        return self.directory / f"{x}_{y}{SNAPSHOT_FILE_SUFFIX}"

    def keys(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        keys: list[str] = []
        for path in self.directory.glob(f"*{SNAPSHOT_FILE_SUFFIX}"):
            stem = path.name[: -len(SNAPSHOT_FILE_SUFFIX)]
            keys.append(stem.replace("_", ",", 1))
        return sorted(keys)

    def _write(self, key: str, snapshot: DungeonSnapshot) -> None:
        payload = {
            "schema_version": SCHEMA_VERSION,
            "key": key,
            "snapshot": snapshot.to_dict(),
            "snapshot_hash": snapshot_hash(snapshot),
        }
        _write_atomic_json(self._path_for(key), payload)

    def _read(self, key: str) -> DungeonSnapshot | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict) or payload.get("key") != key:
            raise ValueError(f"dungeon snapshot file {path} does not belong to key {key}")
        snapshot = DungeonSnapshot.from_dict(payload["snapshot"])
        if payload.get("snapshot_hash") != snapshot_hash(snapshot):
            raise ValueError(f"snapshot_hash mismatch in {path}")
        return snapshot

    def _delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True
