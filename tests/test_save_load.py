import json
from pathlib import Path

import pytest

from roguecore.content.generators import standard_collaborators
from roguecore.content.io import (
    JsonFileDungeonStore,
    build_save_payload,
    load_config_json,
    load_session_json,
    save_session_json,
)
from roguecore.sim.collaborators import CombatAI, FlatFloorGenerator, GeneratedArea, GenerationRequest, LootTable, SettlementAI, WorldGenerator
from roguecore.sim.core import GameSession, SessionConfig
from roguecore.sim.hash import save_hash, session_hash
from roguecore.sim.entities import Enemy
from roguecore.sim.persistence import DungeonPersistenceStore
from roguecore.sim.world import MODE_DUNGEON, MODE_WORLD, WORLD_DUNGEON, WORLD_GRASS, DungeonSite, TileCoord, make_grid


class OneDungeonGenerator(WorldGenerator):
    name = "one_dungeon"

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        if request.kind == MODE_WORLD:
            grid = make_grid(request.cols, request.rows, WORLD_GRASS)
            grid[20][10] = WORLD_DUNGEON
            return GeneratedArea(map=grid, start=TileCoord(10, 20), dungeons=[DungeonSite(x=10, y=20)])
        area = FlatFloorGenerator().generate(request)
        area.enemies = [Enemy(x=25, y=12, type="goblin", hp=3.0, atk=1.0)]
        return area


def _collaborators() -> dict:
    return {
        "generator": OneDungeonGenerator(),
        "combat_ai": CombatAI(),
        "settlement_ai": SettlementAI(),
        "loot_table": LootTable(),
    }


def test_save_then_load_round_trip_matches_session_hash(tmp_path: Path) -> None:
    session = GameSession(123, **standard_collaborators())
    session.move(1, 0)
    session.move(0, 1)
    before = session_hash(session)

    out_path = tmp_path / "session_save.json"
    save_session_json(out_path, session)
    loaded = load_session_json(out_path, **standard_collaborators())

    assert session_hash(loaded) == before
    assert loaded.turn_counter == session.turn_counter
    assert loaded.log_lines == session.log_lines


def test_loaded_session_continues_like_the_original(tmp_path: Path) -> None:
    session = GameSession(321, **standard_collaborators())
    session.wait()
    out_path = tmp_path / "session_save.json"
    save_session_json(out_path, session)
    loaded = load_session_json(out_path, **standard_collaborators())

    for target in (session, loaded):
        target.wait()
        target.move(-1, 0)

    assert session_hash(loaded) == session_hash(session)


def test_save_includes_schema_version_and_save_hash(tmp_path: Path) -> None:
    session = GameSession(7, **_collaborators())
    out_path = tmp_path / "session_save.json"

    save_session_json(out_path, session)
    payload = json.loads(out_path.read_text(encoding="utf-8"))

    assert payload["schema_version"] == 1
    assert payload["save_hash"] == save_hash(payload)
    assert payload["session"]["seed"] == 7


def test_loader_fails_when_save_hash_does_not_match(tmp_path: Path) -> None:
    session = GameSession(7, **_collaborators())
    out_path = tmp_path / "session_save.json"
    save_session_json(out_path, session)

    payload = json.loads(out_path.read_text(encoding="utf-8"))
    payload["session"]["player"]["hp"] = 999.0
    out_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="save_hash mismatch"):
        load_session_json(out_path, **_collaborators())


def test_loader_rejects_unknown_schema_version(tmp_path: Path) -> None:
    payload = build_save_payload(GameSession(7, **_collaborators()))
    payload["schema_version"] = 2
    out_path = tmp_path / "session_save.json"
    out_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="unsupported save schema_version"):
        load_session_json(out_path, **_collaborators())


def test_dungeon_mode_save_restores_area_and_snapshots(tmp_path: Path) -> None:
    session = GameSession(11, **_collaborators())
    session.enter_location()
    session.move(1, 0)
    out_path = tmp_path / "session_save.json"

    save_session_json(out_path, session)
    loaded = load_session_json(out_path, **_collaborators())

    assert loaded.mode == MODE_DUNGEON
    assert (loaded.player.x, loaded.player.y) == (session.player.x, session.player.y)
    assert loaded.store.keys() == ["10,20"]
    assert loaded.visibility.is_seen(21, 12)
    assert loaded.move(-1, 0) is True
    assert loaded.exit_area() is True
    assert loaded.mode == MODE_WORLD


def test_memory_store_isolates_snapshots_from_live_dungeon() -> None:
    store = DungeonPersistenceStore()
    session = GameSession(3, store=store, **_collaborators())
    session.enter_location()

    session.area.enemies[0].hp = 0.5
    stored = store.load("10,20")

    assert stored is not None
    assert stored.enemies[0].hp == 3.0


def test_file_store_writes_one_hashed_file_per_entrance(tmp_path: Path) -> None:
    store = JsonFileDungeonStore(tmp_path / "dungeons")
    session = GameSession(3, store=store, **_collaborators())

    session.enter_location()
    session.wait()

    path = tmp_path / "dungeons" / "10_20.dungeon.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["key"] == "10,20"
    assert "snapshot_hash" in payload
    assert store.keys() == ["10,20"]

    session.exit_area()
    assert session.enter_location() is True
    assert session.area.enemies[0].type == "goblin"


def test_file_store_detects_tampering(tmp_path: Path) -> None:
    store = JsonFileDungeonStore(tmp_path)
    session = GameSession(3, store=store, **_collaborators())
    session.enter_location()

    path = tmp_path / "10_20.dungeon.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    payload["snapshot"]["enemies"][0]["hp"] = 50.0
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(ValueError, match="snapshot_hash mismatch"):
        store.load("10,20")


def test_corrupt_snapshot_regenerates_dungeon_with_warning(tmp_path: Path) -> None:
    store = JsonFileDungeonStore(tmp_path)
    session = GameSession(3, store=store, **_collaborators())
    session.enter_location()
    session.exit_area()

    (tmp_path / "10_20.dungeon.json").write_text("{}", encoding="utf-8")

    assert session.enter_location() is True
    assert session.mode == MODE_DUNGEON
    assert "The way into this dungeon has changed." in [line["message"] for line in session.log_lines]


def test_file_store_delete_and_restart_clear_files(tmp_path: Path) -> None:
    store = JsonFileDungeonStore(tmp_path)
    session = GameSession(3, store=store, **_collaborators())
    session.enter_location()

    assert store.delete("10,20") is True
    assert store.delete("10,20") is False

    session.save_dungeon_state()
    session.restart()

    assert list(tmp_path.glob("*.dungeon.json")) == []


def test_config_json_round_trip_and_unknown_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"fov_radius": 5, "decal_fade": 0.5}), encoding="utf-8")

    config = load_config_json(config_path)

    assert config.fov_radius == 5
    assert config.decal_fade == 0.5
    assert config.world_cols == SessionConfig().world_cols

    config_path.write_text(json.dumps({"fov": 5}), encoding="utf-8")
    with pytest.raises(ValueError, match="config has unknown fields: fov"):
        load_config_json(config_path)


def test_config_rejects_invalid_values() -> None:
    with pytest.raises(ValueError, match="fov_radius must be an integer >= 1"):
        SessionConfig(fov_radius=0)
    with pytest.raises(ValueError, match="decal_fade must be within"):
        SessionConfig(decal_fade=1.5)
