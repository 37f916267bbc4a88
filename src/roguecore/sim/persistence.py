from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from roguecore.sim.entities import Corpse, Decal, Enemy, Npc
from roguecore.sim.world import DungeonSite, SettlementSite, TileCoord, validate_grid

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1
SNAPSHOT_KINDS = ("dungeon", "settlement")
ENTRANCE_KEY_PATTERN = re.compile(r"^-?\d+,-?\d+$")


def entrance_key(x: int, y: int) -> str:
    return f"{int(x)},{int(y)}"


def parse_entrance_key(key: str) -> tuple[int, int]:
    if not isinstance(key, str) or not ENTRANCE_KEY_PATTERN.match(key):
        raise ValueError("entrance key must look like 'x,y' with integer coordinates")
    raw_x, raw_y = key.split(",", 1)
    return int(raw_x), int(raw_y)


@dataclass
class DungeonSnapshot:
    """Everything needed to restore a dungeon or settlement exactly as it was left.

    ``kind`` selects which site record is required: dungeons carry
    ``dungeon_info`` and a depth, settlements carry ``settlement_info`` and
    their NPCs.
    """

    map: list[list[int]]
    seen: list[list[bool]]
    visible: list[list[bool]]
    exit_anchor: TileCoord
    dungeon_info: DungeonSite | None = None
    depth_level: int = 1
    enemies: list[Enemy] = field(default_factory=list)
    corpses: list[Corpse] = field(default_factory=list)
    decals: list[Decal] = field(default_factory=list)
    kind: str = "dungeon"
    settlement_info: SettlementSite | None = None
    npcs: list[Npc] = field(default_factory=list)
    props: list[TileCoord] = field(default_factory=list)
    name: str = ""

    def __post_init__(self) -> None:
        validate_grid(self.map, field_name="snapshot.map")
        rows = len(self.map)
        cols = len(self.map[0])
        for name, grid in (("snapshot.seen", self.seen), ("snapshot.visible", self.visible)):
            if len(grid) != rows or any(len(row) != cols for row in grid):
                raise ValueError(f"{name} must match snapshot.map shape")
        if not isinstance(self.depth_level, int) or self.depth_level < 1:
            raise ValueError("snapshot.depth_level must be an integer >= 1")
        if self.kind not in SNAPSHOT_KINDS:
            raise ValueError(f"snapshot.kind must be one of: {', '.join(SNAPSHOT_KINDS)}")
        if self.kind == "dungeon" and self.dungeon_info is None:
            raise ValueError("dungeon snapshot requires dungeon_info")
        if self.kind == "settlement" and self.settlement_info is None:
            raise ValueError("settlement snapshot requires settlement_info")

    @property
    def is_settlement(self) -> bool:
        return self.kind == "settlement"

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "kind": self.kind,
            "map": copy.deepcopy(self.map),
            "seen": copy.deepcopy(self.seen),
            "visible": copy.deepcopy(self.visible),
            "enemies": [enemy.to_dict() for enemy in self.enemies],
            "corpses": [corpse.to_dict() for corpse in self.corpses],
            "decals": [decal.to_dict() for decal in self.decals],
            "npcs": [npc.to_dict() for npc in self.npcs],
            "props": [prop.to_dict() for prop in self.props],
            "exit_anchor": self.exit_anchor.to_dict(),
            "dungeon_info": self.dungeon_info.to_dict() if self.dungeon_info is not None else None,
            "settlement_info": self.settlement_info.to_dict() if self.settlement_info is not None else None,
            "depth_level": self.depth_level,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DungeonSnapshot":
        if not isinstance(data, dict):
            raise ValueError("snapshot must be an object")
        schema_version = int(data.get("schema_version", SNAPSHOT_SCHEMA_VERSION))
        if schema_version != SNAPSHOT_SCHEMA_VERSION:
            raise ValueError(f"unsupported snapshot schema_version: {schema_version}")
        dungeon_info = data.get("dungeon_info")
        settlement_info = data.get("settlement_info")
        return cls(
            kind=str(data.get("kind", "dungeon")),
            map=copy.deepcopy(data["map"]),
            seen=[[bool(cell) for cell in row] for row in data["seen"]],
            visible=[[bool(cell) for cell in row] for row in data["visible"]],
            enemies=[Enemy.from_dict(row) for row in data.get("enemies", [])],
            corpses=[Corpse.from_dict(row) for row in data.get("corpses", [])],
            decals=[Decal.from_dict(row) for row in data.get("decals", [])],
            npcs=[Npc.from_dict(row) for row in data.get("npcs", [])],
            props=[TileCoord.from_dict(row) for row in data.get("props", [])],
            exit_anchor=TileCoord.from_dict(data["exit_anchor"]),
            dungeon_info=DungeonSite.from_dict(dungeon_info) if dungeon_info is not None else None,
            settlement_info=SettlementSite.from_dict(settlement_info) if settlement_info is not None else None,
            depth_level=int(data.get("depth_level", 1)),
            name=str(data.get("name", "")),
        )

    def copy(self) -> "DungeonSnapshot":
        return copy.deepcopy(self)


class DungeonPersistenceStore:
    """In-memory keyed snapshot store; one dungeon or settlement snapshot per entrance key.

    Snapshots are deep-copied on the way in and out, so later mutation of the
    live dungeon never leaks into a stored snapshot. Subclasses can back the
    store with durable storage by overriding ``_write``/``_read``/``_delete``.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, DungeonSnapshot] = {}

    def save(self, key: str, snapshot: DungeonSnapshot) -> None:
        parse_entrance_key(key)
        self._write(key, snapshot.copy())
        logger.debug("%s snapshot saved key=%s enemies=%d", snapshot.kind, key, len(snapshot.enemies))

    def load(self, key: str) -> DungeonSnapshot | None:
        parse_entrance_key(key)
        snapshot = self._read(key)
        return snapshot.copy() if snapshot is not None else None

    def has(self, key: str) -> bool:
        return self._read(key) is not None

    def delete(self, key: str) -> bool:
        return self._delete(key)

    def keys(self) -> list[str]:
        return sorted(self._snapshots)

    def clear(self) -> None:
        for key in self.keys():
            self._delete(key)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key in self.keys():
            snapshot = self._read(key)
            if snapshot is not None:
                payload[key] = snapshot.to_dict()
        return payload

    def load_dict(self, payload: dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            raise ValueError("dungeon_snapshots must be an object")
        self.clear()
        for key in sorted(payload):
            self.save(key, DungeonSnapshot.from_dict(payload[key]))

    def _write(self, key: str, snapshot: DungeonSnapshot) -> None:
        self._snapshots[key] = snapshot

    def _read(self, key: str) -> DungeonSnapshot | None:
        return self._snapshots.get(key)

    def _delete(self, key: str) -> bool:
        return self._snapshots.pop(key, None) is not None
