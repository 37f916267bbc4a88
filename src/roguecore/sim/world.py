from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

MODE_WORLD = "world"
MODE_SETTLEMENT = "settlement"
MODE_DUNGEON = "dungeon"
MODES = (MODE_WORLD, MODE_SETTLEMENT, MODE_DUNGEON)

# Local (settlement/dungeon) tile codes.
TILE_WALL = 0
TILE_FLOOR = 1
TILE_DOOR = 2
TILE_STAIRS = 3
TILE_WINDOW = 4
LOCAL_TILES = {TILE_WALL, TILE_FLOOR, TILE_DOOR, TILE_STAIRS, TILE_WINDOW}
WALKABLE_LOCAL_TILES = {TILE_FLOOR, TILE_DOOR, TILE_STAIRS}
OPAQUE_LOCAL_TILES = {TILE_WALL}

# Overworld tile codes.
WORLD_WATER = 0
WORLD_GRASS = 1
WORLD_FOREST = 2
WORLD_MOUNTAIN = 3
WORLD_SETTLEMENT = 4
WORLD_DUNGEON = 5
WORLD_TILES = {WORLD_WATER, WORLD_GRASS, WORLD_FOREST, WORLD_MOUNTAIN, WORLD_SETTLEMENT, WORLD_DUNGEON}
WALKABLE_WORLD_TILES = {WORLD_GRASS, WORLD_FOREST, WORLD_SETTLEMENT, WORLD_DUNGEON}

DUNGEON_SIZES = {"small", "medium", "large"}
DEFAULT_DUNGEON_SIZE = "medium"

Grid = list[list[int]]


def _is_json_primitive(value: Any) -> bool:
    return value is None or isinstance(value, (bool, int, float, str))


def _validate_json_value(value: Any, *, field_name: str) -> None:
    if _is_json_primitive(value):
        return
    if isinstance(value, list):
        for item in value:
            _validate_json_value(item, field_name=field_name)
        return
    if isinstance(value, dict):
        for key, nested_value in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            _validate_json_value(nested_value, field_name=field_name)
        return
    raise ValueError(f"{field_name} must contain only canonical JSON primitives")


def _require_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    return value


def grid_shape(grid: list[list[Any]]) -> tuple[int, int]:
    """Return ``(cols, rows)`` of a row-major grid."""
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    return cols, rows


def in_bounds(grid: list[list[Any]], x: int, y: int) -> bool:
    cols, rows = grid_shape(grid)
    return 0 <= x < cols and 0 <= y < rows


def make_grid(cols: int, rows: int, fill: Any) -> list[list[Any]]:
    return [[fill for _ in range(cols)] for _ in range(rows)]


def validate_grid(grid: Any, *, field_name: str) -> Grid:
    if not isinstance(grid, list) or not grid:
        raise ValueError(f"{field_name} must be a non-empty list of rows")
    width: int | None = None
    for row in grid:
        if not isinstance(row, list) or not row:
            raise ValueError(f"{field_name} rows must be non-empty lists")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise ValueError(f"{field_name} rows must all have the same length")
        for cell in row:
            _require_int(cell, field_name=f"{field_name} cell")
    return grid


def is_walkable_local(tile: int) -> bool:
    return tile in WALKABLE_LOCAL_TILES


def is_walkable_world(tile: int) -> bool:
    return tile in WALKABLE_WORLD_TILES


def is_opaque_local(tile: int) -> bool:
    return tile in OPAQUE_LOCAL_TILES


@dataclass(frozen=True, order=True)
class TileCoord:
    x: int
    y: int

    def __post_init__(self) -> None:
        _require_int(self.x, field_name="x")
        _require_int(self.y, field_name="y")

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TileCoord":
        if not isinstance(data, dict):
            raise ValueError("coord must be an object")
        return cls(x=int(data["x"]), y=int(data["y"]))


@dataclass
class DungeonSite:
    """Overworld dungeon marker with its recorded difficulty."""

    x: int
    y: int
    level: int = 1
    size: str = DEFAULT_DUNGEON_SIZE

    def __post_init__(self) -> None:
        _require_int(self.x, field_name="dungeon.x")
        _require_int(self.y, field_name="dungeon.y")
        if not isinstance(self.level, int) or self.level < 1:
            raise ValueError("dungeon.level must be an integer >= 1")
        if self.size not in DUNGEON_SIZES:
            raise ValueError(f"dungeon.size must be one of: {', '.join(sorted(DUNGEON_SIZES))}")

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "level": self.level, "size": self.size}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DungeonSite":
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            level=int(data.get("level", 1)),
            size=str(data.get("size", DEFAULT_DUNGEON_SIZE)),
        )


@dataclass
class SettlementSite:
    x: int
    y: int
    name: str = ""

    def __post_init__(self) -> None:
        _require_int(self.x, field_name="settlement.x")
        _require_int(self.y, field_name="settlement.y")
        if not isinstance(self.name, str):
            raise ValueError("settlement.name must be a string")

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SettlementSite":
        return cls(x=int(data["x"]), y=int(data["y"]), name=str(data.get("name", "")))


@dataclass
class WorldState:
    """The overworld: terrain grid plus the sites its markers lead to."""

    map: Grid
    dungeons: list[DungeonSite] = field(default_factory=list)
    settlements: list[SettlementSite] = field(default_factory=list)

    def __post_init__(self) -> None:
        validate_grid(self.map, field_name="world.map")

    @property
    def shape(self) -> tuple[int, int]:
        return grid_shape(self.map)

    def tile_at(self, x: int, y: int) -> int | None:
        if not in_bounds(self.map, x, y):
            return None
        return self.map[y][x]

    def dungeon_at(self, x: int, y: int) -> DungeonSite | None:
        for site in self.dungeons:
            if site.x == x and site.y == y:
                return site
        return None

    def settlement_at(self, x: int, y: int) -> SettlementSite | None:
        for site in self.settlements:
            if site.x == x and site.y == y:
                return site
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "map": copy.deepcopy(self.map),
            "dungeons": [site.to_dict() for site in sorted(self.dungeons, key=lambda s: (s.y, s.x))],
            "settlements": [site.to_dict() for site in sorted(self.settlements, key=lambda s: (s.y, s.x))],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorldState":
        if not isinstance(data, dict):
            raise ValueError("world must be an object")
        return cls(
            map=copy.deepcopy(validate_grid(data.get("map"), field_name="world.map")),
            dungeons=[DungeonSite.from_dict(row) for row in data.get("dungeons", [])],
            settlements=[SettlementSite.from_dict(row) for row in data.get("settlements", [])],
        )
