from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from roguecore.content.enemies import DEFAULT_ROSTER, EnemyRoster, pick_template, spawn_enemy
from roguecore.content.loot import BasicLootTable
from roguecore.sim.ai import ChaseCombatAI, WanderSettlementAI
from roguecore.sim.collaborators import FlatFloorGenerator, GeneratedArea, GenerationRequest, WorldGenerator
from roguecore.sim.entities import Enemy, Npc
from roguecore.sim.rng import RandomService
from roguecore.sim.world import (
    DUNGEON_SIZES,
    MODE_DUNGEON,
    MODE_SETTLEMENT,
    MODE_WORLD,
    TILE_DOOR,
    TILE_FLOOR,
    TILE_WALL,
    TILE_WINDOW,
    WORLD_DUNGEON,
    WORLD_FOREST,
    WORLD_GRASS,
    WORLD_MOUNTAIN,
    WORLD_SETTLEMENT,
    WORLD_WATER,
    DungeonSite,
    Grid,
    SettlementSite,
    TileCoord,
    make_grid,
)

WORLD_SETTLEMENT_COUNT = 3
WORLD_DUNGEON_COUNT = 5
WORLD_MAX_DUNGEON_LEVEL = 4
WORLD_TERRAIN_THRESHOLDS = ((0.08, WORLD_WATER), (0.22, WORLD_FOREST), (0.28, WORLD_MOUNTAIN))
SETTLEMENT_NAMES = ("Ashford", "Brindle", "Coldwater", "Dunmere", "Eastwatch", "Fallowby")
NPC_NAMES = ("Aila", "Bram", "Cora", "Dag", "Eero", "Fenna", "Gust", "Hilja")
NPC_ROLES = ("villager", "villager", "merchant", "guard")

ROOM_COUNT_BY_SIZE = {"small": 4, "medium": 6, "large": 8}
ENEMY_BONUS_BY_SIZE = {"small": 0, "medium": 1, "large": 2}
ROOM_WIDTH = (4, 8)
ROOM_HEIGHT = (3, 6)
BUILDING_WIDTH = (4, 7)
BUILDING_HEIGHT = (3, 5)
PLACEMENT_ATTEMPTS = 4


@dataclass(frozen=True)
class Room:
    x: int
    y: int
    w: int
    h: int

    @property
    def center(self) -> tuple[int, int]:
        return self.x + self.w // 2, self.y + self.h // 2

    def overlaps(self, other: "Room", margin: int = 1) -> bool:
        return not (
            self.x + self.w + margin <= other.x
            or other.x + other.w + margin <= self.x
            or self.y + self.h + margin <= other.y
            or other.y + other.h + margin <= self.y
        )

    def tiles(self) -> list[tuple[int, int]]:
        return [(x, y) for y in range(self.y, self.y + self.h) for x in range(self.x, self.x + self.w)]


def _random_room(rng: RandomService, cols: int, rows: int, width: tuple[int, int], height: tuple[int, int]) -> Room | None:
    w = rng.rand_int(*width)
    h = rng.rand_int(*height)
    if w > cols - 2 or h > rows - 2:
        return None
    x = rng.rand_int(1, cols - w - 1)
    y = rng.rand_int(1, rows - h - 1)
    return Room(x, y, w, h)


def _carve_room(grid: Grid, room: Room, tile: int = TILE_FLOOR) -> None:
    for x, y in room.tiles():
        grid[y][x] = tile


def _carve_corridor(grid: Grid, start: tuple[int, int], end: tuple[int, int], horizontal_first: bool) -> None:
    (x0, y0), (x1, y1) = start, end
    corner = (x1, y0) if horizontal_first else (x0, y1)
    for (ax, ay), (bx, by) in ((start, corner), (corner, end)):
        for x in range(min(ax, bx), max(ax, bx) + 1):
            for y in range(min(ay, by), max(ay, by) + 1):
                if grid[y][x] == TILE_WALL:
                    grid[y][x] = TILE_FLOOR


class BasicWorldGenerator(WorldGenerator):
    """Noise-free overworld: scattered terrain plus settlement and dungeon markers."""

    name = "basic_world"

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        rng = request.rng
        cols, rows = request.cols, request.rows
        grid = make_grid(cols, rows, WORLD_GRASS)
        for y in range(rows):
            for x in range(cols):
                roll = rng.next()
                for threshold, tile in WORLD_TERRAIN_THRESHOLDS:
                    if roll < threshold:
                        grid[y][x] = tile
                        break

        start = TileCoord(cols // 2, rows // 2)
        grid[start.y][start.x] = WORLD_GRASS
        taken = {(start.x, start.y)}

        settlements: list[SettlementSite] = []
        for index in range(WORLD_SETTLEMENT_COUNT):
            spot = self._free_spot(rng, cols, rows, taken)
            if spot is None:
                break
            grid[spot[1]][spot[0]] = WORLD_SETTLEMENT
            settlements.append(SettlementSite(x=spot[0], y=spot[1], name=SETTLEMENT_NAMES[index % len(SETTLEMENT_NAMES)]))

        dungeons: list[DungeonSite] = []
        sizes = sorted(DUNGEON_SIZES)
        for _ in range(WORLD_DUNGEON_COUNT):
            spot = self._free_spot(rng, cols, rows, taken)
            if spot is None:
                break
            grid[spot[1]][spot[0]] = WORLD_DUNGEON
            dungeons.append(
                DungeonSite(
                    x=spot[0],
                    y=spot[1],
                    level=rng.rand_int(1, WORLD_MAX_DUNGEON_LEVEL),
                    size=rng.choice(sizes),
                )
            )

        return GeneratedArea(map=grid, start=start, dungeons=dungeons, settlements=settlements, name="overworld")

    @staticmethod
    def _free_spot(rng: RandomService, cols: int, rows: int, taken: set[tuple[int, int]]) -> tuple[int, int] | None:
        for _ in range(cols * rows):
            x = rng.rand_int(1, cols - 2)
            y = rng.rand_int(1, rows - 2)
            if all(abs(x - tx) + abs(y - ty) > 2 for tx, ty in taken):
                taken.add((x, y))
                return x, y
        return None


class BasicDungeonGenerator(WorldGenerator):
    """Rooms joined by L-shaped corridors; enemy count and strength grow with depth."""

    name = "basic_dungeon"

    def __init__(self, roster: EnemyRoster = DEFAULT_ROSTER) -> None:
        self.roster = roster

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        rng = request.rng
        cols, rows = request.cols, request.rows
        size = request.site.size if isinstance(request.site, DungeonSite) else "medium"
        grid = make_grid(cols, rows, TILE_WALL)

        rooms: list[Room] = []
        target = ROOM_COUNT_BY_SIZE.get(size, ROOM_COUNT_BY_SIZE["medium"])
        for _ in range(target * PLACEMENT_ATTEMPTS):
            if len(rooms) >= target:
                break
            room = _random_room(rng, cols, rows, ROOM_WIDTH, ROOM_HEIGHT)
            if room is None or any(room.overlaps(existing) for existing in rooms):
                continue
            _carve_room(grid, room)
            if rooms:
                _carve_corridor(grid, rooms[-1].center, room.center, rng.chance(0.5))
            rooms.append(room)

        if not rooms:
            room = Room(1, 1, cols - 2, rows - 2)
            _carve_room(grid, room)
            rooms.append(room)

        start_x, start_y = rooms[0].center
        enemies = self._spawn_enemies(rng, rooms, request.depth, size, (start_x, start_y))
        return GeneratedArea(map=grid, start=TileCoord(start_x, start_y), enemies=enemies, name=f"{size} dungeon")

    def _spawn_enemies(
        self,
        rng: RandomService,
        rooms: list[Room],
        depth: int,
        size: str,
        start: tuple[int, int],
    ) -> list[Enemy]:
        candidates = rooms[1:] or rooms
        count = 2 + depth + ENEMY_BONUS_BY_SIZE.get(size, 1)
        occupied = {start}
        enemies: list[Enemy] = []
        for _ in range(count):
            room = rng.choice(candidates)
            free = [tile for tile in room.tiles() if tile not in occupied]
            if not free:
                continue
            x, y = rng.choice(free)
            occupied.add((x, y))
            template = pick_template(self.roster, depth, rng)
            enemies.append(spawn_enemy(template, x, y, depth, rng))
        return enemies


class BasicSettlementGenerator(WorldGenerator):
    """Walled town: gate in the south wall, a few houses, a well and wandering NPCs."""

    name = "basic_settlement"

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        rng = request.rng
        cols, rows = request.cols, request.rows
        area = FlatFloorGenerator().generate(request)
        grid = area.map
        gate = TileCoord(cols // 2, rows - 1)
        grid[gate.y][gate.x] = TILE_DOOR

        # Keep the gate column open so the player can always walk in.
        buildings: list[Room] = []
        keep_clear = Room(gate.x - 1, 1, 3, rows - 2)
        for _ in range(6 * PLACEMENT_ATTEMPTS):
            if len(buildings) >= 6:
                break
            room = _random_room(rng, cols - 2, rows - 2, BUILDING_WIDTH, BUILDING_HEIGHT)
            if room is None:
                continue
            room = Room(room.x + 1, room.y + 1, room.w, room.h)
            if room.overlaps(keep_clear, margin=0) or any(room.overlaps(existing) for existing in buildings):
                continue
            self._build_house(grid, room)
            buildings.append(room)

        props = [TileCoord(gate.x, rows // 2)]
        taken = {(gate.x, gate.y), (props[0].x, props[0].y)}
        npcs: list[Npc] = []
        floor_tiles = [(x, y) for y in range(rows) for x in range(cols) if grid[y][x] == TILE_FLOOR and (x, y) not in taken]
        for index in range(rng.rand_int(3, 6)):
            if not floor_tiles:
                break
            x, y = floor_tiles.pop(rng.rand_int(0, len(floor_tiles) - 1))
            npcs.append(Npc(x=x, y=y, name=NPC_NAMES[index % len(NPC_NAMES)], role=rng.choice(NPC_ROLES)))

        name = request.site.name if isinstance(request.site, SettlementSite) and request.site.name else "the village"
        return GeneratedArea(map=grid, start=gate, npcs=npcs, props=props, name=name)

    @staticmethod
    def _build_house(grid: Grid, room: Room) -> None:
        for x, y in room.tiles():
            edge = x in (room.x, room.x + room.w - 1) or y in (room.y, room.y + room.h - 1)
            grid[y][x] = TILE_WALL if edge else TILE_FLOOR
        door_x = room.x + room.w // 2
        grid[room.y + room.h - 1][door_x] = TILE_DOOR
        grid[room.y][door_x] = TILE_WINDOW


class ContentGenerator(WorldGenerator):
    """Routes each request kind to its generator."""

    name = "basic_content"

    def __init__(
        self,
        world: WorldGenerator | None = None,
        dungeon: WorldGenerator | None = None,
        settlement: WorldGenerator | None = None,
    ) -> None:
        self._by_kind: dict[str, WorldGenerator] = {
            MODE_WORLD: world or BasicWorldGenerator(),
            MODE_DUNGEON: dungeon or BasicDungeonGenerator(),
            MODE_SETTLEMENT: settlement or BasicSettlementGenerator(),
        }

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        return self._by_kind[request.kind].generate(request)


def standard_collaborators() -> dict[str, Any]:
    """Keyword arguments for ``GameSession`` wiring in the bundled content."""
    return {
        "generator": ContentGenerator(),
        "combat_ai": ChaseCombatAI(),
        "settlement_ai": WanderSettlementAI(),
        "loot_table": BasicLootTable(),
    }
