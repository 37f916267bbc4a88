from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from roguecore.sim.entities import Enemy, Item, Npc, Player
from roguecore.sim.movement import OccupancyGrid
from roguecore.sim.rng import RandomService
from roguecore.sim.world import (
    MODE_WORLD,
    TILE_FLOOR,
    TILE_WALL,
    WORLD_GRASS,
    DungeonSite,
    Grid,
    SettlementSite,
    TileCoord,
    in_bounds,
    make_grid,
)

if TYPE_CHECKING:
    from roguecore.sim.combat import AttackOutcome
    from roguecore.sim.core import GameSession

GENERATION_KINDS = {"world", "dungeon", "settlement"}


@dataclass
class GenerationRequest:
    """What the session asks a generator for.

    ``rng`` is the session's RandomService; generators must draw only from it.
    """

    kind: str
    cols: int
    rows: int
    rng: RandomService
    depth: int = 1
    site: DungeonSite | SettlementSite | None = None

    def __post_init__(self) -> None:
        if self.kind not in GENERATION_KINDS:
            raise ValueError(f"kind must be one of: {', '.join(sorted(GENERATION_KINDS))}")
        if not isinstance(self.cols, int) or self.cols < 3:
            raise ValueError("cols must be an integer >= 3")
        if not isinstance(self.rows, int) or self.rows < 3:
            raise ValueError("rows must be an integer >= 3")


@dataclass
class GeneratedArea:
    map: Grid
    start: TileCoord
    enemies: list[Enemy] = field(default_factory=list)
    npcs: list[Npc] = field(default_factory=list)
    props: list[TileCoord] = field(default_factory=list)
    dungeons: list[DungeonSite] = field(default_factory=list)
    settlements: list[SettlementSite] = field(default_factory=list)
    name: str = ""

    def validate(self) -> None:
        if not self.map or not self.map[0]:
            raise ValueError("generated map must be non-empty")
        if not in_bounds(self.map, self.start.x, self.start.y):
            raise ValueError("generated start must lie inside the map")


@dataclass
class DungeonTurnView:
    """The slice of a dungeon turn an AI collaborator may touch."""

    rng: RandomService
    map: Grid
    player: Player
    enemies: list[Enemy]
    occupancy: OccupancyGrid
    attack_player: Callable[[Enemy], AttackOutcome]

    def player_alive(self) -> bool:
        return self.player.hp > 0

    def is_free(self, x: int, y: int) -> bool:
        return self.occupancy.is_free(x, y)

    def move_enemy(self, enemy: Enemy, x: int, y: int) -> bool:
        if not self.occupancy.is_free(x, y):
            return False
        self.occupancy.move_enemy(enemy.x, enemy.y, x, y)
        enemy.x = x
        enemy.y = y
        return True


@dataclass
class SettlementTurnView:
    rng: RandomService
    map: Grid
    player: Player
    npcs: list[Npc]
    occupancy: OccupancyGrid
    tick: int

    def move_npc(self, npc: Npc, x: int, y: int) -> bool:
        if not self.occupancy.is_free(x, y):
            return False
        self.occupancy.move_npc(npc.x, npc.y, x, y)
        npc.x = x
        npc.y = y
        return True


class WorldGenerator:
    """Produces overworld, settlement and dungeon layouts on request."""

    name = "world_generator"

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        raise NotImplementedError


class FlatFloorGenerator(WorldGenerator):
    """Fallback layout: open terrain with a wall border and nothing in it."""

    name = "flat_floor"

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        start = TileCoord(request.cols // 2, request.rows // 2)
        if request.kind == MODE_WORLD:
            return GeneratedArea(map=make_grid(request.cols, request.rows, WORLD_GRASS), start=start)
        grid = make_grid(request.cols, request.rows, TILE_FLOOR)
        for x in range(request.cols):
            grid[0][x] = TILE_WALL
            grid[request.rows - 1][x] = TILE_WALL
        for y in range(request.rows):
            grid[y][0] = TILE_WALL
            grid[y][request.cols - 1] = TILE_WALL
        return GeneratedArea(map=grid, start=start)


class CombatAI:
    """Acts every live enemy once per dungeon turn. The base class does nothing."""

    name = "idle_combat_ai"

    def act_all_enemies(self, view: DungeonTurnView) -> None:
        """Move enemies and request attacks through ``view.attack_player``."""


class SettlementAI:
    name = "idle_settlement_ai"

    def act_npcs(self, view: SettlementTurnView) -> None:
        """Move settlement NPCs for one tick."""


class LootTable:
    name = "empty_loot"

    def generate(self, source: Enemy | str, rng: RandomService) -> list[Item]:
        """Return the ordered drop for ``source``."""
        return []


class SessionObserver:
    """UI-side listener. Hooks are called synchronously, in registration order."""

    def on_stats_changed(self, session: GameSession) -> None:
        """Player stats, inventory or equipment may have changed."""

    def on_log(self, message: str, severity: str) -> None:
        """A narrated log line was produced."""

    def on_player_died(self, session: GameSession) -> None:
        """The player reached 0 HP."""

    def on_enemy_died(self, enemy: Enemy) -> None:
        """``enemy`` died and has become a corpse."""

    def on_redraw_needed(self, session: GameSession) -> None:
        """State changed in a way the view should redraw."""


class RecordingObserver(SessionObserver):
    """Keeps every notification; handy for headless runs and tests."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_stats_changed(self, session: GameSession) -> None:
        self.events.append(("stats_changed", session.turn_counter))

    def on_log(self, message: str, severity: str) -> None:
        self.events.append(("log", (message, severity)))

    def on_player_died(self, session: GameSession) -> None:
        self.events.append(("player_died", session.turn_counter))

    def on_enemy_died(self, enemy: Enemy) -> None:
        self.events.append(("enemy_died", enemy.type))

    def on_redraw_needed(self, session: GameSession) -> None:
        self.events.append(("redraw_needed", session.turn_counter))

    def logs(self) -> list[tuple[str, str]]:
        return [payload for kind, payload in self.events if kind == "log"]

    def count(self, kind: str) -> int:
        return sum(1 for event_kind, _ in self.events if event_kind == kind)
