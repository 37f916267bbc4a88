from __future__ import annotations

from typing import Any, Iterable

from roguecore.sim.world import Grid, in_bounds, is_walkable_local

CARDINAL_DIRECTIONS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
ALTERNATE_DIRECTIONS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1), (1, 1), (1, -1), (-1, 1), (-1, -1))
PLAYER_DIRECTIONS: tuple[tuple[int, int], ...] = ALTERNATE_DIRECTIONS


def manhattan(ax: int, ay: int, bx: int, by: int) -> int:
    return abs(ax - bx) + abs(ay - by)


def sign(value: int) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def is_valid_step(dx: int, dy: int) -> bool:
    return (dx, dy) in PLAYER_DIRECTIONS


def approach_steps(from_x: int, from_y: int, to_x: int, to_y: int) -> list[tuple[int, int]]:
    """Dominant-axis step first, then the other axis."""
    dx = to_x - from_x
    dy = to_y - from_y
    sx, sy = sign(dx), sign(dy)
    if abs(dx) > abs(dy):
        steps = [(sx, 0), (0, sy)]
    else:
        steps = [(0, sy), (sx, 0)]
    return [step for step in steps if step != (0, 0)]


class OccupancyGrid:
    """Per-tile occupancy of the active local map.

    Tracks enemies, NPCs, props and the player so movement checks stay O(1).
    """

    def __init__(self, grid: Grid) -> None:
        self._grid = grid
        self._enemies: set[tuple[int, int]] = set()
        self._npcs: set[tuple[int, int]] = set()
        self._props: set[tuple[int, int]] = set()
        self._player: tuple[int, int] = (-1, -1)

    @classmethod
    def build(
        cls,
        grid: Grid,
        *,
        enemies: Iterable[Any] = (),
        npcs: Iterable[Any] = (),
        props: Iterable[Any] = (),
        player: Any | None = None,
    ) -> "OccupancyGrid":
        occupancy = cls(grid)
        if player is not None:
            occupancy.set_player(player.x, player.y)
        for enemy in enemies:
            occupancy.set_enemy(enemy.x, enemy.y)
        for npc in npcs:
            occupancy.set_npc(npc.x, npc.y)
        for prop in props:
            occupancy.set_prop(prop.x, prop.y)
        return occupancy

    def set_player(self, x: int, y: int) -> None:
        self._player = (x, y)

    def set_enemy(self, x: int, y: int) -> None:
        self._enemies.add((x, y))

    def clear_enemy(self, x: int, y: int) -> None:
        self._enemies.discard((x, y))

    def has_enemy(self, x: int, y: int) -> bool:
        return (x, y) in self._enemies

    def move_enemy(self, from_x: int, from_y: int, to_x: int, to_y: int) -> None:
        self.clear_enemy(from_x, from_y)
        self.set_enemy(to_x, to_y)

    def set_npc(self, x: int, y: int) -> None:
        self._npcs.add((x, y))

    def clear_npc(self, x: int, y: int) -> None:
        self._npcs.discard((x, y))

    def has_npc(self, x: int, y: int) -> bool:
        return (x, y) in self._npcs

    def move_npc(self, from_x: int, from_y: int, to_x: int, to_y: int) -> None:
        self.clear_npc(from_x, from_y)
        self.set_npc(to_x, to_y)

    def set_prop(self, x: int, y: int) -> None:
        self._props.add((x, y))

    def has_prop(self, x: int, y: int) -> bool:
        return (x, y) in self._props

    def is_walkable(self, x: int, y: int) -> bool:
        return in_bounds(self._grid, x, y) and is_walkable_local(self._grid[y][x])

    def is_free(self, x: int, y: int, *, ignore_player: bool = False) -> bool:
        if not self.is_walkable(x, y):
            return False
        if not ignore_player and self._player == (x, y):
            return False
        key = (x, y)
        return key not in self._enemies and key not in self._npcs and key not in self._props
