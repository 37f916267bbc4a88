from __future__ import annotations

import copy
from typing import Any, Callable

from roguecore.sim.world import MODE_WORLD, Grid, grid_shape, in_bounds, is_opaque_local, make_grid

DEFAULT_FOV_RADIUS = 8
OCTANT_TRANSFORMS: tuple[tuple[int, int, int, int], ...] = (
    (1, 0, 0, 1),
    (1, 0, 0, -1),
    (-1, 0, 0, 1),
    (-1, 0, 0, -1),
    (0, 1, 1, 0),
    (0, 1, -1, 0),
    (0, -1, 1, 0),
    (0, -1, -1, 0),
)

BoolGrid = list[list[bool]]


def _copy_bool_grid(grid: Any, *, field_name: str) -> BoolGrid:
    if not isinstance(grid, list):
        raise ValueError(f"{field_name} must be a list of rows")
    copied: BoolGrid = []
    for row in grid:
        if not isinstance(row, list):
            raise ValueError(f"{field_name} rows must be lists")
        copied.append([bool(cell) for cell in row])
    return copied


def cast_shadows(
    grid: Grid,
    origin_x: int,
    origin_y: int,
    radius: int,
    mark: Callable[[int, int], None],
    *,
    is_opaque: Callable[[int], bool] = is_opaque_local,
) -> None:
    """Symmetric recursive shadowcasting over the eight octants.

    ``mark`` is called for every lit in-bounds tile, the origin included.
    Tiles outside the grid count as opaque.
    """
    radius = max(1, int(radius))
    radius_sq = radius * radius

    def opaque(x: int, y: int) -> bool:
        if not in_bounds(grid, x, y):
            return True
        return is_opaque(grid[y][x])

    def cast_light(row: int, start: float, end: float, xx: int, xy: int, yx: int, yy: int) -> None:
        if start < end:
            return
        for distance in range(row, radius + 1):
            dx = -distance - 1
            dy = -distance
            blocked = False
            new_start = start
            while dx <= 0:
                dx += 1
                x = origin_x + dx * xx + dy * xy
                y = origin_y + dx * yx + dy * yy
                left_slope = (dx - 0.5) / (dy + 0.5)
                right_slope = (dx + 0.5) / (dy - 0.5)
                if start < right_slope:
                    continue
                if end > left_slope:
                    break
                if dx * dx + dy * dy <= radius_sq and in_bounds(grid, x, y):
                    mark(x, y)
                if blocked:
                    if opaque(x, y):
                        new_start = right_slope
                        continue
                    blocked = False
                    start = new_start
                elif opaque(x, y) and distance < radius:
                    blocked = True
                    cast_light(distance + 1, start, left_slope, xx, xy, yx, yy)
                    new_start = right_slope
            if blocked:
                break

    if in_bounds(grid, origin_x, origin_y):
        mark(origin_x, origin_y)
    for xx, xy, yx, yy in OCTANT_TRANSFORMS:
        cast_light(1, 1.0, 0.0, xx, xy, yx, yy)


def has_line_of_sight(
    grid: Grid,
    x0: int,
    y0: int,
    x1: int,
    y1: int,
    *,
    is_opaque: Callable[[int], bool] = is_opaque_local,
) -> bool:
    """Bresenham walk from one tile to another; only tiles strictly between the ends can block."""
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    x, y = x0, y0
    while (x, y) != (x1, y1):
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x += sx
        if e2 <= dx:
            err += dx
            y += sy
        if (x, y) == (x1, y1):
            break
        if not in_bounds(grid, x, y) or is_opaque(grid[y][x]):
            return False
    return True


class VisibilityCache:
    """``seen``/``visible`` grids for the current map plus the inputs that produced them.

    ``recompute`` is a no-op outside the overworld while position, radius,
    mode and map shape are unchanged.
    """

    def __init__(self) -> None:
        self.seen: BoolGrid = []
        self.visible: BoolGrid = []
        self._cache_key: tuple[int, int, int, str, int, int] | None = None
        self.sweep_count = 0

    @property
    def shape(self) -> tuple[int, int]:
        return grid_shape(self.visible)

    @property
    def cache_key(self) -> tuple[int, int, int, str, int, int] | None:
        return self._cache_key

    def invalidate(self) -> None:
        self._cache_key = None

    def ensure_shape(self, cols: int, rows: int) -> bool:
        """Reallocate both grids all-false when their shape differs; return True if reallocated."""
        if grid_shape(self.seen) == (cols, rows) and grid_shape(self.visible) == (cols, rows):
            return False
        self.seen = make_grid(cols, rows, False)
        self.visible = make_grid(cols, rows, False)
        self._cache_key = None
        return True

    def recompute(
        self,
        grid: Grid,
        player_x: int,
        player_y: int,
        radius: int,
        mode: str,
        *,
        force: bool = False,
    ) -> bool:
        """Refresh visibility; return True when the grids were rewritten."""
        cols, rows = grid_shape(grid)
        key = (player_x, player_y, int(radius), mode, cols, rows)

        if mode == MODE_WORLD:
            self.ensure_shape(cols, rows)
            for y in range(rows):
                visible_row = self.visible[y]
                seen_row = self.seen[y]
                for x in range(cols):
                    visible_row[x] = True
                    seen_row[x] = True
            self._cache_key = key
            return True

        shape_changed = self.ensure_shape(cols, rows)
        if not force and not shape_changed and key == self._cache_key:
            return False

        for row in self.visible:
            for x in range(len(row)):
                row[x] = False

        def mark(x: int, y: int) -> None:
            self.visible[y][x] = True
            self.seen[y][x] = True

        cast_shadows(grid, player_x, player_y, radius, mark)
        self.sweep_count += 1
        self._cache_key = key
        return True

    def is_visible(self, x: int, y: int) -> bool:
        return in_bounds(self.visible, x, y) and self.visible[y][x]

    def is_seen(self, x: int, y: int) -> bool:
        return in_bounds(self.seen, x, y) and self.seen[y][x]

    def mark_visible(self, x: int, y: int) -> None:
        if in_bounds(self.visible, x, y):
            self.visible[y][x] = True
            self.seen[y][x] = True

    def load(self, seen: Any, visible: Any) -> None:
        """Adopt persisted grids; the next ``recompute`` always sweeps."""
        self.seen = _copy_bool_grid(seen, field_name="seen")
        self.visible = _copy_bool_grid(visible, field_name="visible")
        self._cache_key = None

    def reset(self) -> None:
        self.seen = []
        self.visible = []
        self._cache_key = None

    def to_dict(self) -> dict[str, Any]:
        return {"seen": copy.deepcopy(self.seen), "visible": copy.deepcopy(self.visible)}
