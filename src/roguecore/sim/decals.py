from __future__ import annotations

from roguecore.sim.entities import Decal
from roguecore.sim.rng import RandomService
from roguecore.sim.world import Grid, in_bounds

DECAL_MAX_ALPHA = 0.9
DECAL_BASE_ALPHA_MIN = 0.16
DECAL_BASE_ALPHA_SPAN = 0.18
DECAL_BASE_RADIUS_MIN = 0.32
DECAL_BASE_RADIUS_SPAN = 0.20
DEFAULT_DECAL_FADE = 0.92
DEFAULT_DECAL_MIN_ALPHA = 0.04
DEFAULT_DECAL_CAP = 240


def add_blood_decal(
    decals: list[Decal],
    grid: Grid,
    rng: RandomService,
    x: int,
    y: int,
    strength: float = 1.0,
    *,
    cap: int = DEFAULT_DECAL_CAP,
) -> Decal | None:
    """Add or intensify a blood pool at ``(x, y)``; radius is a fraction of a tile."""
    if not in_bounds(grid, x, y):
        return None
    base_alpha = DECAL_BASE_ALPHA_MIN + rng.next() * DECAL_BASE_ALPHA_SPAN
    base_radius = round(DECAL_BASE_RADIUS_MIN + rng.next() * DECAL_BASE_RADIUS_SPAN, 3)
    for decal in decals:
        if decal.x == x and decal.y == y:
            decal.a = min(DECAL_MAX_ALPHA, decal.a + base_alpha * strength)
            decal.r = max(decal.r, base_radius)
            return decal
    decal = Decal(x=x, y=y, a=min(DECAL_MAX_ALPHA, base_alpha * strength), r=base_radius)
    decals.append(decal)
    if len(decals) > cap:
        del decals[: len(decals) - cap]
    return decal


def fade_decals(
    decals: list[Decal],
    *,
    fade: float = DEFAULT_DECAL_FADE,
    min_alpha: float = DEFAULT_DECAL_MIN_ALPHA,
) -> list[Decal]:
    for decal in decals:
        decal.a *= fade
    return [decal for decal in decals if decal.a > min_alpha]
