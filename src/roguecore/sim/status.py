from __future__ import annotations

import re
from typing import TYPE_CHECKING

from roguecore.sim.entities import Enemy, Player, capitalize

if TYPE_CHECKING:
    from roguecore.sim.combat import CombatEffects

ETHEREAL_PATTERN = re.compile(r"ghost|spirit|wraith|skeleton", re.IGNORECASE)
LIMP_TURNS = 2
BLEED_TURNS = 2
BLEED_DAMAGE = 1
BLEED_DECAL_STRENGTH = 1.0


def is_ethereal(enemy_type: str) -> bool:
    """Ghosts, spirits, wraiths and skeletons neither bleed nor leave blood."""
    return bool(ETHEREAL_PATTERN.search(enemy_type or ""))


def apply_limp(enemy: Enemy, effects: CombatEffects, duration: int = LIMP_TURNS) -> None:
    duration = max(1, int(duration))
    enemy.immobile_turns = max(enemy.immobile_turns, duration)
    effects.log(
        f"{enemy.label} staggers; its legs are crippled and it can't move for {duration} turns.",
        "notice",
    )


def apply_daze(player: Player, effects: CombatEffects, duration: int) -> None:
    duration = max(1, int(duration))
    player.dazed_turns = max(player.dazed_turns, duration)
    plural = "s" if duration > 1 else ""
    effects.log(f"You are dazed and might lose your next action{plural}.", "warn")


def apply_enemy_bleed(enemy: Enemy, effects: CombatEffects, duration: int = BLEED_TURNS) -> None:
    if is_ethereal(enemy.type):
        return
    enemy.bleed_turns = max(enemy.bleed_turns, max(1, int(duration)))
    effects.log(f"{enemy.label} starts bleeding ({enemy.bleed_turns}).", "flavor")


def apply_player_bleed(player: Player, effects: CombatEffects, duration: int = BLEED_TURNS) -> None:
    player.bleed_turns = max(player.bleed_turns, max(1, int(duration)))
    effects.log(f"You are bleeding ({player.bleed_turns}).", "warn")


def tick_status(player: Player, enemies: list[Enemy], effects: CombatEffects) -> list[Enemy]:
    """Advance daze and bleed by one turn.

    Returns the enemies brought to 0 HP by bleeding, in list order; the caller
    routes them through the kill flow. Player death is reported through
    ``effects.player_died``.
    """
    if player.dazed_turns > 0:
        player.dazed_turns = max(0, player.dazed_turns - 1)

    if player.bleed_turns > 0 and player.hp > 0:
        player.bleed_turns -= 1
        player.hp -= BLEED_DAMAGE
        effects.add_blood_decal(player.x, player.y, BLEED_DECAL_STRENGTH)
        if player.hp <= 0:
            player.hp = 0
            effects.player_died()
        else:
            effects.log(f"You bleed ({BLEED_DAMAGE}).", "warn")

    died: list[Enemy] = []
    for enemy in enemies:
        if is_ethereal(enemy.type):
            enemy.bleed_turns = 0
            continue
        if enemy.bleed_turns <= 0:
            continue
        enemy.bleed_turns -= 1
        enemy.hp -= BLEED_DAMAGE
        effects.add_blood_decal(enemy.x, enemy.y, BLEED_DECAL_STRENGTH)
        if enemy.hp <= 0:
            enemy.last_hit = {"by": "status", "part": None, "crit": False, "via": "bleed"}
            died.append(enemy)
        else:
            effects.log(f"{capitalize(enemy.type)} bleeds ({BLEED_DAMAGE}).", "flavor")
    return died
