from __future__ import annotations

from roguecore.sim.collaborators import CombatAI, DungeonTurnView, SettlementAI, SettlementTurnView
from roguecore.sim.movement import ALTERNATE_DIRECTIONS, CARDINAL_DIRECTIONS, approach_steps, manhattan
from roguecore.sim.visibility import has_line_of_sight

SENSE_RANGE = 8
ENEMY_WANDER_CHANCE = 0.4
NPC_WANDER_CHANCE = 0.3


class ChaseCombatAI(CombatAI):
    """Adjacent enemies attack, nearby ones in sight close in, the rest wander."""

    name = "chase_combat_ai"

    def __init__(self, sense_range: int = SENSE_RANGE, wander_chance: float = ENEMY_WANDER_CHANCE) -> None:
        self.sense_range = sense_range
        self.wander_chance = wander_chance

    def act_all_enemies(self, view: DungeonTurnView) -> None:
        player = view.player
        for enemy in list(view.enemies):
            if not view.player_alive():
                return
            if enemy.hp <= 0:
                continue
            distance = manhattan(enemy.x, enemy.y, player.x, player.y)
            if distance == 1:
                view.attack_player(enemy)
                continue
            if enemy.immobile_turns > 0:
                enemy.immobile_turns -= 1
                continue
            if distance <= self.sense_range and has_line_of_sight(view.map, enemy.x, enemy.y, player.x, player.y):
                moved = False
                for dx, dy in approach_steps(enemy.x, enemy.y, player.x, player.y):
                    if view.move_enemy(enemy, enemy.x + dx, enemy.y + dy):
                        moved = True
                        break
                if not moved:
                    for dx, dy in ALTERNATE_DIRECTIONS:
                        if view.move_enemy(enemy, enemy.x + dx, enemy.y + dy):
                            break
                continue
            if view.rng.chance(self.wander_chance):
                dx, dy = view.rng.choice(CARDINAL_DIRECTIONS)
                view.move_enemy(enemy, enemy.x + dx, enemy.y + dy)


class WanderSettlementAI(SettlementAI):
    name = "wander_settlement_ai"

    def __init__(self, wander_chance: float = NPC_WANDER_CHANCE) -> None:
        self.wander_chance = wander_chance

    def act_npcs(self, view: SettlementTurnView) -> None:
        for npc in view.npcs:
            if not view.rng.chance(self.wander_chance):
                continue
            dx, dy = view.rng.choice(CARDINAL_DIRECTIONS)
            view.move_npc(npc, npc.x + dx, npc.y + dy)
