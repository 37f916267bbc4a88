from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from roguecore.sim.entities import MAX_DECAY, Enemy, Player, capitalize
from roguecore.sim.rng import RandomService
from roguecore.sim.status import apply_daze, apply_enemy_bleed, apply_limp, apply_player_bleed, is_ethereal

LIMP_ON_LEG_CRIT_TURNS = 2
BLEED_ON_CRIT_TURNS = 2

CRIT_MULTIPLIER_BASE = 1.6
CRIT_MULTIPLIER_SPAN = 0.4
PLAYER_CRIT_BASE = 0.12
PLAYER_CRIT_CAP = 0.6
ENEMY_CRIT_BASE = 0.10
ENEMY_CRIT_CAP = 0.5

ENEMY_BLOCK_BASE = {"ogre": 0.10, "troll": 0.08}
ENEMY_BLOCK_DEFAULT = 0.06
ENEMY_BLOCK_CAP = 0.35
PLAYER_BLOCK_BASE = 0.08
PLAYER_BLOCK_PER_DEFENSE = 0.06
PLAYER_BLOCK_CAP = 0.6

DEFENSE_SOFTENING = 6.0
MAX_DAMAGE_REDUCTION = 0.85
MIN_DAMAGE = 0.1
ENEMY_LEVEL_DAMAGE_STEP = 0.15

ATTACK_HAND_DECAY = (1.0, 2.2)
ATTACK_HAND_DECAY_LIGHT = (0.6, 1.6)
BLOCKING_HAND_DECAY = (0.6, 1.6)
GLOVE_DECAY_ON_BLOCK = (0.3, 1.0)
ARMOR_WEAR_BY_PART = {
    "torso": (0.8, 2.0),
    "head": (0.3, 1.0),
    "legs": (0.4, 1.3),
    "hands": (0.3, 1.0),
}
CRIT_WEAR_MULTIPLIER = 1.6

PLAYER_HIT_DECAL = 1.0
PLAYER_CRIT_DECAL = 1.6
ENEMY_HIT_DECAL = 1.0
ENEMY_CRIT_DECAL = 1.4

XP_CURVE_FACTOR = 1.3
XP_CURVE_OFFSET = 10
LEVEL_UP_MAX_HP = 2

WOUND_TEXT = {
    "head": ("head crushed into pieces", "wound to the head"),
    "torso": ("deep gash across the torso", "bleeding cut in torso"),
    "legs": ("leg shattered beyond use", "wound to the leg"),
    "hands": ("hands mangled", "cut on the hand"),
}


@dataclass(frozen=True)
class HitLocation:
    part: str
    multiplier: float
    block_modifier: float
    crit_bonus: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "part": self.part,
            "multiplier": self.multiplier,
            "block_modifier": self.block_modifier,
            "crit_bonus": self.crit_bonus,
        }


HIT_PROFILES: dict[str, HitLocation] = {
    "torso": HitLocation("torso", 1.0, 1.0, 0.00),
    "head": HitLocation("head", 1.1, 0.85, 0.15),
    "hands": HitLocation("hands", 0.9, 0.75, -0.05),
    "legs": HitLocation("legs", 0.95, 0.75, -0.03),
}
HIT_LOCATION_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (0.50, "torso"),
    (0.65, "head"),
    (0.80, "hands"),
)
FALLBACK_HIT_PART = "legs"


def round1(value: float) -> float:
    """Round half up to one decimal."""
    return math.floor(value * 10 + 0.5) / 10


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def format_amount(value: float) -> str:
    return f"{value:g}"


class CombatEffects:
    """Side effects combat is allowed to cause outside the fighters themselves.

    The default implementation discards everything, which keeps the resolver
    usable on bare entities.
    """

    def log(self, message: str, severity: str = "info") -> None:
        """Narrate a combat line."""

    def add_blood_decal(self, x: int, y: int, strength: float) -> None:
        """Spawn or intensify blood at a tile."""

    def enemy_died(self, enemy: Enemy) -> None:
        """Called once when an enemy reaches 0 HP."""

    def player_died(self) -> None:
        """Called once when the player reaches 0 HP."""

    def inventory_changed(self) -> None:
        """Called after equipment is destroyed."""


@dataclass
class AttackOutcome:
    attacker: str
    defender: str
    part: str
    blocked: bool = False
    crit: bool = False
    damage: float = 0.0
    killed: bool = False
    defender_hp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "attacker": self.attacker,
            "defender": self.defender,
            "part": self.part,
            "blocked": self.blocked,
            "crit": self.crit,
            "damage": self.damage,
            "killed": self.killed,
            "defender_hp": self.defender_hp,
        }


def roll_hit_location(rng: RandomService, forced_part: str | None = None) -> HitLocation:
    """One draw picks the struck body part; ``forced_part`` overrides the result."""
    roll = rng.next()
    if forced_part is not None:
        if forced_part not in HIT_PROFILES:
            raise ValueError(f"forced_part must be one of: {', '.join(sorted(HIT_PROFILES))}")
        return HIT_PROFILES[forced_part]
    for threshold, part in HIT_LOCATION_THRESHOLDS:
        if roll < threshold:
            return HIT_PROFILES[part]
    return HIT_PROFILES[FALLBACK_HIT_PART]


def crit_multiplier(rng: RandomService) -> float:
    return CRIT_MULTIPLIER_BASE + rng.next() * CRIT_MULTIPLIER_SPAN


def enemy_block_chance(enemy: Enemy, location: HitLocation) -> float:
    base = ENEMY_BLOCK_BASE.get(enemy.type.lower(), ENEMY_BLOCK_DEFAULT)
    return clamp(base * location.block_modifier, 0.0, ENEMY_BLOCK_CAP)


def player_block_chance(player: Player, location: HitLocation) -> float:
    left = player.hand("left")
    right = player.hand("right")
    hand_defense = max(left.defense if left else 0.0, right.defense if right else 0.0)
    base = PLAYER_BLOCK_BASE + hand_defense * PLAYER_BLOCK_PER_DEFENSE
    return clamp(base * location.block_modifier, 0.0, PLAYER_BLOCK_CAP)


def damage_reduction(defense: float) -> float:
    defense = max(0.0, float(defense))
    return clamp(defense / (defense + DEFENSE_SOFTENING), 0.0, MAX_DAMAGE_REDUCTION)


def enemy_damage_after_defense(raw_damage: float, defense: float) -> float:
    """Mitigate incoming damage; at least ``MIN_DAMAGE`` always lands."""
    reduction = damage_reduction(defense)
    return max(MIN_DAMAGE, round1(raw_damage * (1.0 - reduction)))


def enemy_damage_multiplier(level: int) -> float:
    return 1.0 + ENEMY_LEVEL_DAMAGE_STEP * max(0, int(level) - 1)


def player_attack(player: Player) -> float:
    bonus = 0.0
    for item in (player.hand("left"), player.hand("right"), player.equipment.get("hands")):
        if item is not None:
            bonus += item.atk
    level_bonus = (player.level - 1) // 2
    return round1(player.atk + bonus + level_bonus)


def player_defense(player: Player) -> float:
    total = 0.0
    for item in (
        player.hand("left"),
        player.hand("right"),
        player.equipment.get("head"),
        player.equipment.get("torso"),
        player.equipment.get("legs"),
        player.equipment.get("hands"),
    ):
        if item is not None:
            total += item.defense
    return round1(total)


def decay_equipped(player: Player, slot: str, amount: float, effects: CombatEffects) -> bool:
    """Add wear to the item in ``slot``; return True when it broke.

    A two-handed weapon is one record, so wear lands on it once whichever hand
    is named.
    """
    item = player.slot_item(slot)
    if item is None:
        return False
    item.decay = min(MAX_DECAY, round1(item.decay + max(0.0, amount)))
    if item.decay < MAX_DECAY:
        return False
    effects.log(f"{capitalize(item.name)} breaks and is destroyed.", "bad")
    for equipped_slot, equipped in player.equipment.items():
        if equipped is item:
            player.equipment[equipped_slot] = None
    effects.inventory_changed()
    return True


def _attack_hand(player: Player) -> str | None:
    left = player.hand("left")
    right = player.hand("right")
    left_atk = left.atk if left else 0.0
    right_atk = right.atk if right else 0.0
    if left and left_atk >= right_atk and left_atk > 0:
        return "left"
    if right and right_atk > 0:
        return "right"
    if left:
        return "left"
    if right:
        return "right"
    return None


def decay_attack_hands(player: Player, rng: RandomService, effects: CombatEffects, *, light: bool = False) -> bool:
    hand = _attack_hand(player)
    if hand is None:
        return False
    low, high = ATTACK_HAND_DECAY_LIGHT if light else ATTACK_HAND_DECAY
    return decay_equipped(player, hand, rng.rand_float(low, high, 1), effects)


def decay_blocking_hands(player: Player, rng: RandomService, effects: CombatEffects) -> bool:
    left = player.hand("left")
    right = player.hand("right")
    if left is None and right is None:
        return False
    left_def = left.defense if left else -1.0
    right_def = right.defense if right else -1.0
    hand = "right" if right is not None and right_def >= left_def else "left"
    low, high = BLOCKING_HAND_DECAY
    return decay_equipped(player, hand, rng.rand_float(low, high, 1), effects)


def wound_description(part: str | None, crit: bool) -> str:
    if part not in WOUND_TEXT:
        return "bled out" if part is None else "fatal wound"
    crit_text, plain_text = WOUND_TEXT[part]
    return crit_text if crit else plain_text


def threat_label(enemy_level: int, player_level: int) -> tuple[str, str]:
    """Return ``(label, severity)`` for first-sight narration."""
    diff = enemy_level - player_level
    if diff <= -1:
        return "weak", "good"
    if diff == 0:
        return "moderate", "info"
    if diff == 1:
        return "strong", "warn"
    return "deadly", "bad"


def award_experience(player: Player, amount: int, effects: CombatEffects) -> int:
    """Grant XP and apply every level-up it pays for; return levels gained."""
    player.xp += amount
    effects.log(f"You gain {amount} XP.", "info")
    gained = 0
    while player.xp >= player.xp_next:
        player.xp -= player.xp_next
        player.level += 1
        player.max_hp += LEVEL_UP_MAX_HP
        player.hp = player.max_hp
        if player.level % 2 == 0:
            player.atk += 1
        player.xp_next = int(math.floor(player.xp_next * XP_CURVE_FACTOR + XP_CURVE_OFFSET))
        gained += 1
        effects.log(f"You are now level {player.level}. Max HP increased.", "good")
    return gained


def resolve_player_attack(
    rng: RandomService,
    player: Player,
    enemy: Enemy,
    effects: CombatEffects,
    *,
    forced_part: str | None = None,
    always_crit: bool = False,
) -> AttackOutcome:
    """Resolve one melee swing by the player.

    Draw order: hit location, block, crit (skipped when ``always_crit``),
    crit multiplier, decals, then hand wear.
    """
    location = roll_hit_location(rng, forced_part)
    outcome = AttackOutcome(attacker="player", defender=enemy.type, part=location.part)

    if rng.chance(enemy_block_chance(enemy, location)):
        effects.log(f"{enemy.label} blocks your attack to the {location.part}.", "block")
        decay_attack_hands(player, rng, effects, light=True)
        outcome.blocked = True
        outcome.defender_hp = enemy.hp
        return outcome

    damage = player_attack(player) * location.multiplier
    crit_chance = clamp(PLAYER_CRIT_BASE + location.crit_bonus, 0.0, PLAYER_CRIT_CAP)
    crit = always_crit or rng.chance(crit_chance)
    if crit:
        damage *= crit_multiplier(rng)
    damage = max(0.0, round1(damage))
    enemy.hp -= damage

    if damage > 0 and not is_ethereal(enemy.type):
        effects.add_blood_decal(enemy.x, enemy.y, PLAYER_CRIT_DECAL if crit else PLAYER_HIT_DECAL)

    if crit:
        effects.log(f"Critical! You hit the {enemy.type}'s {location.part} for {format_amount(damage)}.", "crit")
    else:
        effects.log(f"You hit the {enemy.type}'s {location.part} for {format_amount(damage)}.", "info")

    weapon = player.hand("right") or player.hand("left")
    enemy.last_hit = {
        "by": "player",
        "part": location.part,
        "crit": crit,
        "via": f"with {weapon.name}" if weapon is not None else "melee",
    }

    if crit and location.part == "legs" and enemy.hp > 0:
        apply_limp(enemy, effects, LIMP_ON_LEG_CRIT_TURNS)
    if crit and enemy.hp > 0:
        apply_enemy_bleed(enemy, effects, BLEED_ON_CRIT_TURNS)

    outcome.crit = crit
    outcome.damage = damage
    outcome.defender_hp = enemy.hp
    if enemy.hp <= 0:
        outcome.killed = True
        effects.enemy_died(enemy)

    decay_attack_hands(player, rng, effects, light=False)
    return outcome


def resolve_enemy_attack(rng: RandomService, enemy: Enemy, player: Player, effects: CombatEffects) -> AttackOutcome:
    """Resolve one melee swing by ``enemy`` against the player."""
    location = roll_hit_location(rng)
    outcome = AttackOutcome(attacker=enemy.type, defender="player", part=location.part)

    if rng.chance(player_block_chance(player, location)):
        effects.log(f"You block the {enemy.type}'s attack to your {location.part}.", "block")
        decay_blocking_hands(player, rng, effects)
        low, high = GLOVE_DECAY_ON_BLOCK
        decay_equipped(player, "hands", rng.rand_float(low, high, 1), effects)
        outcome.blocked = True
        outcome.defender_hp = player.hp
        return outcome

    raw = enemy.atk * enemy_damage_multiplier(enemy.level) * location.multiplier
    crit_chance = clamp(ENEMY_CRIT_BASE + location.crit_bonus, 0.0, ENEMY_CRIT_CAP)
    crit = rng.chance(crit_chance)
    if crit:
        raw *= crit_multiplier(rng)
    damage = enemy_damage_after_defense(raw, player_defense(player))
    player.hp -= damage

    effects.add_blood_decal(player.x, player.y, ENEMY_CRIT_DECAL if crit else ENEMY_HIT_DECAL)
    if crit:
        effects.log(f"Critical! {enemy.label} hits your {location.part} for {format_amount(damage)}.", "crit")
    else:
        effects.log(f"{enemy.label} hits your {location.part} for {format_amount(damage)}.", "info")

    if crit and location.part == "head":
        apply_daze(player, effects, 1 + int(math.floor(rng.next() * 2)))
    if crit:
        apply_player_bleed(player, effects, BLEED_ON_CRIT_TURNS)

    low, high = ARMOR_WEAR_BY_PART.get(location.part, (0.5, 0.5))
    wear = rng.rand_float(low, high, 1)
    decay_equipped(player, location.part, wear * (CRIT_WEAR_MULTIPLIER if crit else 1.0), effects)

    outcome.crit = crit
    outcome.damage = damage
    if player.hp <= 0:
        player.hp = 0
        outcome.killed = True
        effects.player_died()
    outcome.defender_hp = player.hp
    return outcome
