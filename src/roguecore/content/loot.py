from __future__ import annotations

from dataclasses import dataclass

from roguecore.sim.collaborators import LootTable
from roguecore.sim.combat import round1
from roguecore.sim.entities import Enemy, Item, make_gold, make_potion
from roguecore.sim.rng import RandomService
from roguecore.sim.status import is_ethereal

GOLD_CHANCE = 0.6
POTION_CHANCE = 0.25
EQUIPMENT_CHANCE = 0.3
CONTAINER_EQUIPMENT_CHANCE = 0.6
TIER_PREFIXES = {1: "rusty", 2: "iron", 3: "steel"}


@dataclass(frozen=True)
class GearTemplate:
    name: str
    slot: str
    atk: float = 0.0
    defense: float = 0.0
    two_handed: bool = False


GEAR_TEMPLATES: tuple[GearTemplate, ...] = (
    GearTemplate("sword", "hand", atk=1.0),
    GearTemplate("dagger", "hand", atk=0.6),
    GearTemplate("axe", "hand", atk=1.6, two_handed=True),
    GearTemplate("shield", "hand", defense=1.0),
    GearTemplate("torch", "hand", atk=0.2),
    GearTemplate("helmet", "head", defense=0.5),
    GearTemplate("armor", "torso", defense=1.0),
    GearTemplate("greaves", "legs", defense=0.5),
    GearTemplate("gloves", "hands", atk=0.2, defense=0.3),
)


def initial_decay(tier: int, rng: RandomService) -> float:
    """Freshly found gear is already worn; better tiers less so."""
    if tier <= 1:
        return rng.rand_float(10, 35, 0)
    if tier == 2:
        return rng.rand_float(5, 20, 0)
    return rng.rand_float(0, 10, 0)


def tier_for_level(level: int) -> int:
    if level <= 2:
        return 1
    if level <= 4:
        return 2
    return 3


def make_gear(template: GearTemplate, tier: int, rng: RandomService) -> Item:
    prefix = TIER_PREFIXES.get(tier, TIER_PREFIXES[3])
    # Torches stay plain so the light bonus still recognises them.
    name = template.name if template.name == "torch" else f"{prefix} {template.name}"
    return Item(
        kind="equip",
        name=name,
        slot=template.slot,
        atk=round1(template.atk * tier),
        defense=round1(template.defense * tier),
        decay=initial_decay(tier, rng),
        two_handed=template.two_handed,
        tier=tier,
    )


class BasicLootTable(LootTable):
    """Gold, potions and tiered gear; enemies drop by level, containers by source name."""

    name = "basic_loot"

    def generate(self, source: Enemy | str, rng: RandomService) -> list[Item]:
        if isinstance(source, Enemy):
            if is_ethereal(source.type):
                return []
            level = source.level
            equipment_chance = EQUIPMENT_CHANCE
        else:
            level = 1
            equipment_chance = CONTAINER_EQUIPMENT_CHANCE

        drops: list[Item] = []
        if rng.chance(GOLD_CHANCE):
            drops.append(make_gold(rng.rand_int(1, 5 * level + 3)))
        if rng.chance(POTION_CHANCE):
            drops.append(make_potion(rng.rand_int(4, 8)))
        if rng.chance(equipment_chance):
            template = rng.choice(GEAR_TEMPLATES)
            drops.append(make_gear(template, tier_for_level(level), rng))
        return drops
