from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from roguecore.sim.world import _validate_json_value

ITEM_KINDS = {"equip", "potion", "gold", "misc"}
EQUIPMENT_SLOTS = ("left", "right", "head", "torso", "legs", "hands")
HAND_SLOTS = ("left", "right")
ITEM_SLOTS = {"hand", "head", "torso", "legs", "hands"}
MAX_DECAY = 100.0

DEFAULT_PLAYER_HP = 20.0
DEFAULT_PLAYER_MAX_HP = 40.0
DEFAULT_PLAYER_ATK = 1.0
DEFAULT_XP_NEXT = 20
DEFAULT_STARTING_GOLD = 50
DEFAULT_STARTING_POTION_HEAL = 6
DEFAULT_ENEMY_XP = 5


def capitalize(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def _optional_item(data: Any) -> "Item | None":
    if data is None:
        return None
    return Item.from_dict(data)


@dataclass
class Item:
    kind: str
    name: str
    slot: str | None = None
    atk: float = 0.0
    defense: float = 0.0
    decay: float = 0.0
    two_handed: bool = False
    tier: int = 1
    heal: float = 0.0
    count: int = 1
    amount: int = 0

    def __post_init__(self) -> None:
        if self.kind not in ITEM_KINDS:
            raise ValueError(f"item.kind must be one of: {', '.join(sorted(ITEM_KINDS))}")
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("item.name must be a non-empty string")
        if self.kind == "equip" and self.slot not in ITEM_SLOTS:
            raise ValueError(f"item.slot must be one of: {', '.join(sorted(ITEM_SLOTS))}")
        if not 0.0 <= float(self.decay) <= MAX_DECAY:
            raise ValueError("item.decay must be within [0, 100]")
        if self.two_handed and self.slot != "hand":
            raise ValueError("item.two_handed requires slot 'hand'")
        if not isinstance(self.count, int) or self.count < 0:
            raise ValueError("item.count must be a non-negative integer")

    @property
    def is_torch(self) -> bool:
        return "torch" in self.name.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "slot": self.slot,
            "atk": float(self.atk),
            "def": float(self.defense),
            "decay": float(self.decay),
            "two_handed": self.two_handed,
            "tier": self.tier,
            "heal": float(self.heal),
            "count": self.count,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        if not isinstance(data, dict):
            raise ValueError("item must be an object")
        return cls(
            kind=str(data["kind"]),
            name=str(data["name"]),
            slot=(str(data["slot"]) if data.get("slot") is not None else None),
            atk=float(data.get("atk", 0.0)),
            defense=float(data.get("def", 0.0)),
            decay=float(data.get("decay", 0.0)),
            two_handed=bool(data.get("two_handed", False)),
            tier=int(data.get("tier", 1)),
            heal=float(data.get("heal", 0.0)),
            count=int(data.get("count", 1)),
            amount=int(data.get("amount", 0)),
        )


def make_gold(amount: int) -> Item:
    return Item(kind="gold", name="gold", amount=amount)


def make_potion(heal: float, count: int = 1) -> Item:
    return Item(kind="potion", name=f"potion (+{heal:g} HP)", heal=heal, count=count)


@dataclass
class Player:
    x: int = 0
    y: int = 0
    hp: float = DEFAULT_PLAYER_HP
    max_hp: float = DEFAULT_PLAYER_MAX_HP
    atk: float = DEFAULT_PLAYER_ATK
    level: int = 1
    xp: int = 0
    xp_next: int = DEFAULT_XP_NEXT
    equipment: dict[str, Item | None] = field(default_factory=lambda: {slot: None for slot in EQUIPMENT_SLOTS})
    inventory: list[Item] = field(default_factory=list)
    dazed_turns: int = 0
    bleed_turns: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.level, int) or self.level < 1:
            raise ValueError("player.level must be an integer >= 1")
        if self.max_hp <= 0:
            raise ValueError("player.max_hp must be > 0")
        for slot in EQUIPMENT_SLOTS:
            self.equipment.setdefault(slot, None)
        unknown = set(self.equipment) - set(EQUIPMENT_SLOTS)
        if unknown:
            raise ValueError(f"player.equipment has unknown slots: {', '.join(sorted(unknown))}")

    @classmethod
    def new_game(cls, x: int = 0, y: int = 0) -> "Player":
        return cls(
            x=x,
            y=y,
            inventory=[make_gold(DEFAULT_STARTING_GOLD), make_potion(DEFAULT_STARTING_POTION_HEAL)],
        )

    @property
    def occupies_both_hands(self) -> bool:
        left = self.equipment.get("left")
        return left is not None and left.two_handed

    def hand(self, side: str) -> Item | None:
        """Item held in ``side``; a two-handed weapon answers for both hands."""
        if side not in HAND_SLOTS:
            raise ValueError("side must be 'left' or 'right'")
        if self.occupies_both_hands:
            return self.equipment["left"]
        return self.equipment.get(side)

    def slot_item(self, slot: str) -> Item | None:
        if slot in HAND_SLOTS:
            return self.hand(slot)
        return self.equipment.get(slot)

    def has_torch(self) -> bool:
        return any(item is not None and item.is_torch for item in (self.hand("left"), self.hand("right")))

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "hp": float(self.hp),
            "max_hp": float(self.max_hp),
            "atk": float(self.atk),
            "level": self.level,
            "xp": self.xp,
            "xp_next": self.xp_next,
            "equipment": {
                slot: (item.to_dict() if item is not None else None)
                for slot, item in sorted(self.equipment.items())
            },
            "inventory": [item.to_dict() for item in self.inventory],
            "dazed_turns": self.dazed_turns,
            "bleed_turns": self.bleed_turns,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        if not isinstance(data, dict):
            raise ValueError("player must be an object")
        raw_equipment = data.get("equipment", {})
        if not isinstance(raw_equipment, dict):
            raise ValueError("player.equipment must be an object")
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            hp=float(data["hp"]),
            max_hp=float(data["max_hp"]),
            atk=float(data.get("atk", DEFAULT_PLAYER_ATK)),
            level=int(data.get("level", 1)),
            xp=int(data.get("xp", 0)),
            xp_next=int(data.get("xp_next", DEFAULT_XP_NEXT)),
            equipment={slot: _optional_item(raw_equipment.get(slot)) for slot in EQUIPMENT_SLOTS},
            inventory=[Item.from_dict(row) for row in data.get("inventory", [])],
            dazed_turns=int(data.get("dazed_turns", 0)),
            bleed_turns=int(data.get("bleed_turns", 0)),
        )


def equip_item(player: Player, index: int, hand: str | None = None) -> str | None:
    """Move ``player.inventory[index]`` into its slot.

    Returns the narration line, or None when the item cannot be equipped.
    Displaced items go back to the inventory.
    """
    if index < 0 or index >= len(player.inventory):
        return None
    item = player.inventory[index]
    if item.kind != "equip" or item.slot is None:
        return None
    if hand is not None and hand not in HAND_SLOTS:
        return None

    del player.inventory[index]
    equipment = player.equipment
    if item.slot != "hand":
        previous = equipment.get(item.slot)
        equipment[item.slot] = item
        if previous is not None:
            player.inventory.append(previous)
        return f"You equip {item.name} ({item.slot})."

    if item.two_handed:
        for side in HAND_SLOTS:
            previous = equipment.get(side)
            equipment[side] = None
            if previous is not None:
                player.inventory.append(previous)
        equipment["left"] = item
        return f"You equip {item.name} (two-handed)."

    if player.occupies_both_hands:
        previous_two_handed = equipment["left"]
        equipment["left"] = None
        player.inventory.append(previous_two_handed)
    if hand is None:
        if equipment.get("left") is None:
            hand = "left"
        elif equipment.get("right") is None:
            hand = "right"
        else:
            hand = "left"
    previous = equipment.get(hand)
    equipment[hand] = item
    if previous is not None:
        player.inventory.append(previous)
    return f"You equip {item.name} ({hand})."


def unequip_slot(player: Player, slot: str) -> str | None:
    if slot not in EQUIPMENT_SLOTS:
        return None
    if slot in HAND_SLOTS and player.occupies_both_hands:
        item = player.equipment["left"]
        player.equipment["left"] = None
        player.equipment["right"] = None
        player.inventory.append(item)
        return f"You unequip {item.name} (two-handed)."
    item = player.equipment.get(slot)
    if item is None:
        return None
    player.equipment[slot] = None
    player.inventory.append(item)
    return f"You unequip {item.name}."


@dataclass
class Enemy:
    x: int
    y: int
    type: str
    hp: float
    atk: float
    level: int = 1
    xp: int = DEFAULT_ENEMY_XP
    glyph: str = "e"
    immobile_turns: int = 0
    bleed_turns: int = 0
    announced: bool = False
    last_hit: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            raise ValueError("enemy.type must be a non-empty string")
        if not isinstance(self.level, int) or self.level < 1:
            raise ValueError("enemy.level must be an integer >= 1")
        if self.last_hit is not None:
            _validate_json_value(self.last_hit, field_name="enemy.last_hit")

    @property
    def label(self) -> str:
        return capitalize(self.type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "type": self.type,
            "glyph": self.glyph,
            "hp": float(self.hp),
            "atk": float(self.atk),
            "xp": self.xp,
            "level": self.level,
            "immobile_turns": self.immobile_turns,
            "bleed_turns": self.bleed_turns,
            "announced": self.announced,
            "last_hit": copy.deepcopy(self.last_hit),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Enemy":
        if not isinstance(data, dict):
            raise ValueError("enemy must be an object")
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            type=str(data["type"]),
            glyph=str(data.get("glyph", "e")),
            hp=float(data["hp"]),
            atk=float(data["atk"]),
            xp=int(data.get("xp", DEFAULT_ENEMY_XP)),
            level=int(data.get("level", 1)),
            immobile_turns=int(data.get("immobile_turns", 0)),
            bleed_turns=int(data.get("bleed_turns", 0)),
            announced=bool(data.get("announced", False)),
            last_hit=copy.deepcopy(data.get("last_hit")),
        )


@dataclass
class Npc:
    x: int
    y: int
    name: str
    role: str = "villager"

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "name": self.name, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Npc":
        return cls(x=int(data["x"]), y=int(data["y"]), name=str(data["name"]), role=str(data.get("role", "villager")))


@dataclass
class Corpse:
    x: int
    y: int
    kind: str = "corpse"
    loot: list[Item] = field(default_factory=list)
    looted: bool = False
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _validate_json_value(self.meta, field_name="corpse.meta")

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "kind": self.kind,
            "loot": [item.to_dict() for item in self.loot],
            "looted": self.looted,
            "meta": copy.deepcopy(self.meta),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Corpse":
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            kind=str(data.get("kind", "corpse")),
            loot=[Item.from_dict(row) for row in data.get("loot", [])],
            looted=bool(data.get("looted", False)),
            meta=copy.deepcopy(data.get("meta", {})),
        )


@dataclass
class Decal:
    x: int
    y: int
    a: float
    r: float

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "a": float(self.a), "r": float(self.r)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Decal":
        return cls(x=int(data["x"]), y=int(data["y"]), a=float(data["a"]), r=float(data["r"]))
