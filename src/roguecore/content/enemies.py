from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from roguecore.sim.entities import Enemy
from roguecore.sim.rng import RandomService

ROSTER_SCHEMA_VERSION = 1
HP_GROWTH_PER_DEPTH = 0.25
ATK_GROWTH_PER_DEPTH = 0.1


@dataclass(frozen=True)
class EnemyTemplate:
    enemy_type: str
    glyph: str
    hp: float
    atk: float
    xp: int
    min_depth: int
    weight: int


@dataclass(frozen=True)
class EnemyRoster:
    schema_version: int
    templates: tuple[EnemyTemplate, ...]

    def by_type(self) -> dict[str, EnemyTemplate]:
        return {template.enemy_type: template for template in self.templates}

    def eligible(self, depth: int) -> tuple[EnemyTemplate, ...]:
        eligible = tuple(template for template in self.templates if template.min_depth <= depth)
        return eligible or self.templates[:1]


def roster_from_payload(payload: dict[str, Any]) -> EnemyRoster:
    if not isinstance(payload, dict):
        raise ValueError("enemy roster payload must be an object")

    schema_version = payload.get("schema_version")
    if not isinstance(schema_version, int):
        raise ValueError("enemy roster must contain integer field: schema_version")
    if schema_version != ROSTER_SCHEMA_VERSION:
        raise ValueError(f"unsupported enemy roster schema_version: {schema_version}")

    rows = payload.get("enemies")
    if not isinstance(rows, list) or not rows:
        raise ValueError("enemy roster must contain non-empty list field: enemies")

    templates: list[EnemyTemplate] = []
    seen_types: set[str] = set()
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise ValueError(f"enemies[{index}] must be an object")
        enemy_type = row.get("type")
        if not isinstance(enemy_type, str) or not enemy_type:
            raise ValueError(f"enemies[{index}].type must be a non-empty string")
        if enemy_type in seen_types:
            raise ValueError(f"duplicate enemy type: {enemy_type}")
        seen_types.add(enemy_type)

        hp = row.get("hp")
        atk = row.get("atk")
        if not isinstance(hp, (int, float)) or hp <= 0:
            raise ValueError(f"enemies[{index}].hp must be > 0")
        if not isinstance(atk, (int, float)) or atk < 0:
            raise ValueError(f"enemies[{index}].atk must be >= 0")
        weight = row.get("weight", 1)
        if not isinstance(weight, int) or weight < 1:
            raise ValueError(f"enemies[{index}].weight must be an integer >= 1")

        templates.append(
            EnemyTemplate(
                enemy_type=enemy_type,
                glyph=str(row.get("glyph", enemy_type[:1])),
                hp=float(hp),
                atk=float(atk),
                xp=int(row.get("xp", 5)),
                min_depth=int(row.get("min_depth", 1)),
                weight=weight,
            )
        )

    return EnemyRoster(schema_version=schema_version, templates=tuple(templates))


def load_roster_json(path: str | Path) -> EnemyRoster:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return roster_from_payload(payload)


DEFAULT_ROSTER = roster_from_payload(
    {
        "schema_version": ROSTER_SCHEMA_VERSION,
        "enemies": [
            {"type": "goblin", "glyph": "g", "hp": 3, "atk": 1, "xp": 5, "min_depth": 1, "weight": 6},
            {"type": "rat", "glyph": "r", "hp": 2, "atk": 0.6, "xp": 3, "min_depth": 1, "weight": 4},
            {"type": "skeleton", "glyph": "s", "hp": 4, "atk": 1.2, "xp": 7, "min_depth": 2, "weight": 3},
            {"type": "bandit", "glyph": "b", "hp": 5, "atk": 1.5, "xp": 9, "min_depth": 2, "weight": 3},
            {"type": "ghost", "glyph": "G", "hp": 4, "atk": 1.4, "xp": 10, "min_depth": 3, "weight": 2},
            {"type": "troll", "glyph": "T", "hp": 8, "atk": 2.0, "xp": 15, "min_depth": 3, "weight": 2},
            {"type": "ogre", "glyph": "O", "hp": 10, "atk": 2.5, "xp": 20, "min_depth": 4, "weight": 1},
        ],
    }
)


def pick_template(roster: EnemyRoster, depth: int, rng: RandomService) -> EnemyTemplate:
    """Weighted pick among templates allowed at ``depth``; one draw."""
    eligible = roster.eligible(depth)
    total = sum(template.weight for template in eligible)
    roll = rng.rand_int(1, total)
    for template in eligible:
        roll -= template.weight
        if roll <= 0:
            return template
    return eligible[-1]


def spawn_enemy(template: EnemyTemplate, x: int, y: int, depth: int, rng: RandomService) -> Enemy:
    growth = max(0, depth - 1)
    level = max(1, depth + rng.rand_int(-1, 1) - (1 if template.min_depth > 1 else 0))
    return Enemy(
        x=x,
        y=y,
        type=template.enemy_type,
        glyph=template.glyph,
        hp=round(template.hp * (1.0 + HP_GROWTH_PER_DEPTH * growth), 1),
        atk=round(template.atk * (1.0 + ATK_GROWTH_PER_DEPTH * growth), 1),
        xp=template.xp + 2 * growth,
        level=level,
    )
