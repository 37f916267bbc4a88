from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from roguecore.sim.collaborators import (
    CombatAI,
    DungeonTurnView,
    FlatFloorGenerator,
    GeneratedArea,
    GenerationRequest,
    LootTable,
    SessionObserver,
    SettlementAI,
    SettlementTurnView,
    WorldGenerator,
)
from roguecore.sim.combat import (
    AttackOutcome,
    CombatEffects,
    award_experience,
    resolve_enemy_attack,
    resolve_player_attack,
    threat_label,
    wound_description,
)
from roguecore.sim.decals import add_blood_decal, fade_decals
from roguecore.sim.entities import (
    Corpse,
    Decal,
    Enemy,
    Item,
    Npc,
    Player,
    capitalize,
    equip_item,
    unequip_slot,
)
from roguecore.sim.movement import CARDINAL_DIRECTIONS, OccupancyGrid, is_valid_step
from roguecore.sim.persistence import DungeonPersistenceStore, DungeonSnapshot, entrance_key
from roguecore.sim.rng import RandomService
from roguecore.sim.status import tick_status
from roguecore.sim.visibility import VisibilityCache
from roguecore.sim.world import (
    MODE_DUNGEON,
    MODE_SETTLEMENT,
    MODE_WORLD,
    MODES,
    TILE_STAIRS,
    WORLD_DUNGEON,
    WORLD_GRASS,
    WORLD_SETTLEMENT,
    DungeonSite,
    Grid,
    SettlementSite,
    TileCoord,
    WorldState,
    _validate_json_value,
    grid_shape,
    in_bounds,
    is_walkable_world,
    validate_grid,
)

logger = logging.getLogger(__name__)

SESSION_SCHEMA_VERSION = 1
COMMAND_TYPES = {"move", "wait", "enter", "exit", "drink", "equip", "unequip", "loot", "save_dungeon", "restart"}
MODE_TRANSITION_EVENT_TYPE = "mode_transition"
ATTACK_OUTCOME_EVENT_TYPE = "attack_outcome"
ENEMY_DIED_EVENT_TYPE = "enemy_died"
LEVEL_UP_EVENT_TYPE = "level_up"
ITEM_BROKEN_EVENT_TYPE = "item_broken"
PLAYER_DIED_EVENT_TYPE = "player_died"
MAX_SOLO_ANNOUNCEMENTS = 2


@dataclass
class SessionConfig:
    fov_radius: int = 8
    torch_fov_bonus: int = 1
    world_cols: int = 48
    world_rows: int = 32
    dungeon_cols: int = 40
    dungeon_rows: int = 24
    settlement_cols: int = 32
    settlement_rows: int = 20
    corpse_cap: int = 50
    decal_fade: float = 0.92
    decal_min_alpha: float = 0.04
    decal_cap: int = 240
    settlement_occupancy_stride: int = 2
    max_log_lines: int = 200
    max_event_trace: int = 256

    def __post_init__(self) -> None:
        for name in ("fov_radius", "corpse_cap", "decal_cap", "settlement_occupancy_stride", "max_log_lines", "max_event_trace"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be an integer >= 1")
        if not isinstance(self.torch_fov_bonus, int) or self.torch_fov_bonus < 0:
            raise ValueError("torch_fov_bonus must be an integer >= 0")
        for name in ("world", "dungeon", "settlement"):
            for axis in ("cols", "rows"):
                value = getattr(self, f"{name}_{axis}")
                if not isinstance(value, int) or value < 3:
                    raise ValueError(f"{name}_{axis} must be an integer >= 3")
        if not 0.0 < self.decal_fade <= 1.0:
            raise ValueError("decal_fade must be within (0, 1]")
        if not 0.0 <= self.decal_min_alpha < 1.0:
            raise ValueError("decal_min_alpha must be within [0, 1)")

    def to_dict(self) -> dict[str, Any]:
        return {
            "fov_radius": self.fov_radius,
            "torch_fov_bonus": self.torch_fov_bonus,
            "world_cols": self.world_cols,
            "world_rows": self.world_rows,
            "dungeon_cols": self.dungeon_cols,
            "dungeon_rows": self.dungeon_rows,
            "settlement_cols": self.settlement_cols,
            "settlement_rows": self.settlement_rows,
            "corpse_cap": self.corpse_cap,
            "decal_fade": float(self.decal_fade),
            "decal_min_alpha": float(self.decal_min_alpha),
            "decal_cap": self.decal_cap,
            "settlement_occupancy_stride": self.settlement_occupancy_stride,
            "max_log_lines": self.max_log_lines,
            "max_event_trace": self.max_event_trace,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SessionConfig":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("config must be an object")
        known = set(cls().to_dict())
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"config has unknown fields: {', '.join(sorted(unknown))}")
        defaults = cls().to_dict()
        values: dict[str, Any] = {}
        for key, default in defaults.items():
            raw = data.get(key, default)
            values[key] = float(raw) if isinstance(default, float) else int(raw)
        return cls(**values)


@dataclass
class GameCommand:
    command_type: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.command_type not in COMMAND_TYPES:
            raise ValueError(f"command_type must be one of: {', '.join(sorted(COMMAND_TYPES))}")
        if not isinstance(self.params, dict):
            raise ValueError("params must be a dict")
        _validate_json_value(self.params, field_name="params")

    def to_dict(self) -> dict[str, Any]:
        return {"command_type": self.command_type, "params": copy.deepcopy(self.params)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameCommand":
        if not isinstance(data, dict):
            raise ValueError("command must be an object")
        return cls(command_type=str(data["command_type"]), params=dict(data.get("params", {})))


@dataclass
class ActiveArea:
    """The map and entities of the current mode; replaced whole on every transition."""

    mode: str
    map: Grid
    enemies: list[Enemy] = field(default_factory=list)
    corpses: list[Corpse] = field(default_factory=list)
    decals: list[Decal] = field(default_factory=list)
    npcs: list[Npc] = field(default_factory=list)
    props: list[TileCoord] = field(default_factory=list)
    exit_anchor: TileCoord | None = None
    dungeon_info: DungeonSite | None = None
    settlement_info: SettlementSite | None = None
    depth_level: int = 1
    name: str = ""

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of: {', '.join(MODES)}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "map": copy.deepcopy(self.map) if self.mode != MODE_WORLD else None,
            "enemies": [enemy.to_dict() for enemy in self.enemies],
            "corpses": [corpse.to_dict() for corpse in self.corpses],
            "decals": [decal.to_dict() for decal in self.decals],
            "npcs": [npc.to_dict() for npc in self.npcs],
            "props": [prop.to_dict() for prop in self.props],
            "exit_anchor": self.exit_anchor.to_dict() if self.exit_anchor is not None else None,
            "dungeon_info": self.dungeon_info.to_dict() if self.dungeon_info is not None else None,
            "settlement_info": self.settlement_info.to_dict() if self.settlement_info is not None else None,
            "depth_level": self.depth_level,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, world_map: Grid) -> "ActiveArea":
        if not isinstance(data, dict):
            raise ValueError("area must be an object")
        mode = str(data["mode"])
        grid = world_map if mode == MODE_WORLD else copy.deepcopy(validate_grid(data.get("map"), field_name="area.map"))
        return cls(
            mode=mode,
            map=grid,
            enemies=[Enemy.from_dict(row) for row in data.get("enemies", [])],
            corpses=[Corpse.from_dict(row) for row in data.get("corpses", [])],
            decals=[Decal.from_dict(row) for row in data.get("decals", [])],
            npcs=[Npc.from_dict(row) for row in data.get("npcs", [])],
            props=[TileCoord.from_dict(row) for row in data.get("props", [])],
            exit_anchor=TileCoord.from_dict(data["exit_anchor"]) if data.get("exit_anchor") is not None else None,
            dungeon_info=DungeonSite.from_dict(data["dungeon_info"]) if data.get("dungeon_info") is not None else None,
            settlement_info=(
                SettlementSite.from_dict(data["settlement_info"]) if data.get("settlement_info") is not None else None
            ),
            depth_level=int(data.get("depth_level", 1)),
            name=str(data.get("name", "")),
        )


def _place_noun(kind: str) -> str:
    return "town" if kind == MODE_SETTLEMENT else "dungeon"


def _describe_corpse(corpse: Corpse) -> str:
    meta = corpse.meta
    parts = []
    if meta.get("wound"):
        parts.append(f"Wound: {meta['wound']}.")
    if meta.get("killed_by"):
        parts.append(f"Killed by {meta['killed_by']}.")
    if meta.get("via"):
        parts.append(f"({meta['via']})")
    return " ".join(parts)


class _SessionCombatEffects(CombatEffects):
    def __init__(self, session: GameSession) -> None:
        self._session = session

    def log(self, message: str, severity: str = "info") -> None:
        self._session.log(message, severity)

    def add_blood_decal(self, x: int, y: int, strength: float) -> None:
        area = self._session.area
        if area.mode == MODE_WORLD:
            return
        add_blood_decal(area.decals, area.map, self._session.rng, x, y, strength, cap=self._session.config.decal_cap)

    def enemy_died(self, enemy: Enemy) -> None:
        self._session._kill_enemy(enemy)

    def player_died(self) -> None:
        self._session._player_died()

    def inventory_changed(self) -> None:
        self._session._record_event(ITEM_BROKEN_EVENT_TYPE, {"inventory_size": len(self._session.player.inventory)})
        self._session._notify("on_stats_changed", self._session)


class GameSession:
    """One single-player game: RNG, mode, player, active area and persisted dungeons.

    Collaborators are optional; missing ones are replaced with built-in
    fallbacks. Every player action either resolves and advances exactly one
    ``turn()`` or is rejected without touching the turn counter.
    """

    def __init__(
        self,
        seed: int | None = None,
        *,
        config: SessionConfig | None = None,
        generator: WorldGenerator | None = None,
        combat_ai: CombatAI | None = None,
        settlement_ai: SettlementAI | None = None,
        loot_table: LootTable | None = None,
        store: DungeonPersistenceStore | None = None,
        observers: Iterable[SessionObserver] = (),
        start: bool = True,
    ) -> None:
        self.config = config if config is not None else SessionConfig()
        self.rng = RandomService(seed)
        self.generator = generator if generator is not None else self._fallback("generator", FlatFloorGenerator())
        self.combat_ai = combat_ai if combat_ai is not None else self._fallback("combat_ai", CombatAI())
        self.settlement_ai = (
            settlement_ai if settlement_ai is not None else self._fallback("settlement_ai", SettlementAI())
        )
        self.loot_table = loot_table if loot_table is not None else self._fallback("loot_table", LootTable())
        self.store = store if store is not None else DungeonPersistenceStore()
        self.observers: list[SessionObserver] = list(observers)

        self.world = WorldState(map=[[WORLD_GRASS]])
        self.player = Player.new_game()
        self.area = ActiveArea(mode=MODE_WORLD, map=self.world.map)
        self.world_return: TileCoord | None = None
        self.visibility = VisibilityCache()
        self.occupancy: OccupancyGrid | None = None
        self.turn_counter = 0
        self.settlement_tick = 0
        self.player_dead = False
        self.input_log: list[GameCommand] = []
        self.event_trace: list[dict[str, Any]] = []
        self.log_lines: list[dict[str, Any]] = []
        self.save_metadata: dict[str, Any] = {}
        self.forced_part: str | None = None
        self.always_crit = False
        self._effects = _SessionCombatEffects(self)
        if start:
            self.start_new_game()

    @staticmethod
    def _fallback(role: str, fallback: Any) -> Any:
        logger.warning("no %s supplied; using built-in %s", role, fallback.name)
        return fallback

    @property
    def mode(self) -> str:
        return self.area.mode

    def add_observer(self, observer: SessionObserver) -> None:
        self.observers.append(observer)

    def start_new_game(self) -> None:
        request = GenerationRequest(
            kind=MODE_WORLD,
            cols=self.config.world_cols,
            rows=self.config.world_rows,
            rng=self.rng,
        )
        generated = self._generate(request)
        self.world = WorldState(map=generated.map, dungeons=generated.dungeons, settlements=generated.settlements)
        self.player = Player.new_game(generated.start.x, generated.start.y)
        self.area = ActiveArea(mode=MODE_WORLD, map=self.world.map)
        self.world_return = None
        self.occupancy = None
        self.player_dead = False
        self.visibility.reset()
        self.update_visibility()
        logger.info("new game seed=%d world=%dx%d", self.rng.seed, *self.world.shape)

    def restart(self, seed: int | None = None) -> bool:
        self._record_command("restart", {"seed": seed})
        if seed is not None:
            self.rng.reseed(seed)
        self.store.clear()
        self.turn_counter = 0
        self.settlement_tick = 0
        self.start_new_game()
        self.log("You start a new journey.", "notice")
        self._notify("on_stats_changed", self)
        self._notify("on_redraw_needed", self)
        return True

    # Narration, events and observers

    def log(self, message: str, severity: str = "info") -> None:
        self.log_lines.append({"turn": self.turn_counter, "message": message, "severity": severity})
        if len(self.log_lines) > self.config.max_log_lines:
            del self.log_lines[: len(self.log_lines) - self.config.max_log_lines]
        self._notify("on_log", message, severity)

    def _notify(self, hook: str, *args: Any) -> None:
        for observer in list(self.observers):
            try:
                getattr(observer, hook)(*args)
            except Exception:
                logger.warning("observer %r failed in %s", observer, hook, exc_info=True)

    def _record_event(self, event_type: str, params: dict[str, Any]) -> None:
        self.event_trace.append({"turn": self.turn_counter, "event_type": event_type, "params": copy.deepcopy(params)})
        if len(self.event_trace) > self.config.max_event_trace:
            del self.event_trace[: len(self.event_trace) - self.config.max_event_trace]

    def get_event_trace(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.event_trace)

    def _record_command(self, command_type: str, params: dict[str, Any]) -> None:
        self.input_log.append(GameCommand(command_type=command_type, params=params))

    # Player actions

    def apply_command(self, command: GameCommand | dict[str, Any]) -> bool:
        normalized = command if isinstance(command, GameCommand) else GameCommand.from_dict(command)
        params = normalized.params
        if normalized.command_type == "move":
            return self.move(int(params["dx"]), int(params["dy"]))
        if normalized.command_type == "wait":
            return self.wait()
        if normalized.command_type == "enter":
            return self.enter_location()
        if normalized.command_type == "exit":
            return self.exit_area()
        if normalized.command_type == "drink":
            index = params.get("index")
            return self.drink_potion(int(index) if index is not None else None)
        if normalized.command_type == "equip":
            return self.equip(int(params["index"]), params.get("hand"))
        if normalized.command_type == "unequip":
            return self.unequip(str(params["slot"]))
        if normalized.command_type == "loot":
            return self.loot_here()
        if normalized.command_type == "save_dungeon":
            return self.save_dungeon_state()
        seed = params.get("seed")
        return self.restart(int(seed) if seed is not None else None)

    def move(self, dx: int, dy: int) -> bool:
        self._record_command("move", {"dx": dx, "dy": dy})
        if self.player_dead or not is_valid_step(dx, dy):
            return False
        if self.area.mode == MODE_WORLD:
            return self._move_world(dx, dy)

        if self.area.mode == MODE_DUNGEON and self.player.dazed_turns > 0:
            self.player.dazed_turns -= 1
            self.log("You are dazed and lose your action this turn.", "warn")
            self.turn()
            return True

        target_x = self.player.x + dx
        target_y = self.player.y + dy
        enemy = self._enemy_at(target_x, target_y)
        if enemy is not None:
            self._player_attack(enemy)
            self.turn()
            return True

        occupancy = self._require_occupancy()
        if not occupancy.is_free(target_x, target_y):
            return False
        self.player.x = target_x
        self.player.y = target_y
        occupancy.set_player(target_x, target_y)
        self.turn()
        return True

    def _move_world(self, dx: int, dy: int) -> bool:
        target_x = self.player.x + dx
        target_y = self.player.y + dy
        tile = self.world.tile_at(target_x, target_y)
        if tile is None or not is_walkable_world(tile):
            return False
        self.player.x = target_x
        self.player.y = target_y
        self.turn()
        return True

    def wait(self) -> bool:
        self._record_command("wait", {})
        if self.player_dead:
            return False
        self.turn()
        return True

    def drink_potion(self, index: int | None = None) -> bool:
        self._record_command("drink", {"index": index})
        if self.player_dead:
            return False
        inventory = self.player.inventory
        if index is None:
            index = next((i for i, item in enumerate(inventory) if item.kind == "potion"), -1)
        if index < 0 or index >= len(inventory) or inventory[index].kind != "potion":
            self.log("You have no potion to drink.", "info")
            return False
        potion = inventory[index]
        before = self.player.hp
        self.player.hp = min(self.player.max_hp, self.player.hp + potion.heal)
        gained = self.player.hp - before
        status = f"HP {self.player.hp:g}/{self.player.max_hp:g}"
        if gained > 0:
            self.log(f"You drink a potion and restore {gained:g} HP ({status}).", "good")
        else:
            self.log(f"You drink a potion but feel no different ({status}).", "warn")
        potion.count -= 1
        if potion.count <= 0:
            del inventory[index]
        self._notify("on_stats_changed", self)
        return True

    def equip(self, index: int, hand: str | None = None) -> bool:
        self._record_command("equip", {"index": index, "hand": hand})
        if self.player_dead:
            return False
        message = equip_item(self.player, index, hand)
        if message is None:
            self.log("You can't equip that.", "info")
            return False
        self.log(message, "info")
        self._after_equipment_change()
        return True

    def unequip(self, slot: str) -> bool:
        self._record_command("unequip", {"slot": slot})
        if self.player_dead:
            return False
        message = unequip_slot(self.player, slot)
        if message is None:
            return False
        self.log(message, "info")
        self._after_equipment_change()
        return True

    def loot_here(self) -> bool:
        """Take whatever lies on the corpses under the player; costs a turn."""
        self._record_command("loot", {})
        if self.player_dead or self.area.mode != MODE_DUNGEON:
            return False
        here = [corpse for corpse in self.area.corpses if (corpse.x, corpse.y) == (self.player.x, self.player.y)]
        if not here:
            self.log("There is no corpse here to loot.", "info")
            return False

        for corpse in here:
            description = _describe_corpse(corpse)
            if description:
                self.log(description, "flavor")

        acquired: list[str] = []
        for corpse in here:
            for item in corpse.loot:
                acquired.append(self._take_item(item))
            corpse.loot = []
            corpse.looted = True
        if acquired:
            self.log(f"You loot: {', '.join(acquired)}.", "good")
            self._notify("on_stats_changed", self)
        else:
            noun = here[0].kind if len(here) == 1 else f"{here[0].kind}s"
            self.log(f"You search the {noun} but find nothing.", "info")
        self.save_dungeon_state(record=False)
        self.turn()
        return True

    def _take_item(self, item: Item) -> str:
        inventory = self.player.inventory
        if item.kind == "gold":
            purse = next((held for held in inventory if held.kind == "gold"), None)
            if purse is not None:
                purse.amount += item.amount
            else:
                inventory.append(item)
            return f"{item.amount} gold"
        inventory.append(item)
        return item.name

    def _after_equipment_change(self) -> None:
        self.update_visibility()
        self._notify("on_stats_changed", self)
        self._notify("on_redraw_needed", self)

    # Mode transitions

    def enter_location(self) -> bool:
        self._record_command("enter", {})
        if self.player_dead or self.area.mode != MODE_WORLD:
            return False
        x, y = self.player.x, self.player.y
        tile = self.world.tile_at(x, y)
        if tile == WORLD_DUNGEON:
            return self._enter_dungeon(x, y)
        if tile == WORLD_SETTLEMENT:
            return self._enter_settlement(x, y)
        for marker in (WORLD_DUNGEON, WORLD_SETTLEMENT):
            for dx, dy in CARDINAL_DIRECTIONS:
                if self.world.tile_at(x + dx, y + dy) != marker:
                    continue
                self.player.x = x + dx
                self.player.y = y + dy
                if marker == WORLD_DUNGEON:
                    return self._enter_dungeon(x + dx, y + dy)
                return self._enter_settlement(x + dx, y + dy)
        self.log("There is nothing here to enter.", "info")
        return False

    def _enter_dungeon(self, x: int, y: int) -> bool:
        self.world_return = TileCoord(x, y)
        site = self.world.dungeon_at(x, y) or DungeonSite(x=x, y=y)
        key = entrance_key(x, y)
        snapshot = self._load_snapshot(key, MODE_DUNGEON)
        if snapshot is not None:
            self._activate_snapshot(snapshot)
            self.log(f"You re-enter the dungeon (Difficulty {snapshot.depth_level}, {site.size}).", "notice")
            restored = True
        else:
            depth = max(1, site.level)
            generated = self._generate(
                GenerationRequest(
                    kind=MODE_DUNGEON,
                    cols=self.config.dungeon_cols,
                    rows=self.config.dungeon_rows,
                    rng=self.rng,
                    depth=depth,
                    site=site,
                )
            )
            start = generated.start
            generated.map[start.y][start.x] = TILE_STAIRS
            area = ActiveArea(
                mode=MODE_DUNGEON,
                map=generated.map,
                enemies=[enemy for enemy in generated.enemies if (enemy.x, enemy.y) != (start.x, start.y)],
                props=list(generated.props),
                exit_anchor=start,
                dungeon_info=site,
                depth_level=depth,
                name=generated.name,
            )
            self._activate_area(area, start)
            self.save_dungeon_state(record=False)
            self.log(f"You enter the dungeon (Difficulty {depth}, {site.size}).", "notice")
            restored = False
        self._record_event(
            MODE_TRANSITION_EVENT_TYPE,
            {"from": MODE_WORLD, "to": MODE_DUNGEON, "key": key, "restored": restored},
        )
        logger.info("entered dungeon key=%s restored=%s", key, restored)
        self._after_transition()
        return True

    def _enter_settlement(self, x: int, y: int) -> bool:
        self.world_return = TileCoord(x, y)
        site = self.world.settlement_at(x, y) or SettlementSite(x=x, y=y)
        key = entrance_key(x, y)
        self.settlement_tick = 0
        snapshot = self._load_snapshot(key, MODE_SETTLEMENT)
        if snapshot is not None:
            self._activate_snapshot(snapshot)
            name = snapshot.name
            self.log(f"You return to {'the town of ' + name if name else 'the town'}.", "notice")
            restored = True
        else:
            generated = self._generate(
                GenerationRequest(
                    kind=MODE_SETTLEMENT,
                    cols=self.config.settlement_cols,
                    rows=self.config.settlement_rows,
                    rng=self.rng,
                    site=site,
                )
            )
            name = site.name or generated.name
            area = ActiveArea(
                mode=MODE_SETTLEMENT,
                map=generated.map,
                npcs=[npc for npc in generated.npcs if (npc.x, npc.y) != (generated.start.x, generated.start.y)],
                props=list(generated.props),
                exit_anchor=generated.start,
                settlement_info=site,
                name=name,
            )
            self._activate_area(area, generated.start)
            self.log(f"You enter {'the town of ' + name if name else 'the town'}.", "notice")
            restored = False
        self._record_event(
            MODE_TRANSITION_EVENT_TYPE,
            {"from": MODE_WORLD, "to": MODE_SETTLEMENT, "key": key, "restored": restored},
        )
        logger.info("entered settlement key=%s restored=%s", key, restored)
        self._after_transition()
        return True

    def exit_area(self) -> bool:
        self._record_command("exit", {})
        if self.player_dead or self.area.mode == MODE_WORLD:
            return False
        anchor = self.area.exit_anchor
        if anchor is None or (self.player.x, self.player.y) != (anchor.x, anchor.y):
            if self.area.mode == MODE_DUNGEON:
                self.log("Return to the dungeon entrance to go back to the overworld.", "info")
            else:
                self.log("Return to the town gate to go back to the overworld.", "info")
            return False

        previous_mode = self.area.mode
        key = self._current_key()
        self._save_area_state()
        destination = self.world_return or TileCoord(self.player.x, self.player.y)
        self.area = ActiveArea(mode=MODE_WORLD, map=self.world.map)
        self.occupancy = None
        self.player.x = destination.x
        self.player.y = destination.y
        self.world_return = None
        self.visibility.reset()
        self.log("You return to the overworld.", "notice")
        self._record_event(MODE_TRANSITION_EVENT_TYPE, {"from": previous_mode, "to": MODE_WORLD, "key": key})
        logger.info("returned to overworld from %s", previous_mode)
        self._after_transition()
        return True

    def _activate_area(self, area: ActiveArea, start: TileCoord) -> None:
        self.area = area
        self.player.x = start.x
        self.player.y = start.y
        self.visibility.reset()
        self._rebuild_occupancy()

    def _activate_snapshot(self, snapshot: DungeonSnapshot) -> None:
        area = ActiveArea(
            mode=MODE_SETTLEMENT if snapshot.is_settlement else MODE_DUNGEON,
            map=snapshot.map,
            enemies=snapshot.enemies,
            corpses=snapshot.corpses,
            decals=snapshot.decals,
            npcs=snapshot.npcs,
            props=snapshot.props,
            exit_anchor=snapshot.exit_anchor,
            dungeon_info=snapshot.dungeon_info,
            settlement_info=snapshot.settlement_info,
            depth_level=snapshot.depth_level,
            name=snapshot.name,
        )
        self._activate_area(area, snapshot.exit_anchor)
        self.visibility.load(snapshot.seen, snapshot.visible)

    def _after_transition(self) -> None:
        self.update_visibility()
        self._notify("on_stats_changed", self)
        self._notify("on_redraw_needed", self)

    # Area persistence

    def _current_key(self) -> str | None:
        info = self.area.dungeon_info if self.area.mode == MODE_DUNGEON else self.area.settlement_info
        if info is None:
            return None
        return entrance_key(info.x, info.y)

    def snapshot(self) -> DungeonSnapshot | None:
        """Capture the active dungeon or settlement; ``None`` on the overworld."""
        area = self.area
        if area.mode == MODE_WORLD or area.exit_anchor is None:
            return None
        if area.mode == MODE_DUNGEON and area.dungeon_info is None:
            return None
        if area.mode == MODE_SETTLEMENT and area.settlement_info is None:
            return None
        self.visibility.ensure_shape(*grid_shape(area.map))
        return DungeonSnapshot(
            kind=area.mode,
            map=area.map,
            seen=self.visibility.seen,
            visible=self.visibility.visible,
            exit_anchor=area.exit_anchor,
            dungeon_info=area.dungeon_info,
            settlement_info=area.settlement_info,
            depth_level=area.depth_level,
            enemies=area.enemies,
            corpses=area.corpses,
            decals=area.decals,
            npcs=area.npcs,
            props=area.props,
            name=area.name,
        )

    def save_dungeon_state(self, *, record: bool = True) -> bool:
        if record:
            self._record_command("save_dungeon", {})
        if self.area.mode != MODE_DUNGEON:
            return False
        return self._save_area_state()

    def _save_area_state(self) -> bool:
        snapshot = self.snapshot()
        key = self._current_key()
        if snapshot is None or key is None:
            return False
        try:
            self.store.save(key, snapshot)
        except Exception:
            logger.warning("failed to persist %s snapshot key=%s", snapshot.kind, key, exc_info=True)
            self.log(f"The {_place_noun(snapshot.kind)} could not be saved.", "warn")
            return False
        return True

    def _load_snapshot(self, key: str, kind: str) -> DungeonSnapshot | None:
        try:
            snapshot = self.store.load(key)
        except Exception:
            logger.warning("failed to load %s snapshot key=%s; generating fresh", kind, key, exc_info=True)
            self.log(f"The way into this {_place_noun(kind)} has changed.", "warn")
            return None
        if snapshot is not None and snapshot.kind != kind:
            logger.warning("snapshot key=%s holds a %s, expected %s; generating fresh", key, snapshot.kind, kind)
            return None
        return snapshot

    # Turn scheduling

    def turn(self) -> None:
        """Advance the world by one resolved player action."""
        try:
            self._run_turn()
        except Exception:
            logger.warning("turn %d failed", self.turn_counter, exc_info=True)
            self.log("Something strange happens; the world steadies itself.", "warn")

    def _run_turn(self) -> None:
        self.turn_counter += 1
        mode = self.area.mode
        if mode == MODE_DUNGEON:
            self._run_combat_ai()
            self._rebuild_occupancy()
            died = tick_status(self.player, self.area.enemies, self._effects)
            for enemy in died:
                self._kill_enemy(enemy)
            self.area.decals[:] = fade_decals(
                self.area.decals,
                fade=self.config.decal_fade,
                min_alpha=self.config.decal_min_alpha,
            )
            overflow = len(self.area.corpses) - self.config.corpse_cap
            if overflow > 0:
                del self.area.corpses[:overflow]
            self.save_dungeon_state(record=False)
        elif mode == MODE_SETTLEMENT:
            self.settlement_tick += 1
            self._run_settlement_ai()
            if self.settlement_tick % self.config.settlement_occupancy_stride == 0:
                self._rebuild_occupancy()
        self.update_visibility()
        self._notify("on_stats_changed", self)
        self._notify("on_redraw_needed", self)

    def _run_combat_ai(self) -> None:
        view = DungeonTurnView(
            rng=self.rng,
            map=self.area.map,
            player=self.player,
            enemies=self.area.enemies,
            occupancy=self._require_occupancy(),
            attack_player=self._enemy_attack,
        )
        try:
            self.combat_ai.act_all_enemies(view)
        except Exception:
            logger.warning("combat AI %s failed; enemies hold position", self.combat_ai.name, exc_info=True)
            self.log("The enemies hesitate.", "warn")

    def _run_settlement_ai(self) -> None:
        view = SettlementTurnView(
            rng=self.rng,
            map=self.area.map,
            player=self.player,
            npcs=self.area.npcs,
            occupancy=self._require_occupancy(),
            tick=self.settlement_tick,
        )
        try:
            self.settlement_ai.act_npcs(view)
        except Exception:
            logger.warning("settlement AI %s failed", self.settlement_ai.name, exc_info=True)

    def _rebuild_occupancy(self) -> None:
        if self.area.mode == MODE_WORLD:
            self.occupancy = None
            return
        self.occupancy = OccupancyGrid.build(
            self.area.map,
            enemies=self.area.enemies,
            npcs=self.area.npcs,
            props=self.area.props,
            player=self.player,
        )

    def _require_occupancy(self) -> OccupancyGrid:
        if self.occupancy is None:
            self._rebuild_occupancy()
        assert self.occupancy is not None
        return self.occupancy

    # Combat

    def _enemy_at(self, x: int, y: int) -> Enemy | None:
        for enemy in self.area.enemies:
            if enemy.x == x and enemy.y == y and enemy.hp > 0:
                return enemy
        return None

    def _player_attack(self, enemy: Enemy) -> AttackOutcome:
        outcome = resolve_player_attack(
            self.rng,
            self.player,
            enemy,
            self._effects,
            forced_part=self.forced_part,
            always_crit=self.always_crit,
        )
        self._record_event(ATTACK_OUTCOME_EVENT_TYPE, outcome.to_dict())
        return outcome

    def _enemy_attack(self, enemy: Enemy) -> AttackOutcome:
        outcome = resolve_enemy_attack(self.rng, enemy, self.player, self._effects)
        self._record_event(ATTACK_OUTCOME_EVENT_TYPE, outcome.to_dict())
        self._notify("on_stats_changed", self)
        return outcome

    def _generate_loot(self, enemy: Enemy) -> list[Item]:
        try:
            return list(self.loot_table.generate(enemy, self.rng))
        except Exception:
            logger.warning("loot table %s failed for %s", self.loot_table.name, enemy.type, exc_info=True)
            return []

    def _kill_enemy(self, enemy: Enemy) -> None:
        index = next((i for i, current in enumerate(self.area.enemies) if current is enemy), None)
        if index is None:
            return
        self.log(f"{capitalize(enemy.type)} dies.", "bad")
        loot = self._generate_loot(enemy)
        last_hit = enemy.last_hit or {}
        meta = {
            "killed_by": last_hit.get("by", "unknown"),
            "wound": wound_description(last_hit.get("part"), bool(last_hit.get("crit", False))),
            "via": last_hit.get("via", "melee"),
        }
        self.area.corpses.append(Corpse(x=enemy.x, y=enemy.y, loot=loot, looted=not loot, meta=meta))
        del self.area.enemies[index]
        if self.occupancy is not None:
            self.occupancy.clear_enemy(enemy.x, enemy.y)
        self._record_event(ENEMY_DIED_EVENT_TYPE, {"type": enemy.type, "x": enemy.x, "y": enemy.y, **meta})
        levels = award_experience(self.player, enemy.xp, self._effects)
        for _ in range(levels):
            self._record_event(LEVEL_UP_EVENT_TYPE, {"level": self.player.level})
        self._notify("on_enemy_died", enemy)
        self._notify("on_stats_changed", self)
        self.save_dungeon_state(record=False)

    def _player_died(self) -> None:
        if self.player_dead:
            return
        self.player_dead = True
        self.player.hp = 0
        self.log("You die. Press R or Enter to restart.", "bad")
        self._record_event(PLAYER_DIED_EVENT_TYPE, {"x": self.player.x, "y": self.player.y})
        logger.info("player died on turn %d", self.turn_counter)
        self._notify("on_player_died", self)

    # Visibility

    def visibility_radius(self) -> int:
        radius = self.config.fov_radius
        if self.player.has_torch():
            radius += self.config.torch_fov_bonus
        return radius

    def update_visibility(self, *, force: bool = False) -> None:
        area = self.area
        px, py = self.player.x, self.player.y
        self.visibility.recompute(area.map, px, py, self.visibility_radius(), area.mode, force=force)
        if in_bounds(area.map, px, py) and not self.visibility.is_visible(px, py):
            logger.warning("player tile %d,%d not visible after recompute; forcing a sweep", px, py)
            self.log("Your surroundings come back into focus.", "warn")
            self.visibility.recompute(area.map, px, py, self.visibility_radius(), area.mode, force=True)
            self.visibility.mark_visible(px, py)
        if area.mode == MODE_DUNGEON:
            self._announce_new_enemies()

    def _announce_new_enemies(self) -> None:
        newly = [
            enemy
            for enemy in self.area.enemies
            if not enemy.announced and self.visibility.is_visible(enemy.x, enemy.y)
        ]
        for enemy in newly[:MAX_SOLO_ANNOUNCEMENTS]:
            label, severity = threat_label(enemy.level, self.player.level)
            self.log(f"You spot a {enemy.label} Lv {enemy.level} ({label}).", severity)
        rest = len(newly) - MAX_SOLO_ANNOUNCEMENTS
        if rest > 0:
            self.log(f"You also spot {rest} more {'enemy' if rest == 1 else 'enemies'}.", "info")
        for enemy in newly:
            enemy.announced = True

    # Generation

    def _generate(self, request: GenerationRequest) -> GeneratedArea:
        try:
            generated = self.generator.generate(request)
            generated.validate()
            return generated
        except Exception:
            logger.warning(
                "generator %s failed for %s; using flat floor",
                getattr(self.generator, "name", self.generator),
                request.kind,
                exc_info=True,
            )
            self.log("The land here seems strangely plain.", "warn")
            return FlatFloorGenerator().generate(request)

    # Serialization

    def session_payload(self) -> dict[str, Any]:
        return {
            "schema_version": SESSION_SCHEMA_VERSION,
            "seed": self.rng.seed,
            "rng_state": self.rng.state_payload(),
            "config": self.config.to_dict(),
            "turn_counter": self.turn_counter,
            "settlement_tick": self.settlement_tick,
            "player_dead": self.player_dead,
            "world": self.world.to_dict(),
            "world_return": self.world_return.to_dict() if self.world_return is not None else None,
            "player": self.player.to_dict(),
            "area": self.area.to_dict(),
            "visibility": self.visibility.to_dict(),
            "dungeon_snapshots": self.store.to_dict(),
            "input_log": [command.to_dict() for command in self.input_log],
            "event_trace": self.get_event_trace(),
            "log_lines": copy.deepcopy(self.log_lines),
        }

    @classmethod
    def from_session_payload(cls, payload: dict[str, Any], **collaborators: Any) -> "GameSession":
        if not isinstance(payload, dict):
            raise ValueError("session payload must be an object")
        schema_version = int(payload.get("schema_version", 0))
        if schema_version != SESSION_SCHEMA_VERSION:
            raise ValueError(f"unsupported session schema_version: {schema_version}")

        session = cls(
            seed=int(payload["seed"]),
            config=SessionConfig.from_dict(payload.get("config")),
            start=False,
            **collaborators,
        )
        session.world = WorldState.from_dict(payload["world"])
        session.player = Player.from_dict(payload["player"])
        session.area = ActiveArea.from_dict(payload["area"], world_map=session.world.map)
        raw_return = payload.get("world_return")
        session.world_return = TileCoord.from_dict(raw_return) if raw_return is not None else None
        session.turn_counter = int(payload.get("turn_counter", 0))
        session.settlement_tick = int(payload.get("settlement_tick", 0))
        session.player_dead = bool(payload.get("player_dead", False))
        session.store.load_dict(payload.get("dungeon_snapshots", {}))

        raw_visibility = payload.get("visibility", {})
        if not isinstance(raw_visibility, dict):
            raise ValueError("visibility must be an object")
        session.visibility.load(raw_visibility.get("seen", []), raw_visibility.get("visible", []))

        session.input_log = [GameCommand.from_dict(row) for row in payload.get("input_log", [])]
        raw_event_trace = payload.get("event_trace", [])
        if not isinstance(raw_event_trace, list):
            raise ValueError("event_trace must be a list")
        session.event_trace = []
        for entry in raw_event_trace:
            if not isinstance(entry, dict):
                raise ValueError("event_trace entries must be objects")
            session._record_event(str(entry["event_type"]), dict(entry.get("params", {})))
            session.event_trace[-1]["turn"] = int(entry.get("turn", 0))
        raw_log_lines = payload.get("log_lines", [])
        if not isinstance(raw_log_lines, list):
            raise ValueError("log_lines must be a list")
        session.log_lines = copy.deepcopy(raw_log_lines)[-session.config.max_log_lines :]

        session.rng.restore_state(payload["rng_state"])
        session._rebuild_occupancy()
        return session


def run_replay(
    seed: int,
    commands: Iterable[GameCommand | dict[str, Any]],
    config: SessionConfig | None = None,
    **collaborators: Any,
) -> GameSession:
    """Build a fresh session from ``seed`` and feed it ``commands`` in order."""
    session = GameSession(seed, config=config, **collaborators)
    for command in commands:
        session.apply_command(command)
    return session
