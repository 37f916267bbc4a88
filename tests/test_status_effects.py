import pytest

from roguecore.sim.combat import CombatEffects
from roguecore.sim.decals import add_blood_decal, fade_decals
from roguecore.sim.entities import Decal, Enemy, Player
from roguecore.sim.rng import RandomService
from roguecore.sim.status import apply_daze, apply_enemy_bleed, apply_limp, is_ethereal, tick_status
from roguecore.sim.world import TILE_FLOOR, make_grid


class ScriptedRandom(RandomService):
    def __init__(self, values: list[float]) -> None:
        super().__init__(1)
        self.values = list(values)

    def next(self) -> float:
        self.draw_count += 1
        return self.values.pop(0)


class RecordingEffects(CombatEffects):
    def __init__(self) -> None:
        self.logs: list[tuple[str, str]] = []
        self.decals: list[tuple[int, int, float]] = []
        self.player_deaths = 0

    def log(self, message: str, severity: str = "info") -> None:
        self.logs.append((message, severity))

    def add_blood_decal(self, x: int, y: int, strength: float) -> None:
        self.decals.append((x, y, strength))

    def player_died(self) -> None:
        self.player_deaths += 1


def test_ethereal_types_match_case_insensitively() -> None:
    assert is_ethereal("ghost")
    assert is_ethereal("Skeleton Warrior")
    assert is_ethereal("wraith")
    assert not is_ethereal("goblin")


def test_durations_never_shorten() -> None:
    effects = RecordingEffects()
    enemy = Enemy(x=0, y=0, type="rat", hp=2.0, atk=0.5, immobile_turns=3)
    player = Player.new_game()
    player.dazed_turns = 4

    apply_limp(enemy, effects, 2)
    apply_daze(player, effects, 1)

    assert enemy.immobile_turns == 3
    assert player.dazed_turns == 4
    assert ("You are dazed and might lose your next action.", "warn") in effects.logs


def test_bleed_is_ignored_for_ethereal_enemies() -> None:
    effects = RecordingEffects()
    ghost = Enemy(x=0, y=0, type="ghost", hp=4.0, atk=1.0)

    apply_enemy_bleed(ghost, effects)

    assert ghost.bleed_turns == 0
    assert effects.logs == []


def test_tick_counts_down_daze_and_bleeds_player() -> None:
    effects = RecordingEffects()
    player = Player.new_game(3, 4)
    player.hp = 5.0
    player.dazed_turns = 2
    player.bleed_turns = 1

    died = tick_status(player, [], effects)

    assert died == []
    assert player.dazed_turns == 1
    assert player.bleed_turns == 0
    assert player.hp == 4.0
    assert effects.decals == [(3, 4, 1.0)]
    assert ("You bleed (1).", "warn") in effects.logs


def test_tick_bleed_can_kill_player() -> None:
    effects = RecordingEffects()
    player = Player.new_game()
    player.hp = 1.0
    player.bleed_turns = 2

    tick_status(player, [], effects)

    assert player.hp == 0
    assert effects.player_deaths == 1


def test_tick_returns_enemies_that_bled_out() -> None:
    effects = RecordingEffects()
    goblin = Enemy(x=1, y=1, type="goblin", hp=1.0, atk=1.0, bleed_turns=2)
    rat = Enemy(x=2, y=1, type="rat", hp=3.0, atk=1.0, bleed_turns=1)
    ghost = Enemy(x=3, y=1, type="ghost", hp=1.0, atk=1.0, bleed_turns=2)

    died = tick_status(Player.new_game(), [goblin, rat, ghost], effects)

    assert died == [goblin]
    assert goblin.last_hit == {"by": "status", "part": None, "crit": False, "via": "bleed"}
    assert rat.hp == 2.0
    assert ("Rat bleeds (1).", "flavor") in effects.logs
    assert ghost.hp == 1.0
    assert ghost.bleed_turns == 0


def test_blood_decals_merge_on_the_same_tile() -> None:
    grid = make_grid(4, 4, TILE_FLOOR)
    decals: list[Decal] = []

    add_blood_decal(decals, grid, ScriptedRandom([0.5, 0.5]), 1, 1)
    add_blood_decal(decals, grid, ScriptedRandom([0.5, 0.0]), 1, 1)

    assert len(decals) == 1
    assert decals[0].a == pytest.approx(0.5)
    assert decals[0].r == pytest.approx(0.42)


def test_blood_decal_alpha_is_capped_and_oldest_evicted() -> None:
    grid = make_grid(4, 4, TILE_FLOOR)
    decals: list[Decal] = []

    add_blood_decal(decals, grid, ScriptedRandom([1.0, 0.0]), 0, 0, strength=10.0, cap=2)
    add_blood_decal(decals, grid, ScriptedRandom([0.0, 0.0]), 1, 0, cap=2)
    add_blood_decal(decals, grid, ScriptedRandom([0.0, 0.0]), 2, 0, cap=2)

    assert [(decal.x, decal.y) for decal in decals] == [(1, 0), (2, 0)]
    assert add_blood_decal(decals, grid, ScriptedRandom([0.0, 0.0]), 9, 9) is None


def test_fade_drops_faint_decals() -> None:
    decals = [Decal(x=0, y=0, a=0.5, r=0.4), Decal(x=1, y=0, a=0.04, r=0.4)]

    remaining = fade_decals(decals, fade=0.92, min_alpha=0.04)

    assert len(remaining) == 1
    assert remaining[0].a == pytest.approx(0.46)
