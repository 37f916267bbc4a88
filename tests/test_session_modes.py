from roguecore.content.generators import standard_collaborators
from roguecore.sim.collaborators import (
    CombatAI,
    FlatFloorGenerator,
    GeneratedArea,
    GenerationRequest,
    LootTable,
    RecordingObserver,
    SessionObserver,
    SettlementAI,
    WorldGenerator,
)
from roguecore.sim.core import MODE_TRANSITION_EVENT_TYPE, GameSession, SessionConfig
from roguecore.sim.entities import Enemy, Item, make_gold, make_potion
from roguecore.sim.rng import RandomService
from roguecore.sim.world import (
    MODE_DUNGEON,
    MODE_SETTLEMENT,
    MODE_WORLD,
    TILE_STAIRS,
    WORLD_DUNGEON,
    WORLD_GRASS,
    WORLD_SETTLEMENT,
    WORLD_WATER,
    DungeonSite,
    SettlementSite,
    TileCoord,
    make_grid,
)


class ScriptedGenerator(WorldGenerator):
    name = "scripted"

    def __init__(
        self,
        start: TileCoord = TileCoord(10, 20),
        goblins: tuple[tuple[int, int, float], ...] = ((21, 12, 1.0),),
    ) -> None:
        self.start = start
        self.goblins = list(goblins)
        self.calls: list[str] = []

    def generate(self, request: GenerationRequest) -> GeneratedArea:
        self.calls.append(request.kind)
        if request.kind == MODE_WORLD:
            grid = make_grid(request.cols, request.rows, WORLD_GRASS)
            grid[20][10] = WORLD_DUNGEON
            grid[20][11] = WORLD_WATER
            grid[5][5] = WORLD_SETTLEMENT
            return GeneratedArea(
                map=grid,
                start=self.start,
                dungeons=[DungeonSite(x=10, y=20, level=2, size="small")],
                settlements=[SettlementSite(5, 5, "Ashford")],
            )
        area = FlatFloorGenerator().generate(request)
        if request.kind == MODE_DUNGEON:
            area.enemies = [Enemy(x=x, y=y, type="goblin", hp=hp, atk=1.0) for x, y, hp in self.goblins]
        return area


def _session(generator: ScriptedGenerator | None = None, **kwargs) -> GameSession:
    return GameSession(
        42,
        generator=generator or ScriptedGenerator(),
        combat_ai=CombatAI(),
        settlement_ai=SettlementAI(),
        loot_table=LootTable(),
        **kwargs,
    )


def _messages(session: GameSession) -> list[str]:
    return [line["message"] for line in session.log_lines]


def test_entering_dungeon_generates_and_persists_it() -> None:
    session = _session()

    assert session.enter_location() is True

    assert session.mode == MODE_DUNGEON
    assert session.turn_counter == 0
    assert session.store.has("10,20")
    assert (session.player.x, session.player.y) == (20, 12)
    assert session.area.map[12][20] == TILE_STAIRS
    assert session.area.depth_level == 2
    assert "You enter the dungeon (Difficulty 2, small)." in _messages(session)


def test_reentering_restores_the_dungeon_exactly() -> None:
    generator = ScriptedGenerator()
    session = _session(generator)
    session.enter_location()

    for _ in range(20):
        if not session.area.enemies:
            break
        session.move(1, 0)

    assert session.area.enemies == []
    assert len(session.area.corpses) == 1
    assert session.exit_area() is True
    assert session.mode == MODE_WORLD
    assert (session.player.x, session.player.y) == (10, 20)

    assert session.enter_location() is True

    assert generator.calls.count(MODE_DUNGEON) == 1
    assert session.area.enemies == []
    assert [(corpse.x, corpse.y) for corpse in session.area.corpses] == [(21, 12)]
    assert _messages(session)[-1].startswith("You re-enter the dungeon (Difficulty 2, small).")
    assert session.visibility.is_seen(20, 12)


def test_exit_requires_standing_on_the_anchor() -> None:
    session = _session()
    session.enter_location()

    assert session.move(-1, 0) is True
    turn_before = session.turn_counter

    assert session.exit_area() is False
    assert session.mode == MODE_DUNGEON
    assert session.turn_counter == turn_before
    assert _messages(session)[-1] == "Return to the dungeon entrance to go back to the overworld."


def test_world_moves_reject_water_and_long_steps() -> None:
    session = _session()

    assert session.move(1, 0) is False
    assert session.move(2, 0) is False
    assert session.turn_counter == 0
    assert session.move(-1, 0) is True
    assert session.turn_counter == 1
    assert [command.command_type for command in session.input_log] == ["move", "move", "move"]


def test_enter_from_adjacent_tile_steps_onto_marker() -> None:
    session = _session(ScriptedGenerator(start=TileCoord(9, 20)))

    assert session.enter_location() is True

    assert session.mode == MODE_DUNGEON
    assert session.world_return == TileCoord(10, 20)


def test_enter_with_nothing_nearby_is_rejected() -> None:
    session = _session(ScriptedGenerator(start=TileCoord(30, 10)))

    assert session.enter_location() is False
    assert session.mode == MODE_WORLD
    assert _messages(session)[-1] == "There is nothing here to enter."


def test_settlement_round_trip() -> None:
    session = _session(ScriptedGenerator(start=TileCoord(5, 5)))

    assert session.enter_location() is True
    assert session.mode == MODE_SETTLEMENT
    assert session.area.name == "Ashford"
    assert "You enter the town of Ashford." in _messages(session)

    assert session.move(0, 1) is True
    assert session.settlement_tick == 1
    assert session.exit_area() is False
    assert _messages(session)[-1] == "Return to the town gate to go back to the overworld."

    assert session.move(0, -1) is True
    assert session.exit_area() is True
    assert (session.player.x, session.player.y) == (5, 5)
    assert session.store.keys() == ["5,5"]
    assert session.store.load("5,5").kind == MODE_SETTLEMENT


def test_dazed_player_loses_the_action_but_the_turn_passes() -> None:
    session = _session()
    session.enter_location()
    session.player.dazed_turns = 2

    assert session.move(0, 1) is True

    assert (session.player.x, session.player.y) == (20, 12)
    assert session.turn_counter == 1
    assert session.player.dazed_turns == 0
    assert "You are dazed and lose your action this turn." in _messages(session)


def test_bleeding_out_ends_the_run_until_restart() -> None:
    observer = RecordingObserver()
    session = _session(observers=[observer])
    session.enter_location()
    session.player.hp = 1.0
    session.player.bleed_turns = 2

    session.wait()

    assert session.player_dead
    assert session.player.hp == 0
    assert observer.count("player_died") == 1
    assert "You die. Press R or Enter to restart." in _messages(session)

    turn_before = session.turn_counter
    assert session.move(0, 1) is False
    assert session.wait() is False
    assert session.turn_counter == turn_before

    assert session.restart(5) is True
    assert not session.player_dead
    assert session.rng.seed == 5
    assert session.turn_counter == 0
    assert session.mode == MODE_WORLD
    assert session.store.keys() == []
    assert _messages(session)[-1] == "You start a new journey."


def test_drinking_does_not_take_a_turn() -> None:
    session = _session()
    session.player.hp = 10.0

    assert session.drink_potion() is True

    assert session.player.hp == 16.0
    assert session.turn_counter == 0
    assert "You drink a potion and restore 6 HP (HP 16/40)." in _messages(session)
    assert session.drink_potion() is False
    assert _messages(session)[-1] == "You have no potion to drink."


def test_failing_observer_does_not_break_the_session() -> None:
    class ExplodingObserver(SessionObserver):
        def on_log(self, message: str, severity: str) -> None:
            raise RuntimeError("boom")

    recorder = RecordingObserver()
    session = _session(observers=[ExplodingObserver(), recorder])

    assert session.enter_location() is True
    assert session.wait() is True
    assert recorder.logs()


def test_event_trace_is_capped() -> None:
    session = _session(config=SessionConfig(max_event_trace=3))

    session.enter_location()
    session.exit_area()
    session.enter_location()
    session.exit_area()

    trace = session.get_event_trace()
    assert len(trace) == 3
    assert all(entry["event_type"] == MODE_TRANSITION_EVENT_TYPE for entry in trace)
    assert trace[-1]["params"]["to"] == MODE_WORLD
    assert trace[1]["params"]["restored"] is True


def test_sighting_announcements_are_summarized() -> None:
    generator = ScriptedGenerator(goblins=((22, 12, 3.0), (23, 12, 3.0), (24, 12, 3.0)))
    session = _session(generator)

    session.enter_location()

    messages = _messages(session)
    assert messages.count("You spot a Goblin Lv 1 (moderate).") == 2
    assert "You also spot 1 more enemy." in messages
    assert all(enemy.announced for enemy in session.area.enemies)

    session.wait()
    assert _messages(session).count("You spot a Goblin Lv 1 (moderate).") == 2


class FixedLoot(LootTable):
    name = "fixed"

    def generate(self, source, rng: RandomService) -> list[Item]:
        return [make_gold(7), make_potion(4)]


def test_looting_a_corpse_moves_items_into_inventory() -> None:
    session = GameSession(
        42,
        generator=ScriptedGenerator(),
        combat_ai=CombatAI(),
        settlement_ai=SettlementAI(),
        loot_table=FixedLoot(),
    )
    assert session.loot_here() is False
    session.enter_location()
    assert session.loot_here() is False
    assert _messages(session)[-1] == "There is no corpse here to loot."

    for _ in range(20):
        if not session.area.enemies:
            break
        session.move(1, 0)
    session.player.dazed_turns = 0
    assert session.move(1, 0) is True
    assert (session.player.x, session.player.y) == (21, 12)
    turn_before = session.turn_counter

    assert session.loot_here() is True

    assert session.turn_counter == turn_before + 1
    gold = [item for item in session.player.inventory if item.kind == "gold"]
    assert len(gold) == 1
    assert gold[0].amount == 57
    assert session.player.inventory[-1].name == "potion (+4 HP)"
    assert "You loot: 7 gold, potion (+4 HP)." in _messages(session)
    assert any(message.startswith("Wound: ") and "Killed by " in message for message in _messages(session))
    assert session.area.corpses[0].looted

    assert session.loot_here() is True
    assert _messages(session)[-1] == "You search the corpse but find nothing."


def test_settlement_is_restored_exactly_on_return() -> None:
    session = GameSession(42, **standard_collaborators())
    site = session.world.settlements[0]
    session.player.x, session.player.y = site.x, site.y

    assert session.enter_location() is True
    town_map = [row[:] for row in session.area.map]
    npcs = [npc.to_dict() for npc in session.area.npcs]
    gate = (session.player.x, session.player.y)
    assert session.exit_area() is True
    assert session.store.has(f"{site.x},{site.y}")

    session.rng.reseed(1234)
    assert session.enter_location() is True

    assert session.mode == MODE_SETTLEMENT
    assert session.area.map == town_map
    assert [npc.to_dict() for npc in session.area.npcs] == npcs
    assert (session.player.x, session.player.y) == gate
    assert session.area.settlement_info == site
    assert session.get_event_trace()[-1]["params"]["restored"] is True
    assert _messages(session)[-1].startswith("You return to the town")


def test_reentered_dungeon_keeps_its_name() -> None:
    class NamedGenerator(ScriptedGenerator):
        def generate(self, request: GenerationRequest) -> GeneratedArea:
            area = super().generate(request)
            if request.kind == MODE_DUNGEON:
                area.name = "small dungeon"
            return area

    session = _session(NamedGenerator())
    session.enter_location()
    assert session.area.name == "small dungeon"

    session.exit_area()
    session.enter_location()

    assert session.area.name == "small dungeon"
