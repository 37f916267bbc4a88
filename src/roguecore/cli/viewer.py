from __future__ import annotations

from roguecore.content.generators import standard_collaborators
from roguecore.sim.core import GameSession
from roguecore.sim.world import (
    MODE_WORLD,
    TILE_DOOR,
    TILE_FLOOR,
    TILE_STAIRS,
    TILE_WALL,
    TILE_WINDOW,
    WORLD_DUNGEON,
    WORLD_FOREST,
    WORLD_GRASS,
    WORLD_MOUNTAIN,
    WORLD_SETTLEMENT,
    WORLD_WATER,
)

WORLD_GLYPHS = {
    WORLD_WATER: "~",
    WORLD_GRASS: ".",
    WORLD_FOREST: "T",
    WORLD_MOUNTAIN: "^",
    WORLD_SETTLEMENT: "H",
    WORLD_DUNGEON: "D",
}
LOCAL_GLYPHS = {TILE_WALL: "#", TILE_FLOOR: ".", TILE_DOOR: "+", TILE_STAIRS: ">", TILE_WINDOW: "="}
UNSEEN_GLYPH = " "
PLAYER_GLYPH = "@"
NPC_GLYPH = "N"
CORPSE_GLYPH = "%"
PROP_GLYPH = "o"
DEFAULT_LOG_TAIL = 5
MOVE_KEYS = {"w": (0, -1), "a": (-1, 0), "s": (0, 1), "d": (1, 0)}


class AsciiViewer:
    """Read-only projection of session state for terminal display."""

    def __init__(self, log_tail: int = DEFAULT_LOG_TAIL) -> None:
        self.log_tail = log_tail

    def render(self, session: GameSession) -> str:
        player = session.player
        lines: list[str] = [
            f"turn={session.turn_counter} mode={session.mode} "
            f"hp={player.hp:g}/{player.max_hp:g} lv={player.level} xp={player.xp}/{player.xp_next}"
        ]

        area = session.area
        glyphs = WORLD_GLYPHS if area.mode == MODE_WORLD else LOCAL_GLYPHS
        overlay: dict[tuple[int, int], str] = {}
        for prop in area.props:
            overlay[(prop.x, prop.y)] = PROP_GLYPH
        for corpse in area.corpses:
            overlay[(corpse.x, corpse.y)] = CORPSE_GLYPH
        for npc in area.npcs:
            overlay[(npc.x, npc.y)] = NPC_GLYPH
        for enemy in area.enemies:
            if session.visibility.is_visible(enemy.x, enemy.y):
                overlay[(enemy.x, enemy.y)] = enemy.glyph
        overlay[(player.x, player.y)] = PLAYER_GLYPH

        for y, row in enumerate(area.map):
            cells: list[str] = []
            for x, tile in enumerate(row):
                if not session.visibility.is_seen(x, y):
                    cells.append(UNSEEN_GLYPH)
                elif (x, y) in overlay and session.visibility.is_visible(x, y):
                    cells.append(overlay[(x, y)])
                else:
                    cells.append(glyphs.get(tile, "?"))
            lines.append("".join(cells).rstrip())

        tail = session.log_lines[-self.log_tail :] if self.log_tail > 0 else []
        for entry in tail:
            lines.append(f"[{entry['severity']}] {entry['message']}")
        return "\n".join(lines)


class SessionController:
    """Small command adapter; issues commands to the session but does not own state."""

    def __init__(self, session: GameSession) -> None:
        self.session = session

    def move(self, dx: int, dy: int) -> bool:
        return self.session.move(dx, dy)

    def wait(self) -> bool:
        return self.session.wait()

    def enter(self) -> bool:
        return self.session.enter_location()

    def exit(self) -> bool:
        return self.session.exit_area()

    def drink(self) -> bool:
        return self.session.drink_potion()

    def loot(self) -> bool:
        return self.session.loot_here()

    def equip(self, index: int) -> bool:
        return self.session.equip(index)

    def restart(self, seed: int | None = None) -> bool:
        return self.session.restart(seed)


def run_demo(seed: int = 7) -> None:
    session = GameSession(seed, **standard_collaborators())
    view = AsciiViewer()
    controller = SessionController(session)

    print("Roguecore demo. Commands: w|a|s|d | wait | enter | exit | drink | loot | equip <n> | restart | show | quit")
    print(view.render(session))

    while True:
        raw = input("> ").strip()
        if raw in {"quit", "q"}:
            break
        if raw == "show":
            print(view.render(session))
            continue

        parts = raw.split()
        if raw in MOVE_KEYS:
            controller.move(*MOVE_KEYS[raw])
        elif raw == "wait":
            controller.wait()
        elif raw == "enter":
            controller.enter()
        elif raw == "exit":
            controller.exit()
        elif raw == "drink":
            controller.drink()
        elif raw == "loot":
            controller.loot()
        elif raw == "restart":
            controller.restart()
        elif len(parts) == 2 and parts[0] == "equip" and parts[1].isdigit():
            controller.equip(int(parts[1]))
        else:
            print("unknown command")
            continue
        print(view.render(session))


if __name__ == "__main__":
    run_demo()
