from __future__ import annotations

import argparse
import importlib.metadata
import json
import logging
import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from roguecore.content.generators import standard_collaborators
from roguecore.content.io import load_session_json, save_session_json
from roguecore.sim.core import GameSession
from roguecore.sim.hash import session_hash, world_hash
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

TILE_SIZE = 20
WINDOW_SIZE = (1280, 800)
HUD_HEIGHT = 150
LOG_TAIL = 5
DEFAULT_SAVE_PATH = "saves/session_save.json"
DEFAULT_SEED = 7

WORLD_COLORS: dict[int, tuple[int, int, int]] = {
    WORLD_WATER: (52, 92, 160),
    WORLD_GRASS: (120, 164, 88),
    WORLD_FOREST: (56, 112, 64),
    WORLD_MOUNTAIN: (132, 120, 108),
    WORLD_SETTLEMENT: (80, 160, 255),
    WORLD_DUNGEON: (210, 85, 85),
}
LOCAL_COLORS: dict[int, tuple[int, int, int]] = {
    TILE_WALL: (44, 44, 52),
    TILE_FLOOR: (92, 88, 80),
    TILE_DOOR: (150, 110, 60),
    TILE_STAIRS: (220, 200, 90),
    TILE_WINDOW: (120, 170, 200),
}
SEVERITY_COLORS: dict[str, tuple[int, int, int]] = {
    "info": (220, 220, 220),
    "notice": (150, 200, 255),
    "warn": (255, 200, 90),
    "good": (130, 230, 130),
    "bad": (255, 110, 110),
    "block": (170, 170, 255),
    "crit": (255, 80, 200),
    "flavor": (190, 160, 130),
}
PLAYER_COLOR = (255, 243, 130)
ENEMY_COLOR = (230, 60, 60)
NPC_COLOR = (140, 225, 255)
CORPSE_COLOR = (110, 40, 40)
BLOOD_COLOR = (150, 0, 0)
SEEN_DIM_FACTOR = 0.45

pygame: Any | None = None


@dataclass
class SessionController:
    """Viewer command adapter; the session remains source of truth."""

    session: GameSession

    def move(self, dx: int, dy: int) -> bool:
        return self.session.move(dx, dy)

    def wait(self) -> bool:
        return self.session.wait()

    def toggle_location(self) -> bool:
        if self.session.mode == MODE_WORLD:
            return self.session.enter_location()
        return self.session.exit_area()

    def drink(self) -> bool:
        return self.session.drink_potion()

    def loot(self) -> bool:
        return self.session.loot_here()

    def restart(self) -> bool:
        return self.session.restart()


def _dim(color: tuple[int, int, int]) -> tuple[int, int, int]:
    red, green, blue = color
    return int(red * SEEN_DIM_FACTOR), int(green * SEEN_DIM_FACTOR), int(blue * SEEN_DIM_FACTOR)


def _tile_color(mode: str, tile: int, *, visible: bool) -> tuple[int, int, int]:
    palette = WORLD_COLORS if mode == MODE_WORLD else LOCAL_COLORS
    color = palette.get(tile, (90, 90, 96))
    return color if visible else _dim(color)


def _camera_origin(session: GameSession, viewport: tuple[int, int]) -> tuple[int, int]:
    """Top-left tile of the viewport, centred on the player and clamped to the map."""
    rows = len(session.area.map)
    cols = len(session.area.map[0]) if rows else 0
    span_x = viewport[0] // TILE_SIZE
    span_y = viewport[1] // TILE_SIZE
    origin_x = min(max(0, session.player.x - span_x // 2), max(0, cols - span_x))
    origin_y = min(max(0, session.player.y - span_y // 2), max(0, rows - span_y))
    return origin_x, origin_y


def _draw_area(screen: pygame.Surface, session: GameSession, glyph_font: pygame.font.Font) -> None:
    area = session.area
    visibility = session.visibility
    viewport = (WINDOW_SIZE[0], WINDOW_SIZE[1] - HUD_HEIGHT)
    origin_x, origin_y = _camera_origin(session, viewport)

    def tile_rect(x: int, y: int) -> pygame.Rect:
        return pygame.Rect((x - origin_x) * TILE_SIZE, (y - origin_y) * TILE_SIZE, TILE_SIZE, TILE_SIZE)

    for y, row in enumerate(area.map):
        for x, tile in enumerate(row):
            if not visibility.is_seen(x, y):
                continue
            color = _tile_color(area.mode, tile, visible=visibility.is_visible(x, y))
            pygame.draw.rect(screen, color, tile_rect(x, y))

    for decal in area.decals:
        if not visibility.is_seen(decal.x, decal.y):
            continue
        rect = tile_rect(decal.x, decal.y)
        radius = max(1, int(decal.r * TILE_SIZE))
        overlay = pygame.Surface((TILE_SIZE, TILE_SIZE), pygame.SRCALPHA)
        pygame.draw.circle(overlay, (*BLOOD_COLOR, int(255 * decal.a)), (TILE_SIZE // 2, TILE_SIZE // 2), radius)
        screen.blit(overlay, rect.topleft)

    for corpse in area.corpses:
        if visibility.is_seen(corpse.x, corpse.y):
            pygame.draw.rect(screen, CORPSE_COLOR, tile_rect(corpse.x, corpse.y).inflate(-8, -8))

    for npc in area.npcs:
        if visibility.is_visible(npc.x, npc.y):
            pygame.draw.circle(screen, NPC_COLOR, tile_rect(npc.x, npc.y).center, TILE_SIZE // 3)

    for enemy in area.enemies:
        if not visibility.is_visible(enemy.x, enemy.y):
            continue
        rect = tile_rect(enemy.x, enemy.y)
        pygame.draw.rect(screen, ENEMY_COLOR, rect.inflate(-4, -4))
        glyph = glyph_font.render(enemy.glyph, True, (15, 15, 15))
        screen.blit(glyph, glyph.get_rect(center=rect.center))

    player_rect = tile_rect(session.player.x, session.player.y)
    pygame.draw.circle(screen, PLAYER_COLOR, player_rect.center, TILE_SIZE // 2 - 2)
    pygame.draw.circle(screen, (15, 15, 15), player_rect.center, TILE_SIZE // 2 - 2, 1)


def _hud_lines(session: GameSession) -> list[str]:
    player = session.player
    area_name = session.area.name or session.mode
    return [
        f"{area_name} | turn={session.turn_counter} | x={player.x},y={player.y} | depth={session.area.depth_level}",
        f"HP {player.hp:g}/{player.max_hp:g} | Lv {player.level} | XP {player.xp}/{player.xp_next}",
        "WASD/arrows move | SPACE wait | G enter/exit | Q drink | E loot | F5 save | F9 load | ESC quit",
    ]


def _draw_hud(
    screen: pygame.Surface,
    session: GameSession,
    font: pygame.font.Font,
    status_message: str | None,
) -> None:
    top = WINDOW_SIZE[1] - HUD_HEIGHT
    pygame.draw.rect(screen, (22, 23, 30), pygame.Rect(0, top, WINDOW_SIZE[0], HUD_HEIGHT))
    lines = _hud_lines(session)
    if status_message:
        lines.append(f"status: {status_message}")
    y = top + 6
    for line in lines:
        surface = font.render(line, True, (240, 240, 240))
        screen.blit(surface, (12, y))
        y += 18

    x = WINDOW_SIZE[0] // 2
    y = top + 6
    for entry in session.log_lines[-LOG_TAIL:]:
        color = SEVERITY_COLORS.get(str(entry.get("severity")), SEVERITY_COLORS["info"])
        surface = font.render(str(entry.get("message", "")), True, color)
        screen.blit(surface, (x, y))
        y += 18


def _key_direction(key: int) -> tuple[int, int] | None:
    mapping = {
        pygame.K_w: (0, -1),
        pygame.K_UP: (0, -1),
        pygame.K_s: (0, 1),
        pygame.K_DOWN: (0, 1),
        pygame.K_a: (-1, 0),
        pygame.K_LEFT: (-1, 0),
        pygame.K_d: (1, 0),
        pygame.K_RIGHT: (1, 0),
    }
    return mapping.get(key)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roguecore-viewer",
        description="Run the roguecore pygame viewer.",
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed for a new session.")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Force SDL dummy video driver for CI/testing and exit without opening a real window.",
    )
    parser.add_argument(
        "--load-save",
        help="Optional session save JSON path to load on startup.",
    )
    parser.add_argument(
        "--save-path",
        default=DEFAULT_SAVE_PATH,
        help="Session save JSON path used by F5 save and fallback F9 load.",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level for diagnostics.")
    return parser


def _env_flag_enabled(var_name: str) -> bool:
    return os.environ.get(var_name, "").strip().lower() in {"1", "true", "yes", "on"}


def _print_startup_banner() -> None:
    try:
        pygame_version = importlib.metadata.version("pygame")
    except importlib.metadata.PackageNotFoundError:
        pygame_version = "not-installed"
    print(
        "[roguecore.viewer] startup "
        f"python={platform.python_version()} "
        f"pygame={pygame_version} "
        f"platform={platform.platform()}"
    )
    for name in ("SDL_VIDEODRIVER", "SDL_AUDIODRIVER"):
        value = os.environ.get(name, "<unset>")
        print(f"[roguecore.viewer] env {name}={value}")


def _ensure_pygame_imported() -> Any:
    global pygame
    if pygame is None:
        import pygame as pygame_module

        pygame = pygame_module
    return pygame


def _build_viewer_session(seed: int) -> GameSession:
    return GameSession(seed, **standard_collaborators())


def _load_viewer_session(save_path: str) -> GameSession:
    session = load_session_json(save_path, **standard_collaborators())
    print(
        "[roguecore.viewer] loaded "
        f"path={save_path} turn={session.turn_counter} mode={session.mode} "
        f"input_log={len(session.input_log)} "
        f"world_hash={world_hash(session.world)} "
        f"session_hash={session_hash(session)}"
    )
    return session


def _save_viewer_session(session: GameSession, save_path: str) -> None:
    save_session_json(save_path, session)
    payload = json.loads(Path(save_path).read_text(encoding="utf-8"))
    print(
        "[roguecore.viewer] saved "
        f"path={save_path} "
        f"save_hash={payload.get('save_hash', '<missing>')} "
        f"world_hash={world_hash(session.world)} "
        f"session_hash={session_hash(session)}"
    )


def run_pygame_viewer(
    *,
    seed: int = DEFAULT_SEED,
    headless: bool = False,
    load_save: str | None = None,
    save_path: str = DEFAULT_SAVE_PATH,
) -> int:
    if headless:
        os.environ["SDL_VIDEODRIVER"] = "dummy"
        print("[roguecore.viewer] warning: headless mode active; no window will open.")

    _print_startup_banner()
    pygame_module = _ensure_pygame_imported()

    try:
        pygame_module.init()
    except Exception as exc:
        print(
            "[roguecore.viewer] failed during pygame.init(): "
            f"{exc}. Hint: verify a working SDL video driver (set SDL_VIDEODRIVER=dummy for headless mode).",
            file=sys.stderr,
        )
        return 1

    try:
        session = _load_viewer_session(load_save) if load_save else _build_viewer_session(seed)
    except Exception as exc:
        print(f"[roguecore.viewer] failed to initialize session: {exc}", file=sys.stderr)
        pygame_module.quit()
        return 1

    controller = SessionController(session=session)

    try:
        pygame_module.display.set_caption("roguecore")
        screen = pygame_module.display.set_mode(WINDOW_SIZE)
    except Exception as exc:
        print(
            "[roguecore.viewer] failed during pygame.display.set_mode(...): "
            f"{exc}. Hint: GUI sessions require a valid display; use --headless or ROGUECORE_HEADLESS=1.",
            file=sys.stderr,
        )
        pygame_module.quit()
        return 1

    driver_name = pygame_module.display.get_driver()
    print(f"[roguecore.viewer] display initialized: {driver_name}, window size={WINDOW_SIZE}")

    if headless:
        controller.wait()
        pygame_module.quit()
        return 0

    def load_session_from_path(path_value: str) -> bool:
        nonlocal session, status_message
        try:
            session = _load_viewer_session(path_value)
            controller.session = session
            status_message = f"loaded {path_value}"
            return True
        except Exception as exc:
            status_message = f"load failed: {exc}"
            print(f"[roguecore.viewer] load failed path={path_value}: {exc}", file=sys.stderr)
            return False

    clock = pygame_module.time.Clock()
    font = pygame_module.font.SysFont("consolas", 16)
    glyph_font = pygame_module.font.SysFont("consolas", TILE_SIZE - 4)
    running = True
    status_message: str | None = None

    while running:
        clock.tick(30)
        for event in pygame_module.event.get():
            if event.type == pygame_module.QUIT:
                running = False
            elif event.type != pygame_module.KEYDOWN:
                continue
            elif event.key == pygame_module.K_ESCAPE:
                running = False
            elif event.key == pygame_module.K_F5:
                _save_viewer_session(session, save_path)
                status_message = f"saved {save_path}"
            elif event.key == pygame_module.K_F9:
                load_target = load_save if load_save else save_path
                if load_target and Path(load_target).exists():
                    load_session_from_path(load_target)
                else:
                    status_message = f"load failed: file not found ({load_target})"
                    print(f"[roguecore.viewer] load skipped; file not found path={load_target}")
            elif session.player_dead:
                if event.key in (pygame_module.K_r, pygame_module.K_RETURN):
                    controller.restart()
                    status_message = None
            elif event.key == pygame_module.K_SPACE:
                controller.wait()
            elif event.key == pygame_module.K_g:
                controller.toggle_location()
            elif event.key == pygame_module.K_q:
                controller.drink()
            elif event.key == pygame_module.K_e:
                controller.loot()
            else:
                direction = _key_direction(event.key)
                if direction is not None:
                    controller.move(*direction)

        screen.fill((12, 12, 16))
        _draw_area(screen, session, glyph_font)
        _draw_hud(screen, session, font, status_message)
        pygame_module.display.flip()

    pygame_module.quit()
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    headless = args.headless or _env_flag_enabled("ROGUECORE_HEADLESS")
    raise SystemExit(
        run_pygame_viewer(
            seed=args.seed,
            headless=headless,
            load_save=args.load_save,
            save_path=args.save_path,
        )
    )


if __name__ == "__main__":
    main()
