from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from roguecore.cli.pygame_viewer import run_pygame_viewer
from roguecore.content.generators import standard_collaborators
from roguecore.content.io import load_config_json, save_session_json
from roguecore.sim.core import GameSession, SessionConfig

DEFAULT_SAVE_PATH = "saves/canonical_session_save.json"
DEFAULT_SEED = 7


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python play.py", description="Canonical roguecore launcher.")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed used when creating the canonical save.")
    parser.add_argument("--load-save", default=DEFAULT_SAVE_PATH, help="Path to canonical save JSON to load at startup.")
    parser.add_argument("--config", help="Optional session config JSON used if the canonical save must be created.")
    parser.add_argument("--headless", action="store_true", help="Run startup path in headless mode.")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level for diagnostics.")
    return parser


def _ensure_save_exists(*, save_path: str, seed: int, config: SessionConfig | None = None) -> None:
    save_file = Path(save_path)
    if save_file.exists():
        return
    session = GameSession(seed, config=config, **standard_collaborators())
    save_session_json(save_file, session)


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())
    config = load_config_json(args.config) if args.config else None
    _ensure_save_exists(save_path=args.load_save, seed=args.seed, config=config)
    return run_pygame_viewer(
        seed=args.seed,
        headless=args.headless,
        load_save=args.load_save,
        save_path=args.load_save,
    )


if __name__ == "__main__":
    raise SystemExit(main())
