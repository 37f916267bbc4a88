from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Sequence

from roguecore.content.generators import standard_collaborators
from roguecore.content.io import save_session_json, session_from_save_payload
from roguecore.sim.core import (
    ATTACK_OUTCOME_EVENT_TYPE,
    ENEMY_DIED_EVENT_TYPE,
    MODE_TRANSITION_EVENT_TYPE,
    GameCommand,
    GameSession,
)
from roguecore.sim.hash import session_hash

ARTIFACT_PRINT_EVENT_LIMIT = 20
ARTIFACT_EVENT_TYPES = (MODE_TRANSITION_EVENT_TYPE, ENEMY_DIED_EVENT_TYPE, ATTACK_OUTCOME_EVENT_TYPE)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roguecore-replay",
        description=(
            "Deterministic replay forensic tool. Replay starts from the CURRENT saved session "
            "state and applies any extra commands from a JSON command script."
        ),
    )
    parser.add_argument("save_path", help="Path to session save JSON")
    parser.add_argument("--commands", help="Optional JSON file holding a list of commands to apply after loading")
    parser.add_argument(
        "--per-command",
        action="store_true",
        help="Print session hash after each applied command",
    )
    parser.add_argument(
        "--verify-input-log",
        action="store_true",
        help="Rebuild the session from its seed and input_log and compare hashes with the save",
    )
    parser.add_argument(
        "--print-input-summary",
        action="store_true",
        help="Print command counts grouped by command_type",
    )
    parser.add_argument(
        "--print-artifacts",
        action="store_true",
        help="Print recent mode transitions, deaths and attack outcomes after replay",
    )
    parser.add_argument(
        "--dump-final-save",
        help="Optional path to write the save payload after replay",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level for diagnostics.")
    return parser


def _load_commands(path: str) -> list[GameCommand]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("command script must be a JSON list")
    return [GameCommand.from_dict(row) for row in payload]


def _print_header(save_payload: dict[str, Any], session: GameSession) -> None:
    print(
        "header "
        f"schema_version={save_payload.get('schema_version')} "
        f"seed={session.rng.seed} "
        f"turn={session.turn_counter} "
        f"mode={session.mode} "
        f"enemy_count={len(session.area.enemies)} "
        f"input_log_length={len(session.input_log)}"
    )
    print("integrity=OK")


def _print_input_summary(session: GameSession) -> None:
    counts = Counter(command.command_type for command in session.input_log)
    if not counts:
        print("input_summary none")
        return
    summary = " ".join(f"{command_type}={counts[command_type]}" for command_type in sorted(counts))
    print(f"input_summary {summary}")


def _print_artifacts(session: GameSession) -> None:
    print(f"artifacts.events.limit={ARTIFACT_PRINT_EVENT_LIMIT}")
    events = [entry for entry in session.get_event_trace() if entry.get("event_type") in ARTIFACT_EVENT_TYPES]
    recent = list(reversed(events[-ARTIFACT_PRINT_EVENT_LIMIT:]))
    if not recent:
        print("artifacts.event none")
    for entry in recent:
        params = entry.get("params")
        params = params if isinstance(params, dict) else {}
        details = " ".join(f"{key}={params[key]}" for key in sorted(params) if not isinstance(params[key], (dict, list)))
        print(f"artifacts.event turn={entry.get('turn', '?')} type={entry.get('event_type', '?')} {details}".rstrip())
    print(f"artifacts.snapshots keys={','.join(session.store.keys()) or 'none'}")


def _verify_input_log(session: GameSession) -> bool:
    """Replay the recorded commands from a fresh session; True when the end state matches."""
    fresh = GameSession(session.rng.seed, config=session.config, **standard_collaborators())
    for command in session.input_log:
        fresh.apply_command(command)
    replayed = session_hash(fresh)
    recorded = session_hash(session)
    print(f"input_log_replay_hash={replayed}")
    print(f"input_log_match={'yes' if replayed == recorded else 'no'}")
    return replayed == recorded


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())

    try:
        save_payload = json.loads(Path(args.save_path).read_text(encoding="utf-8"))
        session = session_from_save_payload(save_payload, **standard_collaborators())
        commands = _load_commands(args.commands) if args.commands else []

        _print_header(save_payload, session)
        if args.print_input_summary:
            _print_input_summary(session)
        if args.verify_input_log:
            _verify_input_log(session)

        start_hash = session_hash(session)
        print(f"start_hash={start_hash}")

        for command in commands:
            accepted = session.apply_command(command)
            if args.per_command:
                print(
                    f"command={command.command_type} accepted={'yes' if accepted else 'no'} "
                    f"turn={session.turn_counter} hash={session_hash(session)}"
                )

        end_hash = session_hash(session)
        print(f"end_hash={end_hash}")

        if args.print_artifacts:
            _print_artifacts(session)

        if args.dump_final_save:
            save_session_json(args.dump_final_save, session)
            print(f"dumped_final_save={args.dump_final_save}")

    except Exception as exc:
        print(f"error: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
