import json
from pathlib import Path

from roguecore.cli.replay_tool import _build_parser, main
from roguecore.content.generators import standard_collaborators
from roguecore.content.io import save_session_json
from roguecore.sim.core import GameSession


def _build_save(path: Path, seed: int = 77) -> GameSession:
    session = GameSession(seed, **standard_collaborators())
    session.move(1, 0)
    session.wait()
    session.move(0, 1)
    save_session_json(path, session)
    return session


def test_replay_tool_parser_accepts_flags() -> None:
    args = _build_parser().parse_args(["save.json", "--print-artifacts", "--verify-input-log", "--per-command"])

    assert args.print_artifacts is True
    assert args.verify_input_log is True
    assert args.per_command is True
    assert args.commands is None


def test_replay_tool_main_outputs_hashes(tmp_path: Path, capsys) -> None:
    save_path = tmp_path / "game_save.json"
    dumped_path = tmp_path / "replayed_save.json"
    _build_save(save_path)

    exit_code = main(
        [
            str(save_path),
            "--print-input-summary",
            "--print-artifacts",
            "--dump-final-save",
            str(dumped_path),
        ]
    )

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "header schema_version=1 seed=77" in output
    assert "integrity=OK" in output
    assert "input_summary move=2 wait=1" in output
    assert "start_hash=" in output
    assert "end_hash=" in output
    assert "artifacts.events.limit=20" in output
    assert "artifacts.snapshots keys=none" in output
    assert dumped_path.exists()


def test_replay_tool_applies_command_script(tmp_path: Path, capsys) -> None:
    save_path = tmp_path / "game_save.json"
    commands_path = tmp_path / "commands.json"
    _build_save(save_path)
    commands_path.write_text(
        json.dumps([{"command_type": "wait", "params": {}}, {"command_type": "move", "params": {"dx": 5, "dy": 0}}]),
        encoding="utf-8",
    )

    exit_code = main([str(save_path), "--commands", str(commands_path), "--per-command"])

    output = capsys.readouterr().out
    lines = {line.split("=", 1)[0]: line.split("=", 1)[1] for line in output.splitlines() if line.startswith(("start_hash", "end_hash"))}
    assert exit_code == 0
    assert lines["start_hash"] != lines["end_hash"]
    assert "command=wait accepted=yes" in output
    assert "command=move accepted=no" in output


def test_replay_tool_verifies_input_log(tmp_path: Path, capsys) -> None:
    save_path = tmp_path / "game_save.json"
    _build_save(save_path, seed=12)

    exit_code = main([str(save_path), "--verify-input-log"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "input_log_match=yes" in output


def test_replay_tool_reports_errors(tmp_path: Path, capsys) -> None:
    save_path = tmp_path / "game_save.json"
    _build_save(save_path)
    payload = json.loads(save_path.read_text(encoding="utf-8"))
    payload["session"]["turn_counter"] = 99
    save_path.write_text(json.dumps(payload), encoding="utf-8")

    exit_code = main([str(save_path)])

    output = capsys.readouterr().out
    assert exit_code == 1
    assert "error: save_hash mismatch" in output


def test_replay_tool_rejects_non_list_command_script(tmp_path: Path, capsys) -> None:
    save_path = tmp_path / "game_save.json"
    commands_path = tmp_path / "commands.json"
    _build_save(save_path)
    commands_path.write_text(json.dumps({"command_type": "wait"}), encoding="utf-8")

    assert main([str(save_path), "--commands", str(commands_path)]) == 1
    assert "error: command script must be a JSON list" in capsys.readouterr().out
