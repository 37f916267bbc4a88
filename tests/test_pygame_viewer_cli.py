from pathlib import Path

import pytest

from roguecore.cli.pygame_viewer import (
    SessionController,
    _build_parser,
    _build_viewer_session,
    _camera_origin,
    _dim,
    _env_flag_enabled,
    _hud_lines,
    _load_viewer_session,
    _save_viewer_session,
    main,
)
from roguecore.sim.hash import session_hash
from roguecore.sim.world import MODE_DUNGEON, MODE_WORLD


def test_viewer_parser_defaults() -> None:
    args = _build_parser().parse_args([])

    assert args.seed == 7
    assert args.headless is False
    assert args.save_path == "saves/session_save.json"
    assert args.load_save is None


def test_viewer_parser_accepts_paths() -> None:
    args = _build_parser().parse_args(["--seed", "3", "--save-path", "saves/dev.json", "--load-save", "saves/dev.json"])

    assert args.seed == 3
    assert args.save_path == "saves/dev.json"
    assert args.load_save == "saves/dev.json"


def test_main_help_prints_usage_without_starting_viewer(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as result:
        main(["--help"])

    captured = capsys.readouterr()
    assert result.value.code == 0
    assert "usage:" in captured.out
    assert "--headless" in captured.out


def test_main_headless_mode_exits_cleanly_and_warns(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as result:
        main(["--headless", "--save-path", str(tmp_path / "save.json")])

    captured = capsys.readouterr()
    assert result.value.code == 0
    assert "headless mode active" in captured.out
    assert "[roguecore.viewer] startup" in captured.out


def test_controller_toggles_between_world_and_location() -> None:
    session = _build_viewer_session(7)
    site = session.world.dungeons[0]
    session.player.x, session.player.y = site.x, site.y
    controller = SessionController(session=session)

    assert controller.toggle_location() is True
    assert session.mode == MODE_DUNGEON
    assert controller.toggle_location() is True
    assert session.mode == MODE_WORLD


def test_viewer_save_load_round_trip_preserves_hash(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    session = _build_viewer_session(11)
    SessionController(session=session).wait()
    save_path = tmp_path / "viewer_save.json"

    _save_viewer_session(session, str(save_path))
    loaded = _load_viewer_session(str(save_path))

    output = capsys.readouterr().out
    assert session_hash(loaded) == session_hash(session)
    assert "[roguecore.viewer] saved" in output
    assert f"session_hash={session_hash(session)}" in output
    assert "[roguecore.viewer] loaded" in output


def test_hud_and_camera_helpers() -> None:
    session = _build_viewer_session(5)

    lines = _hud_lines(session)
    origin_x, origin_y = _camera_origin(session, (200, 200))

    assert lines[1].startswith("HP 20/40 | Lv 1")
    assert "turn=0" in lines[0]
    assert 0 <= origin_x <= session.player.x
    assert 0 <= origin_y <= session.player.y
    assert _dim((100, 200, 20)) == (45, 90, 9)


def test_env_flag_parsing(monkeypatch) -> None:
    monkeypatch.setenv("ROGUECORE_HEADLESS", "Yes")
    assert _env_flag_enabled("ROGUECORE_HEADLESS")
    monkeypatch.setenv("ROGUECORE_HEADLESS", "0")
    assert not _env_flag_enabled("ROGUECORE_HEADLESS")
    monkeypatch.delenv("ROGUECORE_HEADLESS")
    assert not _env_flag_enabled("ROGUECORE_HEADLESS")
