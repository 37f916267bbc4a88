import json
from pathlib import Path

from roguecore.cli.play import DEFAULT_SAVE_PATH, main


def test_play_launcher_creates_default_save_when_missing(tmp_path: Path, monkeypatch) -> None:
    save_path = tmp_path / "canonical.json"

    def fake_run(**kwargs):
        assert kwargs["headless"] is True
        assert kwargs["seed"] == 7
        assert kwargs["load_save"] == str(save_path)
        assert kwargs["save_path"] == str(save_path)
        return 0

    monkeypatch.setattr("roguecore.cli.play.run_pygame_viewer", fake_run)

    result = main(["--headless", "--load-save", str(save_path), "--seed", "7"])

    assert result == 0
    assert save_path.exists()
    payload = json.loads(save_path.read_text(encoding="utf-8"))
    assert payload["session"]["seed"] == 7


def test_play_launcher_applies_config_to_new_save(tmp_path: Path, monkeypatch) -> None:
    save_path = tmp_path / "canonical.json"
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"world_cols": 24, "world_rows": 16}), encoding="utf-8")
    monkeypatch.setattr("roguecore.cli.play.run_pygame_viewer", lambda **_: 0)

    result = main(["--load-save", str(save_path), "--config", str(config_path)])

    payload = json.loads(save_path.read_text(encoding="utf-8"))
    assert result == 0
    assert payload["session"]["config"]["world_cols"] == 24
    assert len(payload["session"]["world"]["map"]) == 16


def test_play_launcher_keeps_existing_save(tmp_path: Path, monkeypatch) -> None:
    save_path = tmp_path / "canonical.json"
    save_path.write_text("{}", encoding="utf-8")
    monkeypatch.setattr("roguecore.cli.play.run_pygame_viewer", lambda **_: 0)

    assert main(["--load-save", str(save_path)]) == 0
    assert save_path.read_text(encoding="utf-8") == "{}"


def test_play_launcher_defaults_to_canonical_save_path(monkeypatch) -> None:
    captured = {}

    def fake_run(**kwargs):
        captured.update(kwargs)
        return 0

    monkeypatch.setattr("roguecore.cli.play.run_pygame_viewer", fake_run)
    monkeypatch.setattr("roguecore.cli.play._ensure_save_exists", lambda **_: None)

    result = main(["--headless"])

    assert result == 0
    assert captured["load_save"] == DEFAULT_SAVE_PATH
    assert captured["save_path"] == DEFAULT_SAVE_PATH
