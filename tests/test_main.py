import json
import random
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

import shortcuttrainer.main as main
from shortcuttrainer.config import Settings
from shortcuttrainer.models import ShortcutItem
from shortcuttrainer.service import TrainerService

# Session order when every item is due at once: due time ties break by id.
SESSION_ANSWERS = ["cmd option b", "left", "space", "cmd y", "cmd s"]


class DummyService:
    def __init__(self) -> None:
        self.closed = False
        self.items: list[object] = []

    def close(self) -> None:
        self.closed = True

    def trainable_items(self) -> list[object]:
        return []

    def due_items(self, limit: int = 30) -> list[object]:
        return []

    def mastered_count(self) -> int:
        return 0


def _inputs(*values: str) -> Callable[[str], str]:
    iterator: Iterator[str] = iter(values)
    return lambda _: next(iterator)


def _ticker(step: float = 0.5) -> Callable[[], float]:
    state = {"now": 0.0}

    def tick() -> float:
        state["now"] += step
        return state["now"]

    return tick


@pytest.fixture
def service(items: list[ShortcutItem], clock: Any) -> Iterator[TrainerService]:
    svc = TrainerService(":memory:", items, now_fn=clock, rng=random.Random(11))
    yield svc
    svc.close()


def test_run_enters_play_shell(monkeypatch: Any) -> None:
    monkeypatch.setattr(main, "_settings", lambda: Settings())
    monkeypatch.setattr(main, "setup_logging", lambda settings: None)
    monkeypatch.setattr(main, "play_shell", lambda **kwargs: 0)
    assert main.run([]) == 0


def test_run_applies_cli_overrides(monkeypatch: Any) -> None:
    seen: dict[str, Settings] = {}
    monkeypatch.setattr(main, "_settings", lambda: Settings())
    monkeypatch.setattr(main, "setup_logging", lambda settings: seen.__setitem__("logging", settings))

    def fake_play_shell(**kwargs: Any) -> int:
        seen["play"] = kwargs["settings"]
        return 0

    monkeypatch.setattr(main, "play_shell", fake_play_shell)
    assert main.run(["--data-dir", "/tmp/st", "--dataset", "ds.json", "--log-level", "debug"]) == 0
    settings = seen["play"]
    assert settings.db_path == Path("/tmp/st") / "progress.db"
    assert settings.dataset_path == Path("ds.json")
    assert settings.log_level == "DEBUG"
    assert seen["logging"] is settings


def test_run_stats_export_import(
    monkeypatch: Any, items: list[ShortcutItem], clock: Any, tmp_path: Path, capsys: Any
) -> None:
    monkeypatch.setattr(main, "_settings", lambda: Settings())
    monkeypatch.setattr(main, "setup_logging", lambda settings: None)
    monkeypatch.setattr(main, "_service", lambda settings: TrainerService(":memory:", items, now_fn=clock))

    assert main.run(["stats"]) == 0
    assert "=== Stats ===" in capsys.readouterr().out

    export_path = tmp_path / "progress.json"
    assert main.run(["export", str(export_path)]) == 0
    assert "Exported 5 progress records" in capsys.readouterr().out
    assert json.loads(export_path.read_text(encoding="utf-8"))["format_version"] == 1

    assert main.run(["import", str(export_path)]) == 0
    assert "Imported 5 progress records" in capsys.readouterr().out

    assert main.run(["import", str(tmp_path / "missing.json")]) == 1
    assert "Import failed:" in capsys.readouterr().out


def test_run_export_requires_path() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main.run(["export"])
    assert excinfo.value.code == 2


def test_play_shell_quit_closes_service(monkeypatch: Any) -> None:
    service = DummyService()
    monkeypatch.setattr(main, "_service", lambda _settings: service)
    outputs: list[str] = []
    code = main.play_shell(input_fn=_inputs("q"), print_fn=outputs.append, settings=Settings())
    assert code == 0
    assert service.closed is True
    assert any("Shortcuts: 0 trainable of 0" in line for line in outputs)


def test_play_shell_invalid_choice_then_quit(monkeypatch: Any) -> None:
    service = DummyService()
    monkeypatch.setattr(main, "_service", lambda _settings: service)
    outputs: list[str] = []
    code = main.play_shell(input_fn=_inputs("9", "q"), print_fn=outputs.append, settings=Settings())
    assert code == 0
    assert any("Invalid choice." in line for line in outputs)


def test_play_shell_calls_menu_handlers(monkeypatch: Any) -> None:
    service = DummyService()
    monkeypatch.setattr(main, "_service", lambda _settings: service)
    called = {"train": 0, "library": 0, "stats": 0, "admin": 0}
    monkeypatch.setattr(main, "_train_flow", lambda *args, **kwargs: called.__setitem__("train", 1))
    monkeypatch.setattr(main, "_library_flow", lambda *args, **kwargs: called.__setitem__("library", 1))
    monkeypatch.setattr(main, "_stats_flow", lambda *args, **kwargs: called.__setitem__("stats", 1))
    monkeypatch.setattr(main, "_admin_flow", lambda *args, **kwargs: called.__setitem__("admin", 1))

    code = main.play_shell(input_fn=_inputs("1", "2", "3", "4", "q"), print_fn=lambda _: None, settings=Settings())
    assert code == 0
    assert called == {"train": 1, "library": 1, "stats": 1, "admin": 1}


def test_play_shell_quit_from_nested_flow(monkeypatch: Any) -> None:
    service = DummyService()
    monkeypatch.setattr(main, "_service", lambda _settings: service)

    def quitting_flow(*args: Any, **kwargs: Any) -> None:
        raise main.QuitApp()

    monkeypatch.setattr(main, "_admin_flow", quitting_flow)
    code = main.play_shell(input_fn=_inputs("4"), print_fn=lambda _: None, settings=Settings())
    assert code == 0
    assert service.closed is True


def test_train_flow_scores_answers_and_pauses(service: TrainerService) -> None:
    outputs: list[str] = []
    sleeps: list[float] = []
    main._train_flow(
        service,
        _inputs("cmd+option+b", "ctrl q", "cmd shift", ":b"),
        outputs.append,
        delay_seconds=0.25,
        sleep_fn=sleeps.append,
        clock_fn=_ticker(),
    )
    assert "\n[1/5] Hide/Show Browser" in outputs
    assert "Section: Views" in outputs
    assert outputs.count("Correct.") == 1
    assert outputs.count("Wrong.") == 1
    assert "Expected: Any arrow key" in outputs
    assert "You pressed: Ctrl + Q" in outputs
    assert "Could not read that keystroke. Try e.g. cmd+shift+b." in outputs
    assert "\nSession paused: 1/2 correct" in outputs
    assert sleeps == [0.25, 0.25]
    assert service.progress["browser"].avg_response_ms == 500.0


def test_train_flow_resumes_active_session(service: TrainerService) -> None:
    main._train_flow(service, _inputs(SESSION_ANSWERS[0], ":q"), lambda _: None, clock_fn=_ticker())
    outputs: list[str] = []
    main._train_flow(service, _inputs(":b"), outputs.append, clock_fn=_ticker())
    assert "\n[2/5] Move Selection" in outputs


def test_train_flow_completes_and_goes_back(service: TrainerService) -> None:
    outputs: list[str] = []
    main._train_flow(service, _inputs(*SESSION_ANSWERS, "b"), outputs.append, clock_fn=_ticker())
    assert outputs.count("Correct.") == 5
    assert "\nSession complete: 5/5 correct" in outputs
    assert service.total_attempts() == 5


def test_train_flow_restart_and_quit(service: TrainerService) -> None:
    outputs: list[str] = []
    main._train_flow(service, _inputs(*SESSION_ANSWERS, "r", ":q"), outputs.append, clock_fn=_ticker())
    assert "\nSession paused: 0/0 correct" in outputs
    assert service.queue_position() == (0, 5)


def test_train_flow_quit_at_session_end() -> None:
    service = TrainerService(":memory:", [ShortcutItem(id="play", action="Play/Stop", raw_keys="Space")])
    with pytest.raises(main.QuitApp):
        main._train_flow(service, _inputs("space", "q"), lambda _: None)
    assert service.total_attempts() == 1
    service.close()


def test_train_flow_without_trainable_items() -> None:
    service = TrainerService(":memory:", [ShortcutItem(id="pan", action="Pan", raw_keys="Click and drag")])
    outputs: list[str] = []
    main._train_flow(service, _inputs(), outputs.append)
    assert outputs == ["No trainable shortcuts in the dataset."]
    service.close()


def test_library_flow_filters_by_section(service: TrainerService) -> None:
    outputs: list[str] = []
    main._library_flow(service, _inputs("4", ""), outputs.append)
    assert "4) Navigation" in outputs
    assert any(line.startswith("Move Selection") for line in outputs)
    assert any(line.startswith("Pan") and line.endswith("(not trainable)") for line in outputs)
    assert not any(line.startswith("Redo") for line in outputs)


def test_library_flow_search_and_empty_result(service: TrainerService) -> None:
    outputs: list[str] = []
    main._library_flow(service, _inputs("", "redo"), outputs.append)
    assert any(line.startswith("Redo") for line in outputs)

    outputs = []
    main._library_flow(service, _inputs("", "nothing like this"), outputs.append)
    assert "No matching shortcuts." in outputs


def test_library_flow_invalid_back_and_quit(service: TrainerService) -> None:
    outputs: list[str] = []
    main._library_flow(service, _inputs("99"), outputs.append)
    assert "Invalid choice." in outputs
    main._library_flow(service, _inputs("b"), lambda _: None)
    with pytest.raises(main.QuitApp):
        main._library_flow(service, _inputs("q"), lambda _: None)


def test_stats_flow(service: TrainerService) -> None:
    main._train_flow(service, _inputs("cmd option b", "ctrl q", ":b"), lambda _: None, clock_fn=_ticker())
    outputs: list[str] = []
    main._stats_flow(service, outputs.append)
    assert "- Total shortcuts: 6" in outputs
    assert "- Trainable: 5" in outputs
    assert "- Attempts: 2" in outputs
    assert "- Accuracy: 50%" in outputs
    assert "- Mastered: 0" in outputs
    assert "\nWeak shortcuts:" in outputs
    weak_rows = [line for line in outputs if "Move Selection" in line]
    assert weak_rows and weak_rows[0].startswith("  0%")


def test_stats_flow_without_attempts(service: TrainerService) -> None:
    outputs: list[str] = []
    main._stats_flow(service, outputs.append)
    assert "- Accuracy: 0%" in outputs
    assert "\nWeak shortcuts:" not in outputs


def test_queue_flow(service: TrainerService, clock: Any) -> None:
    outputs: list[str] = []
    main._queue_flow(service, outputs.append)
    assert any("Hide/Show Browser" in line for line in outputs)
    assert any(line.startswith("Due (local)") for line in outputs)

    for record in service.progress.values():
        record.due_at = clock.now.replace(year=2030)
    outputs = []
    main._queue_flow(service, outputs.append)
    assert "Nothing is due right now." in outputs


def test_admin_flow_routes_subcommands(service: TrainerService, tmp_path: Path) -> None:
    outputs: list[str] = []
    export_path = str(tmp_path / "backup.json")
    inputs = _inputs("1", "2", export_path, "3", export_path, "7", "b")
    main._admin_flow(service, inputs, outputs.append)
    assert "\n=== Due Queue ===" in outputs
    assert f"Exported 5 progress records to {export_path}" in outputs
    assert f"Imported 5 progress records from {export_path}" in outputs
    assert "Invalid choice." in outputs

    with pytest.raises(main.QuitApp):
        main._admin_flow(service, _inputs("q"), lambda _: None)


def test_import_export_flow_empty_path_validation(service: TrainerService) -> None:
    outputs: list[str] = []
    main._export_progress_flow(service, _inputs(""), outputs.append)
    assert "File path is required." in outputs
    outputs = []
    main._import_progress_flow(service, _inputs(""), outputs.append)
    assert "File path is required." in outputs


def test_import_flow_reports_bad_file(service: TrainerService, tmp_path: Path) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"format_version": 99, "progress": []}), encoding="utf-8")
    outputs: list[str] = []
    main._import_progress_flow(service, _inputs(str(bad)), outputs.append)
    assert any(line.startswith("Import failed:") for line in outputs)


def test_import_flow_survives_non_finite_numbers(service: TrainerService, tmp_path: Path) -> None:
    path = tmp_path / "legacy.json"
    path.write_text('[{"id": "play", "intervalDays": Infinity, "ease": NaN}]', encoding="utf-8")
    outputs: list[str] = []
    main._import_progress_flow(service, _inputs(str(path)), outputs.append)
    assert f"Imported 1 progress records from {path}" in outputs
    assert service.progress["play"].interval_days == 0
