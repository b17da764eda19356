"""Terminal host for shortcut recall drills."""

from __future__ import annotations

import argparse
import time
from collections.abc import Callable
from datetime import datetime

from .config import Settings, load_settings
from .keys import parse_keystroke
from .logging_config import setup_logging
from .scheduler import SessionState
from .service import ALL_SECTIONS, TrainerService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
SleepFn = Callable[[float], None]
ClockFn = Callable[[], float]
BACK_COMMANDS = {":back", ":b", "back"}
MENU_QUIT_COMMANDS = {"q"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_BACK_COMMANDS = {"b"}
QUEUE_PREVIEW_LIMIT = 30
WEAKEST_LIMIT = 20


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _settings() -> Settings:
    """Resolve settings from `.env` and the environment."""
    return load_settings()


def _service(settings: Settings) -> TrainerService:
    """Create app service for the configured progress database and dataset."""
    return TrainerService(db_path=settings.db_path, dataset_path=settings.dataset_path)


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="shortcuttrainer", description="Keyboard shortcut recall drills")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "stats", "export", "import"])
    parser.add_argument("path", nargs="?", help="JSON file for export/import")
    parser.add_argument("--dataset", help="Shortcut dataset JSON file (default: bundled dataset)")
    parser.add_argument("--data-dir", help="Directory holding progress.db")
    parser.add_argument("--log-level", help="Logging level, e.g. INFO or DEBUG")
    args = parser.parse_args(argv)
    if args.command in {"export", "import"} and not args.path:
        parser.error(f"{args.command} requires a file path")

    settings = _settings().with_overrides(
        data_dir=args.data_dir,
        dataset_path=args.dataset,
        log_level=args.log_level,
    )
    setup_logging(settings)

    if args.command == "play":
        return play_shell(settings=settings)

    service = _service(settings)
    try:
        if args.command == "stats":
            _stats_flow(service, print)
            return 0
        if args.command == "export":
            return 0 if _export_progress(service, args.path, print) else 1
        return 0 if _import_progress(service, args.path, print) else 1
    finally:
        service.close()


def play_shell(
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    settings: Settings | None = None,
    sleep_fn: SleepFn = time.sleep,
    clock_fn: ClockFn = time.monotonic,
) -> int:
    """Run persistent menu-driven shell."""
    settings = settings if settings is not None else _settings()
    service = _service(settings)
    try:
        try:
            while True:
                print_fn("\n=== Shortcut Trainer ===")
                print_fn(
                    f"Shortcuts: {len(service.trainable_items())} trainable of {len(service.items)}"
                    f" | Due now: {len(service.due_items(QUEUE_PREVIEW_LIMIT))}"
                    f" | Mastered: {service.mastered_count()}"
                )
                print_fn("1) Train")
                print_fn("2) Library")
                print_fn("3) Stats")
                print_fn("4) Admin")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _train_flow(
                        service,
                        input_fn,
                        print_fn,
                        delay_seconds=settings.feedback_delay_seconds,
                        sleep_fn=sleep_fn,
                        clock_fn=clock_fn,
                    )
                elif choice == "2":
                    _library_flow(service, input_fn, print_fn)
                elif choice == "3":
                    _stats_flow(service, print_fn)
                elif choice == "4":
                    _admin_flow(service, input_fn, print_fn)
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        service.close()


def _train_flow(
    service: TrainerService,
    input_fn: InputFn,
    print_fn: PrintFn,
    *,
    delay_seconds: float = 0.0,
    sleep_fn: SleepFn = time.sleep,
    clock_fn: ClockFn = time.monotonic,
) -> None:
    """Drill the session queue, resuming an unfinished session."""
    if service.session_state is not SessionState.ACTIVE:
        service.start_session()
    if service.current_item() is None:
        print_fn("No trainable shortcuts in the dataset.")
        return

    print_fn("\n=== Train ===")
    print_fn("Type the shortcut as keys, e.g. cmd+shift+b, ctrl tab or left.")
    print_fn("Type :b or :q to leave the session.")
    answered = 0
    correct = 0
    last_capture = clock_fn()
    while True:
        item = service.current_item()
        if item is None:
            print_fn(f"\nSession complete: {correct}/{answered} correct")
            choice = input_fn("r) Restart  b) Back: ").strip().lower()
            if choice in MENU_QUIT_COMMANDS:
                raise QuitApp()
            if choice != "r":
                return
            service.restart_session()
            if service.current_item() is None:
                print_fn("No trainable shortcuts in the dataset.")
                return
            answered = 0
            correct = 0
            last_capture = clock_fn()
            continue

        index, total = service.queue_position()
        print_fn(f"\n[{index + 1}/{total}] {item.action}")
        print_fn(f"Section: {item.section}")
        user_input = input_fn("Press: ").strip()
        lowered = user_input.lower()
        if lowered in BACK_COMMANDS or lowered in FLOW_EXIT_COMMANDS:
            print_fn(f"\nSession paused: {correct}/{answered} correct")
            return

        captured = parse_keystroke(user_input)
        if captured is None:
            print_fn("Could not read that keystroke. Try e.g. cmd+shift+b.")
            continue

        now = clock_fn()
        elapsed_ms = (now - last_capture) * 1000.0
        last_capture = now
        verdict = service.submit_answer(captured, elapsed_ms, item.id)
        if verdict is None:
            continue
        answered += 1
        if verdict.correct:
            correct += 1
            print_fn("Correct.")
        else:
            print_fn("Wrong.")
        print_fn(f"Expected: {verdict.expected_text}")
        print_fn(f"You pressed: {verdict.received_text}")
        if delay_seconds > 0:
            sleep_fn(delay_seconds)


def _library_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Search the shortcut library by text and section."""
    sections = service.sections()
    print_fn("\n=== Library ===")
    for idx, section in enumerate(sections, start=1):
        print_fn(f"{idx}) {section}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = input_fn("Section (blank = All): ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    section = ALL_SECTIONS
    if choice:
        if not choice.isdigit() or not (0 < int(choice) <= len(sections)):
            print_fn("Invalid choice.")
            return
        section = sections[int(choice) - 1]

    query = input_fn("Search action or keys (blank = everything): ").strip()
    items = service.search(query, section)
    if not items:
        print_fn("No matching shortcuts.")
        return

    trainable_ids = {item.id for item in service.trainable_items()}
    action_width = max(len("Action"), max(len(item.action) for item in items))
    keys_width = max(len("Keys"), max(len(item.raw_keys) for item in items))
    header = f"{'Action':<{action_width}} {'Keys':<{keys_width}} Section"
    print_fn(header)
    print_fn("-" * len(header))
    for item in items:
        marker = "" if item.id in trainable_ids else " (not trainable)"
        print_fn(f"{item.action:<{action_width}} {item.raw_keys:<{keys_width}} {item.section}{marker}")


def _stats_flow(service: TrainerService, print_fn: PrintFn) -> None:
    """Show overall accuracy, mastery and weakest shortcuts."""
    print_fn("\n=== Stats ===")
    print_fn(f"- Total shortcuts: {len(service.items)}")
    print_fn(f"- Trainable: {len(service.trainable_items())}")
    print_fn(f"- Attempts: {service.total_attempts()}")
    print_fn(f"- Accuracy: {service.accuracy() * 100:.0f}%")
    print_fn(f"- Mastered: {service.mastered_count()}")

    weakest = service.weakest(WEAKEST_LIMIT)
    if not weakest:
        return
    print_fn("\nWeak shortcuts:")
    action_width = max(len("Action"), max(len(row.item.action) for row in weakest))
    header = f"{'Acc':>4} {'Tries':>5} {'Action':<{action_width}} Keys"
    print_fn(header)
    print_fn("-" * len(header))
    for row in weakest:
        print_fn(
            f"{row.accuracy * 100:>3.0f}% "
            f"{row.attempts:>5} "
            f"{row.item.action:<{action_width}} "
            f"{service.expected_text(row.item)}"
        )


def _admin_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Admin menu for schedule inspection and progress transfer."""
    while True:
        print_fn("\n=== Admin ===")
        print_fn("1) View due queue")
        print_fn("2) Export progress")
        print_fn("3) Import progress")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose admin option: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "1":
            _queue_flow(service, print_fn)
        elif choice == "2":
            _export_progress_flow(service, input_fn, print_fn)
        elif choice == "3":
            _import_progress_flow(service, input_fn, print_fn)
        else:
            print_fn("Invalid choice.")


def _queue_flow(service: TrainerService, print_fn: PrintFn) -> None:
    """Show shortcuts currently due, oldest first."""
    due = service.due_items(QUEUE_PREVIEW_LIMIT)
    print_fn("\n=== Due Queue ===")
    if not due:
        print_fn("Nothing is due right now.")
        return
    due_width = 16
    interval_width = 8
    streak_width = 6
    ease_width = 5
    header = (
        f"{'Due (local)':<{due_width}} "
        f"{'Interval':>{interval_width}} "
        f"{'Streak':>{streak_width}} "
        f"{'Ease':>{ease_width}} "
        "Action"
    )
    print_fn(header)
    print_fn("-" * len(header))
    for item in due:
        record = service.progress[item.id]
        interval_label = f"{record.interval_days}d" if record.interval_days > 0 else "-"
        print_fn(
            f"{_format_local_due(record.due_at):<{due_width}} "
            f"{interval_label:>{interval_width}} "
            f"{record.correct_streak:>{streak_width}} "
            f"{record.ease:>{ease_width}.2f} "
            f"{item.action}"
        )


def _export_progress_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Export progress to a JSON file."""
    print_fn("\n=== Export Progress ===")
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    _export_progress(service, path_text, print_fn)


def _import_progress_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Merge progress from a JSON file."""
    print_fn("\n=== Import Progress ===")
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    _import_progress(service, path_text, print_fn)


def _export_progress(service: TrainerService, path_text: str, print_fn: PrintFn) -> bool:
    try:
        summary = service.export_progress(path_text)
    except (OSError, ValueError) as exc:
        print_fn(f"Export failed: {exc}")
        return False
    print_fn(f"Exported {summary.record_count} progress records to {summary.path}")
    return True


def _import_progress(service: TrainerService, path_text: str, print_fn: PrintFn) -> bool:
    try:
        summary = service.import_progress(path_text)
    except (OSError, ValueError) as exc:
        print_fn(f"Import failed: {exc}")
        return False
    print_fn(f"Imported {summary.record_count} progress records from {summary.path}")
    return True


def _format_local_due(due_at: datetime) -> str:
    """Convert an aware due timestamp to local human-readable datetime."""
    return due_at.astimezone().strftime("%Y-%m-%d %H:%M")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
