"""Application service wiring dataset, progress store and scheduling engine."""

from __future__ import annotations

import json
import logging
import math
import os
import random
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import cast

from . import __version__
from .content_loader import load_first_available
from .evaluator import Verdict, render_alternatives
from .models import DEFAULT_EASE, MAX_EASE, MAX_INTERVAL_DAYS, MIN_EASE, KeyCombination, ProgressRecord, ShortcutItem
from .progress import SCHEMA_VERSION, ProgressStore, parse_timestamp
from .scheduler import NowFn, SchedulingEngine, SessionState

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1
ALL_SECTIONS = "All"
# Legacy progress files store dates as seconds since this reference date.
_LEGACY_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class ProgressTransferSummary:
    """Summary emitted by progress export/import operations."""

    path: str
    record_count: int


@dataclass(frozen=True)
class WeakShortcut:
    """One row of the weakest-shortcuts report."""

    item: ShortcutItem
    accuracy: float
    attempts: int


class TrainerService:
    """Coordinates the dataset, persisted progress and drill sessions."""

    def __init__(
        self,
        db_path: Path | str,
        items: list[ShortcutItem] | None = None,
        *,
        dataset_path: Path | str | None = None,
        now_fn: NowFn | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Load the dataset and progress, then create records for newly seen shortcuts."""
        if items is None:
            items = load_first_available([dataset_path] if dataset_path is not None else [])
        self.store = ProgressStore(db_path)
        self.engine = SchedulingEngine(
            items,
            self.store.load_all(),
            now_fn=now_fn,
            rng=rng,
            on_change=self._save,
        )
        self.engine.ensure_progress()

    def _save(self, progress: Mapping[str, ProgressRecord]) -> None:
        self.store.save_all(progress)

    @property
    def items(self) -> list[ShortcutItem]:
        return self.engine.items

    @property
    def progress(self) -> Mapping[str, ProgressRecord]:
        return self.engine.progress

    @property
    def session_state(self) -> SessionState:
        return self.engine.state

    @property
    def last_verdict(self) -> Verdict | None:
        return self.engine.last_verdict

    def trainable_items(self) -> list[ShortcutItem]:
        return self.engine.trainable_items()

    def current_item(self) -> ShortcutItem | None:
        return self.engine.current_item()

    def queue_position(self) -> tuple[int, int]:
        """Return (current index, queue length)."""
        queue = self.engine.queue
        return (queue.current_index, len(queue))

    def start_session(self) -> list[ShortcutItem]:
        return list(self.engine.start_session().items)

    def restart_session(self) -> list[ShortcutItem]:
        return list(self.engine.restart_session().items)

    def submit_answer(
        self, captured: KeyCombination, elapsed_ms: float, item_id: str | None = None
    ) -> Verdict | None:
        """Score the current item; persistence happens through the engine callback."""
        return self.engine.submit_answer(captured, elapsed_ms, item_id)

    def due_items(self, limit: int = 30) -> list[ShortcutItem]:
        return self.engine.due_items(limit)

    def new_items(self, limit: int = 10) -> list[ShortcutItem]:
        return self.engine.new_items(limit)

    def accuracy(self) -> float:
        return self.engine.accuracy()

    def mastered_count(self) -> int:
        return self.engine.mastered_count()

    def total_attempts(self) -> int:
        return sum(record.attempts for record in self.engine.progress.values())

    def expected_text(self, item: ShortcutItem) -> str:
        """Render accepted keystrokes for one item."""
        return render_alternatives(self.engine.expected_alternatives(item))

    def sections(self) -> list[str]:
        """Return the section filter options, `All` first."""
        return [ALL_SECTIONS] + sorted({item.section for item in self.engine.items})

    def search(self, query: str = "", section: str | None = None) -> list[ShortcutItem]:
        """Filter the library by action/keys text and section."""
        needle = query.strip().lower()
        results: list[ShortcutItem] = []
        for item in self.engine.items:
            if section and section != ALL_SECTIONS and item.section != section:
                continue
            if needle and needle not in item.action.lower() and needle not in item.raw_keys.lower():
                continue
            results.append(item)
        return results

    def weakest(self, limit: int = 20) -> list[WeakShortcut]:
        """Return attempted shortcuts with the lowest accuracy first."""
        rows: list[WeakShortcut] = []
        for item in self.engine.items:
            record = self.engine.progress.get(item.id)
            if record is None or record.attempts == 0:
                continue
            rows.append(WeakShortcut(item=item, accuracy=record.accuracy, attempts=record.attempts))
        rows.sort(key=lambda row: (row.accuracy, -row.attempts, row.item.id))
        return rows[: max(0, limit)]

    def export_progress(self, export_path: Path | str) -> ProgressTransferSummary:
        """Write the progress map to a JSON file, replacing it atomically."""
        records = sorted(self.engine.progress.values(), key=lambda record: record.id)
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "schema_version": SCHEMA_VERSION,
            },
            "progress": [_record_to_dict(record) for record in records],
        }

        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=True))
        logger.info("Exported %d progress records to %s", len(records), path)
        return ProgressTransferSummary(path=str(path), record_count=len(records))

    def import_progress(self, import_path: Path | str) -> ProgressTransferSummary:
        """Merge progress records from an export file or a legacy progress list."""
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(raw_obj, list):
            rows_obj: object = raw_obj
        elif isinstance(raw_obj, dict):
            raw = cast(dict[str, object], raw_obj)
            format_version = _coerce_int(raw.get("format_version", 0))
            if format_version is None:
                raise ValueError("Import file has invalid format_version.")
            if format_version > EXPORT_FORMAT_VERSION:
                raise ValueError(
                    f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
                )
            rows_obj = raw.get("progress")
            if not isinstance(rows_obj, list):
                raise ValueError("Import file has no 'progress' list.")
        else:
            raise ValueError("Import file root must be a JSON object or list.")

        records = _normalize_progress_rows(rows_obj, datetime.now(UTC))
        self.engine.merge_progress(records)
        self.engine.ensure_progress()
        logger.info("Imported %d progress records from %s", len(records), path)
        return ProgressTransferSummary(path=str(path), record_count=len(records))

    def close(self) -> None:
        """Close resources."""
        self.store.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort cleanup for test/process teardown."""
        try:
            self.close()
        except Exception:
            pass


def _record_to_dict(record: ProgressRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "ease": record.ease,
        "interval_days": record.interval_days,
        "due_at": record.due_at.astimezone(UTC).isoformat(),
        "correct_streak": record.correct_streak,
        "attempts": record.attempts,
        "correct": record.correct,
        "avg_response_ms": record.avg_response_ms,
    }


def _atomic_write_text(path: Path, text: str) -> None:
    """Write through a sibling temp file so readers never see a partial file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _pick(row: dict[str, object], *names: str) -> object:
    """Return the first present value among snake_case and legacy camelCase keys."""
    for name in names:
        if name in row:
            return row[name]
    return None


def _normalize_progress_rows(raw: object, now: datetime) -> dict[str, ProgressRecord]:
    """Normalize raw progress rows from an import payload, clamping to valid ranges."""
    if not isinstance(raw, list):
        return {}
    raw_rows = cast(list[object], raw)
    records: dict[str, ProgressRecord] = {}
    for item in raw_rows:
        if not isinstance(item, dict):
            continue
        row = cast(dict[str, object], item)
        item_id: object = _pick(row, "id", "item_id")
        if not isinstance(item_id, str) or not item_id.strip():
            continue

        ease = _coerce_float(_pick(row, "ease"), default=DEFAULT_EASE) or DEFAULT_EASE
        interval_days = _coerce_int(_pick(row, "interval_days", "intervalDays"), default=0) or 0
        streak = _coerce_int(_pick(row, "correct_streak", "correctStreak"), default=0) or 0
        attempts = max(0, _coerce_int(_pick(row, "attempts"), default=0) or 0)
        correct = _coerce_int(_pick(row, "correct"), default=0) or 0
        avg_ms = _coerce_float(_pick(row, "avg_response_ms", "avgResponseMs", "avgMs"), default=0.0) or 0.0

        records[item_id.strip()] = ProgressRecord(
            id=item_id.strip(),
            ease=min(MAX_EASE, max(MIN_EASE, ease)),
            interval_days=min(MAX_INTERVAL_DAYS, max(0, interval_days)),
            due_at=_coerce_timestamp(_pick(row, "due_at", "dueAt"), now),
            correct_streak=max(0, streak),
            attempts=attempts,
            correct=min(attempts, max(0, correct)),
            avg_response_ms=max(0.0, avg_ms),
        )
    return records


def _coerce_timestamp(value: object, default: datetime) -> datetime:
    """Coerce ISO strings or legacy reference-date seconds to an aware datetime."""
    if isinstance(value, bool):
        return default
    if isinstance(value, int | float):
        seconds = _coerce_float(value)
        if seconds is None:
            return default
        try:
            return _LEGACY_REFERENCE_DATE + timedelta(seconds=seconds)
        except OverflowError:
            return default
    if isinstance(value, str) and value:
        try:
            return parse_timestamp(value)
        except ValueError:
            return default
    return default


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce value to int for import normalization."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return default
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _coerce_float(value: object, default: float | None = None) -> float | None:
    """Coerce value to float for import normalization."""
    if isinstance(value, bool):
        return float(int(value))
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return default
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
    else:
        return default
    return number if math.isfinite(number) else default
