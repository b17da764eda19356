"""Spaced-repetition scheduling and drill session queue."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from types import MappingProxyType

from .evaluator import Verdict, evaluate
from .keys import parse_alternatives
from .models import MAX_EASE, MAX_INTERVAL_DAYS, MIN_EASE, KeyCombination, ProgressRecord, ShortcutItem

logger = logging.getLogger(__name__)

DUE_LIMIT = 30
NEW_LIMIT = 10
FALLBACK_LIMIT = 30
MASTERED_INTERVAL_DAYS = 30
MASTERED_STREAK = 3
EASE_GAIN = 0.05
EASE_PENALTY = 0.2

NowFn = Callable[[], datetime]
ProgressCallback = Callable[[Mapping[str, ProgressRecord]], None]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SessionState(Enum):
    """Lifecycle of one drill session."""

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETE = "complete"


@dataclass
class SessionQueue:
    """Ordered items for one session plus the cursor."""

    items: tuple[ShortcutItem, ...] = ()
    current_index: int = 0

    @property
    def current_item(self) -> ShortcutItem | None:
        if 0 <= self.current_index < len(self.items):
            return self.items[self.current_index]
        return None

    @property
    def is_complete(self) -> bool:
        return self.current_index >= len(self.items)

    def advance(self) -> None:
        """Move to the next item; past the last item the session is complete."""
        if self.current_index < len(self.items) - 1:
            self.current_index += 1
        else:
            self.current_index = len(self.items)

    def __len__(self) -> int:
        return len(self.items)


def apply_answer(record: ProgressRecord, correct: bool, elapsed_ms: float, now: datetime) -> None:
    """Update one progress record in place after an answer.

    Model:
    - correct answers walk the interval 0 -> 1 -> 3 -> floor(interval * ease) days
      and raise ease by 0.05 (capped at 3.0).
    - incorrect answers reset the interval to 1 day and lower ease by 0.2
      (floored at 1.3).
    - intervals never exceed `MAX_INTERVAL_DAYS`.
    - `due_at` is always recomputed from `now`.

    All new values are computed before the record is touched.
    """
    elapsed = max(0.0, float(elapsed_ms))
    attempts = record.attempts + 1
    if attempts == 1:
        avg_response_ms = elapsed
    else:
        avg_response_ms = (record.avg_response_ms * (attempts - 1) + elapsed) / attempts

    if correct:
        streak = record.correct_streak + 1
        if record.interval_days <= 0:
            interval = 1
        elif record.interval_days == 1:
            interval = 3
        else:
            interval = math.floor(record.interval_days * record.ease)
        ease = min(MAX_EASE, record.ease + EASE_GAIN)
    else:
        streak = 0
        interval = 1
        ease = max(MIN_EASE, record.ease - EASE_PENALTY)
    interval = min(MAX_INTERVAL_DAYS, interval)
    due_at = now + timedelta(days=interval)

    record.attempts = attempts
    if correct:
        record.correct += 1
    record.avg_response_ms = avg_response_ms
    record.correct_streak = streak
    record.interval_days = interval
    record.ease = ease
    record.due_at = due_at


class SchedulingEngine:
    """Owns progress records, composes session queues and scores answers."""

    def __init__(
        self,
        items: Iterable[ShortcutItem],
        progress: Mapping[str, ProgressRecord] | None = None,
        *,
        now_fn: NowFn | None = None,
        rng: random.Random | None = None,
        on_change: ProgressCallback | None = None,
        due_limit: int = DUE_LIMIT,
        new_limit: int = NEW_LIMIT,
        fallback_limit: int = FALLBACK_LIMIT,
    ) -> None:
        self._items = list(items)
        self._progress: dict[str, ProgressRecord] = dict(progress or {})
        self._now_fn = now_fn or _utc_now
        self._rng = rng if rng is not None else random.Random()
        self._on_change = on_change
        self.due_limit = due_limit
        self.new_limit = new_limit
        self.fallback_limit = fallback_limit
        self._trainable: list[ShortcutItem] | None = None
        self._alternatives: dict[str, tuple[KeyCombination, ...]] = {}
        self._queue = SessionQueue()
        self._started = False
        self.last_verdict: Verdict | None = None

    @property
    def items(self) -> list[ShortcutItem]:
        return list(self._items)

    @property
    def progress(self) -> Mapping[str, ProgressRecord]:
        """Read-only view of the progress map for reporting."""
        return MappingProxyType(self._progress)

    @property
    def queue(self) -> SessionQueue:
        return self._queue

    @property
    def state(self) -> SessionState:
        if not self._started:
            return SessionState.NOT_STARTED
        if self._queue.is_complete:
            return SessionState.COMPLETE
        return SessionState.ACTIVE

    def set_items(self, items: Iterable[ShortcutItem]) -> None:
        """Replace the dataset and drop cached parse results."""
        self._items = list(items)
        self._trainable = None
        self._alternatives.clear()

    def expected_alternatives(self, item: ShortcutItem) -> tuple[KeyCombination, ...]:
        """Return the parsed accepted combinations for one item."""
        cached = self._alternatives.get(item.id)
        if cached is None:
            cached = parse_alternatives(item.raw_keys)
            self._alternatives[item.id] = cached
        return cached

    def trainable_items(self) -> list[ShortcutItem]:
        """Return dataset items with at least one parsable combination, in dataset order."""
        if self._trainable is None:
            self._trainable = [item for item in self._items if self.expected_alternatives(item)]
        return list(self._trainable)

    def ensure_progress(self, items: Iterable[ShortcutItem] | None = None) -> int:
        """Create missing records for trainable items and return how many were created."""
        trainable_ids = {item.id for item in self.trainable_items()}
        candidates = self.trainable_items() if items is None else [item for item in items if item.id in trainable_ids]
        now = self._now_fn()
        created = 0
        for item in candidates:
            if item.id not in self._progress:
                self._progress[item.id] = ProgressRecord.new(item.id, now)
                created += 1
        if created:
            logger.debug("Created %d progress records", created)
            self._notify()
        return created

    def merge_progress(self, records: Mapping[str, ProgressRecord]) -> None:
        """Replace records by id, keeping records not named in `records`."""
        self._progress.update(records)
        self._notify()

    def due_items(self, limit: int) -> list[ShortcutItem]:
        """Return trainable items due now, oldest due first."""
        if limit <= 0:
            return []
        now = self._now_fn()
        due: list[tuple[datetime, str, ShortcutItem]] = []
        for item in self.trainable_items():
            record = self._progress.get(item.id)
            if record is not None and record.due_at <= now:
                due.append((record.due_at, item.id, item))
        due.sort(key=lambda entry: (entry[0], entry[1]))
        return [item for _, _, item in due[:limit]]

    def new_items(self, limit: int) -> list[ShortcutItem]:
        """Return a random sample of never-attempted trainable items."""
        if limit <= 0:
            return []
        fresh = [
            item
            for item in self.trainable_items()
            if (record := self._progress.get(item.id)) is not None and record.attempts == 0
        ]
        return self._rng.sample(fresh, min(limit, len(fresh)))

    def start_session(self) -> SessionQueue:
        """Compose a new queue from due items followed by new items."""
        due = self.due_items(self.due_limit)
        due_ids = {item.id for item in due}
        fresh = [item for item in self.new_items(self.new_limit) if item.id not in due_ids]
        items = due + fresh
        if not items:
            trainable = self.trainable_items()
            items = self._rng.sample(trainable, min(self.fallback_limit, len(trainable)))

        self._queue = SessionQueue(items=tuple(items))
        self._started = True
        self.last_verdict = None
        logger.info("Session started with %d items (%d due, %d new)", len(items), len(due), len(fresh))
        return self._queue

    def restart_session(self) -> SessionQueue:
        """Discard the current queue and compose a fresh one."""
        return self.start_session()

    def current_item(self) -> ShortcutItem | None:
        return self._queue.current_item

    def submit_answer(
        self, captured: KeyCombination, elapsed_ms: float, item_id: str | None = None
    ) -> Verdict | None:
        """Score the current item, update its record and advance the cursor.

        Returns None without changing anything when the session has no current
        item, the item has no progress record, or `item_id` names a different
        item than the current one (a stale host reference).
        """
        item = self._queue.current_item
        if item is None:
            return None
        if item_id is not None and item_id != item.id:
            return None
        record = self._progress.get(item.id)
        if record is None:
            return None

        verdict = evaluate(captured, self.expected_alternatives(item))
        apply_answer(record, verdict.correct, elapsed_ms, self._now_fn())
        self._queue.advance()
        self.last_verdict = verdict
        self._notify()
        return verdict

    def mastered_count(self) -> int:
        return sum(
            1
            for record in self._progress.values()
            if record.interval_days >= MASTERED_INTERVAL_DAYS and record.correct_streak >= MASTERED_STREAK
        )

    def accuracy(self) -> float:
        """Return overall correct/attempts ratio, 0.0 before any attempt."""
        attempts = sum(record.attempts for record in self._progress.values())
        if attempts == 0:
            return 0.0
        correct = sum(record.correct for record in self._progress.values())
        return correct / attempts

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.progress)
