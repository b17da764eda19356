"""Core domain models for shortcut recall drills."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

UNCATEGORIZED = "Uncategorized"
ANY_ARROW_TOKEN = "AnyArrow"
DIRECTIONAL_KEYS = frozenset({"Left", "Right", "Up", "Down"})

DEFAULT_EASE = 2.3
MIN_EASE = 1.3
MAX_EASE = 3.0
MAX_INTERVAL_DAYS = 36500


@dataclass(frozen=True)
class ShortcutItem:
    """One shortcut from the dataset."""

    id: str
    action: str
    raw_keys: str
    section: str = UNCATEGORIZED
    alternate_keys: str | None = None
    version: str | None = None
    os: str | None = None


@dataclass(frozen=True)
class KeyCombination:
    """Canonical key token plus modifier flags."""

    key: str
    command: bool = False
    option: bool = False
    shift: bool = False
    control: bool = False

    @property
    def is_any_arrow(self) -> bool:
        return self.key == ANY_ARROW_TOKEN and not self.has_modifiers

    @property
    def has_modifiers(self) -> bool:
        return self.command or self.option or self.shift or self.control


ANY_ARROW = KeyCombination(key=ANY_ARROW_TOKEN)


@dataclass
class ProgressRecord:
    """Mutable spaced-repetition state for one shortcut."""

    id: str
    ease: float
    interval_days: int
    due_at: datetime
    correct_streak: int = 0
    attempts: int = 0
    correct: int = 0
    avg_response_ms: float = 0.0

    @classmethod
    def new(cls, item_id: str, now: datetime) -> ProgressRecord:
        """Return the initial record for an item seen for the first time."""
        return cls(id=item_id, ease=DEFAULT_EASE, interval_days=0, due_at=now)

    @property
    def accuracy(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.correct / self.attempts
