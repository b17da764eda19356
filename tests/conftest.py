from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from shortcuttrainer.models import ShortcutItem  # noqa: E402

START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


class FakeClock:
    """Mutable clock passed as `now_fn` to the scheduling engine."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide per-test temporary directory path inside the workspace.

    This intentionally overrides pytest's builtin ``tmp_path`` fixture for this
    repository so progress databases and exports land under ``.tmp_pytest/``.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def items() -> list[ShortcutItem]:
    return [
        ShortcutItem(id="browser", action="Hide/Show Browser", raw_keys="Cmd Option B", section="Views"),
        ShortcutItem(id="redo", action="Redo", raw_keys="Cmd Shift Z / Cmd Y", section="Editing"),
        ShortcutItem(id="play", action="Play/Stop", raw_keys="Space", section="Transport"),
        ShortcutItem(id="move", action="Move Selection", raw_keys="arrow keys", section="Navigation"),
        ShortcutItem(id="pan", action="Pan", raw_keys="Click and drag", section="Navigation"),
        ShortcutItem(id="save", action="Save", raw_keys="⌘S", section="Files"),
    ]
