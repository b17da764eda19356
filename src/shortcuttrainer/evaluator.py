"""Score captured keystrokes against accepted combinations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .models import DIRECTIONAL_KEYS, KeyCombination

ANY_ARROW_LABEL = "Any arrow key"


@dataclass(frozen=True)
class Verdict:
    """Outcome of one answer, with renderings for feedback display."""

    correct: bool
    expected_text: str
    received_text: str


def is_correct(captured: KeyCombination, expected: Iterable[KeyCombination]) -> bool:
    """Return whether the captured combination satisfies any accepted alternative.

    Modifiers always count. The any-arrow sentinel accepts a bare directional key.
    """
    for candidate in expected:
        if candidate.is_any_arrow:
            if captured.key in DIRECTIONAL_KEYS and not captured.has_modifiers:
                return True
            continue
        if candidate == captured:
            return True
    return False


def render_combination(combination: KeyCombination) -> str:
    """Render as `Ctrl + Cmd + Option + Shift + Key`."""
    if combination.is_any_arrow:
        return ANY_ARROW_LABEL
    parts: list[str] = []
    if combination.control:
        parts.append("Ctrl")
    if combination.command:
        parts.append("Cmd")
    if combination.option:
        parts.append("Option")
    if combination.shift:
        parts.append("Shift")
    parts.append(combination.key)
    return " + ".join(parts)


def render_alternatives(expected: Iterable[KeyCombination]) -> str:
    """Render accepted alternatives joined by ` OR `.

    Sequences keep their order; sets are rendered in sorted order so the text is stable.
    """
    if isinstance(expected, (set, frozenset)):
        rendered = sorted(render_combination(item) for item in expected)
    else:
        rendered = [render_combination(item) for item in expected]
    return " OR ".join(rendered)


def evaluate(captured: KeyCombination, expected: Iterable[KeyCombination]) -> Verdict:
    """Score one answer and build the feedback texts."""
    alternatives = tuple(expected) if not isinstance(expected, (set, frozenset)) else expected
    return Verdict(
        correct=is_correct(captured, alternatives),
        expected_text=render_alternatives(alternatives),
        received_text=render_combination(captured),
    )
