"""Parse shortcut descriptions into canonical key combinations."""

from __future__ import annotations

import re

from .models import ANY_ARROW, KeyCombination

_ALTERNATIVE_SEPARATOR = re.compile(r"\s+(?:or|/)\s+", re.IGNORECASE)
_ANY_ARROW_PHRASE = re.compile(r"\b(?:arrow keys|any arrow|cursor keys|direction(?:al)? keys)\b", re.IGNORECASE)
_NON_KEYSTROKE = re.compile(r"click|drag|scroll|mouse|wheel|hover|toggle between", re.IGNORECASE)
_TOKEN_SEPARATOR = re.compile(r"[\s+]+")
_TRAILING_PLUS_KEY = re.compile(r"\+\s*\+$")
_FUNCTION_KEY = re.compile(r"^f([1-9]|1[0-9]|20)$", re.IGNORECASE)

_GLYPHS = "⌘⌥⇧⌃↩⏎⌤⎋⌫⌦⇥←→↑↓⇞⇟↖↘␣"

_MODIFIERS: dict[str, str] = {
    "cmd": "command",
    "command": "command",
    "⌘": "command",
    "opt": "option",
    "option": "option",
    "alt": "option",
    "⌥": "option",
    "shift": "shift",
    "⇧": "shift",
    "ctrl": "control",
    "control": "control",
    "ctl": "control",
    "⌃": "control",
}

_KEY_ALIASES: dict[str, str] = {
    "space": "Space",
    "spacebar": "Space",
    "␣": "Space",
    "tab": "Tab",
    "⇥": "Tab",
    "enter": "Enter",
    "return": "Enter",
    "↩": "Enter",
    "⏎": "Enter",
    "⌤": "Enter",
    "esc": "Esc",
    "escape": "Esc",
    "⎋": "Esc",
    "delete": "Delete",
    "del": "Delete",
    "backspace": "Delete",
    "⌫": "Delete",
    "forwarddelete": "ForwardDelete",
    "⌦": "ForwardDelete",
    "home": "Home",
    "↖": "Home",
    "end": "End",
    "↘": "End",
    "left": "Left",
    "leftarrow": "Left",
    "←": "Left",
    "right": "Right",
    "rightarrow": "Right",
    "→": "Right",
    "up": "Up",
    "uparrow": "Up",
    "↑": "Up",
    "down": "Down",
    "downarrow": "Down",
    "↓": "Down",
    "pageup": "PageUp",
    "pgup": "PageUp",
    "⇞": "PageUp",
    "pagedown": "PageDown",
    "pgdn": "PageDown",
    "pgdown": "PageDown",
    "⇟": "PageDown",
    "fn": "Fn",
    "function": "Fn",
}

# Multi-word key names, matched after modifiers are removed.
_KEY_PHRASES: dict[str, str] = {
    "left arrow": "Left",
    "arrow left": "Left",
    "right arrow": "Right",
    "arrow right": "Right",
    "up arrow": "Up",
    "arrow up": "Up",
    "down arrow": "Down",
    "arrow down": "Down",
    "page up": "PageUp",
    "page down": "PageDown",
    "space bar": "Space",
    "forward delete": "ForwardDelete",
}


def parse_shortcut(raw: str) -> frozenset[KeyCombination]:
    """Return the set of key combinations accepted for a shortcut description.

    An empty set means the description cannot be answered with a single key
    event (mouse gestures, manual instructions, unreadable text).
    """
    return frozenset(parse_alternatives(raw))


def parse_alternatives(raw: str) -> tuple[KeyCombination, ...]:
    """Return accepted combinations in source order without duplicates."""
    results: list[KeyCombination] = []
    for fragment in split_alternatives(raw):
        combination = _parse_alternative(fragment)
        if combination is not None and combination not in results:
            results.append(combination)
    return tuple(results)


def split_alternatives(raw: str) -> list[str]:
    """Split a description on `or` and spaced `/` separators.

    `+` joins modifiers inside one alternative, and a slash without
    surrounding whitespace is kept as a literal key.
    """
    fragments = _ALTERNATIVE_SEPARATOR.split(raw or "")
    return [fragment.strip() for fragment in fragments if fragment.strip()]


def parse_keystroke(text: str) -> KeyCombination | None:
    """Parse one typed keystroke description such as `cmd+shift+b`."""
    stripped = (text or "").strip()
    if not stripped:
        return None
    return _parse_combination(stripped)


def captured_combination(
    key_token: str,
    *,
    command: bool = False,
    option: bool = False,
    shift: bool = False,
    control: bool = False,
) -> KeyCombination | None:
    """Build a combination from a host-captured key event description."""
    token = (key_token or "").strip()
    if not token:
        return None
    return KeyCombination(
        key=normalize_key_token(token),
        command=command,
        option=option,
        shift=shift,
        control=control,
    )


def normalize_key_token(token: str) -> str:
    """Map one key spelling onto the canonical vocabulary."""
    lowered = token.lower()
    alias = _KEY_ALIASES.get(lowered)
    if alias is not None:
        return alias
    match = _FUNCTION_KEY.match(lowered)
    if match:
        return f"F{match.group(1)}"
    if len(token) == 1 and token.isalpha():
        return token.upper()
    return token


def _parse_alternative(fragment: str) -> KeyCombination | None:
    """Parse one alternative of a dataset description."""
    # Modifier words next to an arrow-key phrase are ignored; only a bare arrow is accepted.
    if _ANY_ARROW_PHRASE.search(fragment):
        return ANY_ARROW
    if _NON_KEYSTROKE.search(fragment):
        return None
    return _parse_combination(fragment)


def _parse_combination(fragment: str) -> KeyCombination | None:
    """Resolve modifiers plus exactly one key token, or None."""
    body, plus_key = _split_plus_key(fragment)
    for glyph in _GLYPHS:
        body = body.replace(glyph, f" {glyph} ")

    flags = {"command": False, "option": False, "shift": False, "control": False}
    keys: list[str] = []
    for token in _TOKEN_SEPARATOR.split(body):
        if not token:
            continue
        modifier = _MODIFIERS.get(token.lower())
        if modifier is not None:
            flags[modifier] = True
        else:
            keys.append(token)
    if plus_key:
        keys.append("+")

    key = _resolve_key(keys)
    if key is None:
        return None
    return KeyCombination(key=key, **flags)


def _split_plus_key(fragment: str) -> tuple[str, bool]:
    """Detach a literal plus key written as `Cmd + +`, `Cmd++` or `+`."""
    stripped = fragment.strip()
    if stripped == "+":
        return ("", True)
    match = _TRAILING_PLUS_KEY.search(stripped)
    if match:
        return (stripped[: match.start()], True)
    return (stripped, False)


def _resolve_key(tokens: list[str]) -> str | None:
    """Collapse remaining non-modifier tokens into one canonical key."""
    if len(tokens) > 1 and tokens[-1].lower() == "key":
        tokens = tokens[:-1]
    if not tokens:
        return None
    if len(tokens) == 1:
        return normalize_key_token(tokens[0])
    return _KEY_PHRASES.get(" ".join(token.lower() for token in tokens))
