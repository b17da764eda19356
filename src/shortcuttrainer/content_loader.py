"""Load shortcut datasets from JSON documents."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from importlib import resources
from pathlib import Path
from typing import Any

from .models import UNCATEGORIZED, ShortcutItem

logger = logging.getLogger(__name__)

CONTENT_PACKAGE = "shortcuttrainer.content.datasets"
BUNDLED_DATASET = "live12_macos.json"

_RAW_KEY_FIELDS = ("mac_keys", "rawKeys", "raw_keys", "keys")
_ALTERNATE_KEY_FIELDS = ("windows_keys", "alternateKeys", "alternate_keys")
_SECTION_FIELDS = ("section", "category")


def _first_text(raw: dict[str, Any], fields: Iterable[str]) -> str | None:
    """Return the first non-empty string value among field aliases."""
    for field_name in fields:
        value = raw.get(field_name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _item_from_dict(raw: dict[str, Any]) -> ShortcutItem:
    """Build a shortcut item from one raw JSON record."""
    item_id = _first_text(raw, ("id",))
    if item_id is None:
        raise ValueError(f"Shortcut record has no id: {raw!r}")
    action = _first_text(raw, ("action",))
    if action is None:
        raise ValueError(f"Shortcut '{item_id}' has no action.")

    return ShortcutItem(
        id=item_id,
        action=action,
        raw_keys=_first_text(raw, _RAW_KEY_FIELDS) or "",
        section=_first_text(raw, _SECTION_FIELDS) or UNCATEGORIZED,
        alternate_keys=_first_text(raw, _ALTERNATE_KEY_FIELDS),
        version=_first_text(raw, ("version",)),
        os=_first_text(raw, ("os",)),
    )


def parse_dataset(raw: object) -> list[ShortcutItem]:
    """Build items from a decoded dataset document.

    Accepts `{"meta": {...}, "shortcuts": [...]}` or a bare list of records.
    """
    if isinstance(raw, dict):
        records = raw.get("shortcuts")
    else:
        records = raw
    if not isinstance(records, list):
        raise ValueError("Dataset must be a list of shortcuts or an object with a 'shortcuts' list.")

    items: list[ShortcutItem] = []
    seen: set[str] = set()
    for record in records:
        if not isinstance(record, dict):
            raise ValueError(f"Shortcut record must be an object: {record!r}")
        item = _item_from_dict(record)
        if item.id in seen:
            raise ValueError(f"Duplicate shortcut id: {item.id}")
        seen.add(item.id)
        items.append(item)
    return items


def load_dataset(path: Path | str) -> list[ShortcutItem]:
    """Load one dataset file."""
    raw = json.loads(Path(path).read_text(encoding="utf-8-sig"))
    return parse_dataset(raw)


def load_bundled_dataset(name: str = BUNDLED_DATASET) -> list[ShortcutItem]:
    """Load a dataset shipped with the package."""
    entry = resources.files(CONTENT_PACKAGE).joinpath(name)
    raw = json.loads(entry.read_text(encoding="utf-8-sig"))
    return parse_dataset(raw)


def load_first_available(paths: Iterable[Path | str], *, include_bundled: bool = True) -> list[ShortcutItem]:
    """Return the first candidate dataset that loads and is non-empty.

    Unreadable candidates are logged and skipped. Falls back to the bundled
    dataset, then to an empty list.
    """
    for path in paths:
        try:
            items = load_dataset(path)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping dataset %s: %s", path, exc)
            continue
        if items:
            logger.info("Loaded %d shortcuts from %s", len(items), path)
            return items

    if include_bundled:
        try:
            items = load_bundled_dataset()
        except (OSError, ValueError) as exc:
            logger.warning("Bundled dataset unavailable: %s", exc)
            return []
        logger.info("Loaded %d bundled shortcuts", len(items))
        return items
    return []
