"""Key layout of a 15-key panel and press classification.

Row 0 (keys 0-4) holds the device action icons, row 1 (5-9) the status tiles
and row 2 (10-14) the last-reset date tiles. Keys 10 and 14 double as
previous/next page buttons when the current page allows the move.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Collection, Optional

KEYS_PER_ROW = 5
KEY_COUNT = 15
SLOTS_PER_PAGE = KEYS_PER_ROW

STATIC_KEYS = range(0, 5)
STATUS_KEYS = range(5, 10)
DATE_KEYS = range(10, 15)

PREV_PAGE_KEY = 10
NEXT_PAGE_KEY = 14


class KeyAction(Enum):
    NAVIGATE = "navigate"
    DEVICE = "device"
    DISPLAY_ONLY = "display_only"
    DECORATIVE = "decorative"


@dataclass(frozen=True)
class KeyDispatch:
    """Resolved meaning of a key press on a given page."""

    action: KeyAction
    key: int
    delta: int = 0
    device_index: Optional[int] = None


def status_key(slot: int) -> int:
    return STATUS_KEYS[slot]


def date_key(slot: int) -> int:
    return DATE_KEYS[slot]


def device_index_for(page: int, slot: int) -> int:
    return page * SLOTS_PER_PAGE + slot


def page_window(page: int) -> range:
    """Device indices shown on ``page``."""
    start = page * SLOTS_PER_PAGE
    return range(start, start + SLOTS_PER_PAGE)


def slot_for_device(page: int, device_index: int) -> Optional[int]:
    """Slot of ``device_index`` on ``page``, or None when it is off-page."""
    window = page_window(page)
    if device_index not in window:
        return None
    return device_index - window.start


def resolve_key(
    key: int,
    page: int,
    page_count: int,
    device_count: int,
    noop_keys: Collection[int] = (),
) -> KeyDispatch:
    """Classify a key press.

    Raises:
        ValueError: If ``key`` is outside 0..14.
    """
    if not 0 <= key < KEY_COUNT:
        raise ValueError(f"key index {key} outside 0..{KEY_COUNT - 1}")

    if key == PREV_PAGE_KEY and page > 0:
        return KeyDispatch(KeyAction.NAVIGATE, key, delta=-1)
    if key == NEXT_PAGE_KEY and page < page_count - 1:
        return KeyDispatch(KeyAction.NAVIGATE, key, delta=1)

    if key in STATIC_KEYS:
        if key in noop_keys:
            return KeyDispatch(KeyAction.DECORATIVE, key)
        index = device_index_for(page, key)
        if index >= device_count:
            return KeyDispatch(KeyAction.DECORATIVE, key)
        return KeyDispatch(KeyAction.DEVICE, key, device_index=index)

    return KeyDispatch(KeyAction.DISPLAY_ONLY, key)
