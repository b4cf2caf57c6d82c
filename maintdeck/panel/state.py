"""Mutable panel session state shared by the controller and its collaborators."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Optional


@dataclass
class PanelSessionState:
    """What the panel currently shows and whether it is lit.

    Attributes:
        current_page: Page on display (0-based)
        awake: False while dimmed for the night and not woken
        boost_deadline: When the pending boost reversal fires, None without one
    """

    current_page: int = 0
    awake: bool = True
    boost_deadline: Optional[datetime.datetime] = None
