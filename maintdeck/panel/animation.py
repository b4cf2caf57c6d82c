"""Short frame animations played on single keys."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from maintdeck.exceptions import PanelDriverError
from maintdeck.panel.driver import PanelDriver
from maintdeck.rendering.images import load_icon

logger = logging.getLogger(__name__)

DEFAULT_FRAME_INTERVAL = 0.05


@dataclass
class _Run:
    task: Optional[asyncio.Task] = None
    superseded: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)


def load_frames(
    paths: Sequence[str],
    convert: Callable[[bytes], bytes] = bytes,
    asset_root: Optional[Path] = None,
) -> list[bytes]:
    """Load animation frames, skipping any that cannot be read."""
    frames = []
    for path in paths:
        resolved = Path(path)
        if asset_root is not None and not resolved.is_absolute():
            resolved = asset_root / resolved
        try:
            frames.append(convert(load_icon(resolved)))
        except (OSError, ValueError) as exc:
            logger.warning("Animation frame %s unavailable: %s", resolved, exc)
    return frames


class AnimationPlayer:
    """Plays pre-loaded frames on a key, one run per key at a time.

    Starting a run on a key supersedes the previous run on that key. A
    superseded run stops before its next frame; a frame already being written
    is completed.
    """

    def __init__(
        self,
        driver: PanelDriver,
        frames: Sequence[bytes] = (),
        frame_interval: float = DEFAULT_FRAME_INTERVAL,
    ) -> None:
        self._driver = driver
        self.frames = list(frames)
        self._frame_interval = frame_interval
        self._runs: dict[int, _Run] = {}

    def running_keys(self) -> list[int]:
        return [key for key, run in self._runs.items() if not run.done.is_set()]

    async def play(self, key: int, frames: Optional[Sequence[bytes]] = None) -> bool:
        """Play the animation on ``key`` and wait for it to end.

        Returns:
            True if every frame was shown, False if the run was superseded.
        """
        sequence = list(self.frames if frames is None else frames)
        previous = self._runs.get(key)
        if previous is not None:
            previous.superseded = True

        run = _Run()
        self._runs[key] = run
        run.task = asyncio.current_task()
        try:
            for position, frame in enumerate(sequence):
                if run.superseded:
                    logger.debug("Animation on key %d superseded after %d frames", key, position)
                    return False
                await self._driver.set_key_image(key, frame)
                await asyncio.sleep(self._frame_interval)
            return not run.superseded
        finally:
            run.done.set()
            if self._runs.get(key) is run:
                del self._runs[key]

    def start(self, key: int, frames: Optional[Sequence[bytes]] = None) -> asyncio.Task:
        """Play in the background. Driver errors are logged."""
        return asyncio.create_task(self._play_logged(key, frames), name=f"animation-{key}")

    async def _play_logged(self, key: int, frames: Optional[Sequence[bytes]]) -> None:
        try:
            await self.play(key, frames)
        except PanelDriverError as exc:
            logger.warning("Animation on key %d failed: %s", key, exc)

    def supersede(self, key: int) -> None:
        run = self._runs.get(key)
        if run is not None:
            run.superseded = True

    async def cancel_all(self) -> None:
        """Supersede every run and wait until each has stopped."""
        runs = list(self._runs.values())
        for run in runs:
            run.superseded = True
        current = asyncio.current_task()
        for run in runs:
            if run.task is current:
                continue
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(run.done.wait(), timeout=max(1.0, self._frame_interval * 4))
