"""Panel driver interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol


@dataclass(frozen=True)
class KeyDown:
    index: int


class PanelDriver(Protocol):
    """Physical panel as seen by the controller.

    Key images are raw 72x72 buffers, 3 bytes per pixel, row-major from the
    top-left corner, in the byte order the driver was configured for.
    Implementations raise :class:`~maintdeck.exceptions.PanelDriverError`.
    """

    async def open(self) -> None: ...

    async def set_key_image(self, index: int, buffer: bytes) -> None: ...

    async def set_brightness(self, percent: int) -> None: ...

    async def clear_all(self) -> None: ...

    async def reset_to_default(self) -> None: ...

    def events(self) -> AsyncIterator[KeyDown]: ...

    async def close(self) -> None: ...
