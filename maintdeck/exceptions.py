"""Exception hierarchy for the maintenance panel controller.

Each failure class maps to one recovery policy in the session controller:

- ``BackendUnavailable``: the render session could not be (re)created. Aborts the
  current render job or page refresh; the next render tries again.
- ``RenderFailed``: a single tile could not be produced. The slot is skipped and
  the rest of the page is still displayed.
- ``StoreUnavailable``: the device store could not be read or written. In-memory
  state is kept and the next mutation retries the save.
- ``DeviceBusy``: a reset is already running for the device. Logged and skipped.
- ``PanelDriverError``: the physical panel rejected a call. Fatal errors shut the
  controller down.
"""

from __future__ import annotations


class MaintDeckError(Exception):
    """Base exception for all controller errors."""


class BackendUnavailable(MaintDeckError):
    """Render session could not be created or recreated."""


class RenderFailed(MaintDeckError):
    """A tile could not be rendered.

    Attributes:
        device_index: Position of the device in the device list, if known
        device_name: Display name of the device, if known
    """

    def __init__(
        self,
        message: str,
        device_index: int | None = None,
        device_name: str | None = None,
    ) -> None:
        super().__init__(message)
        self.device_index = device_index
        self.device_name = device_name

    def __str__(self) -> str:
        base = super().__str__()
        if self.device_name is not None:
            return f"{base} (device {self.device_index}: {self.device_name})"
        return base


class StoreUnavailable(MaintDeckError):
    """Device store could not be read or written."""


class DeviceBusy(MaintDeckError):
    """A reset is already in progress for this device."""

    def __init__(self, device_index: int) -> None:
        super().__init__(f"Device {device_index} is already being reset")
        self.device_index = device_index


class PanelDriverError(MaintDeckError):
    """Error surfaced from the physical panel driver.

    Attributes:
        fatal: True when the connection to the panel is lost
    """

    def __init__(self, message: str, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
