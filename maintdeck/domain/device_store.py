"""JSON-backed device store with atomic writes."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from maintdeck.domain.device import Device
from maintdeck.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class DeviceStore:
    """Persistent ordered device list.

    The on-disk format is a JSON array of ``{"name", "lifetime", "lastReset"}``
    objects. Array position is device identity, so a file with any malformed
    entry is rejected as a whole rather than partially loaded.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Device]:
        """Read the device list from disk.

        Raises:
            StoreUnavailable: If the file is missing, unreadable or malformed.
        """
        with self._lock:
            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
            except FileNotFoundError as exc:
                raise StoreUnavailable(f"device store {self._path} not found") from exc
            except (OSError, ValueError) as exc:
                raise StoreUnavailable(f"failed to read device store {self._path}: {exc}") from exc

        if not isinstance(data, list):
            raise StoreUnavailable(f"device store {self._path} root must be an array")

        try:
            devices = [Device.from_dict(entry) for entry in data]
        except ValueError as exc:
            raise StoreUnavailable(f"malformed device store {self._path}: {exc}") from exc

        logger.debug("Loaded %d devices from %s", len(devices), self._path)
        return devices

    def save(self, devices: list[Device]) -> None:
        """Persist the device list atomically.

        Writes to a temporary file in the same directory then replaces the
        target, so readers never observe a partial file.

        Raises:
            StoreUnavailable: If the file could not be written.
        """
        payload = [device.to_dict() for device in devices]

        with self._lock:
            tmp_path: Path | None = None
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w", dir=self._path.parent, delete=False, encoding="utf-8", suffix=".tmp"
                ) as tf:
                    tmp_path = Path(tf.name)
                    json.dump(payload, tf, ensure_ascii=False, indent=2)
                    tf.flush()
                    with contextlib.suppress(OSError):
                        os.fsync(tf.fileno())
                tmp_path.replace(self._path)
            except OSError as exc:
                if tmp_path is not None:
                    with contextlib.suppress(OSError):
                        tmp_path.unlink()
                raise StoreUnavailable(f"failed to write device store {self._path}: {exc}") from exc

        logger.debug("Saved %d devices to %s", len(devices), self._path)
