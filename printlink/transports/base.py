"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    """Opaque bidirectional byte channel to a single device."""

    @property
    def is_open(self) -> bool:
        """True while the underlying link reports itself usable."""

    def open(self) -> None:
        """Establish the link. Raises a transport error on failure."""

    def write(self, data: bytes) -> None:
        """Write all of ``data`` to the device."""

    def read(self, max_bytes: int = 1024) -> bytes:
        """Return available bytes, or ``b""`` when nothing arrives in time."""

    def close(self) -> None:
        """Release the link. Safe to call more than once."""
