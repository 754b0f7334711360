"""Base interface for display topology sources."""

from abc import ABC, abstractmethod


class DisplaySource(ABC):
    """Reports whether a non-built-in display is attached."""

    name: str = "display"

    @abstractmethod
    def has_external_display(self) -> bool | None:
        """Return the current state, or None if the probe failed."""
