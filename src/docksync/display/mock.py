"""Mock display source for development and testing."""

from docksync.display.base import DisplaySource


class MockDisplaySource(DisplaySource):
    """Display state set by hand."""

    name = "mock"

    def __init__(self, connected: bool = False) -> None:
        self.connected = connected
        self.fail = False

    def has_external_display(self) -> bool | None:
        if self.fail:
            return None
        return self.connected
