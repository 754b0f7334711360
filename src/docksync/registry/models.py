"""Device model, operation status enum, and the key-value table."""

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlmodel import Field, SQLModel


class OperationStatus(enum.StrEnum):
    idle = "idle"
    pairing = "pairing"
    connecting = "connecting"
    unpairing = "unpairing"


# Every busy status can only return to idle; idle can start any operation.
_ALLOWED_TRANSITIONS: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.idle: frozenset(
        {OperationStatus.pairing, OperationStatus.connecting, OperationStatus.unpairing}
    ),
    OperationStatus.pairing: frozenset({OperationStatus.idle}),
    OperationStatus.connecting: frozenset({OperationStatus.idle}),
    OperationStatus.unpairing: frozenset({OperationStatus.idle}),
}


def is_valid_transition(current: OperationStatus, new: OperationStatus) -> bool:
    """Return True if a device may move from ``current`` to ``new``."""
    return new in _ALLOWED_TRANSITIONS[current]


# Fields written to the store; is_connected and operation_status are live-only.
PERSISTED_FIELDS = {"id", "name", "is_saved", "last_seen"}


class Device(SQLModel):
    """A known peripheral. Not a table: persisted as JSON in StoredValue."""

    id: str  # normalized Bluetooth address
    name: str = "Unknown Device"
    is_saved: bool = True
    last_seen: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_connected: bool = False
    operation_status: OperationStatus = OperationStatus.idle

    def to_record(self) -> dict[str, Any]:
        """Serialize the persisted subset of fields."""
        return self.model_dump(mode="json", include=PERSISTED_FIELDS)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Device":
        """Rebuild a Device from a stored record; live fields take defaults."""
        data = {k: v for k, v in record.items() if k in PERSISTED_FIELDS}
        device = cls.model_validate(data)
        # SQLite and JSON round-trips may drop tzinfo; treat naive as UTC
        if device.last_seen.tzinfo is None:
            device.last_seen = device.last_seen.replace(tzinfo=UTC)
        return device


class StoredValue(SQLModel, table=True):
    """One JSON value in the persistent key-value store."""

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChangeKind(enum.StrEnum):
    devices = "devices"  # collection contents or order changed
    status = "status"  # one device's operation_status changed


@dataclass
class RegistryChange:
    """Notification published by the DeviceRegistry to its subscribers."""

    kind: ChangeKind
    device_id: str | None = None
    previous: OperationStatus | None = None
    current: OperationStatus | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
