"""Persistent key-value store and the device list layered on top of it."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlmodel import Session

from docksync.registry.models import Device, StoredValue

logger = logging.getLogger(__name__)

SAVED_DEVICE_IDS_KEY = "savedDeviceIds"
ALL_DEVICES_KEY = "allDevices"


def normalize_mac(mac: str) -> str:
    """Normalize a Bluetooth address to uppercase colon-separated format."""
    cleaned = mac.strip().upper().replace("-", ":").replace(".", "")
    # Handle bare hex (e.g. "AABBCCDDEEFF")
    if ":" not in cleaned and len(cleaned) == 12:
        cleaned = ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))
    return cleaned


class KeyValueStore:
    """Durable JSON values keyed by name, backed by the StoredValue table.

    Writes are last-writer-wins; each set() commits on its own.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, key: str, default: Any = None) -> Any:
        with Session(self._engine) as session:
            row = session.get(StoredValue, key)
            if row is None:
                return default
            try:
                return json.loads(row.value)
            except json.JSONDecodeError:
                logger.error("Stored value for %s is not valid JSON, ignoring", key)
                return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with Session(self._engine) as session:
            row = session.get(StoredValue, key)
            if row is None:
                row = StoredValue(key=key, value=payload)
            else:
                row.value = payload
                row.updated_at = datetime.now(UTC)
            session.add(row)
            session.commit()

    def delete(self, key: str) -> bool:
        with Session(self._engine) as session:
            row = session.get(StoredValue, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True


class DeviceStore:
    """Reads and writes the two persisted device keys."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def load_devices(self) -> list[Device]:
        """Load the full device list. Corrupt entries are skipped."""
        records = self._kv.get(ALL_DEVICES_KEY, [])
        if not isinstance(records, list):
            logger.error("Stored device list has unexpected type %s", type(records).__name__)
            return []

        devices: list[Device] = []
        seen: set[str] = set()
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                device = Device.from_record(record)
            except ValidationError:
                logger.warning("Skipping malformed stored device: %r", record)
                continue
            device.id = normalize_mac(device.id)
            if device.id in seen:
                continue
            seen.add(device.id)
            devices.append(device)

        logger.info("Loaded %d stored device(s)", len(devices))
        return devices

    def save(self, devices: list[Device]) -> None:
        """Persist both keys from the same snapshot."""
        self._kv.set(ALL_DEVICES_KEY, [d.to_record() for d in devices])
        self._kv.set(SAVED_DEVICE_IDS_KEY, [d.id for d in devices if d.is_saved])
        logger.debug("Saved %d device(s) to store", len(devices))
