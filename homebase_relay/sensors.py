"""In-memory store for the latest sensor readings reported by devices."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

_TRUTHY = {"1", "true"}


@dataclass(slots=True)
class SensorReading:
    value: Any
    unit: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "unit": self.unit,
            "metadata": dict(self.metadata),
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class SensorStore:
    """Latest reading per sensor name, whatever reported it."""

    def __init__(self) -> None:
        self._readings: Dict[str, SensorReading] = {}

    def set(
        self,
        name: str,
        value: Any,
        unit: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> SensorReading:
        reading = SensorReading(value=value, unit=unit, metadata=dict(metadata or {}))
        self._readings[name] = reading
        return reading

    def get(self, name: str) -> Optional[SensorReading]:
        return self._readings.get(name)

    def get_all(self, prefix: str = "") -> Dict[str, SensorReading]:
        return {
            name: reading
            for name, reading in self._readings.items()
            if name.startswith(prefix)
        }

    def set_bulk(self, readings: Mapping[str, Mapping[str, Any]]) -> None:
        now = datetime.now(timezone.utc)
        for name, reading in readings.items():
            self._readings[name] = SensorReading(
                value=reading.get("value"),
                unit=reading.get("unit"),
                metadata=dict(reading.get("metadata") or {}),
                updated_at=now,
            )


def parse_ignition(raw: Any) -> Optional[bool]:
    """Interpret a device's ``carOn`` flag.

    ``None`` means the device sent nothing and the stored state is left alone.
    Only ``1``/``true`` mean running; any other value the device sends is
    recorded as off.
    """

    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, str)):
        return str(raw).strip().lower() in _TRUTHY
    return False


def vehicle_sensor_name(device_id: str) -> str:
    return f"vehicle-{device_id.lower()}"


def record_ignition(
    store: SensorStore, device_id: str, raw: Any
) -> Optional[SensorReading]:
    """Store the ignition state reported alongside a poll or result."""

    is_on = parse_ignition(raw)
    if is_on is None:
        return None
    return store.set(
        vehicle_sensor_name(device_id),
        "on" if is_on else "off",
        metadata={"location": device_id.title(), "source": "esp32-cellular"},
    )
