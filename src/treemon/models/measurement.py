"""Measurement kinds reported by the tree sensors."""

from __future__ import annotations

from enum import StrEnum


class MeasurementKind(StrEnum):
    """Closed set of quantities tracked per sensor."""

    RESISTANCE = "resistance"
    TEMP_WOOD = "temperature_wood"
    SOIL_MOISTURE = "soil_moisture"
    TEMP_AIR = "temperature_air"
    HUMIDITY_AIR = "humidity_air"
    BATTERY = "battery"

    @property
    def label(self) -> str:
        return MEASUREMENT_LABELS[self]

    @property
    def unit(self) -> str:
        return MEASUREMENT_UNITS[self]

    @classmethod
    def from_field(cls, name: str, field_map: dict[MeasurementKind, str] | None = None) -> MeasurementKind | None:
        """Resolve a payload field name to a kind.

        Accepts the kind value itself (``temperature_wood``) or its backing
        InfluxDB field name (``temperature``). Returns ``None`` for fields that
        are not measurements (``rssi``, ``snr``, ...).
        """
        try:
            return cls(name)
        except ValueError:
            pass
        mapping = DEFAULT_FIELD_MAP if field_map is None else field_map
        for kind, field_name in mapping.items():
            if field_name == name:
                return kind
        return None


ALL_MEASUREMENT_KINDS: tuple[MeasurementKind, ...] = tuple(MeasurementKind)

MEASUREMENT_LABELS: dict[MeasurementKind, str] = {
    MeasurementKind.RESISTANCE: "Wood Resistance (kΩ)",
    MeasurementKind.TEMP_WOOD: "Wood Temperature (°C)",
    MeasurementKind.SOIL_MOISTURE: "Soil Moisture (%)",
    MeasurementKind.TEMP_AIR: "Air Temperature (°C)",
    MeasurementKind.HUMIDITY_AIR: "Air Humidity (%)",
    MeasurementKind.BATTERY: "Battery (V)",
}

MEASUREMENT_UNITS: dict[MeasurementKind, str] = {
    MeasurementKind.RESISTANCE: "kΩ",
    MeasurementKind.TEMP_WOOD: "°C",
    MeasurementKind.SOIL_MOISTURE: "%",
    MeasurementKind.TEMP_AIR: "°C",
    MeasurementKind.HUMIDITY_AIR: "%",
    MeasurementKind.BATTERY: "V",
}

# InfluxDB ``_field`` names. Wood temperature is stored under the generic
# ``temperature`` field the sensors publish.
DEFAULT_FIELD_MAP: dict[MeasurementKind, str] = {
    MeasurementKind.RESISTANCE: "resistance",
    MeasurementKind.TEMP_WOOD: "temperature",
    MeasurementKind.SOIL_MOISTURE: "soil_moisture",
    MeasurementKind.TEMP_AIR: "temperature_air",
    MeasurementKind.HUMIDITY_AIR: "humidity_air",
    MeasurementKind.BATTERY: "battery",
}
