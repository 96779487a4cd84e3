"""
Per-sensor value decoders.

Each decoder turns the raw value bag of one reading into an ordered list of
NamedValue entries. Decoders are looked up by lower-cased sensor name through
a registry; names that are not registered use ``decode_generic``.

Decoders never raise: missing or non-numeric values are zero-filled for the
axis sensors and omitted for sensors whose fields are optional.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Sequence
from .coercion import natural_text, to_float
from .models import NamedValue

Decoder = Callable[[Mapping[str, Any]], List[NamedValue]]

_REGISTRY: Dict[str, Decoder] = {}


class FieldSpec(NamedTuple):
    key: str
    name: str
    decimals: int
    unit: str
    description: str


def register(*names: str) -> Callable[[Decoder], Decoder]:
    """Register a decoder under one or more sensor names (case-insensitive)."""
    def wrap(fn: Decoder) -> Decoder:
        for n in names:
            _REGISTRY[n.lower()] = fn
        return fn
    return wrap


def get_decoder(sensor_type: str) -> Decoder:
    return _REGISTRY.get(sensor_type.lower(), decode_generic)


def registered_types() -> List[str]:
    return sorted(_REGISTRY)


def decode_values(sensor_type: str, values: Mapping[str, Any]) -> List[NamedValue]:
    return get_decoder(sensor_type)(values)


def _format(value: Any, decimals: int) -> str:
    return f"{to_float(value):.{decimals}f}"


def _value(spec: FieldSpec, raw: Any) -> NamedValue:
    return NamedValue(
        name=spec.name,
        value_text=_format(raw, spec.decimals),
        unit=spec.unit,
        description=spec.description,
    )


def _required(values: Mapping[str, Any], specs: Sequence[FieldSpec]) -> List[NamedValue]:
    return [_value(s, values.get(s.key)) for s in specs]


def _present(values: Mapping[str, Any], specs: Sequence[FieldSpec]) -> List[NamedValue]:
    return [_value(s, values[s.key]) for s in specs if s.key in values]


def _axes(quantity: str, unit: str, description: str) -> List[FieldSpec]:
    return [
        FieldSpec(axis.lower(), f"{axis}-axis {quantity}", 6, unit, description.format(axis=axis))
        for axis in ("X", "Y", "Z")
    ]


ACCELEROMETER = _axes("acceleration", "m/s²", "Acceleration along the {axis} axis")
GYROSCOPE = _axes("angular velocity", "rad/s", "Angular velocity around the {axis} axis")
GRAVITY = _axes("gravity", "m/s²", "Gravity component along the {axis} axis")
MAGNETIC_FIELD = _axes("magnetic field", "µT", "Magnetic field strength along the {axis} axis")
MAGNETIC_FIELD_UNCALIBRATED = _axes(
    "magnetic field (uncalibrated)", "µT",
    "Uncalibrated magnetic field strength along the {axis} axis",
)
MAGNETIC_BEARING = FieldSpec(
    "magneticBearing", "Magnetic bearing", 2, "degrees", "Bearing relative to magnetic north"
)
COMPASS = [FieldSpec("magneticBearing", "Compass bearing", 2, "degrees", "Compass heading")]
PEDOMETER = [FieldSpec("steps", "Steps", 0, "steps", "Cumulative step count")]
ORIENTATION = [
    FieldSpec(f"q{c.lower()}", f"Quaternion {c}", 6, "", f"Quaternion {c} component")
    for c in ("W", "X", "Y", "Z")
]
LOCATION = [
    FieldSpec("latitude", "Latitude", 8, "degrees", "Geographic latitude"),
    FieldSpec("longitude", "Longitude", 8, "degrees", "Geographic longitude"),
    FieldSpec("altitude", "Altitude", 2, "meters", "Altitude above sea level"),
    FieldSpec("speed", "Speed", 2, "m/s", "Movement speed"),
    FieldSpec("bearing", "Bearing", 2, "degrees", "Direction of travel"),
]
BAROMETER = [
    FieldSpec("pressure", "Pressure", 2, "hPa", "Atmospheric pressure"),
    FieldSpec("altitude", "Pressure altitude", 2, "meters", "Altitude derived from barometric pressure"),
]


@register("accelerometer")
def decode_accelerometer(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, ACCELEROMETER)


@register("gyroscope")
def decode_gyroscope(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, GYROSCOPE)


@register("gravity")
def decode_gravity(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, GRAVITY)


@register("magnetometer")
def decode_magnetometer(values: Mapping[str, Any]) -> List[NamedValue]:
    # some devices only report the computed bearing
    if MAGNETIC_BEARING.key in values:
        return [_value(MAGNETIC_BEARING, values[MAGNETIC_BEARING.key])]
    return _required(values, MAGNETIC_FIELD)


@register("magnetometeruncalibrated", "magnetometer-uncalibrated")
def decode_magnetometer_uncalibrated(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, MAGNETIC_FIELD_UNCALIBRATED)


@register("compass")
def decode_compass(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, COMPASS)


@register("pedometer")
def decode_pedometer(values: Mapping[str, Any]) -> List[NamedValue]:
    return _required(values, PEDOMETER)


@register("orientation")
def decode_orientation(values: Mapping[str, Any]) -> List[NamedValue]:
    return _present(values, ORIENTATION)


@register("location")
def decode_location(values: Mapping[str, Any]) -> List[NamedValue]:
    return _present(values, LOCATION)


@register("barometer")
def decode_barometer(values: Mapping[str, Any]) -> List[NamedValue]:
    return _present(values, BAROMETER)


def decode_generic(values: Mapping[str, Any]) -> List[NamedValue]:
    """One entry per key, in bag order, shown in its natural text form."""
    return [
        NamedValue(name=key, value_text=natural_text(raw), unit="", description=f"{key} value")
        for key, raw in values.items()
    ]
