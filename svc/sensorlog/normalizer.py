from __future__ import annotations
import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union
from pydantic import ValidationError
from .coercion import accuracy_text
from .decoders import decode_values
from .models import NormalizedMessage, NormalizedReading, RawMessage, RawReading, TimeRange

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MalformedInput(ValueError):
    """The request body is not a sensor message envelope."""


def ns_to_datetime(ns: int) -> datetime:
    # timedelta keeps microsecond precision, a float division would not
    return EPOCH + timedelta(microseconds=ns // 1000)


def readable_time(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%d %H:%M:%S") + f".{ts.microsecond // 1000:03d}"


def parse_envelope(data: Union[bytes, str]) -> RawMessage:
    """
    Decode and validate a raw message envelope.

    Raises MalformedInput if the body is not JSON, is not an object, or if any
    structural field (messageId, sessionId, deviceId, payload, and name/time of
    each reading) is missing or has the wrong type.
    """
    try:
        obj = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedInput(f"body is not valid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise MalformedInput(f"expected a JSON object, got {type(obj).__name__}")

    try:
        return RawMessage.model_validate(obj)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedInput(f"invalid sensor message: {problems}") from e


def normalize_reading(reading: RawReading) -> NormalizedReading:
    ts = ns_to_datetime(reading.time)
    return NormalizedReading(
        sensor_type=reading.name,
        timestamp=ts,
        readable_time_text=readable_time(ts),
        accuracy_text=accuracy_text(reading.accuracy or 0),
        values=tuple(decode_values(reading.name, reading.values)),
    )


def normalize_envelope(
    message: RawMessage, received_at: Optional[datetime] = None
) -> NormalizedMessage:
    """Decode every reading of an already validated envelope, in arrival order."""
    counts: Dict[str, int] = {}
    readings: List[NormalizedReading] = []
    min_time: Optional[int] = None
    max_time: Optional[int] = None

    for reading in message.payload:
        counts[reading.name] = counts.get(reading.name, 0) + 1
        if min_time is None or reading.time < min_time:
            min_time = reading.time
        if max_time is None or reading.time > max_time:
            max_time = reading.time
        readings.append(normalize_reading(reading))

    # an empty payload has no time span; report the zero instant for both ends
    if min_time is None or max_time is None:
        time_range = TimeRange(start=EPOCH, end=EPOCH)
    else:
        time_range = TimeRange(start=ns_to_datetime(min_time), end=ns_to_datetime(max_time))

    return NormalizedMessage(
        message_id=message.message_id,
        session_id=message.session_id,
        device_id=message.device_id,
        total_readings=len(message.payload),
        sensor_types=tuple(sorted(counts)),
        sensor_counts=counts,
        time_range=time_range,
        readings=tuple(readings),
        received_at=received_at or datetime.now(timezone.utc),
    )


def normalize(data: Union[bytes, str], received_at: Optional[datetime] = None) -> NormalizedMessage:
    return normalize_envelope(parse_envelope(data), received_at)
