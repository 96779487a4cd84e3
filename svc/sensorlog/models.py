from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, StrictStr, conint, field_validator
from pydantic.alias_generators import to_camel

Int64 = conint(strict=True, ge=-(2**63), le=2**63 - 1)


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# --- wire input ------------------------------------------------------------

class RawReading(CamelModel):
    """One timestamped sample from one sensor, as sent by the app."""
    name: StrictStr = Field(description="Sensor type name, e.g. 'accelerometer'")
    time: Int64 = Field(description="Sensor timestamp in nanoseconds since the Unix epoch")
    values: Dict[str, Any] = Field(default_factory=dict, description="Sensor specific value bag")
    accuracy: Optional[Int64] = Field(default=0, description="Sensor accuracy level (0-3)")

    @field_validator("values", mode="before")
    @classmethod
    def _values_as_bag(cls, v: Any) -> Any:
        # a value bag that is not an object is decoded as an empty one
        return v if isinstance(v, dict) else {}

    @field_validator("accuracy", mode="before")
    @classmethod
    def _accuracy_default(cls, v: Any) -> Any:
        return 0 if v is None else v


class RawMessage(CamelModel):
    """Envelope wrapping one batch of readings from a single device session."""
    message_id: Int64 = Field(description="Message sequence number within the session")
    session_id: StrictStr = Field(description="Recording session identifier")
    device_id: StrictStr = Field(description="Device identifier")
    payload: List[RawReading] = Field(description="Readings in arrival order")


# --- normalized output -----------------------------------------------------

class NamedValue(FrozenCamelModel):
    """A single decoded value with its unit and a short explanation."""
    name: str
    value_text: str
    unit: str = ""
    description: str = ""


class NormalizedReading(FrozenCamelModel):
    sensor_type: str
    timestamp: datetime
    readable_time_text: str
    accuracy_text: str
    values: Tuple[NamedValue, ...] = ()


class TimeRange(FrozenCamelModel):
    start: datetime
    end: datetime


class NormalizedMessage(FrozenCamelModel):
    """Fully decoded, human readable form of one envelope."""
    message_id: int
    session_id: str
    device_id: str
    total_readings: int
    sensor_types: Tuple[str, ...] = ()
    sensor_counts: Dict[str, int] = Field(default_factory=dict)
    time_range: TimeRange
    readings: Tuple[NormalizedReading, ...] = ()
    received_at: datetime


# --- persistence -----------------------------------------------------------

class StoredMessage(NormalizedMessage):
    """A normalized message as kept by the database, with its original payload."""
    payload: List[Dict[str, Any]] = Field(default_factory=list)
    processed_at: datetime


class DeviceInfo(CamelModel):
    """Aggregate statistics for one device across all stored messages."""
    device_id: str
    first_seen: datetime
    last_seen: datetime
    total_messages: int = 0
    total_records: int = 0
    sensor_types: List[str] = Field(default_factory=list)
    sessions: List[str] = Field(default_factory=list)


class DbStats(CamelModel):
    total_messages: int = 0
    total_records: int = 0
    device_count: int = 0
    sensor_type_count: int = 0
    sensor_types: List[str] = Field(default_factory=list)
    latest_data_time: Optional[datetime] = None


# --- API responses ---------------------------------------------------------

class IngestResponse(CamelModel):
    """Result of accepting one sensor message."""
    ok: bool = Field(description="Whether the message was accepted")
    message_id: int = Field(description="messageId of the accepted envelope")
    total_readings: int = Field(description="Number of readings decoded")
    message: str = Field(default="data received", description="Status message")


class HealthResponse(CamelModel):
    """Health check response."""
    status: str = Field(description="Service status (always 'ok' if service is running)")
    environment: str = Field(description="Deployment environment name")
    memory_messages: int = Field(description="Messages currently held in memory")
    database: bool = Field(description="Whether the SQLite sink is available")


class ErrorResponse(BaseModel):
    """Standard error response format."""
    detail: str = Field(description="Error message describing what went wrong")


class DashboardData(CamelModel):
    has_data: bool = False
    total_messages: int = 0
    total_readings: int = 0
    sensor_type_count: int = 0
    device_count: int = 0
    latest_data: List[NormalizedReading] = Field(default_factory=list)
