"""Pydantic data models for the water network and its flow results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlowDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    STRAIGHT = "straight"
    NONE = "none"


class GateStatus(str, Enum):
    ACTIVE = "active"
    FAULT = "fault"


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ValveState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class GateMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class Coordinate(BaseModel):
    """A geographic point. Planar geometry treats ``lon`` as x and ``lat`` as y."""

    lat: float
    lon: float


# Static records


class Pipeline(BaseModel):
    """A pipeline polyline; vertex order runs from source to outlet."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    points: list[Coordinate] = Field(min_length=2)
    connected_gate_walls: list[str] = Field(default_factory=list)
    connected_devices: list[str] = Field(default_factory=list)
    material: str = "PVC"
    diameter: float = 100.0
    length: float = 0.0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("points", mode="before")
    @classmethod
    def coerce_pairs(cls, value):
        # Records list vertices as [lat, lon] pairs
        if isinstance(value, (list, tuple)):
            return [
                {"lat": pt[0], "lon": pt[1]} if isinstance(pt, (list, tuple)) else pt
                for pt in value
            ]
        return value


class Tank(BaseModel):
    """An overhead service reservoir or other feed acting as a pipeline source."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    latitude: float
    longitude: float
    type: str = "ohsr"
    capacity: float = 1000.0
    country: str = "India"
    state: str = ""
    district: str = ""
    mandal: str = ""
    habitation: str = ""
    altitude: float = 0.0
    connected_pipelines: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class GateWall(BaseModel):
    """A directional control gate installed on one or more pipelines."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    latitude: float
    longitude: float
    type: str = "straight"
    country: str = "India"
    state: str = ""
    district: str = ""
    mandal: str = ""
    habitation: str = ""
    altitude: float = 0.0
    connected_pipelines: list[str] = Field(default_factory=list)
    installation_date: datetime = Field(default_factory=utcnow)
    firmware_version: str = "v1.0.0"
    controller_id: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def location(self) -> Coordinate:
        return Coordinate(lat=self.latitude, lon=self.longitude)


# Telemetry samples


class GateSample(BaseModel):
    """One telemetry reading reported by a gate wall controller."""

    # Filled from the gate being updated when omitted
    id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    flow_direction: FlowDirection
    status: GateStatus
    valve_state: ValveState = ValveState.OPEN
    pressure: float = 0.0
    flow_rate: float = 0.0
    battery_level: float = 100.0
    signal_strength: float = 100.0
    temperature: float = 25.0
    mode: GateMode = GateMode.AUTO
    last_command: str = ""


class TankSample(BaseModel):
    """One telemetry reading reported by a tank."""

    # Filled from the tank being updated when omitted
    tank_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    water_level: float = Field(ge=0)
    pressure: float = 0.0
    flow_rate: float = 0.0
    ph_level: float = 7.0
    temperature: float = 25.0
    status: DeviceStatus


# Engine inputs


class GateSnapshot(BaseModel):
    """A gate's location and latest state, as seen by the flow engine."""

    id: str
    location: Coordinate
    flow_direction: FlowDirection
    status: GateStatus

    @property
    def is_open(self) -> bool:
        return self.flow_direction is not FlowDirection.NONE and self.status is GateStatus.ACTIVE

    @classmethod
    def from_records(cls, gate: GateWall, sample: GateSample) -> GateSnapshot:
        return cls(
            id=gate.id,
            location=gate.location,
            flow_direction=sample.flow_direction,
            status=sample.status,
        )


class DeviceSnapshot(BaseModel):
    """A source device's latest state, as seen by the flow engine."""

    id: str
    status: DeviceStatus
    water_level: float = 0.0

    @property
    def is_supplying(self) -> bool:
        return self.status is DeviceStatus.ACTIVE and self.water_level > 0

    @classmethod
    def from_sample(cls, sample: TankSample) -> DeviceSnapshot:
        return cls(id=sample.tank_id, status=sample.status, water_level=sample.water_level)


# Engine outputs


class FlowSegment(BaseModel):
    """A contiguous stretch of pipeline sharing one flow state."""

    start: float = Field(ge=0, le=1)
    end: float = Field(ge=0, le=1)
    has_flow: bool
    start_point: Coordinate | None = None
    end_point: Coordinate | None = None
    before_gate: str | None = None
    after_gate: str | None = None

    @model_validator(mode="after")
    def check_order(self):
        if self.start >= self.end:
            raise ValueError(f"segment start {self.start} must be below end {self.end}")
        return self


class PipelineFlowResult(BaseModel):
    """Ordered flow segments of one pipeline plus the aggregate flow flag."""

    flow_segments: list[FlowSegment]
    overall_flow: bool


class PipelineStatus(BaseModel):
    """Pipeline telemetry derived from a flow result."""

    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    flow_active: bool
    flow_segments: list[FlowSegment]
    flow_ratio: float = Field(ge=0, le=1)
    flow_rate: float = 0.0
    pressure: float = 0.0
    status: DeviceStatus
    color: str


# Persistence


class NetworkSnapshot(BaseModel):
    """Everything needed to restore a network: records plus telemetry history per id.

    The last entry of each history is the device's current sample.
    """

    tanks: list[Tank] = Field(default_factory=list)
    gates: list[GateWall] = Field(default_factory=list)
    pipelines: list[Pipeline] = Field(default_factory=list)
    tank_telemetry: dict[str, list[TankSample]] = Field(default_factory=dict)
    gate_telemetry: dict[str, list[GateSample]] = Field(default_factory=dict)
    pipeline_telemetry: dict[str, list[PipelineStatus]] = Field(default_factory=dict)
