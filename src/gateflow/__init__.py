"""Flow propagation for gate-controlled water pipelines."""

from .config import Settings
from .flow import compute_flow
from .models import (
    Coordinate,
    DeviceSnapshot,
    FlowSegment,
    GateSample,
    GateSnapshot,
    GateWall,
    Pipeline,
    PipelineFlowResult,
    PipelineStatus,
    Tank,
    TankSample,
)
from .projection import point_at, project
from .service import NetworkService

__all__ = [
    "Coordinate",
    "DeviceSnapshot",
    "FlowSegment",
    "GateSample",
    "GateSnapshot",
    "GateWall",
    "NetworkService",
    "Pipeline",
    "PipelineFlowResult",
    "PipelineStatus",
    "Settings",
    "Tank",
    "TankSample",
    "compute_flow",
    "point_at",
    "project",
]
