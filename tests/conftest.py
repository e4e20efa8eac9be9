import pytest

from gateflow.models import (
    Coordinate,
    DeviceSnapshot,
    DeviceStatus,
    FlowDirection,
    GateSnapshot,
    GateStatus,
    Pipeline,
)


@pytest.fixture
def make_pipeline():
    """Build a pipeline from [lat, lon] vertices."""

    def _make(points=None, gates=(), devices=(), pipeline_id="PL-1"):
        return Pipeline(
            id=pipeline_id,
            name=f"Pipeline {pipeline_id}",
            points=points if points is not None else [[0, 0], [0, 1], [0, 2]],
            connected_gate_walls=list(gates),
            connected_devices=list(devices),
        )

    return _make


@pytest.fixture
def make_gate():
    """Build a gate snapshot at (lat, lon); open unless told otherwise."""

    def _make(gate_id, lon, lat=0.0, direction=FlowDirection.STRAIGHT, status=GateStatus.ACTIVE):
        return GateSnapshot(
            id=gate_id,
            location=Coordinate(lat=lat, lon=lon),
            flow_direction=direction,
            status=status,
        )

    return _make


@pytest.fixture
def active_tank():
    return DeviceSnapshot(id="T1", status=DeviceStatus.ACTIVE, water_level=4.5)


@pytest.fixture
def dry_tank():
    return DeviceSnapshot(id="T1", status=DeviceStatus.ACTIVE, water_level=0.0)
