"""Telemetry sources: the provider interface and a random simulator."""

from __future__ import annotations

import random
from typing import Protocol

from .models import (
    DeviceStatus,
    FlowDirection,
    GateMode,
    GateSample,
    GateStatus,
    TankSample,
    ValveState,
)


class TelemetrySource(Protocol):
    """Supplies fresh samples for devices that did not report one themselves."""

    def gate_sample(self, gate_id: str) -> GateSample: ...

    def tank_sample(self, tank_id: str) -> TankSample: ...

    def pipeline_readings(self, flow_ratio: float) -> tuple[float, float]:
        """Return (flow_rate, pressure) for a pipeline flowing at ``flow_ratio``."""
        ...


class SimulatedTelemetry:
    """Random telemetry for demos and field-less testing."""

    def __init__(self, seed: int | None = None, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random(seed)

    def gate_sample(self, gate_id: str) -> GateSample:
        rng = self.rng
        return GateSample(
            id=gate_id,
            flow_direction=rng.choice(list(FlowDirection)),
            valve_state=ValveState.OPEN if rng.random() > 0.5 else ValveState.CLOSED,
            pressure=round(10 + rng.random() * 40, 1),
            flow_rate=round(rng.random() * 150, 1),
            battery_level=round(50 + rng.random() * 50),
            signal_strength=round(50 + rng.random() * 50),
            temperature=round(25 + rng.random() * 5, 1),
            mode=GateMode.AUTO if rng.random() > 0.5 else GateMode.MANUAL,
            status=GateStatus.ACTIVE if rng.random() > 0.1 else GateStatus.FAULT,
            last_command="Open" if rng.random() > 0.5 else "Close",
        )

    def tank_sample(self, tank_id: str) -> TankSample:
        rng = self.rng
        return TankSample(
            tank_id=tank_id,
            water_level=round(rng.random() * 10, 2),
            pressure=round(rng.random() * 50, 1),
            flow_rate=round(rng.random() * 150, 1),
            ph_level=round(6.5 + rng.random(), 2),
            temperature=round(20 + rng.random() * 10, 1),
            status=DeviceStatus.ACTIVE if rng.random() > 0.1 else DeviceStatus.INACTIVE,
        )

    def pipeline_readings(self, flow_ratio: float) -> tuple[float, float]:
        if flow_ratio <= 0:
            return 0.0, 0.0
        flow_rate = round(self.rng.random() * 200 * flow_ratio, 1)
        pressure = round(self.rng.random() * 60 * flow_ratio, 1)
        return flow_rate, pressure
