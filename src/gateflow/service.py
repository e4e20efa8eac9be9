"""Network service: keeps telemetry fresh and runs the flow engine per pipeline."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .config import Settings
from .flow import compute_flow
from .models import (
    DeviceSnapshot,
    DeviceStatus,
    GateSample,
    GateSnapshot,
    NetworkSnapshot,
    PipelineFlowResult,
    PipelineStatus,
    TankSample,
)
from .registry import GateWallRegistry, PipelineRegistry, TankRegistry
from .simulator import SimulatedTelemetry, TelemetrySource
from .telemetry import TelemetryStore

logger = logging.getLogger(__name__)


class NetworkService:
    """Composes the registries, telemetry stores and flow engine for one network."""

    def __init__(self, settings: Settings | None = None, source: TelemetrySource | None = None) -> None:
        self.settings = settings or Settings()
        self.source = source or SimulatedTelemetry(seed=self.settings.random_seed)
        self.tanks = TankRegistry()
        self.gates = GateWallRegistry()
        self.pipelines = PipelineRegistry()
        self.tank_telemetry: TelemetryStore[TankSample] = TelemetryStore(self.settings.tank_history_limit)
        self.gate_telemetry: TelemetryStore[GateSample] = TelemetryStore(self.settings.gate_history_limit)
        self.pipeline_telemetry: TelemetryStore[PipelineStatus] = TelemetryStore(
            self.settings.pipeline_history_limit
        )

    # Snapshots

    def gate_snapshots(self) -> dict[str, GateSnapshot]:
        """Snapshot every gate wall that has reported at least once."""
        snapshots = {}
        for gate in self.gates.get_all():
            sample = self.gate_telemetry.get_current(gate.id)
            if sample is not None:
                snapshots[gate.id] = GateSnapshot.from_records(gate, sample)
        return snapshots

    def device_snapshots(self) -> dict[str, DeviceSnapshot]:
        return {
            tank_id: DeviceSnapshot.from_sample(sample)
            for tank_id, sample in self.tank_telemetry.current_items().items()
        }

    # Updates

    def update_gate(self, gate_id: str, sample: GateSample | None = None) -> GateSample:
        """Record a gate sample, simulating one when the caller has none."""
        self.gates.require(gate_id)
        if sample is None:
            sample = self.source.gate_sample(gate_id)
        elif sample.id != gate_id:
            sample = sample.model_copy(update={"id": gate_id})
        return self.gate_telemetry.record(gate_id, sample)

    def update_tank(self, tank_id: str, sample: TankSample | None = None) -> TankSample:
        """Record a tank sample, simulating one when the caller has none."""
        self.tanks.require(tank_id)
        if sample is None:
            sample = self.source.tank_sample(tank_id)
        elif sample.tank_id != tank_id:
            sample = sample.model_copy(update={"tank_id": tank_id})
        return self.tank_telemetry.record(tank_id, sample)

    def compute_pipeline_flow(
        self,
        pipeline_id: str,
        gates: dict[str, GateSnapshot] | None = None,
        devices: dict[str, DeviceSnapshot] | None = None,
    ) -> PipelineFlowResult:
        pipeline = self.pipelines.require(pipeline_id)
        if gates is None:
            gates = self.gate_snapshots()
        if devices is None:
            devices = self.device_snapshots()
        return compute_flow(pipeline, gates, devices)

    def update_pipeline(
        self,
        pipeline_id: str,
        gates: dict[str, GateSnapshot] | None = None,
        devices: dict[str, DeviceSnapshot] | None = None,
    ) -> PipelineStatus:
        """Run the engine for one pipeline and record the resulting status."""
        result = self.compute_pipeline_flow(pipeline_id, gates, devices)
        segments = result.flow_segments
        flowing = sum(1 for seg in segments if seg.has_flow)
        flow_ratio = flowing / max(1, len(segments))
        flow_rate, pressure = self.source.pipeline_readings(flow_ratio if result.overall_flow else 0.0)

        status = PipelineStatus(
            id=pipeline_id,
            flow_active=result.overall_flow,
            flow_segments=segments,
            flow_ratio=flow_ratio,
            flow_rate=flow_rate,
            pressure=pressure,
            status=DeviceStatus.ACTIVE if result.overall_flow else DeviceStatus.INACTIVE,
            color=self.settings.flowing_color if result.overall_flow else self.settings.dry_color,
        )
        return self.pipeline_telemetry.record(pipeline_id, status)

    def refresh_all(self) -> list[PipelineStatus]:
        """Sample every gate and tank, then recompute every pipeline from one snapshot set."""
        for gate in self.gates.get_all():
            self.update_gate(gate.id)
        for tank in self.tanks.get_all():
            self.update_tank(tank.id)

        gates = self.gate_snapshots()
        devices = self.device_snapshots()
        statuses = [self.update_pipeline(p.id, gates, devices) for p in self.pipelines.get_all()]

        flowing = sum(1 for s in statuses if s.flow_active)
        logger.info(
            "Refreshed %d gate(s), %d tank(s), %d pipeline(s); %d flowing",
            len(gates), len(devices), len(statuses), flowing,
        )
        return statuses

    async def run_periodic(self, interval: float) -> None:
        """Call ``refresh_all`` every ``interval`` seconds until cancelled."""
        logger.info("Starting auto refresh every %.1f s", interval)
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    self.refresh_all()
                except Exception:
                    logger.exception("Refresh round failed")
        finally:
            logger.info("Auto refresh stopped")

    def remove_gate(self, gate_id: str):
        gate = self.gates.remove(gate_id)
        self.gate_telemetry.forget(gate_id)
        return gate

    def remove_tank(self, tank_id: str):
        tank = self.tanks.remove(tank_id)
        self.tank_telemetry.forget(tank_id)
        return tank

    def remove_pipeline(self, pipeline_id: str):
        pipeline = self.pipelines.remove(pipeline_id)
        self.pipeline_telemetry.forget(pipeline_id)
        return pipeline

    # Persistence

    def snapshot(self) -> NetworkSnapshot:
        return NetworkSnapshot(
            tanks=self.tanks.get_all(),
            gates=self.gates.get_all(),
            pipelines=self.pipelines.get_all(),
            tank_telemetry=self.tank_telemetry.histories(),
            gate_telemetry=self.gate_telemetry.histories(),
            pipeline_telemetry=self.pipeline_telemetry.histories(),
        )

    def restore(self, snapshot: NetworkSnapshot) -> None:
        """Replace every record and telemetry history with the snapshot's contents."""
        for registry in (self.tanks, self.gates, self.pipelines):
            registry.clear()
        for store in (self.tank_telemetry, self.gate_telemetry, self.pipeline_telemetry):
            store.clear()

        for tank in snapshot.tanks:
            self.tanks.create(tank)
        for gate in snapshot.gates:
            self.gates.create(gate)
        for pipeline in snapshot.pipelines:
            self.pipelines.create(pipeline)

        for store, histories in (
            (self.tank_telemetry, snapshot.tank_telemetry),
            (self.gate_telemetry, snapshot.gate_telemetry),
            (self.pipeline_telemetry, snapshot.pipeline_telemetry),
        ):
            for device_id, samples in histories.items():
                for sample in samples:
                    store.record(device_id, sample)

    def save(self, path: str | Path) -> None:
        """Write the network and its telemetry to a JSON file."""
        path = Path(path)
        path.write_text(self.snapshot().model_dump_json(indent=2))
        logger.info("Saved network to %s", path)

    def load(self, path: str | Path) -> None:
        """Restore the network from a JSON file written by ``save``.

        A hand-written file listing only ``tanks``, ``gates`` and ``pipelines`` loads too.
        """
        path = Path(path)
        self.restore(NetworkSnapshot.model_validate_json(path.read_text()))
        logger.info(
            "Loaded %d tank(s), %d gate wall(s), %d pipeline(s) from %s",
            len(self.tanks), len(self.gates), len(self.pipelines), path,
        )
