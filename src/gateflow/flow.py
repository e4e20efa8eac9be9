"""Directional flow propagation along a pipeline.

Water enters at the first vertex and travels toward the last. Gates are
visited in order of their projected position; the first closed gate cuts
flow for everything downstream of it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .models import DeviceSnapshot, FlowSegment, GateSnapshot, Pipeline, PipelineFlowResult
from .projection import point_at, project

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacedGate:
    """A resolved gate with its position along the pipeline."""

    id: str
    position: float
    is_open: bool


def has_source(pipeline: Pipeline, devices: Mapping[str, DeviceSnapshot]) -> bool:
    """Whether water is available at the pipeline's inlet.

    A pipeline with no source devices is assumed to be fed.
    """
    if not pipeline.connected_devices:
        return True
    for device_id in pipeline.connected_devices:
        device = devices.get(device_id)
        if device is not None and device.is_supplying:
            return True
    return False


def place_gates(pipeline: Pipeline, gates: Mapping[str, GateSnapshot]) -> list[PlacedGate]:
    """Resolve the pipeline's gates and sort them by position (stable)."""
    placed = []
    for gate_id in pipeline.connected_gate_walls:
        gate = gates.get(gate_id)
        if gate is None:
            continue
        placed.append(PlacedGate(id=gate_id, position=project(pipeline, gate.location), is_open=gate.is_open))
    return sorted(placed, key=lambda g: g.position)


def compute_flow(
    pipeline: Pipeline,
    gates: Mapping[str, GateSnapshot],
    devices: Mapping[str, DeviceSnapshot],
) -> PipelineFlowResult:
    """Compute the flow segments of ``pipeline`` from the current gate and device snapshots."""
    if pipeline is None:
        raise TypeError("compute_flow() requires a pipeline")

    if len(pipeline.points) < 2:
        return PipelineFlowResult(
            flow_segments=[FlowSegment(start=0, end=1, has_flow=False)],
            overall_flow=False,
        )

    source = has_source(pipeline, devices)
    placed = place_gates(pipeline, gates)
    segments: list[FlowSegment] = []

    if not placed:
        segments.append(
            FlowSegment(
                start=0,
                end=1,
                has_flow=source,
                start_point=pipeline.points[0],
                end_point=pipeline.points[-1],
            )
        )
    else:
        current_flow = source
        cursor = 0.0
        for gate in placed:
            # Flow reaching a gate is decided upstream of it
            if gate.position > cursor:
                segments.append(
                    FlowSegment(
                        start=cursor,
                        end=gate.position,
                        has_flow=current_flow,
                        start_point=point_at(pipeline, cursor),
                        end_point=point_at(pipeline, gate.position),
                        before_gate=gate.id,
                    )
                )
            if not gate.is_open:
                current_flow = False
            cursor = gate.position

        if cursor < 1:
            segments.append(
                FlowSegment(
                    start=cursor,
                    end=1,
                    has_flow=current_flow,
                    start_point=point_at(pipeline, cursor),
                    end_point=pipeline.points[-1],
                    after_gate=placed[-1].id,
                )
            )

    overall_flow = any(seg.has_flow for seg in segments)
    logger.debug(
        "pipeline %s: %d gate(s), %d segment(s), overall_flow=%s",
        pipeline.id, len(placed), len(segments), overall_flow,
    )
    return PipelineFlowResult(flow_segments=segments, overall_flow=overall_flow)
