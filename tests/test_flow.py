"""Tests for directional flow propagation."""

import pytest

from gateflow import Coordinate, Pipeline, compute_flow
from gateflow.flow import has_source, place_gates
from gateflow.models import DeviceSnapshot, DeviceStatus, FlowDirection, GateStatus


def assert_partition(result):
    segments = result.flow_segments
    assert segments[0].start == 0
    assert segments[-1].end == 1
    for seg in segments:
        assert seg.start < seg.end
    for prev, nxt in zip(segments, segments[1:]):
        assert prev.end == nxt.start


def flows(result):
    return [seg.has_flow for seg in result.flow_segments]


class TestSource:
    def test_no_devices_assumes_source(self, make_pipeline):
        assert has_source(make_pipeline(), {}) is True

    def test_active_device_with_water(self, make_pipeline, active_tank):
        assert has_source(make_pipeline(devices=["T1"]), {"T1": active_tank}) is True

    def test_empty_tank_is_no_source(self, make_pipeline, dry_tank):
        assert has_source(make_pipeline(devices=["T1"]), {"T1": dry_tank}) is False

    def test_inactive_tank_is_no_source(self, make_pipeline):
        tank = DeviceSnapshot(id="T1", status=DeviceStatus.INACTIVE, water_level=8.0)
        assert has_source(make_pipeline(devices=["T1"]), {"T1": tank}) is False

    def test_unreported_device_is_no_source(self, make_pipeline):
        assert has_source(make_pipeline(devices=["T1"]), {}) is False

    def test_any_supplying_device_is_enough(self, make_pipeline, dry_tank, active_tank):
        devices = {"T1": dry_tank, "T2": active_tank.model_copy(update={"id": "T2"})}
        assert has_source(make_pipeline(devices=["T1", "T2"]), devices) is True


class TestNoGates:
    def test_single_flowing_segment(self, make_pipeline):
        pipeline = make_pipeline()
        result = compute_flow(pipeline, {}, {})
        assert len(result.flow_segments) == 1
        seg = result.flow_segments[0]
        assert (seg.start, seg.end, seg.has_flow) == (0, 1, True)
        assert seg.start_point == pipeline.points[0]
        assert seg.end_point == pipeline.points[-1]
        assert seg.before_gate is None and seg.after_gate is None
        assert result.overall_flow is True

    def test_no_source_no_flow(self, make_pipeline, dry_tank):
        result = compute_flow(make_pipeline(devices=["T1"]), {}, {"T1": dry_tank})
        assert flows(result) == [False]
        assert result.overall_flow is False

    def test_unreported_gates_are_ignored(self, make_pipeline):
        result = compute_flow(make_pipeline(gates=["G1", "G2"]), {}, {})
        assert flows(result) == [True]
        assert result.flow_segments[0].before_gate is None


class TestSingleGate:
    def test_closed_gate_cuts_downstream(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        gates = {"G1": make_gate("G1", lon=1.0, direction=FlowDirection.NONE)}
        result = compute_flow(pipeline, gates, {})

        first, second = result.flow_segments
        assert (first.start, first.end, first.has_flow) == (0, 0.5, True)
        assert first.before_gate == "G1"
        assert (second.start, second.end, second.has_flow) == (0.5, 1, False)
        assert second.after_gate == "G1"
        assert result.overall_flow is True

    def test_faulted_gate_is_closed(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        gates = {"G1": make_gate("G1", lon=1.0, status=GateStatus.FAULT)}
        assert flows(compute_flow(pipeline, gates, {})) == [True, False]

    def test_open_gate_passes_flow(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        gates = {"G1": make_gate("G1", lon=1.0, direction=FlowDirection.LEFT)}
        result = compute_flow(pipeline, gates, {})
        assert flows(result) == [True, True]
        assert result.overall_flow is True

    def test_open_gate_without_source(self, make_pipeline, make_gate, dry_tank):
        pipeline = make_pipeline(gates=["G1"], devices=["T1"])
        gates = {"G1": make_gate("G1", lon=1.0)}
        result = compute_flow(pipeline, gates, {"T1": dry_tank})
        assert flows(result) == [False, False]
        assert result.overall_flow is False

    def test_segment_endpoints_follow_the_route(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        result = compute_flow(pipeline, {"G1": make_gate("G1", lon=1.0)}, {})
        first, second = result.flow_segments
        assert first.start_point == pipeline.points[0]
        assert first.end_point == pipeline.points[1]
        assert second.start_point == pipeline.points[1]
        assert second.end_point == pipeline.points[2]

    def test_gate_at_inlet_has_no_leading_segment(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        gates = {"G1": make_gate("G1", lon=-0.5, direction=FlowDirection.NONE)}
        result = compute_flow(pipeline, gates, {})
        assert len(result.flow_segments) == 1
        seg = result.flow_segments[0]
        assert (seg.start, seg.end, seg.has_flow) == (0, 1, False)
        assert seg.after_gate == "G1"
        assert result.overall_flow is False

    def test_gate_at_outlet_has_no_trailing_segment(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1"])
        gates = {"G1": make_gate("G1", lon=2.0, direction=FlowDirection.NONE)}
        result = compute_flow(pipeline, gates, {})
        assert len(result.flow_segments) == 1
        seg = result.flow_segments[0]
        assert (seg.start, seg.end, seg.has_flow) == (0, 1, True)
        assert seg.before_gate == "G1"
        assert seg.after_gate is None


class TestManyGates:
    def test_gates_sorted_by_position(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["far", "near"])
        gates = {"far": make_gate("far", lon=1.5), "near": make_gate("near", lon=0.5)}
        placed = place_gates(pipeline, gates)
        assert [g.id for g in placed] == ["near", "far"]
        assert [g.position for g in placed] == pytest.approx([0.25, 0.75])

    def test_no_reenergizing_after_closed_gate(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1", "G2", "G3"])
        gates = {
            "G1": make_gate("G1", lon=0.5),
            "G2": make_gate("G2", lon=1.0, direction=FlowDirection.NONE),
            "G3": make_gate("G3", lon=1.5),
        }
        result = compute_flow(pipeline, gates, {})
        assert flows(result) == [True, True, False, False]
        assert [s.before_gate for s in result.flow_segments[:3]] == ["G1", "G2", "G3"]
        assert result.flow_segments[-1].after_gate == "G3"
        assert_partition(result)

    def test_tied_gates_keep_input_order(self, make_pipeline, make_gate):
        gates = {
            "A": make_gate("A", lon=1.0, direction=FlowDirection.NONE),
            "B": make_gate("B", lon=1.0),
        }
        result = compute_flow(make_pipeline(gates=["A", "B"]), gates, {})
        assert [s.before_gate for s in result.flow_segments] == ["A", None]
        assert result.flow_segments[-1].after_gate == "B"
        assert flows(result) == [True, False]

        result = compute_flow(make_pipeline(gates=["B", "A"]), gates, {})
        assert result.flow_segments[0].before_gate == "B"
        assert result.flow_segments[-1].after_gate == "A"
        assert flows(result) == [True, False]

    def test_unreported_gate_has_no_effect(self, make_pipeline, make_gate):
        pipeline = make_pipeline(gates=["G1", "ghost"])
        result = compute_flow(pipeline, {"G1": make_gate("G1", lon=1.0)}, {})
        assert len(result.flow_segments) == 2
        assert "ghost" not in {s.before_gate for s in result.flow_segments}

    def test_gate_off_the_line_projects_onto_it(self, make_pipeline, make_gate):
        pipeline = make_pipeline([[0, 0], [0, 1], [1, 1], [1, 2]], gates=["G1"])
        gates = {"G1": make_gate("G1", lat=0.5, lon=1.2, direction=FlowDirection.NONE)}
        result = compute_flow(pipeline, gates, {})
        assert result.flow_segments[0].end == pytest.approx(0.5)
        assert flows(result) == [True, False]

    @pytest.mark.parametrize(
        "positions",
        [
            [0.0, 0.3, 1.2, 2.0],
            [1.0, 1.0, 1.0],
            [0.2, 1.8],
            [2.0, 0.0],
        ],
    )
    def test_segments_partition_the_pipeline(self, make_pipeline, make_gate, positions):
        ids = [f"G{i}" for i in range(len(positions))]
        gates = {
            gid: make_gate(gid, lon=lon, direction=FlowDirection.NONE if i % 2 else FlowDirection.RIGHT)
            for i, (gid, lon) in enumerate(zip(ids, positions))
        }
        result = compute_flow(make_pipeline(gates=ids), gates, {})
        assert_partition(result)
        states = flows(result)
        first_dry = states.index(False) if False in states else len(states)
        assert not any(states[first_dry:])
        assert result.overall_flow == any(states)


class TestGuards:
    def test_degenerate_geometry_returns_dry_segment(self):
        pipeline = Pipeline.model_construct(
            id="broken",
            name="broken",
            points=[Coordinate(lat=0, lon=0)],
            connected_gate_walls=["G1"],
            connected_devices=[],
        )
        result = compute_flow(pipeline, {}, {})
        assert len(result.flow_segments) == 1
        seg = result.flow_segments[0]
        assert (seg.start, seg.end, seg.has_flow) == (0, 1, False)
        assert result.overall_flow is False

    def test_missing_pipeline_is_a_programming_error(self):
        with pytest.raises(TypeError):
            compute_flow(None, {}, {})

    def test_repeated_runs_are_identical(self, make_pipeline, make_gate, active_tank):
        pipeline = make_pipeline(gates=["G1", "G2"], devices=["T1"])
        gates = {
            "G1": make_gate("G1", lon=0.7, direction=FlowDirection.NONE),
            "G2": make_gate("G2", lon=1.3),
        }
        devices = {"T1": active_tank}
        first = compute_flow(pipeline, gates, devices)
        second = compute_flow(pipeline, gates, devices)
        assert first.model_dump_json() == second.model_dump_json()
