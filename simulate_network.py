"""Simulate telemetry for a sample network, compute pipeline flow, export CSV and plot a flow map.

This script uses the gateflow library for the network model and flow engine
and adds CSV and matplotlib output on top.
"""

import argparse
import csv
import logging
from pathlib import Path

import matplotlib.pyplot as plt

from gateflow import NetworkService, PipelineStatus, Settings

NETWORK_FILE = Path(__file__).parent / "sampledata" / "network.json"
OUTPUT_CSV = Path(__file__).parent / "pipeline_flow.csv"
OUTPUT_PLOT = Path(__file__).parent / "pipeline_flow.png"

logger = logging.getLogger("simulate_network")


def export_csv(statuses: list[PipelineStatus], path: Path) -> None:
    """Write one row per flow segment."""
    fieldnames = ["pipeline", "start", "end", "has_flow", "before_gate", "after_gate", "flow_rate", "pressure"]
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for status in statuses:
            for seg in status.flow_segments:
                writer.writerow({
                    "pipeline": status.id,
                    "start": round(seg.start, 4),
                    "end": round(seg.end, 4),
                    "has_flow": seg.has_flow,
                    "before_gate": seg.before_gate or "",
                    "after_gate": seg.after_gate or "",
                    "flow_rate": status.flow_rate,
                    "pressure": status.pressure,
                })
    logger.info("CSV exported: %s", path)


def plot_flow_map(service: NetworkService, statuses: list[PipelineStatus], path: Path) -> None:
    """Draw every pipeline with its flowing and dry stretches, plus gates and tanks."""
    settings = service.settings
    fig, ax = plt.subplots(figsize=(10, 8))

    for status in statuses:
        for seg in status.flow_segments:
            if seg.start_point is None or seg.end_point is None:
                continue
            color = settings.flowing_color if seg.has_flow else settings.dry_color
            ax.plot(
                [seg.start_point.lon, seg.end_point.lon],
                [seg.start_point.lat, seg.end_point.lat],
                color=color, linewidth=3,
            )
        pipeline = service.pipelines.require(status.id)
        ax.plot([p.lon for p in pipeline.points], [p.lat for p in pipeline.points],
                color="grey", linewidth=0.5, linestyle="--")

    snapshots = service.gate_snapshots()
    for gate in service.gates.get_all():
        snap = snapshots.get(gate.id)
        marker_color = "green" if snap is not None and snap.is_open else "black"
        ax.scatter(gate.longitude, gate.latitude, marker="s", color=marker_color, zorder=3)
        ax.annotate(gate.id, (gate.longitude, gate.latitude), textcoords="offset points", xytext=(4, 4))

    for tank in service.tanks.get_all():
        ax.scatter(tank.longitude, tank.latitude, marker="^", s=80, color="navy", zorder=3)
        ax.annotate(tank.id, (tank.longitude, tank.latitude), textcoords="offset points", xytext=(4, -12))

    ax.set_xlabel("Longitude")
    ax.set_ylabel("Latitude")
    ax.set_title("Pipeline flow (blue: flowing, red: dry; gates green when open)")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    logger.info("Plot saved: %s", path)


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--network", type=Path, default=NETWORK_FILE)
    parser.add_argument("--rounds", type=int, default=1, help="number of refresh rounds to simulate")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--save", type=Path, default=None, help="write the simulated network and its telemetry here")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    service = NetworkService(Settings(random_seed=args.seed))
    service.load(args.network)

    statuses: list[PipelineStatus] = []
    for _ in range(max(1, args.rounds)):
        statuses = service.refresh_all()

    for status in statuses:
        flowing = sum(1 for seg in status.flow_segments if seg.has_flow)
        print(f"{status.id}: {status.status.value:<8} {flowing}/{len(status.flow_segments)} segments flowing, "
              f"{status.flow_rate} L/s at {status.pressure} m")

    export_csv(statuses, OUTPUT_CSV)
    plot_flow_map(service, statuses, OUTPUT_PLOT)
    if args.save is not None:
        service.save(args.save)


if __name__ == "__main__":
    main()
