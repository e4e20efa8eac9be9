"""FastAPI server exposing the network registries, telemetry and flow engine."""

from __future__ import annotations

import asyncio
import contextlib
import csv
import io
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from .config import Settings
from .kml_reader import read_kml_polyline
from .models import (
    Coordinate,
    FlowSegment,
    GateSample,
    GateWall,
    Pipeline,
    PipelineFlowResult,
    PipelineStatus,
    Tank,
    TankSample,
)
from .registry import DuplicateRecordError, RecordNotFoundError
from .service import NetworkService
from .shapefile_reader import read_shapefile_polyline

COMPANION_EXTS = {".shp", ".shx", ".dbf", ".prj"}

router = APIRouter()


class TankUpdate(BaseModel):
    name: str | None = None
    capacity: float | None = None
    country: str | None = None
    state: str | None = None
    district: str | None = None
    mandal: str | None = None
    habitation: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    connected_pipelines: list[str] | None = None


class GateWallUpdate(BaseModel):
    name: str | None = None
    type: str | None = None
    state: str | None = None
    district: str | None = None
    mandal: str | None = None
    habitation: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    connected_pipelines: list[str] | None = None
    firmware_version: str | None = None
    controller_id: str | None = None
    installation_date: datetime | None = None


class PipelineUpdate(BaseModel):
    name: str | None = None
    points: list[Coordinate] | None = None
    connected_gate_walls: list[str] | None = None
    connected_devices: list[str] | None = None
    material: str | None = None
    diameter: float | None = None
    length: float | None = None


def get_network(request: Request) -> NetworkService:
    return request.app.state.network


# Tanks


@router.post("/tanks", status_code=201)
def create_tank(tank: Tank, network: NetworkService = Depends(get_network)) -> Tank:
    return network.tanks.create(tank)


@router.get("/tanks")
def list_tanks(network: NetworkService = Depends(get_network)) -> list[Tank]:
    return network.tanks.get_all()


@router.get("/tanks/{tank_id}")
def get_tank(tank_id: str, network: NetworkService = Depends(get_network)) -> Tank:
    return network.tanks.require(tank_id)


@router.patch("/tanks/{tank_id}")
def update_tank(tank_id: str, updates: TankUpdate, network: NetworkService = Depends(get_network)) -> Tank:
    return network.tanks.update(tank_id, updates.model_dump(exclude_unset=True))


@router.delete("/tanks/{tank_id}")
def delete_tank(tank_id: str, network: NetworkService = Depends(get_network)) -> Tank:
    return network.remove_tank(tank_id)


@router.post("/tanks/{tank_id}/telemetry")
def post_tank_telemetry(
    tank_id: str,
    sample: TankSample | None = None,
    network: NetworkService = Depends(get_network),
) -> TankSample:
    """Record a tank reading. Without a body a simulated reading is recorded."""
    return network.update_tank(tank_id, sample)


@router.get("/tanks/{tank_id}/telemetry")
def get_tank_telemetry(tank_id: str, network: NetworkService = Depends(get_network)) -> TankSample | None:
    network.tanks.require(tank_id)
    return network.tank_telemetry.get_current(tank_id)


@router.get("/tanks/{tank_id}/telemetry/history")
def get_tank_history(tank_id: str, network: NetworkService = Depends(get_network)) -> list[TankSample]:
    network.tanks.require(tank_id)
    return network.tank_telemetry.get_history(tank_id)


# Gate walls


@router.post("/gates", status_code=201)
def create_gate(gate: GateWall, network: NetworkService = Depends(get_network)) -> GateWall:
    return network.gates.create(gate)


@router.get("/gates")
def list_gates(network: NetworkService = Depends(get_network)) -> list[GateWall]:
    return network.gates.get_all()


@router.get("/gates/{gate_id}")
def get_gate(gate_id: str, network: NetworkService = Depends(get_network)) -> GateWall:
    return network.gates.require(gate_id)


@router.patch("/gates/{gate_id}")
def update_gate(gate_id: str, updates: GateWallUpdate, network: NetworkService = Depends(get_network)) -> GateWall:
    return network.gates.update(gate_id, updates.model_dump(exclude_unset=True))


@router.delete("/gates/{gate_id}")
def delete_gate(gate_id: str, network: NetworkService = Depends(get_network)) -> GateWall:
    return network.remove_gate(gate_id)


@router.post("/gates/{gate_id}/telemetry")
def post_gate_telemetry(
    gate_id: str,
    sample: GateSample | None = None,
    network: NetworkService = Depends(get_network),
) -> GateSample:
    """Record a gate reading. Without a body a simulated reading is recorded."""
    return network.update_gate(gate_id, sample)


@router.get("/gates/{gate_id}/telemetry")
def get_gate_telemetry(gate_id: str, network: NetworkService = Depends(get_network)) -> GateSample | None:
    network.gates.require(gate_id)
    return network.gate_telemetry.get_current(gate_id)


@router.get("/gates/{gate_id}/telemetry/history")
def get_gate_history(gate_id: str, network: NetworkService = Depends(get_network)) -> list[GateSample]:
    network.gates.require(gate_id)
    return network.gate_telemetry.get_history(gate_id)


# Pipelines


@router.post("/pipelines", status_code=201)
def create_pipeline(pipeline: Pipeline, network: NetworkService = Depends(get_network)) -> Pipeline:
    return network.pipelines.create(pipeline)


@router.get("/pipelines")
def list_pipelines(network: NetworkService = Depends(get_network)) -> list[Pipeline]:
    return network.pipelines.get_all()


@router.get("/pipelines/{pipeline_id}")
def get_pipeline(pipeline_id: str, network: NetworkService = Depends(get_network)) -> Pipeline:
    return network.pipelines.require(pipeline_id)


@router.patch("/pipelines/{pipeline_id}")
def update_pipeline(
    pipeline_id: str, updates: PipelineUpdate, network: NetworkService = Depends(get_network)
) -> Pipeline:
    return network.pipelines.update(pipeline_id, updates.model_dump(exclude_unset=True))


@router.delete("/pipelines/{pipeline_id}")
def delete_pipeline(pipeline_id: str, network: NetworkService = Depends(get_network)) -> Pipeline:
    return network.remove_pipeline(pipeline_id)


@router.get("/pipelines/{pipeline_id}/flow")
def get_pipeline_flow(
    pipeline_id: str,
    format: str = Query("json", pattern="^(csv|json)$"),
    network: NetworkService = Depends(get_network),
):
    """Compute the pipeline's flow segments from the latest gate and tank readings."""
    result: PipelineFlowResult = network.compute_pipeline_flow(pipeline_id)
    if format == "csv":
        return _segments_to_csv_response(pipeline_id, result.flow_segments)
    return result


@router.post("/pipelines/{pipeline_id}/geometry")
async def upload_pipeline_geometry(
    pipeline_id: str,
    files: list[UploadFile],
    network: NetworkService = Depends(get_network),
) -> Pipeline:
    """Replace a pipeline's vertices from an uploaded route.

    Accepts:
    - A single .kmz or .kml file
    - A single .zip containing shapefile components
    - Multiple files (.shp, .shx, .dbf, and optionally .prj)
    """
    network.pipelines.require(pipeline_id)
    filename = (files[0].filename or "").lower() if len(files) == 1 else ""

    try:
        if filename.endswith((".kmz", ".kml")):
            points = read_kml_polyline(await files[0].read())
        elif filename.endswith(".zip"):
            points = _read_zip(await files[0].read())
        else:
            points = await _read_multi_file(files)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return network.pipelines.update(pipeline_id, {"points": points})


@router.post("/pipelines/{pipeline_id}/status")
def post_pipeline_status(pipeline_id: str, network: NetworkService = Depends(get_network)) -> PipelineStatus:
    return network.update_pipeline(pipeline_id)


@router.get("/pipelines/{pipeline_id}/status")
def get_pipeline_status(pipeline_id: str, network: NetworkService = Depends(get_network)) -> PipelineStatus | None:
    network.pipelines.require(pipeline_id)
    return network.pipeline_telemetry.get_current(pipeline_id)


@router.get("/pipelines/{pipeline_id}/status/history")
def get_pipeline_history(
    pipeline_id: str, network: NetworkService = Depends(get_network)
) -> list[PipelineStatus]:
    network.pipelines.require(pipeline_id)
    return network.pipeline_telemetry.get_history(pipeline_id)


@router.post("/refresh")
def refresh(network: NetworkService = Depends(get_network)) -> list[PipelineStatus]:
    """Sample every gate and tank, then recompute all pipelines."""
    return network.refresh_all()


def _read_zip(content: bytes):
    """Extract a shapefile from a zip archive and read its polyline."""
    with tempfile.TemporaryDirectory() as extract_dir:
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as zf:
                zf.extractall(extract_dir)
        except zipfile.BadZipFile as exc:
            raise ValueError("Uploaded file is not a valid zip archive") from exc

        shp_files = sorted(Path(extract_dir).rglob("*.shp"))
        if not shp_files:
            raise ValueError("No .shp file found in zip archive")
        return read_shapefile_polyline(shp_files[0])


async def _read_multi_file(files: list[UploadFile]):
    """Read a shapefile polyline from its uploaded component files."""
    file_map: dict[str, bytes] = {}
    for f in files:
        ext = Path(f.filename or "").suffix.lower()
        if ext in COMPANION_EXTS:
            file_map[ext] = await f.read()

    if ".shp" not in file_map:
        raise ValueError("Missing required .shp file")

    prj_wkt = file_map[".prj"].decode("utf-8", errors="replace") if ".prj" in file_map else None
    return read_shapefile_polyline(
        shp_file=io.BytesIO(file_map[".shp"]),
        shx_file=io.BytesIO(file_map[".shx"]) if ".shx" in file_map else None,
        dbf_file=io.BytesIO(file_map[".dbf"]) if ".dbf" in file_map else None,
        prj_wkt=prj_wkt,
    )


def _segments_to_csv_response(pipeline_id: str, segments: list[FlowSegment]) -> StreamingResponse:
    """Convert flow segments to a streaming CSV response."""
    fieldnames = [
        "start", "end", "has_flow",
        "start_lat", "start_lon", "end_lat", "end_lon",
        "before_gate", "after_gate",
    ]

    def row(seg: FlowSegment) -> dict:
        return {
            "start": seg.start,
            "end": seg.end,
            "has_flow": seg.has_flow,
            "start_lat": seg.start_point.lat if seg.start_point else None,
            "start_lon": seg.start_point.lon if seg.start_point else None,
            "end_lat": seg.end_point.lat if seg.end_point else None,
            "end_lon": seg.end_point.lon if seg.end_point else None,
            "before_gate": seg.before_gate,
            "after_gate": seg.after_gate,
        }

    def generate():
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=fieldnames)
        writer.writeheader()
        yield buf.getvalue()
        buf.seek(0)
        buf.truncate(0)

        for seg in segments:
            writer.writerow(row(seg))
            yield buf.getvalue()
            buf.seek(0)
            buf.truncate(0)

    return StreamingResponse(
        generate(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={pipeline_id}_flow.csv"},
    )


def create_app(settings: Settings | None = None, network: NetworkService | None = None) -> FastAPI:
    """Build an app serving its own ``NetworkService``."""
    settings = settings or Settings()
    network = network or NetworkService(settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.state_path and Path(settings.state_path).exists():
            network.load(settings.state_path)
        task = None
        if settings.auto_refresh_seconds > 0:
            task = asyncio.create_task(network.run_periodic(settings.auto_refresh_seconds))
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if settings.state_path:
                network.save(settings.state_path)

    app = FastAPI(title="Gateflow", version="0.1.0", lifespan=lifespan)
    app.state.network = network
    app.include_router(router)

    @app.exception_handler(RecordNotFoundError)
    async def not_found(request: Request, exc: RecordNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DuplicateRecordError)
    async def duplicate(request: Request, exc: DuplicateRecordError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def invalid_record(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": exc.errors(include_url=False, include_context=False, include_input=False)})

    return app


app = create_app(Settings.from_env())
