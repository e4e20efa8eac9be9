"""Shapefile reader for pipeline polylines, with CRS detection and reprojection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

import shapefile
from pyproj import CRS, Transformer

from .models import Coordinate

logger = logging.getLogger(__name__)


def detect_crs(prj_source: str | Path | None) -> CRS | None:
    """Parse a CRS from a .prj WKT string or file path, or return None."""
    if prj_source is None:
        return None

    if isinstance(prj_source, Path):
        if not prj_source.exists():
            return None
        wkt = prj_source.read_text()
    else:
        wkt = prj_source

    if not wkt.strip():
        return None

    try:
        return CRS.from_wkt(wkt)
    except Exception:
        logger.warning("Unreadable .prj, treating coordinates as lon/lat")
        return None


def read_shapefile_polyline(
    shp_path: str | Path | None = None,
    *,
    shp_file: BinaryIO | None = None,
    shx_file: BinaryIO | None = None,
    dbf_file: BinaryIO | None = None,
    prj_wkt: str | None = None,
) -> list[Coordinate]:
    """Read a POINT or POLYLINE shapefile and return its vertices as WGS84 coordinates.

    Supports two modes:
    - File path: pass ``shp_path`` (the .prj is auto-discovered)
    - File objects: pass ``shp_file``, ``shx_file``, ``dbf_file``, and optionally ``prj_wkt``

    Vertices of every record and part are concatenated in file order.
    """
    if shp_path is not None:
        shp_path = Path(shp_path)
        reader = shapefile.Reader(str(shp_path))
        prj_path = shp_path.with_suffix(".prj")
        crs = detect_crs(prj_path if prj_path.exists() else None)
    elif shp_file is not None:
        reader = shapefile.Reader(shp=shp_file, shx=shx_file, dbf=dbf_file)
        crs = detect_crs(prj_wkt)
    else:
        raise ValueError("Provide either shp_path or shp_file")

    with reader as sf:
        upper = sf.shapeTypeName.upper()
        if "POLYGON" in upper:
            raise ValueError(f"Unsupported shape type: {sf.shapeTypeName}. POLYGON shapes are not supported.")
        if not ("POINT" in upper or "POLYLINE" in upper or upper.startswith("ARC")):
            raise ValueError(f"Unsupported shape type: {sf.shapeTypeName}")
        xy = [tuple(pt[:2]) for shape in sf.shapes() for pt in shape.points]

    if len(xy) < 2:
        raise ValueError("Shapefile must contain at least 2 vertices to form a pipeline")

    if crs is None:
        logger.warning("Shapefile has no CRS, assuming lon/lat")
    elif crs.is_projected:
        return _to_wgs84(xy, crs)
    return [Coordinate(lon=x, lat=y) for x, y in xy]


def _to_wgs84(xy: list[tuple[float, float]], source: CRS) -> list[Coordinate]:
    transformer = Transformer.from_crs(source, "EPSG:4326", always_xy=True)
    lons, lats = transformer.transform([x for x, _ in xy], [y for _, y in xy])
    return [Coordinate(lon=lon, lat=lat) for lon, lat in zip(lons, lats)]
