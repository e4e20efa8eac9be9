"""KMZ/KML reader: extracts a pipeline polyline from KML geometry.

KMZ is a ZIP archive containing KML. KML coordinates are always WGS84 in
``longitude,latitude[,altitude]`` format.
"""

from __future__ import annotations

import io
import zipfile
import xml.etree.ElementTree as ET
from typing import BinaryIO

from .models import Coordinate

KML_NS = "{http://www.opengis.net/kml/2.2}"


def read_kml_polyline(file: str | bytes | BinaryIO) -> list[Coordinate]:
    """Read a KMZ (or plain KML) file and return the pipeline vertices in order.

    LineString vertices are used when present; otherwise Point placemarks are
    joined in document order.

    Args:
        file: Path to a .kmz/.kml file, raw bytes, or a file-like object.
    """
    data = _read_bytes(file)
    if data[:4] == b"PK\x03\x04":
        kml_text = _extract_kml_from_kmz(data)
    else:
        kml_text = data.decode("utf-8", errors="replace")

    try:
        root = ET.fromstring(kml_text)
    except ET.ParseError as exc:
        raise ValueError(f"Invalid KML: {exc}") from exc

    line: list[Coordinate] = []
    points: list[Coordinate] = []
    for elem in root.iter():
        tag = elem.tag.replace(KML_NS, "")
        if tag not in ("LineString", "Point"):
            continue
        coords_elem = elem.find(f"{KML_NS}coordinates")
        if coords_elem is None or not coords_elem.text:
            continue
        target = line if tag == "LineString" else points
        target.extend(_parse_coordinates_text(coords_elem.text))

    vertices = line or points
    if len(vertices) < 2:
        raise ValueError("KML must contain at least 2 coordinates to form a pipeline")
    return vertices


def _read_bytes(file: str | bytes | BinaryIO) -> bytes:
    if isinstance(file, bytes):
        return file
    if isinstance(file, str):
        with open(file, "rb") as f:
            return f.read()
    return file.read()


def _extract_kml_from_kmz(data: bytes) -> str:
    """Extract doc.kml, or else the first .kml file, from a KMZ archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        names = zf.namelist()
        kml_name = next((n for n in names if n.lower() == "doc.kml"), None)
        if kml_name is None:
            kml_name = next((n for n in names if n.lower().endswith(".kml")), None)
        if kml_name is None:
            raise ValueError("No .kml file found in KMZ archive")
        return zf.read(kml_name).decode("utf-8", errors="replace")


def _parse_coordinates_text(text: str) -> list[Coordinate]:
    """Parse a ``<coordinates>`` block of whitespace-separated ``lon,lat[,alt]`` tuples."""
    coords = []
    for token in text.strip().split():
        parts = token.split(",")
        if len(parts) < 2:
            continue
        coords.append(Coordinate(lon=float(parts[0]), lat=float(parts[1])))
    return coords
