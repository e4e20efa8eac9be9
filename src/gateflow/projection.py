"""Positional projection of points onto a pipeline polyline.

Positions are normalized to ``[0, 1]`` by vertex index: every segment of the
polyline covers an equal share of the range regardless of its length.
Coordinates are treated as a flat plane with longitude as x and latitude as y.
"""

import math

from .models import Coordinate, Pipeline


def _closest_on_segment(point: Coordinate, start: Coordinate, end: Coordinate) -> tuple[float, float]:
    """Return (distance, t) from ``point`` to its clamped projection on start->end."""
    dx = end.lon - start.lon
    dy = end.lat - start.lat
    len_sq = dx * dx + dy * dy
    if len_sq == 0:
        return math.inf, 0.0

    t = ((point.lon - start.lon) * dx + (point.lat - start.lat) * dy) / len_sq
    t = max(0.0, min(1.0, t))

    closest_lon = start.lon + t * dx
    closest_lat = start.lat + t * dy
    return math.hypot(point.lon - closest_lon, point.lat - closest_lat), t


def project(pipeline: Pipeline, point: Coordinate) -> float:
    """Project ``point`` onto the pipeline and return its position in [0, 1].

    The closest segment wins; on equal distance the earliest segment is kept.
    """
    points = pipeline.points
    if len(points) < 2:
        return 0.0

    min_dist = math.inf
    closest_segment = 0
    segment_t = 0.0
    for i in range(len(points) - 1):
        dist, t = _closest_on_segment(point, points[i], points[i + 1])
        if dist < min_dist:
            min_dist = dist
            closest_segment = i
            segment_t = t

    return (closest_segment + segment_t) / (len(points) - 1)


def point_at(pipeline: Pipeline, position: float) -> Coordinate:
    """Return the coordinate at ``position`` under the same index parametrization as ``project``."""
    points = pipeline.points
    n_segments = len(points) - 1
    if n_segments < 1:
        return points[0]

    scaled = max(0.0, min(1.0, position)) * n_segments
    i = min(int(scaled), n_segments - 1)
    t = scaled - i
    start, end = points[i], points[i + 1]
    if t == 0:
        return start
    if t == 1:
        return end
    return Coordinate(
        lat=start.lat + t * (end.lat - start.lat),
        lon=start.lon + t * (end.lon - start.lon),
    )
