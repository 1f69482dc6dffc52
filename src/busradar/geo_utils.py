"""Distance and web-mercator tile helpers. No external dependencies."""

import math
from typing import List, Sequence, Tuple

from .config import TILE_SIZE
from .models import Waypoint

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def lat_lon_to_pixel(lat: float, lon: float, zoom: int) -> Tuple[int, int, int, int]:
    """
    Project a coordinate onto the web-mercator tile grid.

    Returns:
        (tile_x, tile_y, pixel_x, pixel_y) where pixel coordinates are within the tile.
    """
    scale = 2 ** zoom
    lat_rad = math.radians(lat)
    world_x = (lon + 180.0) / 360.0 * scale
    world_y = (1 - math.log(math.tan(lat_rad) + 1 / math.cos(lat_rad)) / math.pi) / 2 * scale

    tile_x = int(math.floor(world_x))
    tile_y = int(math.floor(world_y))
    pixel_x = int(math.floor((world_x - tile_x) * TILE_SIZE))
    pixel_y = int(math.floor((world_y - tile_y) * TILE_SIZE))
    return tile_x, tile_y, pixel_x, pixel_y


def straight_line_km(waypoints: Sequence[Waypoint]) -> float:
    """Distance between the first and last waypoint."""
    if len(waypoints) < 2:
        return 0.0
    first, last = waypoints[0], waypoints[-1]
    return haversine_km(first.lat, first.lon, last.lat, last.lon)


def path_length_km(waypoints: Sequence[Waypoint]) -> float:
    """Sum of segment lengths along a path."""
    return sum(
        haversine_km(a.lat, a.lon, b.lat, b.lon)
        for a, b in zip(waypoints, waypoints[1:])
    )


def closest_waypoint_index(lat: float, lon: float, waypoints: Sequence[Waypoint]) -> int:
    """Index of the waypoint nearest to (lat, lon)."""
    best_index = 0
    best_dist = math.inf
    for index, waypoint in enumerate(waypoints):
        dist = haversine_km(lat, lon, waypoint.lat, waypoint.lon)
        if dist < best_dist:
            best_dist = dist
            best_index = index
    return best_index


def distance_along_path_km(lat: float, lon: float, waypoints: Sequence[Waypoint]) -> float:
    """Distance from the path start to a point, via the point's closest waypoint."""
    if not waypoints:
        return 0.0
    index = closest_waypoint_index(lat, lon, waypoints)
    closest = waypoints[index]
    return path_length_km(waypoints[: index + 1]) + haversine_km(closest.lat, closest.lon, lat, lon)


def search_offsets(start: Waypoint, toward: Waypoint, along: float, across: float) -> List[Tuple[float, float]]:
    """
    Nearby points to probe when a waypoint has no traffic overlay.

    Returns one point `along` degrees toward the next waypoint, followed by two
    points `across` degrees to the left and right of the segment.
    """
    d_lat = toward.lat - start.lat
    d_lon = toward.lon - start.lon
    norm = math.hypot(d_lat, d_lon)
    if norm == 0:
        return []
    unit_lat = d_lat / norm
    unit_lon = d_lon / norm
    return [
        (start.lat + unit_lat * along, start.lon + unit_lon * along),
        (start.lat - unit_lon * across, start.lon + unit_lat * across),
        (start.lat + unit_lon * across, start.lon - unit_lat * across),
    ]
