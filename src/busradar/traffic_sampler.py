"""Road speed inference from traffic tile colors."""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .config import (
    ALONG_ROUTE_OFFSET,
    MAX_COLOR_DISTANCE,
    MIN_ALPHA,
    PERPENDICULAR_OFFSET,
    SAMPLE_RADIUS,
    TILE_SIZE,
    TRAFFIC_ZOOM,
)
from .geo_utils import lat_lon_to_pixel, search_offsets
from .models import Route, TrafficLevel, Waypoint
from .tile_client import TileClient

logger = logging.getLogger(__name__)

RGBA = Tuple[int, int, int, int]

# Reference colors of the traffic overlay, including real samples
TRAFFIC_PALETTES: Dict[TrafficLevel, List[Tuple[int, int, int]]] = {
    TrafficLevel.GREEN: [
        (99, 214, 104),
        (76, 175, 80),
        (10, 90, 61),
        (102, 187, 106),
    ],
    TrafficLevel.YELLOW: [
        (251, 192, 45),
        (255, 235, 59),
        (197, 160, 53),
        (255, 193, 7),
    ],
    TrafficLevel.ORANGE: [
        (245, 124, 0),
        (255, 152, 0),
        (255, 140, 0),
        (239, 108, 0),
    ],
    TrafficLevel.RED: [
        (244, 67, 54),
        (211, 47, 47),
        (229, 57, 53),
        (198, 40, 40),
        (183, 28, 28),
        (139, 0, 0),
    ],
}


def classify_color(color: Optional[RGBA]) -> TrafficLevel:
    """
    Classify a tile pixel as a traffic level.

    Args:
        color: (r, g, b, a) tuple, or None.

    Returns:
        Closest traffic level within MAX_COLOR_DISTANCE, or NO_DATA.
    """
    if color is None:
        return TrafficLevel.NO_DATA
    r, g, b, a = color
    if a <= MIN_ALPHA:
        return TrafficLevel.NO_DATA

    # Labels, background and untrafficked roads
    if r < 20 and g < 20 and b < 20:
        return TrafficLevel.NO_DATA
    if r > 235 and g > 235 and b > 235:
        return TrafficLevel.NO_DATA
    if 140 < r < 180 and 140 < g < 180 and 140 < b < 180 and abs(r - g) < 20 and abs(g - b) < 20:
        return TrafficLevel.NO_DATA

    closest = TrafficLevel.NO_DATA
    min_distance = MAX_COLOR_DISTANCE
    for level, palette in TRAFFIC_PALETTES.items():
        for ref_r, ref_g, ref_b in palette:
            distance = math.sqrt((r - ref_r) ** 2 + (g - ref_g) ** 2 + (b - ref_b) ** 2)
            if distance < min_distance:
                min_distance = distance
                closest = level
    return closest


class TrafficSampler:
    """Samples traffic tiles along a route and returns an average road speed."""

    def __init__(self, tile_client: Optional[TileClient] = None, zoom: int = TRAFFIC_ZOOM, radius: int = SAMPLE_RADIUS):
        self.tile_client = tile_client or TileClient()
        self.zoom = zoom
        self.radius = radius

    def sample_level_at(self, lat: float, lon: float) -> TrafficLevel:
        """
        Classify the traffic overlay around a coordinate.

        Scans the neighborhood of the target pixel for the first traffic-colored
        pixel, falling back to the center pixel.
        """
        tile_x, tile_y, pixel_x, pixel_y = lat_lon_to_pixel(lat, lon, self.zoom)
        tile = self.tile_client.fetch_tile(tile_x, tile_y, self.zoom)
        if tile is None:
            return TrafficLevel.NO_DATA

        last = TILE_SIZE - 1
        for dx in range(-self.radius, self.radius + 1):
            for dy in range(-self.radius, self.radius + 1):
                px = max(0, min(last, pixel_x + dx))
                py = max(0, min(last, pixel_y + dy))
                level = classify_color(tile.getpixel((px, py)))
                if level is not TrafficLevel.NO_DATA:
                    return level

        return classify_color(tile.getpixel((pixel_x, pixel_y)))

    def sample_points(self, points: Sequence[Waypoint]) -> Optional[float]:
        """
        Average speed over a sequence of points.

        Two-point sequences are sampled at their start only. Points without an
        overlay are retried along the segment and on both sides of it.

        Returns:
            Average speed in km/h, or None if no point could be classified.
        """
        if not points:
            return None
        sampling_points = list(points[:1]) if len(points) == 2 else list(points)

        speeds: List[float] = []
        for index, point in enumerate(sampling_points):
            label = point.name or f"Point {index}"
            try:
                level = self.sample_level_at(point.lat, point.lon)
                if level is TrafficLevel.NO_DATA and index + 1 < len(points):
                    for lat, lon in search_offsets(point, points[index + 1], ALONG_ROUTE_OFFSET, PERPENDICULAR_OFFSET):
                        level = self.sample_level_at(lat, lon)
                        if level is not TrafficLevel.NO_DATA:
                            logger.debug(f"Found traffic near {label} at ({lat:.5f}, {lon:.5f})")
                            break
            except Exception as e:
                logger.warning(f"Sampling failed at {label}: {e}")
                continue

            if level.speed is not None:
                speeds.append(level.speed)
                logger.debug(f"{label}: {level.value} ({level.speed} km/h)")
            else:
                logger.debug(f"{label}: no data")

        if not speeds:
            return None
        logger.debug(f"Found traffic data on {len(speeds)}/{len(sampling_points)} points")
        return sum(speeds) / len(speeds)

    @staticmethod
    def directed_points(route: Route) -> List[Waypoint]:
        """Order a two-point path so sampling starts upstream of the destination."""
        path = list(route.waypoints)
        if route.destination and len(path) == 2:
            start, end = path
            dest = route.destination.lower()
            end_name = end.name.lower()
            if dest in end_name or end_name in dest:
                return [start, end]
            return [end, start]
        return path

    def estimate_speed(self, route: Route) -> Optional[float]:
        """
        Estimate the current road speed for a route.

        Args:
            route: Route with at least two waypoints.

        Returns:
            Speed in km/h, or None when there is no usable traffic data.
        """
        if len(route.waypoints) < 2:
            logger.warning(f"No route path found for route {route.number}")
            return None

        try:
            speed = self.sample_points(self.directed_points(route))
        except Exception as e:
            logger.warning(f"Traffic sampling error for route {route.number}: {e}")
            return None

        if speed is None:
            logger.info(f"No traffic data for route {route.number}")
        else:
            logger.info(f"Traffic for route {route.number}: {speed:.1f} km/h")
        return speed
