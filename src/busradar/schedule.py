"""Static timetable and route path loader."""

import logging
from typing import Dict, List, Optional

import pandas as pd

from . import network
from .geo_utils import distance_along_path_km, haversine_km, path_length_km
from .models import Route, Station, Waypoint

logger = logging.getLogger(__name__)


class ScheduleLoader:
    """Loads and indexes stations, route timetables and route paths."""

    def __init__(self):
        """Initialize an empty schedule."""
        self.stations: Dict[str, Station] = {}
        self.stations_by_name: Dict[str, List[str]] = {}  # name -> [station_ids]
        self.route_paths: Dict[str, List[Waypoint]] = {}  # route number -> path

    def load_builtin(self) -> None:
        """Load the bundled Algiers network."""
        for number, points in network.ROUTE_PATHS.items():
            self.route_paths[number] = [Waypoint(lat=lat, lon=lon, name=name) for lat, lon, name in points]

        for entry in network.STATIONS:
            routes = [
                self._make_route(number, destination, interval, start, end)
                for number, destination, interval, start, end in entry["routes"]
            ]
            self._add_station(
                Station(
                    station_id=entry["id"],
                    name=entry["name"],
                    latitude=entry["lat"],
                    longitude=entry["lon"],
                    routes=routes,
                    address=entry.get("address", ""),
                )
            )
        logger.info(f"Loaded {len(self.stations)} stations and {len(self.route_paths)} route paths")

    def load_from_files(self, stations_path: str, routes_path: str, waypoints_path: str) -> None:
        """
        Load a network from CSV files.

        Args:
            stations_path: CSV with station_id, name, lat, lon[, address]
            routes_path: CSV with station_id, number, destination, interval, start_time, end_time
            waypoints_path: CSV with number, sequence, lat, lon[, name]
        """
        logger.info("Loading schedule from local files")
        text_columns = {"station_id": str, "number": str, "start_time": str, "end_time": str}
        self._load_waypoints(pd.read_csv(waypoints_path, dtype=text_columns, keep_default_na=False))
        routes = pd.read_csv(routes_path, dtype=text_columns, keep_default_na=False)
        self._load_stations(pd.read_csv(stations_path, dtype=text_columns, keep_default_na=False), routes)
        logger.info(f"Loaded {len(self.stations)} stations and {len(self.route_paths)} route paths")

    def _load_waypoints(self, frame: pd.DataFrame) -> None:
        """Build route paths from a waypoints table ordered by sequence."""
        frame = frame.sort_values(["number", "sequence"], kind="stable")
        for number, group in frame.groupby("number", sort=False):
            self.route_paths[str(number)] = [
                Waypoint(lat=float(row.lat), lon=float(row.lon), name=str(getattr(row, "name", "") or ""))
                for row in group.itertuples(index=False)
            ]

    def _load_stations(self, stations: pd.DataFrame, routes: pd.DataFrame) -> None:
        """Build stations and their route tables."""
        routes_by_station: Dict[str, List[Route]] = {}
        for row in routes.itertuples(index=False):
            routes_by_station.setdefault(str(row.station_id), []).append(
                self._make_route(
                    str(row.number),
                    str(row.destination),
                    int(row.interval),
                    str(row.start_time),
                    str(row.end_time),
                )
            )

        for row in stations.itertuples(index=False):
            station_id = str(row.station_id)
            self._add_station(
                Station(
                    station_id=station_id,
                    name=str(row.name),
                    latitude=float(row.lat),
                    longitude=float(row.lon),
                    routes=routes_by_station.get(station_id, []),
                    address=str(getattr(row, "address", "") or ""),
                )
            )

    def _make_route(self, number: str, destination: str, interval: int, start: str, end: str) -> Route:
        if interval <= 0:
            raise ValueError(f"Route {number} has invalid interval: {interval}")
        return Route(
            number=number,
            destination=destination,
            interval=interval,
            start_time=start,
            end_time=end,
            waypoints=list(self.route_paths.get(number, [])),
        )

    def _add_station(self, station: Station) -> None:
        self.stations[station.station_id] = station
        self.stations_by_name.setdefault(station.name, []).append(station.station_id)

    def get_station(self, station_id: str) -> Station:
        """Get station by id."""
        if station_id not in self.stations:
            raise ValueError(f"Station {station_id} not found")
        return self.stations[station_id]

    def find_stations_by_name(self, name: str) -> List[Station]:
        """Find stations by name (partial match)."""
        results = []
        name_lower = name.lower()

        for station_name, station_ids in self.stations_by_name.items():
            if name_lower in station_name.lower():
                for station_id in station_ids:
                    results.append(self.stations[station_id])

        return results

    def nearest_station(self, lat: float, lon: float) -> Optional[Station]:
        """Closest station to a coordinate, or None if nothing is loaded."""
        if not self.stations:
            return None
        return min(
            self.stations.values(),
            key=lambda station: haversine_km(lat, lon, station.latitude, station.longitude),
        )

    def get_route_path(self, number: str) -> List[Waypoint]:
        """Path waypoints for a route number (empty if unknown)."""
        return list(self.route_paths.get(number, []))

    def find_route(self, station_id: str, number: str) -> Route:
        """Route entry served at a station."""
        station = self.get_station(station_id)
        for route in station.routes:
            if route.number == number:
                return route
        raise ValueError(f"Route {number} does not serve station {station_id}")

    def route_length_km(self, number: str) -> float:
        """Length of a route path summed over its segments (0 if unknown)."""
        return path_length_km(self.route_paths.get(number, []))

    def distance_from_route_start(self, station_id: str, number: str) -> float:
        """Distance along a route's path from its first waypoint to a station."""
        station = self.get_station(station_id)
        return distance_along_path_km(station.latitude, station.longitude, self.route_paths.get(number, []))

    def clear(self) -> None:
        """Clear all loaded data."""
        self.stations.clear()
        self.stations_by_name.clear()
        self.route_paths.clear()
        logger.info("Cleared schedule data from memory")
