"""Baseline arrival estimates from timetables and live traffic speed."""

import logging
import math
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import config
from .geo_utils import straight_line_km
from .models import ArrivalStatus, Route, RouteArrival, Station, TrafficLevel, TrafficSample, Waypoint
from .timeutils import Clock, in_service_window, local_now, minutes_of_day, minutes_since_start, time_to_minutes
from .traffic_sampler import TrafficSampler

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Route, Station], None]


def bus_speed_factor(car_speed: float) -> float:
    """
    Fraction of car speed a bus achieves given traffic.

    Heavy traffic (< 15 km/h) gets a higher factor than slow traffic:
    congestion costs buses proportionally less than cars.
    """
    if car_speed >= 35:
        return 0.25
    if car_speed >= 25:
        return 0.22
    if car_speed >= 15:
        return 0.20
    return 0.30


def passengers_per_stop(hour: int) -> int:
    for start, end in config.PEAK_HOURS:
        if start <= hour < end:
            return config.PEAK_PASSENGERS
    return config.OFF_PEAK_PASSENGERS


def road_distance_km(waypoints: Sequence[Waypoint]) -> float:
    """Expected road distance: straight line between path ends times the urban factor."""
    if len(waypoints) < 2:
        return config.DEFAULT_ROUTE_DISTANCE_KM
    return straight_line_km(waypoints) * config.URBAN_FACTOR


def journey_time(car_speed: float, road_km: float, stop_count: int, hour: int) -> Tuple[float, float]:
    """
    Minutes a bus needs for the whole route.

    Returns:
        (movement_minutes, dwell_minutes)
    """
    bus_speed = car_speed * bus_speed_factor(car_speed)
    movement = road_km / bus_speed * 60
    dwell_seconds = config.DWELL_BASE_SECONDS + config.DWELL_SECONDS_PER_PASSENGER * passengers_per_stop(hour)
    dwell = stop_count * dwell_seconds / 60
    return movement, dwell


def arrival_minutes(journey: float, interval: int, cycle_position: float) -> int:
    """Minutes until the next bus given the position in the departure cycle."""
    if cycle_position < journey:
        # A bus is already on its way
        return math.ceil(journey - cycle_position)
    return math.ceil((interval - cycle_position) + journey)


class ArrivalEstimator:
    """
    Produces per-route arrival estimates for a station.

    Traffic samples are fetched in the background; until one is available the
    route reports LOADING and `on_update(route, station)` fires once it lands.
    """

    def __init__(
        self,
        sampler: Optional[TrafficSampler] = None,
        clock: Optional[Clock] = None,
        executor: Optional[Executor] = None,
        on_update: Optional[UpdateCallback] = None,
        refresh_seconds: float = config.TRAFFIC_REFRESH_SECONDS,
    ):
        self.sampler = sampler or TrafficSampler()
        self._clock = clock or local_now
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="traffic")
        self.on_update = on_update
        self.refresh_seconds = refresh_seconds

        self._lock = threading.Lock()
        self._sequence: Dict[str, int] = {}  # request key -> latest issued sequence
        self._pending: Dict[str, Future] = {}

    @staticmethod
    def _request_key(route: Route, station: Station) -> str:
        return f"{station.station_id}:{route.key}"

    def estimate(self, station: Station) -> List[RouteArrival]:
        """
        Estimate arrivals for every route serving a station.

        Returns:
            ACTIVE arrivals sorted by minutes, followed by the rest in station order.
        """
        arrivals = [self.estimate_route(route, station) for route in station.routes]
        arrivals.sort(key=lambda a: (0, a.minutes) if a.status is ArrivalStatus.ACTIVE else (1, 0))
        return arrivals

    def estimate_route(self, route: Route, station: Station) -> RouteArrival:
        now = self._clock()
        current = minutes_of_day(now)
        start = time_to_minutes(route.start_time)
        end = time_to_minutes(route.end_time)

        if not in_service_window(current, start, end):
            if current < start:
                return RouteArrival(route, ArrivalStatus.NOT_STARTED, message=f"Starts {route.start_time}")
            return RouteArrival(route, ArrivalStatus.ENDED, message="Service Ended")

        sample = route.traffic
        if sample is None or now.timestamp() - sample.sampled_at >= self.refresh_seconds:
            if not route.traffic_loading and self.request_traffic(route, station) is None:
                return RouteArrival(route, ArrivalStatus.NO_DATA, message="No traffic data")
            return RouteArrival(route, ArrivalStatus.LOADING, message="...")

        if sample.speed_kmh is None:
            return RouteArrival(route, ArrivalStatus.NO_DATA, message="No traffic data")

        movement, dwell = journey_time(
            sample.speed_kmh,
            road_distance_km(route.waypoints),
            len(route.waypoints) if route.waypoints else config.DEFAULT_STOP_COUNT,
            now.hour,
        )
        journey = movement + dwell
        cycle_position = minutes_since_start(current, start) % route.interval
        minutes = arrival_minutes(journey, route.interval, cycle_position)
        logger.debug(
            f"Route {route.number}: car {sample.speed_kmh:.1f} km/h, journey {journey:.1f} min, "
            f"cycle {cycle_position}, eta {minutes} min"
        )
        return RouteArrival(route, ArrivalStatus.ACTIVE, minutes=minutes)

    # ------------------------------------------------------------------
    # Background traffic refresh
    # ------------------------------------------------------------------

    def request_traffic(self, route: Route, station: Station) -> Optional[Future]:
        """
        Start a background traffic fetch for a route.

        Any fetch already in flight for the same route and station is
        superseded: its result will be discarded.

        Returns:
            The pending fetch, or None if the executor refused it (the route
            then gets an empty sample).
        """
        key = self._request_key(route, station)
        with self._lock:
            sequence = self._sequence.get(key, 0) + 1
            self._sequence[key] = sequence
            route.traffic_loading = True
        try:
            future = self._executor.submit(self._fetch_traffic, route, station, key, sequence)
        except RuntimeError as e:
            logger.warning(f"Could not schedule traffic fetch for route {route.number}: {e}")
            with self._lock:
                route.traffic = TrafficSample(speed_kmh=None, sampled_at=self._clock().timestamp())
                route.traffic_loading = False
            return None
        with self._lock:
            self._pending[key] = future
        return future

    def _fetch_traffic(self, route: Route, station: Station, key: str, sequence: int) -> bool:
        try:
            speed = self.sampler.estimate_speed(route)
        except Exception as e:
            logger.warning(f"Traffic fetch error for route {route.number}: {e}")
            speed = None

        with self._lock:
            if self._sequence.get(key) != sequence:
                logger.debug(f"Discarding superseded traffic result for {key}")
                return False
            route.traffic = TrafficSample(
                speed_kmh=speed,
                sampled_at=self._clock().timestamp(),
                level=TrafficLevel.from_speed(speed),
            )
            route.traffic_loading = False

        speed_text = f"{speed:.1f} km/h" if speed is not None else "no data"
        logger.info(f"Traffic loaded for route {route.number}: {speed_text}")
        if self.on_update is not None:
            try:
                self.on_update(route, station)
            except Exception as e:
                logger.error(f"Update callback failed for route {route.number}: {e}", exc_info=True)
        return True

    def refresh(self, station: Station) -> None:
        """Force a new traffic fetch for every route of a station."""
        for route in station.routes:
            self.request_traffic(route, station)

    def wait_for_pending(self, timeout: Optional[float] = None) -> None:
        """Block until all in-flight traffic fetches finish."""
        with self._lock:
            futures = list(self._pending.values())
        if futures:
            wait(futures, timeout=timeout)

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
