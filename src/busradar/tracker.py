"""Main busradar tracker: fuses baseline ETAs with crowd reports."""

import logging
from typing import Any, Callable, List, Mapping, Optional, Union

from . import config
from .device import IPLookup
from .estimator import ArrivalEstimator
from .models import (
    ArrivalStatus,
    Prediction,
    ReportRequest,
    Route,
    RouteArrival,
    Station,
    StationData,
    SubmitResult,
    TrustStats,
)
from .schedule import ScheduleLoader
from .storage import DurableStore, default_store
from .timeutils import Clock, local_now
from .traffic_sampler import TrafficSampler
from .trip_validator import TripValidator
from .trust_engine import TrustEngine

logger = logging.getLogger(__name__)


class BusArrivalTracker:
    """
    Estimates minutes until the next bus for Algiers stations.

    This class wires together:
    - the schedule (stations, timetables, route paths)
    - the arrival estimator (timetable + traffic speed)
    - the trust engine (crowd reports)
    - the trip validator (GPS trips)

    `on_prediction_updated(route, station)` is called whenever a background
    traffic fetch or a crowd report changes a station's predictions.
    """

    def __init__(
        self,
        schedule: Optional[ScheduleLoader] = None,
        store: Optional[DurableStore] = None,
        sampler: Optional[TrafficSampler] = None,
        clock: Optional[Clock] = None,
        trust_engine: Optional[TrustEngine] = None,
        on_prediction_updated: Optional[Callable[[Route, Station], None]] = None,
        initialize: bool = True,
    ):
        """
        Initialize the tracker.

        Args:
            schedule: Loaded schedule. Defaults to the built-in network.
            store: Durable store for crowd state. Defaults to ~/.busradar/state.json.
            sampler: Traffic sampler. Defaults to one backed by live tiles.
            clock: Returns the current local datetime.
            trust_engine: Prebuilt trust engine (overrides store).
            on_prediction_updated: Re-render callback.
            initialize: If True, restore crowd state from the store immediately.
        """
        self._clock = clock or local_now
        if schedule is None:
            schedule = ScheduleLoader()
            schedule.load_builtin()
        self.schedule = schedule
        self.on_prediction_updated = on_prediction_updated

        self.estimator = ArrivalEstimator(sampler=sampler, clock=self._clock, on_update=self._notify)
        self.trust_engine = trust_engine or TrustEngine(
            store or default_store(), clock=self._clock, ip_lookup=IPLookup()
        )
        self.trip_validator = TripValidator(self.trust_engine, clock=self._clock)

        if initialize and not self.trust_engine.ready:
            self.trust_engine.initialize()

    def _notify(self, route: Route, station: Station) -> None:
        if self.on_prediction_updated is not None:
            self.on_prediction_updated(route, station)

    def get_station(self, station_input: str) -> Station:
        """
        Get a station by id or name.

        Raises:
            ValueError: If station not found.
        """
        try:
            return self.schedule.get_station(station_input)
        except ValueError:
            pass

        stations = self.schedule.find_stations_by_name(station_input)
        if not stations:
            raise ValueError(f"No station found matching '{station_input}'")
        return stations[0]

    def find_stations_by_name(self, name: str) -> List[Station]:
        return self.schedule.find_stations_by_name(name)

    def nearest_station(self, lat: float, lon: float) -> Optional[Station]:
        return self.schedule.nearest_station(lat, lon)

    def get_arrivals(self, station: Station) -> List[RouteArrival]:
        """Baseline (timetable + traffic) arrivals without crowd data."""
        return self.estimator.estimate(station)

    def fuse(self, arrival: RouteArrival, station: Station) -> Prediction:
        """Combine one baseline arrival with the crowd adjustment for its route."""
        if arrival.status is not ArrivalStatus.ACTIVE or arrival.minutes is None:
            return Prediction(
                route=arrival.route,
                status=arrival.status,
                minutes=None,
                confidence=0.0,
                message=arrival.message,
            )

        crowd = self.trust_engine.get_adjustment(arrival.route.number, station.station_id)
        if crowd is None:
            return Prediction(
                route=arrival.route,
                status=arrival.status,
                minutes=arrival.minutes,
                confidence=config.BASELINE_CONFIDENCE,
                baseline_minutes=arrival.minutes,
            )

        minutes = max(0, round(arrival.minutes + crowd.adjustment_minutes))
        confidence = config.BASELINE_CONFIDENCE + (1 - config.BASELINE_CONFIDENCE) * crowd.confidence
        return Prediction(
            route=arrival.route,
            status=arrival.status,
            minutes=minutes,
            confidence=confidence,
            baseline_minutes=arrival.minutes,
            crowd=crowd,
        )

    def get_predictions(self, station: Station) -> List[Prediction]:
        """
        Fused predictions for a station.

        Returns:
            ACTIVE predictions sorted by minutes, followed by the rest.
        """
        predictions = [self.fuse(arrival, station) for arrival in self.get_arrivals(station)]
        predictions.sort(key=lambda p: (0, p.minutes) if p.status is ArrivalStatus.ACTIVE else (1, 0))
        return predictions

    def get_station_data(self, station_input: str) -> StationData:
        station = self.get_station(station_input)
        return StationData(
            station=station,
            predictions=self.get_predictions(station),
            last_updated=self._clock(),
        )

    def submit_report(self, request: Union[ReportRequest, Mapping[str, Any]]) -> SubmitResult:
        """Submit a rider report and notify listeners of the affected routes."""
        result = self.trust_engine.submit(request)
        if result.success:
            if not isinstance(request, ReportRequest):
                request = ReportRequest.from_dict(request)
            try:
                station = self.schedule.get_station(request.station_id)
            except ValueError:
                logger.warning(f"Report for unknown station {request.station_id}")
                return result
            for route in station.routes:
                if route.number == request.route_number:
                    self._notify(route, station)
        return result

    def stats(self) -> TrustStats:
        return self.trust_engine.stats()

    def cleanup(self) -> None:
        """Release resources and clear caches."""
        self.estimator.shutdown()
        self.estimator.sampler.tile_client.clear_cache()
        logger.info("Cleaned up tracker resources")
