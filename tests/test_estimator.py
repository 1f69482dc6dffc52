"""Tests for baseline arrival estimates."""

import unittest
from unittest.mock import MagicMock
from concurrent.futures import Future
from datetime import datetime, timedelta
import sys
from pathlib import Path

# Add src to path so we can import busradar
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from busradar.estimator import (
    ArrivalEstimator,
    arrival_minutes,
    bus_speed_factor,
    journey_time,
    passengers_per_stop,
    road_distance_km,
)
from busradar.models import ArrivalStatus, Route, Station, TrafficLevel, TrafficSample, Waypoint
from busradar.timeutils import in_service_window, minutes_since_start, time_to_minutes


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualExecutor:
    """Executor that runs submitted work only when asked."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args):
        future = Future()
        self.calls.append((future, fn, args))
        return future

    def run(self, index):
        future, fn, args = self.calls[index]
        future.set_result(fn(*args))
        return future.result()

    def shutdown(self, wait=True):
        pass


def make_route(number="54", interval=20, start="06:00", end="18:30", waypoints=None):
    return Route(
        number=number,
        destination="El Mouradia",
        interval=interval,
        start_time=start,
        end_time=end,
        waypoints=waypoints or [],
    )


class TestJourneyModel(unittest.TestCase):
    """Test the pure timing functions."""

    def test_bus_speed_factor(self):
        self.assertEqual(bus_speed_factor(40), 0.25)
        self.assertEqual(bus_speed_factor(35), 0.25)
        self.assertEqual(bus_speed_factor(30), 0.22)
        self.assertEqual(bus_speed_factor(20), 0.20)
        self.assertEqual(bus_speed_factor(8), 0.30)

    def test_passengers_per_stop(self):
        self.assertEqual(passengers_per_stop(8), 10)
        self.assertEqual(passengers_per_stop(9), 4)
        self.assertEqual(passengers_per_stop(17), 10)
        self.assertEqual(passengers_per_stop(12), 4)

    def test_road_distance_fallback(self):
        self.assertEqual(road_distance_km([]), 3.5)
        self.assertEqual(road_distance_km([Waypoint(36.75, 3.05)]), 3.5)

    def test_road_distance_urban_factor(self):
        # 0.018 degrees of latitude is ~2.0 km
        path = [Waypoint(36.75, 3.05), Waypoint(36.76, 3.06), Waypoint(36.768, 3.05)]
        self.assertAlmostEqual(road_distance_km(path), 2.0015 * 1.7, places=2)

    def test_journey_time(self):
        movement, dwell = journey_time(40.0, 2.0 * 1.7, 5, 11)
        self.assertAlmostEqual(movement, 20.4)
        self.assertAlmostEqual(dwell, 80 / 60)

    def test_journey_time_peak(self):
        _, dwell = journey_time(40.0, 3.4, 5, 8)
        self.assertAlmostEqual(dwell, 5 * 32.5 / 60)

    def test_arrival_minutes(self):
        # Bus already on its way
        self.assertEqual(arrival_minutes(21.73, 20, 5), 17)
        # Next departure
        self.assertEqual(arrival_minutes(10.0, 20, 15), 15)

    def test_service_window(self):
        start, end = time_to_minutes("06:00"), time_to_minutes("05:00")
        self.assertTrue(in_service_window(time_to_minutes("23:30"), start, end))
        self.assertTrue(in_service_window(time_to_minutes("04:30"), start, end))
        self.assertFalse(in_service_window(time_to_minutes("05:30"), start, end))
        self.assertTrue(in_service_window(time_to_minutes("18:30"), 360, time_to_minutes("18:30")))
        self.assertFalse(in_service_window(time_to_minutes("18:31"), 360, time_to_minutes("18:30")))

    def test_minutes_since_start_wraps(self):
        self.assertEqual(minutes_since_start(time_to_minutes("04:30"), 360), 1350)
        self.assertEqual(minutes_since_start(time_to_minutes("10:05"), 360), 245)


class TestArrivalEstimator(unittest.TestCase):
    """Test per-route status and ETA."""

    def setUp(self):
        self.clock = FakeClock(datetime(2024, 1, 1, 10, 5))
        self.executor = ManualExecutor()
        self.sampler = MagicMock()
        self.sampler.estimate_speed.return_value = 40.0
        self.on_update = MagicMock()
        self.estimator = ArrivalEstimator(
            sampler=self.sampler, clock=self.clock, executor=self.executor, on_update=self.on_update
        )
        self.station = Station(station_id="audin", name="Place Maurice Audin", latitude=36.7692, longitude=3.0549)

    def fresh(self, speed):
        return TrafficSample(speed_kmh=speed, sampled_at=self.clock().timestamp())

    def test_active_eta(self):
        route = make_route()
        route.traffic = self.fresh(40.0)

        arrival = self.estimator.estimate_route(route, self.station)

        # journey 21 + 1.33 min, 245 min since start -> 5 min into the cycle
        self.assertEqual(arrival.status, ArrivalStatus.ACTIVE)
        self.assertEqual(arrival.minutes, 18)

    def test_deterministic(self):
        route = make_route()
        route.traffic = self.fresh(25.0)

        first = self.estimator.estimate_route(route, self.station)
        second = self.estimator.estimate_route(route, self.station)
        self.assertEqual(first.minutes, second.minutes)

    def test_not_started_and_ended(self):
        route = make_route(start="11:00", end="18:30")
        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.NOT_STARTED)
        self.assertEqual(arrival.message, "Starts 11:00")

        self.clock.now = datetime(2024, 1, 1, 19, 0)
        arrival = self.estimator.estimate_route(make_route(), self.station)
        self.assertEqual(arrival.status, ArrivalStatus.ENDED)
        self.assertEqual(arrival.message, "Service Ended")

    def test_overnight_service(self):
        route = make_route(start="06:00", end="05:00")
        for moment in (datetime(2024, 1, 1, 23, 30), datetime(2024, 1, 2, 4, 30)):
            self.clock.now = moment
            route.traffic = self.fresh(40.0)
            arrival = self.estimator.estimate_route(route, self.station)
            self.assertEqual(arrival.status, ArrivalStatus.ACTIVE)
            self.assertEqual(arrival.minutes, 13)

        self.clock.now = datetime(2024, 1, 2, 5, 30)
        route.traffic = self.fresh(40.0)
        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.NOT_STARTED)

    def test_loading_requests_traffic_once(self):
        route = make_route()

        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.LOADING)
        self.assertTrue(route.traffic_loading)

        self.estimator.estimate_route(route, self.station)
        self.assertEqual(len(self.executor.calls), 1)

        self.assertTrue(self.executor.run(0))
        self.assertFalse(route.traffic_loading)
        self.assertEqual(route.traffic.speed_kmh, 40.0)
        self.assertEqual(route.traffic.level, TrafficLevel.GREEN)
        self.on_update.assert_called_once_with(route, self.station)

        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.ACTIVE)

    def test_stale_sample_refetched(self):
        route = make_route()
        route.traffic = TrafficSample(speed_kmh=40.0, sampled_at=self.clock().timestamp() - 200)

        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.LOADING)
        self.assertEqual(len(self.executor.calls), 1)

    def test_no_data(self):
        route = make_route()
        route.traffic = self.fresh(None)

        arrival = self.estimator.estimate_route(route, self.station)
        self.assertEqual(arrival.status, ArrivalStatus.NO_DATA)
        self.assertIsNone(arrival.minutes)

    def test_superseded_result_discarded(self):
        route = make_route()
        self.estimator.request_traffic(route, self.station)
        self.sampler.estimate_speed.return_value = 8.0
        self.estimator.request_traffic(route, self.station)

        # Newest finishes first, then the older one arrives late
        self.assertTrue(self.executor.run(1))
        self.sampler.estimate_speed.return_value = 40.0
        self.assertFalse(self.executor.run(0))

        self.assertEqual(route.traffic.speed_kmh, 8.0)
        self.assertEqual(self.on_update.call_count, 1)

    def test_sampler_error_gives_no_data(self):
        route = make_route()
        self.sampler.estimate_speed.side_effect = RuntimeError("boom")
        self.estimator.request_traffic(route, self.station)
        self.executor.run(0)

        self.assertIsNone(route.traffic.speed_kmh)
        self.assertEqual(self.estimator.estimate_route(route, self.station).status, ArrivalStatus.NO_DATA)

    def test_callback_error_is_contained(self):
        route = make_route()
        self.on_update.side_effect = RuntimeError("render failed")
        self.estimator.request_traffic(route, self.station)
        self.assertTrue(self.executor.run(0))

    def test_sort_order(self):
        later = make_route(start="23:00", end="23:59")
        slow = make_route(number="31")
        slow.traffic = self.fresh(8.0)
        fast = make_route(number="54")
        fast.traffic = self.fresh(40.0)
        self.station.routes = [later, slow, fast]

        arrivals = self.estimator.estimate(self.station)

        self.assertEqual([a.route.number for a in arrivals], ["54", "31", "54"])
        self.assertEqual([a.minutes for a in arrivals], [18, 84, None])
        self.assertEqual(arrivals[2].status, ArrivalStatus.NOT_STARTED)


class TestBackgroundRefresh(unittest.TestCase):
    """Test fetches on the default thread pool."""

    def test_loading_then_active(self):
        clock = FakeClock(datetime(2024, 1, 1, 10, 5))
        sampler = MagicMock()
        sampler.estimate_speed.return_value = 40.0
        estimator = ArrivalEstimator(sampler=sampler, clock=clock)
        station = Station(station_id="audin", name="Place Maurice Audin", latitude=36.7692, longitude=3.0549)
        station.routes = [make_route()]

        try:
            self.assertEqual(estimator.estimate(station)[0].status, ArrivalStatus.LOADING)
            estimator.wait_for_pending(timeout=5)
            arrival = estimator.estimate(station)[0]
        finally:
            estimator.shutdown()

        self.assertEqual(arrival.status, ArrivalStatus.ACTIVE)
        self.assertEqual(arrival.minutes, 18)

    def test_estimate_after_shutdown(self):
        clock = FakeClock(datetime(2024, 1, 1, 10, 5))
        estimator = ArrivalEstimator(sampler=MagicMock(), clock=clock)
        station = Station(station_id="audin", name="Place Maurice Audin", latitude=36.7692, longitude=3.0549)
        station.routes = [make_route("54"), make_route("31")]
        estimator.shutdown()

        arrivals = estimator.estimate(station)

        self.assertEqual([a.status for a in arrivals], [ArrivalStatus.NO_DATA, ArrivalStatus.NO_DATA])
        self.assertFalse(any(route.traffic_loading for route in station.routes))
        self.assertIsNone(estimator.request_traffic(station.routes[0], station))

        # Retried once the empty sample goes stale
        clock.advance(200)
        self.assertEqual(estimator.estimate(station)[0].status, ArrivalStatus.NO_DATA)


if __name__ == "__main__":
    unittest.main()
