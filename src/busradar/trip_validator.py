"""GPS trip tracking with plausibility checks and trust reward."""

import logging
from typing import Any, Dict, List, Optional

from . import config
from .geo_utils import haversine_km, straight_line_km
from .models import FixResult, GPSFix, Route, TripResult, TripStartResult
from .timeutils import Clock, local_now
from .trust_engine import TrustEngine

logger = logging.getLogger(__name__)


def trip_bonus(completion: float) -> float:
    """Trust bonus for a trip given the fraction of the route covered."""
    for threshold, bonus in config.TRIP_BONUS_TIERS:
        if completion >= threshold:
            return bonus
    return config.TRIP_BASE_BONUS


class TripValidator:
    """
    Tracks one rider trip at a time.

    Fixes that are inaccurate, implausibly fast or stalled are dropped. On
    stop the trip is scored against the route length and reported to the
    trust engine.
    """

    def __init__(self, trust_engine: TrustEngine, clock: Optional[Clock] = None):
        self.trust_engine = trust_engine
        self._clock = clock or local_now
        self.last_result: Optional[TripResult] = None
        self._reset()

    def _reset(self) -> None:
        self.tracking = False
        self.route: Optional[Route] = None
        self.fixes: List[GPSFix] = []
        self.started_at: Optional[float] = None
        self.total_distance_km = 0.0
        self.current_speed_kmh = 0.0

    def start(self, route: Route) -> TripStartResult:
        if self.tracking:
            return TripStartResult(success=False, message="Already tracking a route")

        self._reset()
        self.tracking = True
        self.route = route
        self.started_at = self._clock().timestamp()
        logger.info(f"Started tracking route {route.number}")
        return TripStartResult(success=True, message="GPS tracking started")

    @property
    def last_fix(self) -> Optional[GPSFix]:
        return self.fixes[-1] if self.fixes else None

    def validate_fix(self, fix: GPSFix) -> Optional[str]:
        """Return the rejection reason for a fix, or None if it is plausible."""
        if fix.accuracy > config.MAX_FIX_ACCURACY_M:
            return "low_accuracy"

        last = self.last_fix
        if last is None:
            return None

        distance = haversine_km(last.lat, last.lon, fix.lat, fix.lon)
        elapsed = fix.timestamp - last.timestamp
        if elapsed > 0 and distance / elapsed * 3600 > config.MAX_BUS_SPEED_KMH:
            return "speed_too_high"
        if elapsed > config.STALL_SECONDS and distance < config.MIN_MOVEMENT_KM:
            return "not_moving"
        return None

    def handle_fix(self, fix: GPSFix) -> FixResult:
        """Validate a position fix and add it to the trace."""
        if not self.tracking:
            return FixResult(accepted=False, reason="not_tracking")

        reason = self.validate_fix(fix)
        if reason is not None:
            logger.warning(f"Invalid position ({fix.lat:.6f}, {fix.lon:.6f}): {reason}")
            return FixResult(accepted=False, reason=reason)

        last = self.last_fix
        if last is not None:
            distance = haversine_km(last.lat, last.lon, fix.lat, fix.lon)
            elapsed = fix.timestamp - last.timestamp
            if elapsed > 0:
                self.current_speed_kmh = distance / elapsed * 3600
            self.total_distance_km += distance
            logger.debug(f"Moved {distance * 1000:.0f}m, speed {self.current_speed_kmh:.1f} km/h")

        self.fixes.append(fix)

        if self.duration_minutes() > config.MAX_TRIP_MINUTES:
            logger.warning(f"Auto-stopping after {config.MAX_TRIP_MINUTES:.0f} minutes")
            self.stop()
        return FixResult(accepted=True)

    def duration_minutes(self) -> float:
        if self.started_at is None:
            return 0.0
        return (self._clock().timestamp() - self.started_at) / 60

    def completion(self) -> float:
        """Traveled distance over expected road length, capped at 1.0."""
        if len(self.fixes) < 2:
            return 0.0
        if self.route is not None and len(self.route.waypoints) >= 2:
            route_km = straight_line_km(self.route.waypoints) * config.URBAN_FACTOR
        else:
            route_km = config.DEFAULT_ROUTE_DISTANCE_KM
        if route_km <= 0:
            return 0.0
        return min(1.0, self.total_distance_km / route_km)

    def stop(self) -> TripResult:
        """Finish the trip, reward the device and store the trip summary."""
        if not self.tracking or self.route is None:
            return TripResult(success=False, message="Not currently tracking")

        completion = self.completion()
        bonus = trip_bonus(completion)
        duration = self.duration_minutes()
        summary = self._summary(completion, duration)
        route_number = self.route.number

        try:
            self.trust_engine.record_trip(route_number, bonus, summary)
        except Exception as e:
            logger.error(f"Failed to record trip for route {route_number}: {e}", exc_info=True)

        result = TripResult(
            success=True,
            message="Tracking stopped",
            route_number=route_number,
            completion=completion,
            distance_km=self.total_distance_km,
            duration_minutes=duration,
            fix_count=len(self.fixes),
            trust_bonus=bonus,
            helped_users=round(completion * 10),
        )
        logger.info(f"Tracking stopped. Completion: {completion:.0%}, trust bonus: +{bonus:.2f}")
        self._reset()
        self.last_result = result
        return result

    def _summary(self, completion: float, duration: float) -> Dict[str, Any]:
        hours = duration / 60
        return {
            "completion": completion,
            "distance": self.total_distance_km,
            "duration": duration,
            "positionsCount": len(self.fixes),
            "avgSpeed": self.total_distance_km / hours if hours > 0 else 0.0,
            "positions": [{"lat": f.lat, "lon": f.lon, "timestamp": f.timestamp} for f in self.fixes],
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "tracking": self.tracking,
            "route_number": self.route.number if self.route else None,
            "distance_km": self.total_distance_km,
            "speed_kmh": self.current_speed_kmh,
            "completion": self.completion(),
            "duration_minutes": self.duration_minutes(),
            "fix_count": len(self.fixes),
        }
