"""Data models for busradar."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Waypoint:
    """A point on a route path."""
    lat: float
    lon: float
    name: str = ""


class TrafficLevel(Enum):
    """Traffic overlay color classes and their free-road speed (km/h)."""
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"
    NO_DATA = "no-data"

    @property
    def speed(self) -> Optional[float]:
        return _LEVEL_SPEEDS.get(self)

    @classmethod
    def from_speed(cls, speed: Optional[float]) -> "TrafficLevel":
        """Band an averaged speed back into a traffic level."""
        if speed is None:
            return cls.NO_DATA
        if speed >= 35:
            return cls.GREEN
        if speed >= 25:
            return cls.YELLOW
        if speed >= 15:
            return cls.ORANGE
        return cls.RED


_LEVEL_SPEEDS = {
    TrafficLevel.GREEN: 40.0,
    TrafficLevel.YELLOW: 25.0,
    TrafficLevel.ORANGE: 15.0,
    TrafficLevel.RED: 8.0,
}


@dataclass(frozen=True)
class TrafficSample:
    """Road speed inferred from traffic tiles for one route."""
    speed_kmh: Optional[float]  # None when no tile pixel could be classified
    sampled_at: float  # Unix timestamp
    level: TrafficLevel = TrafficLevel.NO_DATA


@dataclass
class Route:
    """A bus route as served from one station."""
    number: str
    destination: str
    interval: int  # minutes between departures
    start_time: str  # "HH:MM"
    end_time: str  # "HH:MM", may be earlier than start_time (overnight service)
    waypoints: List[Waypoint] = field(default_factory=list)
    traffic: Optional[TrafficSample] = None
    traffic_loading: bool = False

    @property
    def key(self) -> str:
        return f"{self.number}>{self.destination}"


@dataclass
class Station:
    """A bus station and the routes it serves."""
    station_id: str
    name: str
    latitude: float
    longitude: float
    routes: List[Route] = field(default_factory=list)
    address: str = ""


class ArrivalStatus(Enum):
    ACTIVE = "Active"
    NOT_STARTED = "Not Started"
    ENDED = "Ended"
    LOADING = "Loading"
    NO_DATA = "NoData"


@dataclass
class RouteArrival:
    """Baseline arrival estimate for one route at a station."""
    route: Route
    status: ArrivalStatus
    minutes: Optional[int] = None  # Only set when ACTIVE
    message: str = ""


class ReportType(Enum):
    BUS_ARRIVED = "bus_arrived"
    BUS_PASSED = "bus_passed"
    BUS_DELAYED = "bus_delayed"
    NO_BUS = "no_bus"
    GPS_TRACKING = "gps_tracking"


# Rider-submitted report types; gps_tracking is only produced by trip tracking
RIDER_REPORT_TYPES = (
    ReportType.BUS_ARRIVED,
    ReportType.BUS_PASSED,
    ReportType.BUS_DELAYED,
    ReportType.NO_BUS,
)


@dataclass(frozen=True)
class ReportRequest:
    """A rider report as received from the presentation layer."""
    type: ReportType
    route_number: str
    station_id: str
    user_lat: Optional[float] = None
    user_lon: Optional[float] = None
    station_lat: Optional[float] = None
    station_lon: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportRequest":
        """
        Build a request from a loosely typed mapping.

        Raises:
            ValueError: If the type is unknown or a required field is missing.
        """
        try:
            report_type = ReportType(data["type"])
        except KeyError:
            raise ValueError("Report type is required")
        if report_type not in RIDER_REPORT_TYPES:
            raise ValueError(f"Report type {report_type.value} cannot be submitted by riders")

        route_number = data.get("route_number")
        station_id = data.get("station_id")
        if not route_number or not station_id:
            raise ValueError("route_number and station_id are required")

        def _coord(name: str) -> Optional[float]:
            value = data.get(name)
            return float(value) if value is not None else None

        return cls(
            type=report_type,
            route_number=str(route_number),
            station_id=str(station_id),
            user_lat=_coord("user_lat"),
            user_lon=_coord("user_lon"),
            station_lat=_coord("station_lat"),
            station_lon=_coord("station_lon"),
        )


@dataclass
class CrowdReport:
    """A stored crowd report."""
    id: str
    device_id: str
    fingerprint: str
    route_number: str
    station_id: Optional[str]
    type: ReportType
    timestamp: float  # Unix timestamp
    trust: float  # Reporter trust at submission time
    ip_address: Optional[str] = None
    confirmed: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "fingerprint": self.fingerprint,
            "routeNumber": self.route_number,
            "stationId": self.station_id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "trust": self.trust,
            "ipAddress": self.ip_address,
            "confirmed": self.confirmed,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrowdReport":
        return cls(
            id=data["id"],
            device_id=data["deviceId"],
            fingerprint=data.get("fingerprint", "unknown"),
            route_number=str(data["routeNumber"]),
            station_id=data.get("stationId"),
            type=ReportType(data["type"]),
            timestamp=float(data["timestamp"]),
            trust=float(data.get("trust", 1.0)),
            ip_address=data.get("ipAddress"),
            confirmed=bool(data.get("confirmed", False)),
            details=data.get("details") or {},
        )


@dataclass
class DeviceIdentity:
    """Pseudonymous identity of one installation."""
    device_id: str
    fingerprint: str
    trust_score: float


@dataclass
class SubmitResult:
    success: bool
    message: str
    report_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)  # Input rejections
    flags: List[str] = field(default_factory=list)  # Anti-cheat flags (trust penalized)


@dataclass
class CrowdAdjustment:
    """Trust- and time-weighted correction from confirmed reports."""
    adjustment_minutes: float  # Negative = bus closer than predicted
    confidence: float  # 0-1
    report_count: int
    reports: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class TrustStats:
    device_id: str  # Masked
    trust_score: float
    total_reports: int
    confirmed_count: int
    confirmation_rate: Optional[float]  # None when no reports in the last 24h


@dataclass(frozen=True)
class GPSFix:
    """A position fix reported by the device."""
    lat: float
    lon: float
    accuracy: float  # meters
    timestamp: float  # Unix timestamp
    speed: Optional[float] = None  # m/s, if the device reports it


@dataclass
class FixResult:
    accepted: bool
    reason: Optional[str] = None  # low_accuracy, speed_too_high, not_moving, not_tracking


@dataclass
class TripStartResult:
    success: bool
    message: str


@dataclass
class TripResult:
    """Outcome of a tracked trip."""
    success: bool
    message: str
    route_number: Optional[str] = None
    completion: float = 0.0
    distance_km: float = 0.0
    duration_minutes: float = 0.0
    fix_count: int = 0
    trust_bonus: float = 0.0
    helped_users: int = 0


@dataclass
class Prediction:
    """Final fused prediction for one route at a station."""
    route: Route
    status: ArrivalStatus
    minutes: Optional[int]
    confidence: float
    baseline_minutes: Optional[int] = None
    crowd: Optional[CrowdAdjustment] = None
    message: str = ""


@dataclass
class StationData:
    """Complete prediction snapshot for a station."""
    station: Station
    predictions: List[Prediction]
    last_updated: datetime
