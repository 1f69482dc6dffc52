"""busradar - Bus arrival estimates fused from timetables, traffic tiles and crowd reports."""

__version__ = "0.1.0"

from .models import (
    ArrivalStatus,
    CrowdAdjustment,
    CrowdReport,
    GPSFix,
    Prediction,
    ReportRequest,
    ReportType,
    Route,
    RouteArrival,
    Station,
    StationData,
    SubmitResult,
    TrafficLevel,
    TrafficSample,
    Waypoint,
)
from .estimator import ArrivalEstimator
from .schedule import ScheduleLoader
from .storage import DurableStore, JsonFileStore, MemoryStore
from .tile_client import TileClient
from .tracker import BusArrivalTracker
from .traffic_sampler import TrafficSampler
from .trip_validator import TripValidator
from .trust_engine import TrustEngine

__all__ = [
    "BusArrivalTracker",
    "ArrivalEstimator",
    "TrafficSampler",
    "TileClient",
    "TrustEngine",
    "TripValidator",
    "ScheduleLoader",
    "DurableStore",
    "MemoryStore",
    "JsonFileStore",
    "ArrivalStatus",
    "CrowdAdjustment",
    "CrowdReport",
    "GPSFix",
    "Prediction",
    "ReportRequest",
    "ReportType",
    "Route",
    "RouteArrival",
    "Station",
    "StationData",
    "SubmitResult",
    "TrafficLevel",
    "TrafficSample",
    "Waypoint",
]
