"""Crowd report validation, anti-cheat, confirmation clustering and trust scoring."""

import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from . import config
from .device import DeviceSignalCollector, generate_device_id, mask_device_id
from .geo_utils import haversine_km
from .models import (
    CrowdAdjustment,
    CrowdReport,
    DeviceIdentity,
    ReportRequest,
    ReportType,
    SubmitResult,
    TrustStats,
)
from .storage import DurableStore
from .timeutils import Clock, in_service_window, local_now, minutes_of_day, time_to_minutes

logger = logging.getLogger(__name__)


def clamp_trust(value: float) -> float:
    return max(config.MIN_TRUST, min(config.MAX_TRUST, value))


class TrustEngine:
    """
    Validates and clusters crowd reports and keeps per-device trust scores.

    Reports are accepted unless an input check fails (too_far,
    outside_service_hours, rate_limited). Anti-cheat checks
    (duplicate_fingerprint, suspicious_ip, too_many_reports) only penalize the
    submitting device. Call `initialize()` before submitting.
    """

    def __init__(
        self,
        store: DurableStore,
        clock: Optional[Clock] = None,
        signal_collector: Optional[DeviceSignalCollector] = None,
        ip_lookup: Optional[Callable[[], Optional[str]]] = None,
    ):
        """
        Args:
            store: Durable key-value store for identity, trust and reports.
            clock: Returns the current local datetime.
            signal_collector: Source of the device fingerprint.
            ip_lookup: Returns the public IP address or None.
        """
        self.store = store
        self._clock = clock or local_now
        self._collector = signal_collector or DeviceSignalCollector()
        self._ip_lookup = ip_lookup
        self._lock = threading.RLock()

        self.device_id: Optional[str] = None
        self.fingerprint: str = self._collector.fingerprint()
        self.ip_address: Optional[str] = None
        self.reports: List[CrowdReport] = []
        self._trust: Dict[str, float] = {}
        self.ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Restore identity, trust and reports from storage."""
        with self._lock:
            device_id = self.store.get(config.KEY_DEVICE_ID)
            if device_id:
                logger.info(f"Device ID restored: {mask_device_id(device_id)}")
            else:
                device_id = generate_device_id()
                self.store.set(config.KEY_DEVICE_ID, device_id)
                logger.info(f"Generated new device ID: {mask_device_id(device_id)}")
            self.device_id = device_id

            ledger = self.store.get_json(config.KEY_DEVICE_TRUST, default={})
            if isinstance(ledger, dict):
                for other_id, value in ledger.items():
                    try:
                        self._trust[other_id] = clamp_trust(float(value))
                    except (TypeError, ValueError):
                        logger.warning(f"Ignoring invalid trust value for {mask_device_id(other_id)}")
            self._trust[device_id] = self._load_own_trust()

            self.reports = self._load_reports()

        if self._ip_lookup is not None:
            try:
                self.ip_address = self._ip_lookup()
            except Exception as e:
                logger.warning(f"IP lookup failed: {e}")

        self.ready = True
        logger.info(f"Trust engine ready ({len(self.reports)} stored reports)")

    def _load_own_trust(self) -> float:
        raw = self.store.get(config.KEY_USER_TRUST)
        if raw is None:
            return config.DEFAULT_TRUST
        try:
            return clamp_trust(float(raw))
        except (TypeError, ValueError):
            logger.warning(f"Stored trust {raw!r} is invalid, using default")
            return config.DEFAULT_TRUST

    # ------------------------------------------------------------------
    # Trust scoring
    # ------------------------------------------------------------------

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(
            device_id=self.device_id or "",
            fingerprint=self.fingerprint,
            trust_score=self.trust_score,
        )

    @property
    def trust_score(self) -> float:
        return self.trust_of(self.device_id)

    def trust_of(self, device_id: Optional[str]) -> float:
        if device_id is None:
            return config.DEFAULT_TRUST
        return self._trust.get(device_id, config.DEFAULT_TRUST)

    def adjust_trust(self, device_id: str, delta: float) -> float:
        """Add delta to a device's trust, clamped to [MIN_TRUST, MAX_TRUST]."""
        with self._lock:
            new_trust = clamp_trust(self.trust_of(device_id) + delta)
            self._trust[device_id] = new_trust
            self._save_trust()
        sign = "+" if delta > 0 else ""
        logger.info(f"Trust adjusted for {mask_device_id(device_id)}: {new_trust:.2f} ({sign}{delta:.2f})")
        return new_trust

    def _save_trust(self) -> None:
        if self.device_id is not None:
            self.store.set(config.KEY_USER_TRUST, str(self.trust_score))
        others = {k: v for k, v in self._trust.items() if k != self.device_id}
        self.store.set_json(config.KEY_DEVICE_TRUST, others)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_report(self, report: CrowdReport, request: ReportRequest) -> Tuple[List[str], List[str]]:
        """
        Run every sanity and anti-cheat check.

        Returns:
            (errors, flags): input rejections and anti-cheat flags. Penalties
            for flags are applied to the submitting device immediately.
        """
        errors: List[str] = []
        flags: List[str] = []
        now = report.timestamp

        coords = (request.user_lat, request.user_lon, request.station_lat, request.station_lon)
        if all(value is not None for value in coords):
            distance = haversine_km(*coords)
            if distance > config.GEOFENCE_KM:
                errors.append("too_far")
                logger.warning(f"Report rejected: user {distance * 1000:.0f}m from stop")

        current = minutes_of_day(self._clock())
        start = time_to_minutes(config.REPORT_SERVICE_START)
        end = time_to_minutes(config.REPORT_SERVICE_END)
        if not in_service_window(current, start, end):
            errors.append("outside_service_hours")
            logger.warning(f"Report rejected: outside service hours ({current // 60:02d}:{current % 60:02d})")

        for r in self.reports:
            if (
                r.device_id == report.device_id
                and r.route_number == report.route_number
                and r.station_id == report.station_id
                and now - r.timestamp < config.RATE_LIMIT_SECONDS
            ):
                errors.append("rate_limited")
                logger.warning(f"Report rejected: rate limited ({now - r.timestamp:.0f}s ago)")
                break

        recent = [r for r in self.reports if now - r.timestamp < config.ANTI_CHEAT_WINDOW_SECONDS]

        if any(r.fingerprint == report.fingerprint and r.device_id != report.device_id for r in recent):
            flags.append("duplicate_fingerprint")
            logger.warning("Cheat detected: same fingerprint, different device ID")
            self.adjust_trust(report.device_id, config.DUPLICATE_FINGERPRINT_PENALTY)

        if report.ip_address:
            same_ip = [
                r for r in recent
                if r.ip_address == report.ip_address
                and r.device_id != report.device_id
                and now - r.timestamp < config.IP_WINDOW_SECONDS
            ]
            if len(same_ip) > config.MAX_REPORTS_PER_IP:
                flags.append("suspicious_ip")
                logger.warning(f"Suspicious: {len(same_ip) + 1} reports from same IP in 5 min")
                self.adjust_trust(report.device_id, config.SUSPICIOUS_IP_PENALTY)

        own_count = sum(1 for r in recent if r.device_id == report.device_id) + 1
        if own_count > config.MAX_REPORTS_PER_DEVICE:
            flags.append("too_many_reports")
            logger.warning(f"Bot detected: {own_count} reports in 30 min")
            self.adjust_trust(report.device_id, config.TOO_MANY_REPORTS_PENALTY)

        return errors, flags

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        request: Union[ReportRequest, Mapping[str, Any]],
        device_id: Optional[str] = None,
        fingerprint: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SubmitResult:
        """
        Validate and store a rider report.

        Args:
            request: ReportRequest or a mapping in the request shape.
            device_id: Reporter; defaults to this device. Set when relaying
                reports received from other devices.
            fingerprint: Reporter fingerprint; defaults to this device's.
            ip_address: Reporter IP; defaults to this device's.

        Returns:
            SubmitResult describing acceptance, rejections and anti-cheat flags.
        """
        if not self.ready or not self.device_id:
            logger.warning("Trust engine not ready yet")
            return SubmitResult(
                success=False,
                errors=["not_ready"],
                message="System initializing, please try again in a moment",
            )

        if not isinstance(request, ReportRequest):
            try:
                request = ReportRequest.from_dict(request)
            except ValueError as e:
                logger.warning(f"Invalid report: {e}")
                return SubmitResult(success=False, errors=["invalid_report"], message=f"Invalid report: {e}")

        with self._lock:
            reporter = device_id or self.device_id
            report = CrowdReport(
                id=f"rep_{uuid.uuid4().hex[:16]}",
                device_id=reporter,
                fingerprint=fingerprint or self.fingerprint,
                ip_address=ip_address if device_id else (ip_address or self.ip_address),
                route_number=request.route_number,
                station_id=request.station_id,
                type=request.type,
                timestamp=self._clock().timestamp(),
                trust=self.trust_of(reporter),
            )

            errors, flags = self.validate_report(report, request)
            if errors:
                return SubmitResult(
                    success=False,
                    errors=errors,
                    flags=flags,
                    message="Report rejected: " + ", ".join(errors),
                )

            report.trust = self.trust_of(reporter)
            self.reports.append(report)
            self._check_confirmations(report)
            self._save_reports()

        logger.info(
            f"Report submitted: {report.id} {report.type.value} route {report.route_number} "
            f"by {mask_device_id(report.device_id)} (trust {report.trust:.2f})"
        )
        return SubmitResult(
            success=True,
            report_id=report.id,
            flags=flags,
            message="Report submitted successfully",
        )

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    def _check_confirmations(self, new_report: CrowdReport) -> bool:
        """Confirm a report corroborated by a different device and fingerprint."""
        similar = [
            r for r in self.reports
            if r is not new_report
            and r.route_number == new_report.route_number
            and r.station_id == new_report.station_id
            and r.type == new_report.type
            and abs(r.timestamp - new_report.timestamp) < config.CONFIRMATION_WINDOW_SECONDS
            and r.device_id != new_report.device_id
            and r.fingerprint != new_report.fingerprint
        ]
        logger.debug(f"Found {len(similar)} similar reports for confirmation")

        if not similar:
            logger.info("Report pending confirmation from a different user")
            return False

        new_report.confirmed = True
        for r in similar:
            r.confirmed = True

        rewarded = {new_report.device_id}
        rewarded.update(r.device_id for r in similar)
        for device_id in rewarded:
            self.adjust_trust(device_id, config.CONFIRMATION_REWARD)

        logger.info(f"Report confirmed ({len(rewarded)} unique users)")
        return True

    # ------------------------------------------------------------------
    # Fusion
    # ------------------------------------------------------------------

    def get_adjustment(self, route_number: str, station_id: str) -> Optional[CrowdAdjustment]:
        """
        Weighted ETA correction from recent confirmed reports.

        Returns:
            CrowdAdjustment, or None when no confirmed report is in the window.
        """
        now = self._clock().timestamp()
        window = config.ADJUSTMENT_WINDOW_MINUTES * 60

        with self._lock:
            recent = [
                r for r in self.reports
                if r.route_number == route_number
                and r.station_id == station_id
                and r.confirmed
                and now - r.timestamp < window
            ]
        if not recent:
            return None

        total_weight = 0.0
        weighted_sum = 0.0
        breakdown = []
        for r in recent:
            age_minutes = (now - r.timestamp) / 60
            time_decay = max(0.0, 1 - age_minutes / config.ADJUSTMENT_WINDOW_MINUTES)
            weight = r.trust * time_decay

            if r.type is ReportType.BUS_ARRIVED:
                adjustment = -age_minutes
            elif r.type is ReportType.BUS_PASSED:
                adjustment = age_minutes
            elif r.type is ReportType.BUS_DELAYED:
                adjustment = config.DELAYED_PENALTY_MINUTES * time_decay
            elif r.type is ReportType.NO_BUS:
                adjustment = config.NO_BUS_PENALTY_MINUTES * time_decay
            else:
                adjustment = 0.0

            weighted_sum += adjustment * weight
            total_weight += weight
            breakdown.append({"type": r.type.value, "age": round(age_minutes), "trust": round(r.trust, 2)})

        if total_weight == 0:
            return None

        result = CrowdAdjustment(
            adjustment_minutes=weighted_sum / total_weight,
            confidence=min(1.0, len(recent) / config.FULL_CONFIDENCE_REPORTS),
            report_count=len(recent),
            reports=breakdown,
        )
        logger.debug(
            f"Route {route_number} at {station_id}: {result.report_count} confirmed reports, "
            f"adjustment {result.adjustment_minutes:+.1f} min, confidence {result.confidence:.0%}"
        )
        return result

    # ------------------------------------------------------------------
    # GPS trips
    # ------------------------------------------------------------------

    def record_trip(self, route_number: str, trust_bonus: float, summary: Dict[str, Any]) -> CrowdReport:
        """
        Store a tracked trip as self-attested telemetry.

        The trust bonus goes straight to this device; the synthesized
        gps_tracking report skips validation and confirmation.
        """
        device_id = self.device_id or generate_device_id()
        self.adjust_trust(device_id, trust_bonus)

        with self._lock:
            report = CrowdReport(
                id=f"rep_{uuid.uuid4().hex[:16]}",
                device_id=device_id,
                fingerprint=self.fingerprint,
                ip_address=self.ip_address,
                route_number=route_number,
                station_id=None,
                type=ReportType.GPS_TRACKING,
                timestamp=self._clock().timestamp(),
                trust=self.trust_of(device_id),
                details={k: v for k, v in summary.items() if k != "positions"},
            )
            self.reports.append(report)
            self._save_reports()

            trips = self.store.get_json(config.KEY_GPS_TRACKING, default=[])
            if not isinstance(trips, list):
                trips = []
            trips.append(dict(summary, routeNumber=route_number))
            if not self.store.set_json(config.KEY_GPS_TRACKING, trips[-config.MAX_STORED_TRIPS:]):
                logger.error("Failed to store tracking data")

        logger.info(f"Trip on route {route_number} recorded as {report.id}")
        return report

    def trip_history(self) -> List[Dict[str, Any]]:
        trips = self.store.get_json(config.KEY_GPS_TRACKING, default=[])
        return trips if isinstance(trips, list) else []

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _load_reports(self) -> List[CrowdReport]:
        data = self.store.get_json(config.KEY_CROWD_REPORTS, default=[])
        if not isinstance(data, list):
            logger.error("Stored reports are not a list, starting empty")
            return []

        cutoff = self._clock().timestamp() - config.REPORT_RETENTION_SECONDS
        reports = []
        for item in data:
            try:
                report = CrowdReport.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable stored report: {e}")
                continue
            if report.timestamp > cutoff:
                reports.append(report)
        return reports

    def _save_reports(self) -> None:
        cutoff = self._clock().timestamp() - config.REPORT_RETENTION_SECONDS
        self.reports = [r for r in self.reports if r.timestamp > cutoff][-config.MAX_STORED_REPORTS:]
        if not self.store.set_json(config.KEY_CROWD_REPORTS, [r.to_dict() for r in self.reports]):
            logger.error("Failed to save reports")

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> TrustStats:
        now = self._clock().timestamp()
        with self._lock:
            last_24h = [r for r in self.reports if now - r.timestamp < config.REPORT_RETENTION_SECONDS]
            confirmed = [r for r in last_24h if r.confirmed]
            total = len(self.reports)
        return TrustStats(
            device_id=mask_device_id(self.device_id),
            trust_score=round(self.trust_score, 2),
            total_reports=total,
            confirmed_count=len(confirmed),
            confirmation_rate=(len(confirmed) / len(last_24h)) if last_24h else None,
        )
