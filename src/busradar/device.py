"""Device identity signals: pseudonymous id, fingerprint and public IP."""

import hashlib
import json
import locale
import logging
import os
import platform
import time
import uuid
from typing import Dict, List, Optional

import requests

from .config import IP_LOOKUP_TIMEOUT, IP_LOOKUP_URLS

logger = logging.getLogger(__name__)


def generate_device_id() -> str:
    """New pseudonymous device id, e.g. dev_1700000000000_1a2b3c4d5."""
    return f"dev_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def mask_device_id(device_id: Optional[str]) -> str:
    if not device_id:
        return "unknown"
    return device_id[:12] + "..."


class DeviceSignalCollector:
    """
    Collects host signals and hashes them into a stable fingerprint.

    The fingerprint only correlates reports from the same machine; it is not
    an identity. Subclass and override `signals` to change the inputs.
    """

    def signals(self) -> Dict[str, str]:
        return {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "node": platform.node(),
            "python": platform.python_version(),
            "language": locale.getlocale()[0] or "",
            "timezone": time.tzname[0],
            "cpus": str(os.cpu_count() or 0),
        }

    def fingerprint(self) -> str:
        try:
            payload = json.dumps(self.signals(), sort_keys=True)
        except Exception as e:
            logger.warning(f"Fingerprint failed: {e}")
            return "unknown"
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class IPLookup:
    """Looks up the public IP address using several free endpoints."""

    def __init__(self, urls: Optional[List[str]] = None, timeout: float = IP_LOOKUP_TIMEOUT, session: Optional[requests.Session] = None):
        self.urls = urls if urls is not None else list(IP_LOOKUP_URLS)
        self.timeout = timeout
        self._session = session or requests.Session()

    def __call__(self) -> Optional[str]:
        for url in self.urls:
            try:
                response = self._session.get(url, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.debug(f"IP lookup via {url} failed: {e}")
                continue
            ip_address = (data.get("ip") or data.get("IP")) if isinstance(data, dict) else None
            if ip_address:
                logger.info(f"IP address: {ip_address}")
                return ip_address

        logger.warning("Could not fetch IP address")
        return None
