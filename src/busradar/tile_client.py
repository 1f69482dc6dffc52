"""Traffic tile fetcher with a small in-session cache."""

import io
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Dict, Optional, Tuple

import requests
from PIL import Image

from .config import TILE_CACHE_SIZE, TILE_TIMEOUT, TRAFFIC_TILE_URL

logger = logging.getLogger(__name__)


class TileClient:
    """Fetches traffic overlay tiles and decodes them to RGBA images."""

    def __init__(
        self,
        url_template: str = TRAFFIC_TILE_URL,
        max_cache_size: int = TILE_CACHE_SIZE,
        timeout: float = TILE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the tile client.

        Args:
            url_template: Tile URL with {x}, {y} and {z} placeholders.
            max_cache_size: Number of decoded tiles kept; the oldest is evicted first.
            timeout: HTTP timeout in seconds.
            session: Optional requests session (shared connection pool).
        """
        self.url_template = url_template
        self._max_cache_size = max_cache_size
        self._timeout = timeout
        self._session = session or requests.Session()
        self._cache: "OrderedDict[Tuple[int, int, int], Image.Image]" = OrderedDict()
        self._inflight: Dict[Tuple[int, int, int], Future] = {}
        self._lock = threading.Lock()

    def tile_url(self, x: int, y: int, zoom: int) -> str:
        return self.url_template.format(x=x, y=y, z=zoom)

    def fetch_tile(self, x: int, y: int, zoom: int) -> Optional[Image.Image]:
        """
        Fetch a tile image.

        Args:
            x: Tile column.
            y: Tile row.
            zoom: Zoom level.

        Returns:
            RGBA image, or None if the tile could not be fetched or decoded.
        """
        key = (zoom, x, y)
        with self._lock:
            image = self._cache.get(key)
            if image is not None:
                logger.debug(f"Using cached tile {key}")
                return image
            pending = self._inflight.get(key)
            if pending is None:
                # This caller downloads; concurrent callers wait on its result
                owner = Future()
                self._inflight[key] = owner

        if pending is not None:
            logger.debug(f"Waiting for in-flight tile {key}")
            return pending.result()

        image = None
        try:
            image = self._download(x, y, zoom)
            if image is not None:
                with self._lock:
                    self._cache[key] = image
                    if len(self._cache) > self._max_cache_size:
                        oldest_key, _ = self._cache.popitem(last=False)
                        logger.debug(f"Evicted tile {oldest_key} from cache")
        finally:
            with self._lock:
                del self._inflight[key]
            owner.set_result(image)
        return image

    def _download(self, x: int, y: int, zoom: int) -> Optional[Image.Image]:
        url = self.tile_url(x, y, zoom)
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            return Image.open(io.BytesIO(response.content)).convert("RGBA")
        except (requests.RequestException, OSError) as e:
            logger.warning(f"Failed to load traffic tile {url}: {e}")
            return None

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
