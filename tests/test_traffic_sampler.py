"""Tests for traffic tile sampling."""

import io
import threading
import unittest
from unittest.mock import patch, MagicMock
import sys
from pathlib import Path

import requests
from PIL import Image

# Add src to path so we can import busradar
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from busradar.geo_utils import lat_lon_to_pixel, search_offsets
from busradar.models import Route, TrafficLevel, Waypoint
from busradar.tile_client import TileClient
from busradar.traffic_sampler import TrafficSampler, classify_color


def png_bytes(color=(0, 0, 0, 0)):
    buffer = io.BytesIO()
    Image.new("RGBA", (256, 256), color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestClassifyColor(unittest.TestCase):
    """Test pixel classification."""

    def test_palette_colors(self):
        self.assertEqual(classify_color((99, 214, 104, 255)), TrafficLevel.GREEN)
        self.assertEqual(classify_color((255, 235, 59, 255)), TrafficLevel.YELLOW)
        self.assertEqual(classify_color((245, 124, 0, 255)), TrafficLevel.ORANGE)
        self.assertEqual(classify_color((244, 67, 54, 255)), TrafficLevel.RED)

    def test_near_colors(self):
        self.assertEqual(classify_color((90, 200, 100, 255)), TrafficLevel.GREEN)
        self.assertEqual(classify_color((150, 10, 10, 255)), TrafficLevel.RED)

    def test_no_data(self):
        self.assertEqual(classify_color(None), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((99, 214, 104, 50)), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((99, 214, 104, 100)), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((99, 214, 104, 101)), TrafficLevel.GREEN)
        self.assertEqual(classify_color((0, 0, 0, 255)), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((250, 250, 250, 255)), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((160, 160, 160, 255)), TrafficLevel.NO_DATA)
        self.assertEqual(classify_color((0, 0, 255, 255)), TrafficLevel.NO_DATA)

    def test_level_speeds(self):
        self.assertEqual(TrafficLevel.GREEN.speed, 40.0)
        self.assertEqual(TrafficLevel.RED.speed, 8.0)
        self.assertIsNone(TrafficLevel.NO_DATA.speed)
        self.assertEqual(TrafficLevel.from_speed(24.3), TrafficLevel.ORANGE)


class TestSearchOffsets(unittest.TestCase):
    def test_offsets_follow_segment(self):
        offsets = search_offsets(Waypoint(0.0, 0.0), Waypoint(0.002, 0.0), 0.001, 0.0005)

        self.assertEqual(len(offsets), 3)
        self.assertAlmostEqual(offsets[0][0], 0.001)
        self.assertAlmostEqual(offsets[0][1], 0.0)
        self.assertAlmostEqual(offsets[1][1], 0.0005)
        self.assertAlmostEqual(offsets[2][1], -0.0005)

    def test_zero_length_segment(self):
        self.assertEqual(search_offsets(Waypoint(1.0, 1.0), Waypoint(1.0, 1.0), 0.001, 0.0005), [])


class TestTrafficSampler(unittest.TestCase):
    """Test neighborhood scans and route averaging."""

    def setUp(self):
        self.tile_client = MagicMock()
        self.sampler = TrafficSampler(tile_client=self.tile_client)

    def test_neighborhood_scan(self):
        lat, lon = 36.7692, 3.0549
        _, _, px, py = lat_lon_to_pixel(lat, lon, 15)
        tile = Image.new("RGBA", (256, 256), (0, 0, 0, 0))
        tile.putpixel((min(255, px + 3), py), (211, 47, 47, 255))
        self.tile_client.fetch_tile.return_value = tile

        self.assertEqual(self.sampler.sample_level_at(lat, lon), TrafficLevel.RED)

    def test_nothing_in_radius(self):
        tile = Image.new("RGBA", (256, 256), (0, 0, 0, 0))
        self.tile_client.fetch_tile.return_value = tile
        self.assertEqual(self.sampler.sample_level_at(36.7692, 3.0549), TrafficLevel.NO_DATA)

    def test_missing_tile(self):
        self.tile_client.fetch_tile.return_value = None
        self.assertEqual(self.sampler.sample_level_at(36.7692, 3.0549), TrafficLevel.NO_DATA)

    def test_average_over_points(self):
        points = [Waypoint(36.76, 3.05), Waypoint(36.77, 3.05), Waypoint(36.78, 3.05)]
        levels = [TrafficLevel.GREEN, TrafficLevel.RED, TrafficLevel.YELLOW]
        with patch.object(self.sampler, "sample_level_at", side_effect=levels):
            speed = self.sampler.sample_points(points)

        self.assertAlmostEqual(speed, (40 + 8 + 25) / 3)

    def test_two_point_path_samples_start_only(self):
        points = [Waypoint(36.76, 3.05), Waypoint(36.77, 3.05)]
        with patch.object(self.sampler, "sample_level_at", return_value=TrafficLevel.YELLOW) as sample:
            speed = self.sampler.sample_points(points)

        self.assertEqual(speed, 25.0)
        sample.assert_called_once_with(36.76, 3.05)

    def test_search_nearby_when_no_data(self):
        points = [Waypoint(36.76, 3.05), Waypoint(36.77, 3.05)]
        levels = [TrafficLevel.NO_DATA, TrafficLevel.NO_DATA, TrafficLevel.ORANGE]
        with patch.object(self.sampler, "sample_level_at", side_effect=levels) as sample:
            speed = self.sampler.sample_points(points)

        self.assertEqual(speed, 15.0)
        self.assertEqual(sample.call_count, 3)

    def test_failed_point_is_skipped(self):
        points = [Waypoint(36.76, 3.05), Waypoint(36.77, 3.05), Waypoint(36.78, 3.05)]
        levels = [RuntimeError("decode"), TrafficLevel.GREEN, TrafficLevel.GREEN]
        with patch.object(self.sampler, "sample_level_at", side_effect=levels):
            self.assertEqual(self.sampler.sample_points(points), 40.0)

    def test_no_data_anywhere(self):
        points = [Waypoint(36.76, 3.05), Waypoint(36.77, 3.05)]
        with patch.object(self.sampler, "sample_level_at", return_value=TrafficLevel.NO_DATA):
            self.assertIsNone(self.sampler.sample_points(points))

    def test_directed_points(self):
        audin = Waypoint(36.7692, 3.0549, "Place Audin")
        mouradia = Waypoint(36.7482, 3.0511, "El Mouradia")

        forward = Route("54", "El Mouradia", 20, "06:00", "18:30", waypoints=[audin, mouradia])
        self.assertEqual(TrafficSampler.directed_points(forward), [audin, mouradia])

        backward = Route("54", "Place Audin", 20, "06:00", "18:30", waypoints=[audin, mouradia])
        self.assertEqual(TrafficSampler.directed_points(backward), [mouradia, audin])

        unnamed = Route("54", "Place Audin", 20, "06:00", "18:30", waypoints=[audin, Waypoint(36.7482, 3.0511)])
        self.assertEqual(TrafficSampler.directed_points(unnamed)[0], audin)

    def test_estimate_speed_needs_path(self):
        route = Route("54", "El Mouradia", 20, "06:00", "18:30", waypoints=[Waypoint(36.7692, 3.0549)])
        self.assertIsNone(self.sampler.estimate_speed(route))
        self.tile_client.fetch_tile.assert_not_called()


class TestTileClient(unittest.TestCase):
    """Test tile fetching and caching."""

    def setUp(self):
        self.session = MagicMock()
        response = MagicMock()
        response.content = png_bytes((99, 214, 104, 255))
        self.session.get.return_value = response
        self.client = TileClient(url_template="https://tiles.test/{z}/{x}/{y}.png", max_cache_size=2, session=self.session)

    def test_tile_url(self):
        self.assertEqual(self.client.tile_url(1, 2, 15), "https://tiles.test/15/1/2.png")

    def test_decodes_rgba(self):
        tile = self.client.fetch_tile(1, 2, 15)
        self.assertEqual(tile.mode, "RGBA")
        self.assertEqual(tile.getpixel((0, 0)), (99, 214, 104, 255))

    def test_cache_hit(self):
        self.client.fetch_tile(1, 2, 15)
        self.client.fetch_tile(1, 2, 15)
        self.assertEqual(self.session.get.call_count, 1)

    def test_oldest_evicted(self):
        self.client.fetch_tile(1, 1, 15)
        self.client.fetch_tile(2, 2, 15)
        self.client.fetch_tile(3, 3, 15)
        self.assertEqual(len(self.client), 2)

        self.client.fetch_tile(1, 1, 15)
        self.assertEqual(self.session.get.call_count, 4)

        self.client.clear_cache()
        self.assertEqual(len(self.client), 0)

    def test_network_error(self):
        self.session.get.side_effect = requests.ConnectionError("offline")
        self.assertIsNone(self.client.fetch_tile(1, 2, 15))
        self.assertEqual(len(self.client), 0)

    def test_concurrent_fetches_share_download(self):
        started = threading.Event()
        release = threading.Event()
        response = self.session.get.return_value

        def slow_get(url, timeout):
            started.set()
            release.wait(5)
            return response

        self.session.get.side_effect = slow_get
        results = []

        def worker():
            results.append(self.client.fetch_tile(1, 2, 15))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        threads[0].start()
        self.assertTrue(started.wait(5))
        for thread in threads[1:]:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(5)

        self.assertEqual(self.session.get.call_count, 1)
        self.assertEqual(len(results), 4)
        self.assertTrue(all(tile is results[0] for tile in results))
        self.assertIsNotNone(results[0])

    def test_concurrent_eviction(self):
        errors = []

        def worker(offset):
            try:
                for x in range(20):
                    self.client.fetch_tile((x + offset) % 6, 0, 15)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        self.assertEqual(errors, [])
        self.assertLessEqual(len(self.client), 2)

    def test_bad_image(self):
        self.session.get.return_value.content = b"not a png"
        self.assertIsNone(self.client.fetch_tile(1, 2, 15))


if __name__ == "__main__":
    unittest.main()
