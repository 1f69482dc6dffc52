"""Example usage of BusArrivalTracker."""

import logging
import sys
from pathlib import Path

# Add src to path so we can import busradar
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from busradar import ArrivalStatus, BusArrivalTracker

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_station_data(tracker: BusArrivalTracker, station_input: str) -> None:
    """
    Fetch and display fused predictions for a station.

    Args:
        tracker: Initialized tracker.
        station_input: Station id or name (e.g., "audin" or "Hydra").
    """
    print(f"\n{'='*70}")
    print(f"Fetching data for: {station_input}")
    print(f"{'='*70}\n")

    station = tracker.get_station(station_input)

    # First pass kicks off background traffic sampling
    tracker.get_predictions(station)
    tracker.estimator.wait_for_pending(timeout=60)

    station_data = tracker.get_station_data(station.station_id)
    print(f"Station: {station_data.station.name} ({station_data.station.address})")
    print(f"Last updated: {station_data.last_updated.strftime('%H:%M:%S')}\n")

    print("NEXT BUSES:")
    print("-" * 70)
    for prediction in station_data.predictions:
        route = prediction.route
        if prediction.status is ArrivalStatus.ACTIVE:
            crowd = ""
            if prediction.crowd is not None:
                crowd = f" ({prediction.crowd.report_count} rider reports)"
            print(
                f"  Line {route.number:>3}: {prediction.minutes:3d} min → {route.destination}"
                f"  [confidence {prediction.confidence:.0%}]{crowd}"
            )
        else:
            print(f"  Line {route.number:>3}: {prediction.status.value} → {route.destination} {prediction.message}")

    stats = tracker.stats()
    print("\n" + "=" * 70)
    print(f"Device {stats.device_id} trust {stats.trust_score:.2f}, {stats.total_reports} reports stored")
    print("=" * 70 + "\n")


def main() -> None:
    station_input = " ".join(sys.argv[1:]) or "audin"
    tracker = BusArrivalTracker()
    try:
        print_station_data(tracker, station_input)
    except ValueError as e:
        print(f"Error: {e}")
        matching = tracker.find_stations_by_name(station_input)
        if matching:
            print("\nDid you mean:")
            for station in matching[:5]:
                print(f"  - {station.name} ({station.station_id})")
        sys.exit(1)
    finally:
        tracker.cleanup()


if __name__ == "__main__":
    main()
