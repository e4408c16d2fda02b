"""Loading and validation of recorded rides."""

from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import polars as pl

from .models import MotionSample

TIME_COLUMN = "Time"
ACCEL_COLUMNS = ["Acc X", "Acc Y", "Acc Z"]
GYRO_COLUMNS = ["Gyro X", "Gyro Y", "Gyro Z"]
GPS_SPEED_COLUMN = "GPS Speed"
GPS_ACCURACY_COLUMN = "GPS Accuracy"
REQUIRED_COLUMNS = [TIME_COLUMN] + ACCEL_COLUMNS
SUPPORTED_SUFFIXES = (".parquet", ".csv")


class RideDataLoader:
    """Handles loading and validation of recorded ride files."""

    def __init__(self, data_dir: Path):
        """
        Initialize the data loader.

        Args:
            data_dir: Directory containing ride parquet or CSV files
        """
        self.data_dir = Path(data_dir)

    def get_available_rides(self) -> List[str]:
        """
        List ride IDs (file stems) found in the data directory.

        Returns:
            Sorted list of ride ID strings
        """
        rides = {
            f.stem for f in self.data_dir.glob("*")
            if f.suffix.lower() in SUPPORTED_SUFFIXES
        }
        return sorted(rides)

    def get_file_path(self, ride_id: str) -> Path:
        """
        Get the file path for a ride, preferring parquet over CSV.

        Raises:
            FileNotFoundError: If no file exists for the ride
        """
        for suffix in SUPPORTED_SUFFIXES:
            path = self.data_dir / f"{ride_id}{suffix}"
            if path.exists():
                return path
        raise FileNotFoundError(f"Ride file not found for {ride_id} in {self.data_dir}")

    def load_ride(self, ride_id: str) -> pl.DataFrame:
        """
        Load a ride sorted by time.

        Args:
            ride_id: Ride identifier

        Returns:
            DataFrame with at least the time and accelerometer columns

        Raises:
            FileNotFoundError: If the ride file doesn't exist
            ValueError: If required columns are missing
        """
        path = self.get_file_path(ride_id)
        if path.suffix.lower() == ".parquet":
            df = pl.read_parquet(path)
        else:
            df = pl.read_csv(path)

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Ride {ride_id} is missing columns: {', '.join(missing)}")
        return df.sort(TIME_COLUMN)

    def iter_samples(self, df: pl.DataFrame, start_index: int = 0) -> Iterator[MotionSample]:
        """
        Yield MotionSamples from a loaded ride.

        Gyro and GPS columns are optional; null GPS cells mean no fix for
        that sample.
        """
        has_gyro = all(c in df.columns for c in GYRO_COLUMNS)
        has_speed = GPS_SPEED_COLUMN in df.columns
        has_accuracy = GPS_ACCURACY_COLUMN in df.columns

        for row in df.slice(start_index).iter_rows(named=True):
            rotation = None
            if has_gyro and all(row[c] is not None for c in GYRO_COLUMNS):
                rotation = tuple(float(row[c]) for c in GYRO_COLUMNS)
            yield MotionSample(
                timestamp=float(row[TIME_COLUMN]),
                acceleration=tuple(float(row[c]) for c in ACCEL_COLUMNS),
                rotation_rate=rotation,
                gps_speed=_optional_float(row[GPS_SPEED_COLUMN]) if has_speed else None,
                gps_accuracy=_optional_float(row[GPS_ACCURACY_COLUMN]) if has_accuracy else None,
            )

    def time_to_sample_index(self, df: pl.DataFrame, start_time: float) -> int:
        """
        Convert time in seconds to sample index.

        Args:
            df: DataFrame with a 'Time' column sorted ascending
            start_time: Time in seconds

        Returns:
            Index of the first sample at or after the time, or len(df) past the end
        """
        return int(df[TIME_COLUMN].search_sorted(start_time, side="left"))

    def validate_start_position(self, df: pl.DataFrame, start_index: int) -> Tuple[bool, Optional[str]]:
        """
        Validate that start position is within data bounds.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if start_index >= len(df):
            max_time = df[TIME_COLUMN][-1] if len(df) else 0.0
            return False, f"Start time is beyond available data (max time: {max_time:.2f}s)"
        return True, None


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)
