"""
Replay a recorded ride through the gait engine in (scaled) real time.

Reads a parquet or CSV recording, streams it through the asyncio pipeline
and prints each gait segment as it closes, followed by a ride summary.
Learned horse parameters can be persisted between replays with --store.
"""
import argparse
import asyncio
import json
import logging
from pathlib import Path

from ride_gait import (
    CalibrationStore,
    EngineConfig,
    GaitSegment,
    HorseBreed,
    HorseProfile,
    MountPosition,
    RideDataLoader,
    RidePipeline,
    RideStreamProcessor,
    gait_distribution,
    summarize_ride,
)

logger = logging.getLogger("replay_ride")

BATCH_SIZE = 25  # Samples submitted between sleeps


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("ride", nargs="?", help="Ride ID (file stem); lists rides when omitted")
    parser.add_argument("--data-dir", type=Path, default=EngineConfig.DATA_DIR)
    parser.add_argument("--horse", default="horse", help="Horse ID used for learned parameters")
    parser.add_argument("--breed", default="unknown")
    parser.add_argument("--height", type=float, default=None, help="Horse height in hands")
    parser.add_argument("--weight", type=float, default=None, help="Horse weight in kg")
    parser.add_argument(
        "--mount", choices=[m.value for m in MountPosition], default=MountPosition.JACKET_CHEST.value
    )
    parser.add_argument("--start", type=float, default=0.0, help="Start from time (seconds)")
    parser.add_argument(
        "--speed", type=float, default=EngineConfig.DEFAULT_SPEED,
        help="Playback speed multiplier; 0 replays as fast as possible",
    )
    parser.add_argument("--store", type=Path, default=None, help="JSON file holding horse calibration")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


def load_store(path):
    store = CalibrationStore()
    if path is not None and path.exists():
        with open(path) as f:
            loaded = store.import_state(json.load(f))
        logger.info("Loaded %d horse profiles from %s", loaded, path)
    return store


async def print_segment(segment: GaitSegment):
    lead = f", {segment.lead.value} lead" if segment.has_known_lead else ""
    print(
        f"{segment.start_time:8.2f}-{segment.end_time:8.2f}s  {segment.gait.name.lower():<10}"
        f" {segment.distance:7.1f} m  rhythm {segment.rhythm_score:5.1f}{lead}"
    )


async def replay(args, store: CalibrationStore):
    config = EngineConfig()
    loader = RideDataLoader(args.data_dir)
    df = loader.load_ride(args.ride)

    start_index = loader.time_to_sample_index(df, args.start)
    is_valid, error = loader.validate_start_position(df, start_index)
    if not is_valid:
        raise SystemExit(error)

    profile = store.profile(args.horse)
    if profile.learned is None and profile.breed == HorseBreed.UNKNOWN:
        profile = HorseProfile(
            horse_id=args.horse,
            breed=HorseBreed.parse(args.breed),
            height_hands=args.height,
            weight_kg=args.weight,
            tuning=profile.tuning,
        )
        store.register(profile)

    async def save_calibration(update):
        store.apply_update(update)

    processor = RideStreamProcessor(profile, MountPosition(args.mount), config)
    pipeline = RidePipeline(processor, segment_sink=print_segment, calibration_sink=save_calibration)

    interval = BATCH_SIZE / config.SAMPLING_RATE / args.speed if args.speed > 0 else 0.0
    async with pipeline:
        for i, sample in enumerate(loader.iter_samples(df, start_index)):
            pipeline.submit(sample)
            if (i + 1) % BATCH_SIZE == 0:
                await asyncio.sleep(interval)
    return pipeline.outcome


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.ride is None:
        for ride_id in RideDataLoader(args.data_dir).get_available_rides():
            print(ride_id)
        return

    store = load_store(args.store)
    outcome = asyncio.run(replay(args, store))

    print()
    print(gait_distribution(outcome.segments))
    for key, value in summarize_ride(outcome).items():
        print(f"{key}: {value}")

    if args.store is not None:
        with open(args.store, "w") as f:
            json.dump(store.export_state(), f, indent=2)
        logger.info("Saved horse calibration to %s", args.store)


if __name__ == "__main__":
    main()
