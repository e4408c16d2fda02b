"""Core streaming logic for turning motion samples into gait segments."""

import logging
from collections import deque
from dataclasses import replace
from typing import Optional

import numpy as np

from .calibration_store import GaitTuning, HorseProfile
from .config import EngineConfig, FusionPolicy, MountPosition
from .gait_classifier import GaitClassifier
from .gait_model import build_effective_model
from .lead_detector import LeadDetector, resolve_lead
from .models import (
    AnalysisWindow,
    CalibrationUpdate,
    ClassifiedWindow,
    GaitSegment,
    Lead,
    MotionSample,
    RideOutcome,
    RideStatus,
    SpectralFeatures,
)
from .preprocessor import MotionPreprocessor
from .segmenter import Segmenter
from .spectral_analyzer import SpectralAnalyzer
from .transition_tracker import TransitionTracker

logger = logging.getLogger(__name__)


class RideStreamProcessor:
    """
    Processes the motion stream of a single ride.

    Samples go in one at a time; windows are cut every slide interval and
    analysed, and closed segments come out as transitions are confirmed.
    ``ingest``/``analyze``/``complete`` are exposed separately so the spectral
    step can run off the event loop; ``push`` chains them synchronously.
    """

    def __init__(
        self,
        profile: HorseProfile,
        mount: MountPosition = MountPosition.JACKET_CHEST,
        config: Optional[EngineConfig] = None,
        policy: Optional[FusionPolicy] = None,
        tuning: Optional[GaitTuning] = None,
    ):
        """
        Initialize the stream processor.

        Args:
            profile: Horse being ridden
            mount: Where the phone is carried
            config: Engine configuration
            policy: GPS/spectral fusion weights
            tuning: Optional tuning override for this ride only
        """
        self.config = config or EngineConfig()
        self.profile = replace(profile, tuning=tuning) if tuning is not None else profile
        self.model = build_effective_model(self.profile.priors, self.profile.tuning, self.profile.learned)

        self.preprocessor = MotionPreprocessor(mount, self.config)
        self.analyzer = SpectralAnalyzer(self.config)
        self.classifier = GaitClassifier(
            self.model, policy, self.config, weight_kg=self.profile.effective_weight
        )
        self.lead_detector = LeadDetector(self.config)
        self.segmenter = Segmenter(self.profile, self.config)
        self.transition_tracker = TransitionTracker(self.config)

        size = self.config.WINDOW_SIZE
        self.vertical_window = deque(maxlen=size)
        self.lateral_window = deque(maxlen=size)
        self.yaw_window = deque(maxlen=size)

        self.first_timestamp: Optional[float] = None
        self.last_timestamp: Optional[float] = None
        self.last_analysis: Optional[float] = None
        self.gps_speed: Optional[float] = None
        self.gps_accuracy: Optional[float] = None
        self.gps_timestamp: Optional[float] = None
        self.gap_start: Optional[float] = None

        self.sample_count = 0
        self.dropped_samples = 0
        self.gap_count = 0
        self._outcome: Optional[RideOutcome] = None

    def ingest(self, sample: MotionSample) -> Optional[AnalysisWindow]:
        """
        Add a sample to the rolling windows.

        Args:
            sample: Next sample of the ride

        Returns:
            AnalysisWindow when a slide interval has elapsed (or a gap has
            just ended), otherwise None
        """
        if self._outcome is not None:
            raise RuntimeError("Ride already finished")

        timestamp = sample.timestamp
        if self.last_timestamp is not None and timestamp <= self.last_timestamp:
            self.dropped_samples += 1
            logger.debug("Dropping out-of-order sample at %.3fs (last %.3fs)", timestamp, self.last_timestamp)
            return None

        if self.first_timestamp is None:
            self.first_timestamp = timestamp
            self.segmenter.start(timestamp)
        elif timestamp - self.last_timestamp > self.config.GAP_THRESHOLD:
            self.gap_count += 1
            self.gap_start = self.last_timestamp
            logger.info("Sensor gap of %.2fs at %.2fs", timestamp - self.last_timestamp, self.last_timestamp)
            self._clear_windows()

        self.last_timestamp = timestamp
        self.sample_count += 1
        self._hold_gps(sample)

        processed = self.preprocessor.process(sample)
        if processed.recalibration_requested:
            self._clear_windows()
        elif processed.calibrated:
            self.vertical_window.append(processed.vertical)
            self.lateral_window.append(processed.lateral)
            self.yaw_window.append(processed.yaw_rate)

        if self.gap_start is not None:
            window = self._gap_window(timestamp)
            self.gap_start = None
            return window

        if not processed.calibrated:
            return None
        if self.last_analysis is None:
            self.last_analysis = timestamp
            return None
        if timestamp - self.last_analysis < self.config.SLIDE_INTERVAL:
            return None
        return self._cut_window(timestamp)

    def _hold_gps(self, sample: MotionSample):
        if sample.has_gps:
            self.gps_speed = sample.gps_speed
            self.gps_accuracy = sample.gps_accuracy
            self.gps_timestamp = sample.timestamp
            self.transition_tracker.update_speed(sample.gps_speed)
        elif (
            self.gps_timestamp is not None
            and sample.timestamp - self.gps_timestamp > self.config.GPS_HOLD_SECONDS
        ):
            self.gps_speed = None
            self.gps_accuracy = None
            self.gps_timestamp = None

    def _clear_windows(self):
        self.vertical_window.clear()
        self.lateral_window.clear()
        self.yaw_window.clear()

    def _cut_window(self, timestamp: float) -> AnalysisWindow:
        yaw = None
        if self.yaw_window and all(v is not None for v in self.yaw_window):
            yaw = np.array(self.yaw_window, dtype=float)
        window = AnalysisWindow(
            start_time=self.last_analysis,
            end_time=timestamp,
            vertical=np.array(self.vertical_window, dtype=float),
            yaw=yaw,
            lateral=np.array(self.lateral_window, dtype=float),
            gps_speed=self.gps_speed,
            gps_accuracy=self.gps_accuracy,
        )
        self.last_analysis = timestamp
        return window

    def _gap_window(self, timestamp: float) -> AnalysisWindow:
        window = AnalysisWindow(
            start_time=self.gap_start,
            end_time=timestamp,
            vertical=np.empty(0),
            yaw=None,
            lateral=np.empty(0),
            gps_speed=None,
            gps_accuracy=None,
            spans_gap=True,
        )
        self.last_analysis = timestamp
        return window

    def analyze(self, window: AnalysisWindow) -> SpectralFeatures:
        """Spectral features of a window. Safe to call from a worker thread."""
        if window.spans_gap:
            return SpectralFeatures.empty(window.end_time)
        return self.analyzer.analyze(window.vertical, window.yaw, window.end_time)

    def complete(self, window: AnalysisWindow, features: SpectralFeatures) -> Optional[GaitSegment]:
        """
        Classify an analysed window and feed it to the segmenter.

        Windows must be completed in the order they were cut.

        Returns:
            The segment closed by this window, if any
        """
        lead, lead_confidence = Lead.UNKNOWN, 0.0
        if window.spans_gap:
            decision = self.classifier.hold()
        else:
            decision = self.classifier.classify(features, window.gps_speed, window.gps_accuracy)
            lead, lead_confidence = self.lead_detector.detect(window.lateral, window.vertical, decision.gait)
            known = resolve_lead(lead, lead_confidence, self.config.LEAD_CONFIDENCE_THRESHOLD)
            self.lead_detector.record(known, window.end_time - window.start_time)

        closed = self.segmenter.update(ClassifiedWindow(
            start_time=window.start_time,
            end_time=window.end_time,
            decision=decision,
            features=features,
            gps_speed=window.gps_speed,
            gps_accuracy=window.gps_accuracy,
            lead=lead,
            lead_confidence=lead_confidence,
            spans_gap=window.spans_gap,
        ))
        if closed is not None:
            logger.info(
                "%s segment closed: %.1fs, %.1f m, rhythm %.0f",
                closed.gait.name.lower(), closed.duration, closed.distance, closed.rhythm_score,
            )
            self.transition_tracker.record(closed.gait, decision.gait, closed.end_time)
        return closed

    def push(self, sample: MotionSample) -> Optional[GaitSegment]:
        """Ingest, analyse and classify synchronously."""
        window = self.ingest(sample)
        if window is None:
            return None
        return self.complete(window, self.analyze(window))

    def finish(self, end_time: Optional[float] = None) -> RideOutcome:
        """
        Close the ride.

        Args:
            end_time: Ride end; defaults to the last sample's timestamp

        Returns:
            RideOutcome with every segment and the calibration update
        """
        if self._outcome is not None:
            return self._outcome

        if self.first_timestamp is None:
            logger.info("Ride finished without any samples")
            self._outcome = RideOutcome(status=RideStatus.NO_DATA, dropped_samples=self.dropped_samples)
            return self._outcome

        end = max(end_time if end_time is not None else self.last_timestamp, self.last_timestamp)
        if self.segmenter.current_gait is None:
            # Ride ended before the first window: one held segment covers it
            self.segmenter.update(ClassifiedWindow(
                start_time=self.first_timestamp,
                end_time=end,
                decision=self.classifier.hold(),
                features=SpectralFeatures.empty(end),
                spans_gap=True,
            ))
        self.segmenter.close(end)

        observations = self.segmenter.observations()
        update = None
        if observations:
            update = CalibrationUpdate(horse_id=self.profile.horse_id, observations=observations, timestamp=end)

        self._outcome = RideOutcome(
            status=RideStatus.COMPLETED,
            segments=list(self.segmenter.segments),
            calibration_update=update,
            dropped_samples=self.dropped_samples,
            transitions=list(self.transition_tracker.transitions),
            left_lead_time=self.lead_detector.left_duration,
            right_lead_time=self.lead_detector.right_duration,
        )
        logger.info(
            "Ride finished: %d segments over %.1fs, %d samples, %d dropped, %d gaps, %d recalibrations",
            len(self._outcome.segments), end - self.first_timestamp, self.sample_count,
            self.dropped_samples, self.gap_count, self.preprocessor.recalibration_count,
        )
        return self._outcome

    @property
    def is_finished(self) -> bool:
        return self._outcome is not None
