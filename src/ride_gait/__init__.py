"""Streaming gait segmentation for horse rides."""

from .config import EngineConfig, FusionPolicy, MountCalibration, MountPosition, mount_calibration
from .models import (
    AnalysisWindow,
    CalibrationUpdate,
    ClassifiedWindow,
    GaitDecision,
    GaitObservation,
    GaitSegment,
    GaitTransition,
    GaitType,
    GPSQuality,
    Lead,
    LeadPairing,
    MotionSample,
    PreprocessedSample,
    ReinDirection,
    ReinSegment,
    RideOutcome,
    RideStatus,
    SpectralFeatures,
)
from .priors import BiomechanicalPriors, HorseBreed, estimate_stride_length, priors_for
from .calibration_store import (
    CalibrationStore,
    GaitTuning,
    HorseProfile,
    LearnedGaitParameters,
    LearnedGaitStats,
)
from .gait_model import EffectiveGaitModel, build_effective_model
from .preprocessor import MotionPreprocessor
from .spectral_analyzer import SpectralAnalyzer
from .gait_classifier import GaitClassifier, RhythmTracker, fuse
from .lead_detector import LeadDetector, is_correct_lead, lead_pairing, resolve_lead
from .segmenter import Segmenter
from .transition_tracker import TransitionTracker, transition_quality
from .stream_processor import RideStreamProcessor
from .pipeline import CoalescingSampleQueue, RidePipeline
from .data_loader import RideDataLoader
from .ride_summary import gait_distribution, lead_balance, segments_to_frame, summarize_ride


__all__ = [
    'EngineConfig',
    'FusionPolicy',
    'MountCalibration',
    'MountPosition',
    'mount_calibration',
    'AnalysisWindow',
    'CalibrationUpdate',
    'ClassifiedWindow',
    'GaitDecision',
    'GaitObservation',
    'GaitSegment',
    'GaitTransition',
    'GaitType',
    'GPSQuality',
    'Lead',
    'LeadPairing',
    'MotionSample',
    'PreprocessedSample',
    'ReinDirection',
    'ReinSegment',
    'RideOutcome',
    'RideStatus',
    'SpectralFeatures',
    'BiomechanicalPriors',
    'HorseBreed',
    'estimate_stride_length',
    'priors_for',
    'CalibrationStore',
    'GaitTuning',
    'HorseProfile',
    'LearnedGaitParameters',
    'LearnedGaitStats',
    'EffectiveGaitModel',
    'build_effective_model',
    'MotionPreprocessor',
    'SpectralAnalyzer',
    'GaitClassifier',
    'RhythmTracker',
    'fuse',
    'LeadDetector',
    'is_correct_lead',
    'lead_pairing',
    'resolve_lead',
    'Segmenter',
    'TransitionTracker',
    'transition_quality',
    'RideStreamProcessor',
    'CoalescingSampleQueue',
    'RidePipeline',
    'RideDataLoader',
    'gait_distribution',
    'lead_balance',
    'segments_to_frame',
    'summarize_ride',
]
