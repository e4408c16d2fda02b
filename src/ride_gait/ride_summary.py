"""Ride-level summaries of gait segments."""

from typing import Dict, Iterable, List, Optional

import polars as pl

from .lead_detector import lead_pairing
from .models import GaitSegment, GaitType, Lead, LeadPairing, ReinSegment, RideOutcome

SEGMENT_SCHEMA = {
    "gait": pl.Utf8,
    "gait_order": pl.Int64,
    "start_time": pl.Float64,
    "end_time": pl.Float64,
    "duration": pl.Float64,
    "distance": pl.Float64,
    "average_speed": pl.Float64,
    "rhythm_score": pl.Float64,
    "lead": pl.Utf8,
    "lead_confidence": pl.Float64,
    "stride_frequency": pl.Float64,
    "window_count": pl.Int64,
}


def segments_to_frame(segments: Iterable[GaitSegment]) -> pl.DataFrame:
    """One row per segment, in ride order."""
    rows = [
        {
            "gait": s.gait.name.lower(),
            "gait_order": int(s.gait),
            "start_time": s.start_time,
            "end_time": s.end_time,
            "duration": s.duration,
            "distance": s.distance,
            "average_speed": s.average_speed,
            "rhythm_score": s.rhythm_score,
            "lead": s.lead.value,
            "lead_confidence": s.lead_confidence,
            "stride_frequency": s.spectral.stride_frequency if s.spectral else None,
            "window_count": s.window_count,
        }
        for s in segments
    ]
    return pl.DataFrame(rows, schema=SEGMENT_SCHEMA)


def gait_distribution(segments: Iterable[GaitSegment]) -> pl.DataFrame:
    """
    Time and distance per gait.

    Returns:
        DataFrame with gait, segments, duration, distance and share of ride time (0-1)
    """
    df = segments_to_frame(segments)
    total = df["duration"].sum() if len(df) else 0.0
    return (
        df.group_by("gait", "gait_order")
        .agg(
            pl.len().alias("segments"),
            pl.col("duration").sum(),
            pl.col("distance").sum(),
        )
        .with_columns(
            (pl.col("duration") / total if total else pl.lit(0.0)).alias("share")
        )
        .sort("gait_order")
        .drop("gait_order")
    )


def lead_balance(segments: Iterable[GaitSegment]) -> Dict[str, float]:
    """Seconds of canter/gallop on each lead; undetected leads count as unknown."""
    balance = {lead.value: 0.0 for lead in Lead}
    for segment in segments:
        if not segment.is_lead_applicable:
            continue
        lead = segment.lead if segment.has_known_lead else Lead.UNKNOWN
        balance[lead.value] += segment.duration
    return balance


def cross_canter_segments(segments: Iterable[GaitSegment], reins: List[ReinSegment]) -> List[GaitSegment]:
    return [s for s in segments if lead_pairing(s, reins) == LeadPairing.CROSS_CANTER]


def summarize_ride(outcome: RideOutcome, reins: Optional[List[ReinSegment]] = None) -> Dict:
    """Headline numbers for a finished ride."""
    segments = outcome.segments
    transitions = outcome.transitions
    moving = [s for s in segments if s.gait != GaitType.STATIONARY]
    scored = [s for s in moving if s.window_count >= 3]
    return {
        "status": outcome.status.value,
        "segments": len(segments),
        "duration": outcome.total_duration,
        "distance": outcome.total_distance,
        "moving_time": sum(s.duration for s in moving),
        "mean_rhythm": (
            sum(s.rhythm_score * s.duration for s in scored) / sum(s.duration for s in scored)
            if scored and sum(s.duration for s in scored) > 0 else 0.0
        ),
        "lead_balance": lead_balance(segments),
        "left_lead_time": outcome.left_lead_time,
        "right_lead_time": outcome.right_lead_time,
        "lead_symmetry": outcome.lead_symmetry,
        "cross_canter_segments": len(cross_canter_segments(segments, reins or [])),
        "transitions": len(transitions),
        "upward_transitions": sum(t.is_upward for t in transitions),
        "downward_transitions": sum(t.is_downward for t in transitions),
        "mean_transition_quality": (
            sum(t.quality for t in transitions) / len(transitions) if transitions else 0.0
        ),
        "dropped_samples": outcome.dropped_samples,
    }
