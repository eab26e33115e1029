import math
import datetime
from dataclasses import dataclass


def _optional_float(value):
    # Infinity is not valid JSON
    if value is None or not math.isfinite(value):
        return None
    return float(value)


@dataclass(frozen=True)
class ChangeAssessment:
    """
    Change assessment of one index time series.

    Owned entirely by the caller; nothing is kept between evaluations.
    Segment means and raw_delta are None when fewer than two valid samples
    were available.
    """

    mean: float
    change_detected: bool
    confidence: float
    sample_count: int
    first_segment_mean: float | None
    second_segment_mean: float | None
    date_range: tuple[datetime.date, datetime.date]

    # diagnostics
    raw_delta: float | None = None
    method: str = "split_mean"
    threshold: float | None = None
    scale_factor: float | None = None
    p_value: float | None = None
    excluded_count: int = 0
    duplicates_merged: int = 0
    duplicate_policy: str = "average"

    @property
    def insufficient_history(self):
        return self.sample_count < 2

    def to_dict(self):
        """Flat JSON-compatible record: floats, booleans, ints, ISO date strings and nulls."""
        start, end = self.date_range
        return {
            "mean": float(self.mean),
            "change_detected": bool(self.change_detected),
            "confidence": float(self.confidence),
            "sample_count": int(self.sample_count),
            "first_segment_mean": _optional_float(self.first_segment_mean),
            "second_segment_mean": _optional_float(self.second_segment_mean),
            "date_range_start": start.isoformat(),
            "date_range_end": end.isoformat(),
            "raw_delta": _optional_float(self.raw_delta),
            "method": self.method,
            "threshold": _optional_float(self.threshold),
            "scale_factor": _optional_float(self.scale_factor),
            "p_value": _optional_float(self.p_value),
            "excluded_count": int(self.excluded_count),
            "duplicates_merged": int(self.duplicates_merged),
            "duplicate_policy": self.duplicate_policy,
        }


def assemble_assessment(series, stats, threshold=None, scale_factor=None):
    """Packages ChangeStatistics and the normalized Series into a ChangeAssessment."""
    return ChangeAssessment(
        mean=stats.mean,
        change_detected=stats.change_detected,
        confidence=stats.confidence,
        sample_count=len(series),
        first_segment_mean=stats.first_segment_mean,
        second_segment_mean=stats.second_segment_mean,
        date_range=(series.start, series.end),
        raw_delta=stats.raw_delta,
        method=stats.method,
        threshold=threshold,
        scale_factor=scale_factor,
        p_value=stats.p_value,
        excluded_count=len(series.excluded),
        duplicates_merged=series.duplicates_merged,
        duplicate_policy=series.duplicate_policy,
    )
