import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from numbers import Real

import numpy as np
from scipy import stats

import config
from modules.errors import EmptySeriesError, InvalidParameterError
from modules.series import mean_value


@dataclass(frozen=True)
class SegmentComparison:
    """Outcome of comparing the first and second chronological segments."""

    raw_delta: float
    change_detected: bool
    confidence: float
    p_value: float | None = None
    test_statistic: float | None = None


@dataclass(frozen=True)
class ChangeStatistics:
    """Intermediate statistics handed to the result assembler."""

    mean: float
    change_detected: bool
    confidence: float
    first_segment_mean: float | None
    second_segment_mean: float | None
    raw_delta: float | None
    method: str
    p_value: float | None = None
    test_statistic: float | None = None


def segment_mean(values):
    return mean_value(values)


def split_series(values):
    """
    Splits chronologically ordered values at index n // 2.
    For odd n the extra sample belongs to the second segment.
    """
    mid = len(values) // 2
    return values[:mid], values[mid:]


def _bounded(confidence):
    return min(max(confidence, 0.0), 1.0)


class ChangeStatistic(ABC):
    """
    Computes a change statistic from the two chronological segments of a series.
    Both segments are non-empty lists of floats.
    """

    name = None

    @abstractmethod
    def compare(self, first, second, threshold, scale_factor):
        """Returns a SegmentComparison."""


class SplitMeanStatistic(ChangeStatistic):
    """
    Naive split-mean heuristic.

    raw_delta = |mean(first) - mean(second)|
    change_detected = raw_delta > threshold (strict)
    confidence = min(raw_delta * scale_factor, 1.0)

    The confidence is proportional to the magnitude of the swing, it is not a
    significance level.
    """

    name = "split_mean"

    def compare(self, first, second, threshold, scale_factor):
        raw_delta = abs(segment_mean(first) - segment_mean(second))
        return SegmentComparison(
            raw_delta=raw_delta,
            change_detected=raw_delta > threshold,
            confidence=min(raw_delta * scale_factor, 1.0) if scale_factor else 0.0,
        )


class WelchTTestStatistic(ChangeStatistic):
    """
    Two-sample Welch t-test between the segments.
    Change requires raw_delta > threshold and p < alpha; confidence = 1 - p.
    scale_factor is not used.
    """

    name = "welch_t"

    def __init__(self, alpha=None):
        self.alpha = config.SIGNIFICANCE_ALPHA if alpha is None else alpha

    def compare(self, first, second, threshold, scale_factor):
        raw_delta = abs(segment_mean(first) - segment_mean(second))

        if len(first) < 2 or len(second) < 2:
            return SegmentComparison(raw_delta=raw_delta, change_detected=False, confidence=0.0)

        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            result = stats.ttest_ind(first, second, equal_var=False)
        p_value = float(result.pvalue)

        # zero variance in both segments
        if math.isnan(p_value):
            return SegmentComparison(raw_delta=raw_delta, change_detected=False, confidence=0.0)

        return SegmentComparison(
            raw_delta=raw_delta,
            change_detected=raw_delta > threshold and p_value < self.alpha,
            confidence=_bounded(1.0 - p_value),
            p_value=p_value,
            test_statistic=float(result.statistic),
        )


class MannKendallStatistic(ChangeStatistic):
    """
    Mann-Kendall monotonic trend test over the whole series (both segments
    concatenated), with tie-corrected variance and continuity correction.
    Change requires raw_delta > threshold and p < alpha; confidence = 1 - p.
    """

    name = "mann_kendall"

    def __init__(self, alpha=None):
        self.alpha = config.SIGNIFICANCE_ALPHA if alpha is None else alpha

    def compare(self, first, second, threshold, scale_factor):
        raw_delta = abs(segment_mean(first) - segment_mean(second))

        values = np.asarray(list(first) + list(second), dtype=float)
        n = len(values)
        if n < 3:
            return SegmentComparison(raw_delta=raw_delta, change_detected=False, confidence=0.0)

        # S = sum over i < j of sign(x_j - x_i)
        with np.errstate(over="ignore", invalid="ignore"):
            signs = np.sign(values[np.newaxis, :] - values[:, np.newaxis])
        s = float(np.triu(signs, k=1).sum())

        _, tie_counts = np.unique(values, return_counts=True)
        ties = float(np.sum(tie_counts * (tie_counts - 1) * (2 * tie_counts + 5)))
        variance = (n * (n - 1) * (2 * n + 5) - ties) / 18.0

        # constant series
        if variance <= 0:
            return SegmentComparison(raw_delta=raw_delta, change_detected=False, confidence=0.0)

        if s > 0:
            z = (s - 1) / math.sqrt(variance)
        elif s < 0:
            z = (s + 1) / math.sqrt(variance)
        else:
            z = 0.0

        p_value = float(2 * stats.norm.sf(abs(z)))

        return SegmentComparison(
            raw_delta=raw_delta,
            change_detected=raw_delta > threshold and p_value < self.alpha,
            confidence=_bounded(1.0 - p_value),
            p_value=p_value,
            test_statistic=z,
        )


STATISTICS = {cls.name: cls for cls in (SplitMeanStatistic, WelchTTestStatistic, MannKendallStatistic)}


def available_statistics():
    return sorted(STATISTICS)


def get_statistic(statistic=None):
    """Resolves a ChangeStatistic instance from an instance, a variant name or None (default)."""
    if isinstance(statistic, ChangeStatistic):
        return statistic

    name = config.DEFAULT_STATISTIC if statistic is None else statistic
    try:
        return STATISTICS[name]()
    except (KeyError, TypeError):
        raise InvalidParameterError(
            f"Unknown change statistic {name!r}. Available: {', '.join(available_statistics())}"
        ) from None


def validate_parameters(threshold, scale_factor):
    for label, value in (("threshold", threshold), ("scale_factor", scale_factor)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise InvalidParameterError(f"{label} must be a number, got {value!r}")
        if not math.isfinite(value) or value < 0:
            raise InvalidParameterError(f"{label} must be finite and non-negative, got {value!r}")


def compute_change_statistics(series, threshold, scale_factor, statistic=None):
    """
    Computes the overall mean and the change statistic of a normalized series.

    A series with a single valid sample is not an error: it yields the mean with
    change_detected=False, confidence=0.0 and no segment statistics.
    """
    validate_parameters(threshold, scale_factor)
    statistic = get_statistic(statistic)

    values = series.values
    if not values:
        raise EmptySeriesError("Cannot compute change statistics on an empty series")

    mean = segment_mean(values)

    if len(values) < 2:
        return ChangeStatistics(
            mean=mean,
            change_detected=False,
            confidence=0.0,
            first_segment_mean=None,
            second_segment_mean=None,
            raw_delta=None,
            method=statistic.name,
        )

    first, second = split_series(values)
    comparison = statistic.compare(first, second, float(threshold), float(scale_factor))

    return ChangeStatistics(
        mean=mean,
        change_detected=bool(comparison.change_detected),
        confidence=float(comparison.confidence),
        first_segment_mean=segment_mean(first),
        second_segment_mean=segment_mean(second),
        raw_delta=comparison.raw_delta,
        method=statistic.name,
        p_value=comparison.p_value,
        test_statistic=comparison.test_statistic,
    )
