import config
from modules.assessment import assemble_assessment
from modules.change_statistics import compute_change_statistics
from modules.series import normalize_samples


def evaluate_series(series, threshold=config.CHANGE_THRESHOLD, scale_factor=config.CONFIDENCE_SCALE, statistic=None):
    """Runs the statistic engine and the assembler on an already normalized Series."""
    stats = compute_change_statistics(series, threshold, scale_factor, statistic)
    return assemble_assessment(series, stats, threshold=threshold, scale_factor=scale_factor)


def evaluate(samples, threshold=config.CHANGE_THRESHOLD, scale_factor=config.CONFIDENCE_SCALE, statistic=None):
    """
    Evaluates a sequence of per-acquisition index samples.

    Pure and synchronous: no I/O, no shared state. The same samples, in any
    order, always give the same ChangeAssessment.

    Args:
        samples: iterable of {'date': 'YYYY-MM-DD', 'value': float | None}
                 (also accepts (date, value) pairs and Sample objects).
        threshold (float): minimum |first - second| segment mean difference
                           that counts as change (strict comparison).
        scale_factor (float): confidence = min(raw_delta * scale_factor, 1.0)
                              for the default split-mean statistic.
        statistic: ChangeStatistic instance or variant name
                   ('split_mean', 'welch_t', 'mann_kendall'). Defaults to
                   config.DEFAULT_STATISTIC.

    Returns:
        ChangeAssessment

    Raises:
        InvalidDateError, InvalidSampleError, EmptySeriesError, InvalidParameterError
    """
    series = normalize_samples(samples)
    return evaluate_series(series, threshold=threshold, scale_factor=scale_factor, statistic=statistic)
