import math
import datetime
from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Real

import pandas as pd

from modules.errors import EmptySeriesError, InvalidDateError, InvalidSampleError

DATE_FORMAT = "%Y-%m-%d"

# Samples sharing an acquisition date are merged into one sample holding the mean of their values.
DUPLICATE_POLICY = "average"

# Upstream time-series features carry the reduced index under 'ndvi_mean'
VALUE_KEYS = ("value", "ndvi_mean")


@dataclass(frozen=True)
class Sample:
    """One acquisition: a calendar date and an index reading (None when absent)."""

    date: datetime.date
    value: float | None = None

    def to_dict(self):
        # NaN / Infinity are not valid JSON
        value = self.value if self.value is not None and math.isfinite(self.value) else None
        return {"date": self.date.isoformat(), "value": value}


@dataclass(frozen=True)
class Series:
    """
    Normalized index time series.

    `samples` only holds valid (finite) readings, strictly increasing by date.
    `excluded` keeps the null / NaN / infinite readings for audit output; they
    never take part in statistics.
    """

    samples: tuple = ()
    excluded: tuple = ()
    duplicates_merged: int = 0
    duplicate_policy: str = DUPLICATE_POLICY

    def __len__(self):
        return len(self.samples)

    @property
    def values(self):
        return [s.value for s in self.samples]

    @property
    def dates(self):
        return [s.date for s in self.samples]

    @property
    def start(self):
        return self.samples[0].date if self.samples else None

    @property
    def end(self):
        return self.samples[-1].date if self.samples else None

    def to_frame(self):
        """Valid samples as a DataFrame with ISO 'date' strings and float 'value'."""
        return pd.DataFrame(
            {
                "date": [d.isoformat() for d in self.dates],
                "value": self.values,
            },
            columns=["date", "value"],
        )


def mean_value(values):
    """Arithmetic mean of finite floats. Stays finite when the plain sum would overflow."""
    n = len(values)
    try:
        return math.fsum(values) / n
    except OverflowError:
        return math.fsum(v / n for v in values)


def _excluded_order(sample):
    # None, -Infinity, NaN, +Infinity on the same date
    value = sample.value
    if value is None:
        rank = 0
    elif math.isnan(value):
        rank = 2
    else:
        rank = 1 if value < 0 else 3
    return sample.date, rank


def parse_date(raw):
    """
    Parses a sample date. Accepts 'YYYY-MM-DD' strings, datetime.date and
    datetime.datetime (truncated to the calendar date).
    """
    if raw is None or raw is pd.NaT:
        raise InvalidDateError("Sample date is missing")

    if isinstance(raw, datetime.datetime):
        return raw.date()
    if isinstance(raw, datetime.date):
        return raw

    if isinstance(raw, str):
        try:
            return datetime.datetime.strptime(raw.strip(), DATE_FORMAT).date()
        except ValueError:
            raise InvalidDateError(f"Unparseable sample date {raw!r}, expected YYYY-MM-DD") from None

    raise InvalidDateError(f"Unsupported sample date type: {type(raw).__name__}")


def parse_value(raw):
    """Returns the reading as a float, or None when absent. NaN/Infinity are returned as-is."""
    if raw is None or raw is pd.NA:
        return None

    # bool is a Real subclass but never a valid index reading
    if isinstance(raw, bool):
        raise InvalidSampleError(f"Boolean is not a valid index value: {raw!r}")
    if isinstance(raw, Real):
        try:
            return float(raw)
        except OverflowError:
            # integers beyond the double range are excluded like Infinity
            return math.inf if raw > 0 else -math.inf

    if isinstance(raw, str):
        try:
            return float(raw)
        except ValueError:
            raise InvalidSampleError(f"Non-numeric index value: {raw!r}") from None

    raise InvalidSampleError(f"Unsupported index value type: {type(raw).__name__}")


def _unpack(raw):
    if isinstance(raw, Sample):
        return raw.date, raw.value

    if isinstance(raw, Mapping):
        if "date" not in raw:
            raise InvalidSampleError(f"Sample has no 'date': {dict(raw)!r}")
        for key in VALUE_KEYS:
            if key in raw:
                return raw["date"], raw[key]
        raise InvalidSampleError(f"Sample has no 'value': {dict(raw)!r}")

    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        return raw[0], raw[1]

    raise InvalidSampleError(f"Malformed sample: {raw!r}")


def normalize_samples(raw_samples):
    """
    Validates and sorts raw samples into a chronological Series.

    Every date is parsed, including those of samples without a value, so a
    single bad date aborts the evaluation (InvalidDateError). Null, NaN and
    infinite readings are moved to `excluded`. Duplicate dates are averaged.

    Raises:
        InvalidDateError: a date could not be parsed.
        InvalidSampleError: a sample is malformed.
        EmptySeriesError: no valid reading remains.
    """
    if raw_samples is None:
        raw_samples = []
    if isinstance(raw_samples, (str, bytes, Mapping)):
        raise InvalidSampleError("Samples must be a sequence of observations")

    valid = []
    excluded = []

    for raw in raw_samples:
        raw_date, raw_value = _unpack(raw)
        date = parse_date(raw_date)
        value = parse_value(raw_value)

        if value is None or not math.isfinite(value):
            excluded.append(Sample(date, value))
        else:
            valid.append((date, value))

    excluded.sort(key=_excluded_order)

    if not valid:
        raise EmptySeriesError(f"No valid samples to evaluate ({len(excluded)} excluded as null or non-finite)")

    # Sorting on value too keeps the per-date mean independent of input order
    frame = pd.DataFrame(valid, columns=["date", "value"]).sort_values(["date", "value"], kind="mergesort")
    per_date = frame.groupby("date", sort=True)["value"].agg(lambda group: mean_value(group.tolist()))

    samples = tuple(Sample(date, float(value)) for date, value in per_date.items())

    return Series(
        samples=samples,
        excluded=tuple(excluded),
        duplicates_merged=len(frame) - len(samples),
    )
