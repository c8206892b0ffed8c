import math
from typing import List, Sequence

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from config import InvalidParameterError, NumericOverflowError
from constants import DEFAULT_HISTOGRAM_BUCKETS, DEGENERATE_BUCKET_SIZE


class PercentileSet(BaseModel):
    """Nearest-rank 10th, 50th and 90th percentiles of the terminal capitals."""

    p10: float
    p50: float
    p90: float

    model_config = {"frozen": True}


class HistogramBucket(BaseModel):
    range_start: float
    range_end: float
    count: int = Field(..., ge=0)

    model_config = {"frozen": True}


class Histogram(BaseModel):
    bucket_size: float = Field(..., gt=0)
    buckets: List[HistogramBucket]

    model_config = {"frozen": True}

    @property
    def counts(self) -> List[int]:
        return [b.count for b in self.buckets]

    @property
    def total(self) -> int:
        return sum(self.counts)


def _require_samples(samples: Sequence[float]) -> None:
    if len(samples) == 0:
        raise InvalidParameterError("At least one sample is required.")


def nearest_rank_percentile(sorted_samples: Sequence[float], p: float) -> float:
    """
    Returns the element at rank ``floor(p / 100 * n)`` of an ascending sequence.

    The rank is clamped to the last element so that high percentiles of small
    sample sets stay in range. No interpolation is performed.
    """
    _require_samples(sorted_samples)
    if not 0 <= p <= 100:
        raise InvalidParameterError(f"Percentile must be within [0, 100], got {p}")
    n = len(sorted_samples)
    index = min(math.floor(p / 100 * n), n - 1)
    return float(sorted_samples[index])


def compute_percentiles(samples: Sequence[float]) -> PercentileSet:
    sorted_samples = np.sort(np.asarray(samples, dtype=float))
    return PercentileSet(
        p10=nearest_rank_percentile(sorted_samples, 10),
        p50=nearest_rank_percentile(sorted_samples, 50),
        p90=nearest_rank_percentile(sorted_samples, 90),
    )


def compute_bucket_size(min_value: float, max_value: float, num_buckets: int) -> float:
    """
    Calculates a round bucket width for ``num_buckets`` bars over a range.

    The rough width ``range / num_buckets`` is rounded up to the next integer
    multiple of its power of ten, e.g. 19 -> 20 and 0.34 -> 0.4. A zero range
    has no magnitude and falls back to a width of 1.
    """
    if num_buckets <= 0:
        raise InvalidParameterError(f"num_buckets must be positive, got {num_buckets}")
    if not (math.isfinite(min_value) and math.isfinite(max_value)):
        raise NumericOverflowError(
            f"Cannot size buckets for a non-finite range [{min_value}, {max_value}]"
        )
    value_range = max_value - min_value
    if value_range <= 0:
        return DEGENERATE_BUCKET_SIZE

    rough_bucket_size = value_range / num_buckets
    magnitude = 10 ** math.floor(math.log10(rough_bucket_size))
    return float(math.ceil(rough_bucket_size / magnitude) * magnitude)


def build_histogram(
    samples: Sequence[float], num_buckets: int = DEFAULT_HISTOGRAM_BUCKETS
) -> Histogram:
    """
    Buckets terminal capitals into half-open ranges of a round width.

    Bucket ``i`` covers ``[min + i * size, min + (i + 1) * size)``; the maximum
    sample is clamped into the last bucket.
    """
    _require_samples(samples)
    values = np.asarray(samples, dtype=float)
    if not np.all(np.isfinite(values)):
        raise NumericOverflowError(
            f"{int(np.sum(~np.isfinite(values)))} samples are not finite; "
            "cannot build a histogram."
        )

    min_value = float(values.min())
    max_value = float(values.max())
    bucket_size = compute_bucket_size(min_value, max_value, num_buckets)

    if max_value == min_value:
        logger.debug(
            f"All {len(values)} samples equal {min_value}; using a single bucket."
        )
        actual_buckets = 1
    else:
        actual_buckets = max(1, math.ceil((max_value - min_value) / bucket_size))

    indices = np.floor((values - min_value) / bucket_size).astype(np.int64)
    indices = np.minimum(indices, actual_buckets - 1)
    counts = np.bincount(indices, minlength=actual_buckets)

    buckets = [
        HistogramBucket(
            range_start=min_value + i * bucket_size,
            range_end=min_value + (i + 1) * bucket_size,
            count=int(counts[i]),
        )
        for i in range(actual_buckets)
    ]
    return Histogram(bucket_size=bucket_size, buckets=buckets)
