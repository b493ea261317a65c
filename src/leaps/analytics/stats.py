"""Rate, percentile and histogram computations over plain numbers.

Everything here is pure: no database, no settings lookups. Callers pass
configured thresholds in explicitly.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

DISTRIBUTION_PERCENTILES: tuple[int, ...] = (10, 25, 50, 75, 90, 95, 99)
DEFAULT_POINTS_BUCKETS: tuple[int, ...] = (0, 50, 100, 200, 500)
MIN_QUANTILES = 2
MAX_QUANTILES = 10


def round2(value: float) -> float:
    """Round to two decimals for presentation."""
    return round(value, 2)


def approval_rate(approved: int, rejected: int) -> float:
    """Approved share of reviewed submissions, as a percentage.

    Pending submissions are not part of the denominator. 0 when nothing
    has been reviewed.
    """
    reviewed = approved + rejected
    if reviewed <= 0:
        return 0.0
    return approved / reviewed * 100


def activation_rate(active: int, total: int) -> float:
    """Share of users with at least one submission, as a percentage."""
    if total <= 0:
        return 0.0
    return active / total * 100


def completion_rate(approved: int, total: int) -> float:
    """Approved share of all submissions for a stage, as a 0..1 ratio."""
    if total <= 0:
        return 0.0
    return approved / total


def percentile_value(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile over values sorted ascending.

    index = floor(p / 100 * (n - 1)), so p10 sits in the bottom decile and
    the result never decreases as p grows. Empty input gives 0.
    """
    if not values:
        return 0
    ordered = sorted(values)
    p = min(max(p, 0), 100)
    index = math.floor(p / 100 * (len(ordered) - 1))
    return ordered[index]


def points_distribution(totals: Iterable[float]) -> dict[str, Any]:
    """Summary of per-user point totals. Only positive totals count."""
    values = sorted(v for v in totals if v > 0)
    if not values:
        return {
            "totalUsers": 0,
            "max": 0,
            "min": 0,
            "avg": 0,
            "percentiles": [{"percentile": p, "value": 0} for p in DISTRIBUTION_PERCENTILES],
        }
    return {
        "totalUsers": len(values),
        "max": values[-1],
        "min": values[0],
        "avg": round2(sum(values) / len(values)),
        "percentiles": [
            {"percentile": p, "value": percentile_value(values, p)} for p in DISTRIBUTION_PERCENTILES
        ],
    }


def bucket_histogram(totals: Iterable[float], thresholds: Sequence[int] | None = None) -> list[dict[str, Any]]:
    """Count totals into labelled ranges.

    Thresholds [0, 50, 100] give buckets "0-49", "50-99" and "100+". Fewer
    than two thresholds fall back to the default set. Values outside every
    range (e.g. negative totals) land in the last bucket.
    """
    edges = sorted(set(thresholds or ()))
    if len(edges) < 2:
        edges = list(DEFAULT_POINTS_BUCKETS)

    buckets: list[dict[str, Any]] = []
    for i, low in enumerate(edges):
        high = edges[i + 1] - 1 if i + 1 < len(edges) else None
        label = f"{low}-{high}" if high is not None else f"{low}+"
        buckets.append({"min": low, "max": high, "range": label, "count": 0})

    for value in totals:
        target = buckets[-1]
        for bucket in buckets:
            if value >= bucket["min"] and (bucket["max"] is None or value <= bucket["max"]):
                target = bucket
                break
        target["count"] += 1

    return [{"range": b["range"], "count": b["count"]} for b in buckets]


def quantile_histogram(totals: Iterable[float], quantiles: int) -> list[dict[str, Any]]:
    """Count totals into `quantiles` equal-population bins labelled by upper bound.

    Bins are "Q1 (≤ 20)", "Q2 (≤ 50)", ... and the last one is "Qn (+)".
    """
    if not MIN_QUANTILES <= quantiles <= MAX_QUANTILES:
        msg = f"quantiles must be between {MIN_QUANTILES} and {MAX_QUANTILES}"
        raise ValueError(msg)
    ordered = sorted(totals)
    if not ordered:
        return []

    n = len(ordered)
    bins: list[dict[str, Any]] = []
    for i in range(1, quantiles + 1):
        if i == quantiles:
            bins.append({"range": f"Q{i} (+)", "upper": None, "count": 0})
        else:
            upper = ordered[max(0, math.ceil(n * i / quantiles) - 1)]
            bins.append({"range": f"Q{i} (≤ {upper})", "upper": upper, "count": 0})

    for value in ordered:
        target = bins[-1]
        for b in bins:
            if b["upper"] is not None and value <= b["upper"]:
                target = b
                break
        target["count"] += 1

    return [{"range": b["range"], "count": b["count"]} for b in bins]


def points_histogram(
    totals: Sequence[float],
    thresholds: Sequence[int] | None = None,
    quantiles: int | None = None,
) -> list[dict[str, Any]]:
    """Quantile bins when a valid quantile count is configured, else threshold buckets."""
    if not totals:
        return []
    if quantiles is not None and MIN_QUANTILES <= quantiles <= MAX_QUANTILES:
        return quantile_histogram(totals, quantiles)
    return bucket_histogram(totals, thresholds)
