"""Historical trend summaries for numeric fields."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from reporank.models.enums import TrendDirection
from reporank.models.schemas import SourceRecord, TrendSummary, is_numeric

SECONDS_PER_DAY = 86_400


def series_for(field: str, records: Iterable[SourceRecord]) -> list[tuple[datetime, float]]:
    """Time series of a field across all sources and times.

    Values observed at the same instant by several sources are averaged.
    """
    by_time: dict[datetime, list[float]] = defaultdict(list)
    for record in records:
        value = record.fields.get(field)
        if is_numeric(value):
            by_time[record.observed_at].append(float(value))
    return [(ts, sum(vals) / len(vals)) for ts, vals in sorted(by_time.items())]


def linear_slope(points: list[tuple[float, float]]) -> float:
    """Least-squares slope of (x, y) points."""
    n = len(points)
    mean_x = sum(x for x, _ in points) / n
    mean_y = sum(y for _, y in points) / n
    var_x = sum((x - mean_x) ** 2 for x, _ in points)
    if var_x == 0:
        return 0.0
    cov = sum((x - mean_x) * (y - mean_y) for x, y in points)
    return cov / var_x


def summarize_trend(
    field: str,
    series: list[tuple[datetime, float]],
    stable_band: float = 0.05,
) -> TrendSummary:
    """Summarize a series as slope, relative growth and direction.

    Args:
        field: Field name.
        series: (timestamp, value) points, oldest first.
        stable_band: Relative growth within +/- this band counts as stable.
    """
    if len(series) < 2:
        return TrendSummary(field=field, points=len(series))

    start = series[0][0]
    points = [((ts - start).total_seconds() / SECONDS_PER_DAY, value) for ts, value in series]
    slope = linear_slope(points)

    first, last = series[0][1], series[-1][1]
    growth = (last - first) / abs(first) if first != 0 else None

    if growth is not None:
        if growth > stable_band:
            direction = TrendDirection.GROWING
        elif growth < -stable_band:
            direction = TrendDirection.DECLINING
        else:
            direction = TrendDirection.STABLE
    elif slope > 0:
        direction = TrendDirection.GROWING
    elif slope < 0:
        direction = TrendDirection.DECLINING
    else:
        direction = TrendDirection.STABLE

    return TrendSummary(
        field=field,
        points=len(series),
        slope_per_day=slope,
        growth_rate=growth,
        direction=direction,
    )
