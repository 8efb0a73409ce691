"""Least-squares linear regression."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass


class SingularFitError(ValueError):
    """Raised when the x values do not determine a line."""


@dataclass(frozen=True)
class LinearFit:
    """Result of a fit ``y = slope * x + intercept`` with correlation ``r``."""

    slope: float
    intercept: float
    r: float


def linreg(x: Iterable[float], y: Iterable[float]) -> LinearFit:
    """Fit a straight line to the points ``(x[i], y[i])``."""
    xs = [float(v) for v in x]
    ys = [float(v) for v in y]
    if len(xs) != len(ys):
        raise ValueError("x and y must have the same length")
    n = len(xs)

    sum_x = sum(xs)
    sum_x2 = sum(v * v for v in xs)
    sum_xy = sum(a * b for a, b in zip(xs, ys))
    sum_y = sum(ys)
    sum_y2 = sum(v * v for v in ys)

    denom = n * sum_x2 - sum_x * sum_x
    if denom == 0:
        raise SingularFitError("singular matrix: cannot fit a line")

    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y * sum_x2 - sum_x * sum_xy) / denom

    spread = (sum_x2 - sum_x * sum_x / n) * (sum_y2 - sum_y * sum_y / n)
    covariance = sum_xy - sum_x * sum_y / n
    if spread <= 0:
        r = math.nan
    else:
        r = covariance / math.sqrt(spread)
    return LinearFit(slope, intercept, r)