import math

import pytest

from lrmap.linreg import LinearFit, SingularFitError, linreg


def test_exact_line():
    xs = [0, 1, 2, 3, 4]
    fit = linreg(xs, [2 * v + 1 for v in xs])
    assert fit.slope == pytest.approx(2)
    assert fit.intercept == pytest.approx(1)
    assert fit.r == pytest.approx(1)


def test_negative_slope():
    xs = [1, 2, 3, 4, 5, 6]
    fit = linreg(xs, [10 - 3 * v for v in xs])
    assert fit.slope == pytest.approx(-3)
    assert fit.intercept == pytest.approx(10)
    assert fit.r == pytest.approx(-1)


def test_noisy_correlation_bounded():
    fit = linreg([1, 2, 3, 4, 5], [1.1, 1.9, 3.2, 3.8, 5.1])
    assert isinstance(fit, LinearFit)
    assert 0.9 < fit.r <= 1.0
    assert fit.slope > 0


def test_accepts_generators():
    fit = linreg((v for v in range(4)), (v * 5 for v in range(4)))
    assert fit.slope == pytest.approx(5)


def test_singular_raises():
    with pytest.raises(SingularFitError):
        linreg([3, 3, 3], [1, 2, 3])


def test_empty_raises():
    with pytest.raises(SingularFitError):
        linreg([], [])


def test_constant_y_has_nan_correlation():
    fit = linreg([1, 2, 3], [4, 4, 4])
    assert fit.slope == pytest.approx(0)
    assert fit.intercept == pytest.approx(4)
    assert math.isnan(fit.r)


def test_length_mismatch():
    with pytest.raises(ValueError):
        linreg([1, 2, 3], [1, 2])