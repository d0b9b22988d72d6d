"""Tests for platform limit detection."""

import pytest

from latency_tester.system import detect_platform_limits, get_platform


@pytest.mark.parametrize("cores, initial, ceiling", [
    (1, 4, 10),
    (2, 4, 10),
    (8, 16, 32),
    (30, 50, 100),
    (128, 50, 100),
])
def test_limits_scale_with_cores(cores, initial, ceiling):
    limits = detect_platform_limits(cpu_cores=cores)

    assert limits.cpu_cores == cores
    assert limits.initial_concurrency == initial
    assert limits.max_concurrency == ceiling


def test_timeout_bounds_are_passed_through():
    limits = detect_platform_limits(min_timeout=2.0, max_timeout=12.0, cpu_cores=4)
    assert (limits.min_timeout, limits.max_timeout) == (2.0, 12.0)


def test_detected_limits_are_valid():
    limits = detect_platform_limits()
    assert 1 <= limits.initial_concurrency <= limits.max_concurrency
    assert get_platform()
