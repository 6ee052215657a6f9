"""
Tests for the largest-feasible-value threshold solver.

The evaluator is deliberately unreliable in some tests: it raises, returns
None or NaN, or disagrees with itself between calls.
"""

import math
import pytest
from sampleprep.constants import THRESHOLD_MAX_SAMPLE_POINTS
from sampleprep.threshold import (
    NOTE_NO_FAILING_POINT,
    NOTE_NOT_BRACKETED,
    NOTE_OPEN_BRACKET,
    NOTE_UNEVALUATED,
    NOTE_UNSTABLE,
    NOTE_UPPER_BOUND,
    solve_dilution_for_fluorescence,
    solve_max_feasible,
    solve_thickness_for_fluorescence,
)


def linear(x):
    return 100.0 - 20.0 * x


class TestMonotoneEvaluator:

    def test_linear_crossing(self):
        result = solve_max_feasible(0.0, 1.0, linear, target=90.0)
        assert result.feasible
        assert result.value == pytest.approx(0.5, abs=0.01)
        assert result.achieved_value >= 90.0
        assert result.converged
        assert result.iterations > 0

    def test_returns_passing_end(self):
        result = solve_max_feasible(0.0, 1.0, linear, target=90.0,
                                    target_tolerance=1e-9,
                                    value_tolerance=1e-10)
        assert linear(result.value) >= 90.0
        assert result.value == pytest.approx(0.5, abs=1e-6)

    def test_feasible_everywhere(self):
        result = solve_max_feasible(0.0, 2.0, lambda x: 99.0)
        assert result.feasible
        assert result.value == 2.0
        assert result.iterations == 0
        assert result.note == NOTE_UPPER_BOUND

    def test_infeasible_constant(self):
        result = solve_max_feasible(0.0, 1.0, lambda x: 85.0, target=90.0)
        assert not result.feasible
        assert result.best_value == 0.0
        assert result.best_achieved_value == 85.0
        assert "[0.000e+00, 1.000e+00]" in result.reason

    def test_infeasible_to_dict_hides_minus_inf(self):
        result = solve_max_feasible(0.0, 1.0, lambda x: None)
        assert not result.feasible
        assert result.to_dict()["best_achieved_value"] is None


class TestUnstableEvaluator:

    def test_raising_points_are_skipped(self):
        def evaluate(x):
            if 0.2 < x < 0.3:
                raise ArithmeticError("unstable")
            return linear(x)

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.value == pytest.approx(0.5, abs=0.01)

    def test_nan_points_are_skipped(self):
        def evaluate(x):
            return math.nan if x > 0.9 else linear(x)

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.value == pytest.approx(0.5, abs=0.01)

    def test_failures_above_pass_region(self):
        """Failed evaluations above the passing region are not failures."""
        def evaluate(x):
            return 95.0 if x <= 0.5 else None

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.note == NOTE_NO_FAILING_POINT
        assert result.value <= 0.5

    def test_no_false_convergence(self):
        """A bracket that stops straddling on re-evaluation falls back."""
        calls = {}

        def evaluate(x):
            calls[x] = calls.get(x, 0) + 1
            if calls[x] > 1:
                return 95.0
            return linear(x)

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.converged is False
        assert result.note == NOTE_NOT_BRACKETED
        assert result.iterations == 0

    def test_unstable_bracket_endpoint(self):
        """An endpoint that stops evaluating falls back unconverged."""
        calls = {}

        def evaluate(x):
            calls[x] = calls.get(x, 0) + 1
            if calls[x] > 1:
                return None
            return linear(x)

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.converged is False
        assert result.note == NOTE_UNSTABLE
        assert result.iterations == 0
        assert result.value == pytest.approx(31.0 / 63.0)

    def test_no_data_midpoints_do_not_converge(self):
        """Only the scan grid evaluates; every bisection midpoint is empty."""
        grid = {0.0 + 1.0 * (i / 63) for i in range(64)}

        def evaluate(x):
            return linear(x) if x in grid else None

        result = solve_max_feasible(0.0, 1.0, evaluate, target=90.0)
        assert result.feasible
        assert result.iterations > 0
        assert result.converged is False
        assert result.note == NOTE_UNEVALUATED
        assert result.value == pytest.approx(31.0 / 63.0)
        assert result.achieved_value >= 90.0


class TestBisection:
    """Refinement between the last passing and first failing scan points."""

    def test_failing_midpoint_shrinks_failing_side(self):
        # 100 - 20x crosses 91 at 0.45; scan bracket is [28/63, 29/63] and
        # its midpoint fails, so one step leaves the passing end in place
        seen = []

        def evaluate(x):
            seen.append(x)
            return linear(x)

        result = solve_max_feasible(0.0, 1.0, evaluate, target=91.0,
                                    target_tolerance=1e-9, max_iterations=1)
        mid = 0.5 * (28.0 / 63.0 + 29.0 / 63.0)
        assert seen[-1] == pytest.approx(mid)
        assert linear(mid) < 91.0
        assert result.iterations == 1
        assert result.value == pytest.approx(28.0 / 63.0)

    def test_iteration_limit_leaves_open_bracket(self):
        result = solve_max_feasible(0.0, 1.0, linear, target=91.0,
                                    target_tolerance=1e-9, max_iterations=2)
        assert result.feasible
        assert result.iterations == 2
        assert result.converged is False
        assert result.note == NOTE_OPEN_BRACKET
        assert linear(result.value) >= 91.0

    def test_converges_with_enough_iterations(self):
        result = solve_max_feasible(0.0, 1.0, linear, target=91.0,
                                    target_tolerance=1e-9)
        assert result.converged is True
        assert result.note is None
        assert result.value == pytest.approx(0.45, abs=1e-6)


class TestMalformedInput:

    def test_empty_domain(self):
        assert solve_max_feasible(1.0, 1.0, linear) is None
        assert solve_max_feasible(1.0, 0.0, linear) is None

    def test_non_finite_bounds(self):
        assert solve_max_feasible(0.0, math.inf, linear) is None
        assert solve_max_feasible(math.nan, 1.0, linear) is None

    def test_bad_tolerances(self):
        assert solve_max_feasible(0.0, 1.0, linear, target_tolerance=0) is None
        assert solve_max_feasible(0.0, 1.0, linear, value_tolerance=-1) is None
        assert solve_max_feasible(0.0, 1.0, linear, max_iterations=0) is None

    def test_sample_points_floor(self):
        seen = []

        def evaluate(x):
            seen.append(x)
            return 50.0

        solve_max_feasible(0.0, 1.0, evaluate, sample_points=2)
        assert len(seen) == 8

    def test_sample_points_cap(self):
        seen = []

        def evaluate(x):
            seen.append(x)
            return 50.0

        solve_max_feasible(0.0, 1.0, evaluate, sample_points=1e6)
        assert len(seen) == THRESHOLD_MAX_SAMPLE_POINTS


class TestScenarioWrappers:

    def test_dilution(self):
        result = solve_dilution_for_fluorescence(
            1e-4, 1.0, lambda f: 100.0 - 30.0 * f)
        assert result.feasible
        assert result.value == pytest.approx(1.0 / 3.0, abs=0.01)

    def test_thickness(self):
        result = solve_thickness_for_fluorescence(
            1e-6, 0.1, lambda t: 100.0 * math.exp(-t / 0.05))
        assert result.feasible
        assert result.value == pytest.approx(-0.05 * math.log(0.9), rel=0.02)
