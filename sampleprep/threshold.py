"""
Largest feasible value under a retained-signal constraint.

Finds the largest x in [min_value, max_value] whose evaluated retained
fluorescence signal (percent) stays at or above a target. The same solver
serves two physical searches:

    sample mass fraction -> min retained signal %   (maximum safe dilution)
    pellet thickness     -> min retained signal %   (maximum safe thickness)

Both responses are expected to be non-increasing in x, but the evaluator
is not trusted point by point: it may raise, return None or NaN, or be
locally noisy. The search is therefore two-phase:

    1. Coarse scan at evenly spaced points. Remember the largest passing
       point and the first failing point above it. Failed evaluations are
       skipped, not counted as threshold failures.
    2. Bisection between that passing point and that failing point.

Outcomes are returned as data, never raised:

    FeasibleResult    (feasible = True)  value, achieved value, iterations,
                                         converged flag, optional note
    InfeasibleResult  (feasible = False) reason, best value, best achieved

A result never claims convergence it did not reach: if the coarse bracket
does not straddle the target on re-evaluation, the sampled passing point
is returned with converged = False and a note saying why. During
bisection, midpoints with no data still shrink the bracket, but convergence
is judged only against the closest point actually evaluated as failing.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

from sampleprep.constants import (
    FLUORESCENCE_MIN_PERCENT,
    THRESHOLD_MAX_ITERATIONS,
    THRESHOLD_MAX_SAMPLE_POINTS,
    THRESHOLD_MIN_SAMPLE_POINTS,
    THRESHOLD_SAMPLE_POINTS,
    THRESHOLD_TARGET_TOLERANCE,
    THRESHOLD_VALUE_TOLERANCE,
)

log = logging.getLogger(__name__)

NOTE_UPPER_BOUND = "Feasible at upper search bound"
NOTE_NO_FAILING_POINT = "No failing point found above sampled feasible values"
NOTE_UNSTABLE = "Fell back to sampled feasible point due to unstable evaluation"
NOTE_NOT_BRACKETED = (
    "Fell back to sampled feasible point due to non-bracketed evaluations")
NOTE_OPEN_BRACKET = "Final bracket did not close within the iteration limit"
NOTE_UNEVALUATED = "Bracket shrunk past unevaluated midpoints"


class FeasibleResult:
    """
    A feasible threshold solution.

    Parameters
    ----------
    value : float
        Largest value found that meets the target (the passing bracket end).
    achieved_value : float
        Evaluated retained signal (percent) at `value`.
    iterations : int
        Bisection iterations performed (0 when no refinement ran).
    converged : bool
        True only if the value or target tolerance was actually met.
    note : str or None
        Explains direct returns and fallbacks.
    """

    feasible = True

    def __init__(self, value, achieved_value, iterations, converged,
                 note=None):
        self.value = value
        self.achieved_value = achieved_value
        self.iterations = iterations
        self.converged = converged
        self.note = note

    def to_dict(self):
        return {
            "feasible": True,
            "value": self.value,
            "achieved_value": self.achieved_value,
            "iterations": self.iterations,
            "converged": self.converged,
            "note": self.note,
        }


class InfeasibleResult:
    """
    No sampled value meets the target.

    Parameters
    ----------
    reason : str
        Human-readable explanation including the searched interval.
    best_value : float
        Value to fall back to for a best-effort case (the lower bound).
    best_achieved_value : float
        Best retained signal seen, or -inf when nothing evaluated.
    """

    feasible = False

    def __init__(self, reason, best_value, best_achieved_value):
        self.reason = reason
        self.best_value = best_value
        self.best_achieved_value = best_achieved_value

    def to_dict(self):
        best = self.best_achieved_value
        return {
            "feasible": False,
            "reason": self.reason,
            "best_value": self.best_value,
            "best_achieved_value": best if math.isfinite(best) else None,
        }


def safe_evaluate(evaluate, x):
    """
    Call evaluate(x), mapping exceptions and non-finite output to None.

    Evaluator failure means "no data at this point"; it is never coerced to
    a number and never propagated.
    """
    try:
        y = evaluate(x)
    except Exception:
        log.debug("evaluator raised at x=%.6e", x, exc_info=True)
        return None
    if y is None:
        return None
    try:
        y = float(y)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(y):
        return None
    return y


def _valid_number(value):
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def solve_max_feasible(min_value, max_value, evaluate,
                       target=FLUORESCENCE_MIN_PERCENT,
                       target_tolerance=THRESHOLD_TARGET_TOLERANCE,
                       value_tolerance=THRESHOLD_VALUE_TOLERANCE,
                       max_iterations=THRESHOLD_MAX_ITERATIONS,
                       sample_points=THRESHOLD_SAMPLE_POINTS):
    """
    Largest value in [min_value, max_value] whose evaluation meets `target`.

    Parameters
    ----------
    min_value, max_value : float
        Search domain. Requires max_value > min_value.
    evaluate : callable
        x -> retained signal percent (float), or None / non-finite / raise
        on failure.
    target : float, optional
        Minimum acceptable retained signal (default 90.0).
    target_tolerance : float, optional
        Stop bisection once a passing y is within this of target
        (default 0.1).
    value_tolerance : float, optional
        Stop bisection once the bracket is narrower than this (default 1e-6).
    max_iterations : int, optional
        Bisection cap (default 80).
    sample_points : int, optional
        Coarse scan points (default 64, clamped to [8, 1024]).

    Returns
    -------
    FeasibleResult, InfeasibleResult or None
        None for malformed input.
    """
    if not (_valid_number(min_value) and _valid_number(max_value)):
        return None
    if not max_value > min_value:
        return None
    if not all(_valid_number(v) for v in
               (target, target_tolerance, value_tolerance, max_iterations,
                sample_points)):
        return None
    if not (target_tolerance > 0 and value_tolerance > 0
            and max_iterations > 0):
        return None
    sample_points = min(THRESHOLD_MAX_SAMPLE_POINTS,
                        max(THRESHOLD_MIN_SAMPLE_POINTS, int(sample_points)))

    # Phase 1: coarse scan
    best_x = -math.inf
    best_y = -math.inf
    seen_y = -math.inf
    first_fail_above = None
    span = max_value - min_value

    for i in range(sample_points):
        x = min_value + span * (i / (sample_points - 1))
        y = safe_evaluate(evaluate, x)
        if y is None:
            continue
        seen_y = max(seen_y, y)
        if y >= target and x > best_x:
            best_x = x
            best_y = y
            first_fail_above = None
            continue
        if (math.isfinite(best_x) and x > best_x and y < target
                and first_fail_above is None):
            first_fail_above = x

    if not math.isfinite(best_x):
        reason = "No value in [%.3e, %.3e] achieves min R >= %.1f%%" % (
            min_value, max_value, target)
        log.debug("threshold scan infeasible: %s", reason)
        return InfeasibleResult(reason, min_value, seen_y)

    if abs(best_x - max_value) <= value_tolerance or first_fail_above is None:
        if best_x >= max_value - value_tolerance:
            note = NOTE_UPPER_BOUND
        else:
            note = NOTE_NO_FAILING_POINT
        return FeasibleResult(best_x, best_y, 0, True, note)

    # Phase 2: refine between the passing and failing scan points
    low = best_x
    high = first_fail_above
    y_low = safe_evaluate(evaluate, low)
    y_high = safe_evaluate(evaluate, high)
    if y_low is None or y_high is None:
        log.debug("threshold bracket endpoint unstable at [%.6e, %.6e]",
                  low, high)
        return FeasibleResult(best_x, best_y, 0, False, NOTE_UNSTABLE)

    if y_low < target or y_high >= target:
        log.debug("threshold bracket not straddling target: y_low=%s "
                  "y_high=%s target=%s", y_low, y_high, target)
        return FeasibleResult(best_x, best_y, 0, False, NOTE_NOT_BRACKETED)

    # high may move onto midpoints with no data; failed_high is the closest
    # point above low actually evaluated below target
    failed_high = high
    iterations = 0
    while iterations < max_iterations and abs(high - low) > value_tolerance:
        iterations += 1
        mid = 0.5 * (low + high)
        y_mid = safe_evaluate(evaluate, mid)
        if y_mid is None:
            high = mid
            continue
        if y_mid >= target:
            low = mid
            y_low = y_mid
            if y_mid - target <= target_tolerance:
                break
        else:
            high = mid
            failed_high = mid

    converged = (abs(failed_high - low) <= value_tolerance
                 or abs(y_low - target) <= target_tolerance)
    if converged:
        note = None
    elif high != failed_high:
        note = NOTE_UNEVALUATED
    else:
        note = NOTE_OPEN_BRACKET
    if not converged:
        log.debug("threshold bisection stopped unconverged after %d "
                  "iterations: %s", iterations, note)
    return FeasibleResult(low, y_low, iterations, converged, note)


def solve_dilution_for_fluorescence(min_fraction, max_fraction, evaluate,
                                    **options):
    """
    Largest sample mass fraction whose retained signal meets the target.

    `evaluate` maps a sample mass fraction to the minimum retained signal
    percent over the energy grid. See solve_max_feasible for options.
    """
    return solve_max_feasible(min_fraction, max_fraction, evaluate, **options)


def solve_thickness_for_fluorescence(min_thickness_cm, max_thickness_cm,
                                     evaluate, **options):
    """
    Largest pellet thickness (cm) whose retained signal meets the target.

    `evaluate` maps a thickness in cm to the minimum retained signal percent
    over the energy grid. See solve_max_feasible for options.
    """
    return solve_max_feasible(min_thickness_cm, max_thickness_cm, evaluate,
                              **options)
