"""
Go/no-go verdicts for candidate sample geometries.

Transmission: the achieved edge step must lie in [0.2, 2.0] and the total
absorption just above the edge must not exceed mu*t = 4.0.
Fluorescence: the minimum retained signal over the energy grid must be at
least 90% of the infinitely dilute case.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

from sampleprep.constants import (
    ABSORPTION_MAX,
    EDGE_STEP_MAX,
    EDGE_STEP_MIN,
    FLUORESCENCE_MIN_PERCENT,
)


class Verdict:
    """Suitability flag plus a display label."""

    def __init__(self, suitable, label):
        self.suitable = suitable
        self.label = label

    def to_dict(self):
        return {"suitable": self.suitable, "label": self.label}


def classify_transmission(achieved_edge_step, absorption_above):
    """
    Classify a pellet for transmission measurement.

    The label names whichever constraint(s) failed.
    """
    edge_step_ok = EDGE_STEP_MIN <= achieved_edge_step <= EDGE_STEP_MAX
    absorption_ok = absorption_above <= ABSORPTION_MAX
    if edge_step_ok and absorption_ok:
        return Verdict(True, "Transmission suitable")

    window = "edge step out of %.1f-%.1f" % (EDGE_STEP_MIN, EDGE_STEP_MAX)
    ceiling = "mu*t above %.1f" % ABSORPTION_MAX
    if not edge_step_ok and not absorption_ok:
        reasons = "%s, %s" % (window, ceiling)
    elif not edge_step_ok:
        reasons = window
    else:
        reasons = ceiling
    return Verdict(False, "Transmission not suitable (%s)" % reasons)


def classify_fluorescence(min_retained_percent):
    """Classify a pellet for fluorescence measurement."""
    if min_retained_percent >= FLUORESCENCE_MIN_PERCENT:
        return Verdict(True, "Fluorescence suitable")
    return Verdict(False, "Moderate self-absorption")


def summarize_suitability(transmission_suitable, fluorescence_suitable):
    transmission = ("Transmission suitable" if transmission_suitable
                    else "Transmission not suitable")
    fluorescence = ("Fluorescence suitable" if fluorescence_suitable
                    else "Fluorescence not suitable")
    return "%s / %s" % (transmission, fluorescence)
