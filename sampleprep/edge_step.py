"""
Target edge step for a requested total absorption.

Given a fixed pellet (total mass, area) made of a sample and a diluent,
every target edge step in the reachable range maps to one mass split
(sampleprep.mixing), and every mass split has a total absorption just
above the edge. This module inverts that chain: find the edge step whose
mixture absorbs exactly `target_absorption` above the edge (mu*t = 4 by
default), by bisection over the physically reachable edge-step domain.

The reachable domain is loading * [min(ds, dd), max(ds, dd)] with
loading = M / A (g/cm^2). Trial edge steps whose solved masses go
negative beyond tolerance are rejected as undefined. If the absorption
target is not bracketed by the domain endpoints there is no answer and
None is returned; the caller reports "target absorption unreachable".

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import math

from sampleprep.constants import (
    ABSORPTION_MAX,
    BISECT_MAX_ITERATIONS,
    BISECT_TOLERANCE,
    DOMAIN_EPS,
    MASS_TOLERANCE_MG,
    MG_PER_G,
)
from sampleprep.mixing import compute_sample_weight_mix


class SuggestedTargetInput:
    """
    Inputs for the mu*t target search.

    Parameters
    ----------
    sample_edge_step, diluent_edge_step : float
        Edge steps in cm^2/g.
    sample_mu_above, diluent_mu_above : float
        Mass attenuation coefficients just above the edge, cm^2/g.
    total_mass_mg : float
        Total pellet mass in mg.
    area_cm2 : float
        Illuminated area in cm^2.
    target_absorption : float, optional
        Total absorption to reach above the edge (default 4.0).
    """

    def __init__(self, sample_edge_step, diluent_edge_step, sample_mu_above,
                 diluent_mu_above, total_mass_mg, area_cm2,
                 target_absorption=ABSORPTION_MAX):
        self.sample_edge_step = sample_edge_step
        self.diluent_edge_step = diluent_edge_step
        self.sample_mu_above = sample_mu_above
        self.diluent_mu_above = diluent_mu_above
        self.total_mass_mg = total_mass_mg
        self.area_cm2 = area_cm2
        self.target_absorption = target_absorption

    def is_valid(self):
        values = (self.sample_edge_step, self.diluent_edge_step,
                  self.sample_mu_above, self.diluent_mu_above,
                  self.total_mass_mg, self.area_cm2, self.target_absorption)
        try:
            if not all(math.isfinite(v) for v in values):
                return False
        except TypeError:
            return False
        return (self.total_mass_mg > 0 and self.area_cm2 > 0
                and self.target_absorption > 0)


def absorption_at_edge_step(target_edge_step, inp):
    """
    Total absorption above the edge for the mix that hits target_edge_step.

    Returns None when the mix cannot be solved or either mass is negative
    beyond MASS_TOLERANCE_MG. Masses inside the tolerance are clamped to 0.
    """
    mix = compute_sample_weight_mix(
        inp.sample_edge_step,
        inp.diluent_edge_step,
        inp.total_mass_mg,
        inp.area_cm2,
        target_edge_step,
    )
    if mix is None or not mix.is_physical(MASS_TOLERANCE_MG):
        return None
    sample_mass_g = max(0.0, mix.sample_mass_mg) / MG_PER_G
    diluent_mass_g = max(0.0, mix.diluent_mass_mg) / MG_PER_G
    absorption = (inp.sample_mu_above * (sample_mass_g / inp.area_cm2)
                  + inp.diluent_mu_above * (diluent_mass_g / inp.area_cm2))
    return absorption if math.isfinite(absorption) else None


def reachable_edge_step_range(sample_edge_step, diluent_edge_step,
                              total_mass_mg, area_cm2):
    """
    Edge steps reachable with non-negative masses for a fixed pellet.

    Returns
    -------
    tuple of float
        (min_edge_step, max_edge_step) = loading * (min, max) of the two
        component edge steps, loading = total mass (g) / area (cm^2).
    """
    loading = (total_mass_mg / MG_PER_G) / area_cm2
    return (min(sample_edge_step, diluent_edge_step) * loading,
            max(sample_edge_step, diluent_edge_step) * loading)


def compute_suggested_target_edge_step(inp):
    """
    Find the edge step whose mixture reaches inp.target_absorption above the edge.

    Parameters
    ----------
    inp : SuggestedTargetInput

    Returns
    -------
    float or None
        The edge step, or None when the inputs are malformed, the reachable
        domain collapses, an endpoint is physically invalid, or the target
        absorption is not bracketed by the domain.
    """
    if not inp.is_valid():
        return None

    lo, hi = reachable_edge_step_range(
        inp.sample_edge_step, inp.diluent_edge_step,
        inp.total_mass_mg, inp.area_cm2)
    if abs(hi - lo) < DOMAIN_EPS:
        return None

    # Keep the left bound off zero by an amount relative to the domain scale
    edge_eps = max(1e-9, 1e-6 * max(1.0, abs(lo), abs(hi)))
    left = max(lo, edge_eps)
    right = hi
    if not right > left:
        return None

    a_left = absorption_at_edge_step(left, inp)
    a_right = absorption_at_edge_step(right, inp)
    if a_left is None or a_right is None:
        return None
    f_left = a_left - inp.target_absorption
    f_right = a_right - inp.target_absorption

    if abs(f_left) < BISECT_TOLERANCE:
        return left
    if abs(f_right) < BISECT_TOLERANCE:
        return right
    if f_left * f_right > 0:
        return None

    for _ in range(BISECT_MAX_ITERATIONS):
        mid = 0.5 * (left + right)
        a_mid = absorption_at_edge_step(mid, inp)
        if a_mid is None:
            return None
        f_mid = a_mid - inp.target_absorption
        if abs(f_mid) < BISECT_TOLERANCE or abs(right - left) < BISECT_TOLERANCE:
            return mid
        if f_left * f_mid <= 0:
            right = mid
        else:
            left = mid
            f_left = f_mid

    suggested = 0.5 * (left + right)
    return suggested if math.isfinite(suggested) else None
