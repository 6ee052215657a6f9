"""
Sample/diluent mass balance for a transmission pellet.

Two unknowns (sample mass, diluent mass), two equations:

    m_s + m_d                         = M
    ds * (m_s / A) + dd * (m_d / A)   = target

where ds, dd are the sample and diluent edge steps (cm^2/g), M the total
pellet mass and A the illuminated area (cm^2). Closed form:

    m_s = (target * A - dd * M) / (ds - dd)
    m_d = M - m_s

Negative masses are returned unchanged: they mean the target is out of
reach for this pellet, and the caller decides how to report that.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import math

from sampleprep.constants import DEGENERATE_EPS, MG_PER_G


class MixResult:
    """
    Solved sample/diluent split.

    Parameters
    ----------
    sample_mass_mg : float
        Sample mass in mg. May be negative (target unreachable).
    diluent_mass_mg : float
        Diluent mass in mg. May be negative (target unreachable).
    sample_fraction_pct : float
        Sample mass as a percentage of the total mass.
    achieved_edge_step : float
        Edge step recomputed from the solved masses.
    """

    def __init__(self, sample_mass_mg, diluent_mass_mg, sample_fraction_pct,
                 achieved_edge_step):
        self.sample_mass_mg = sample_mass_mg
        self.diluent_mass_mg = diluent_mass_mg
        self.sample_fraction_pct = sample_fraction_pct
        self.achieved_edge_step = achieved_edge_step

    def is_physical(self, tolerance_mg):
        """True when neither mass is below -tolerance_mg."""
        return (self.sample_mass_mg >= -tolerance_mg
                and self.diluent_mass_mg >= -tolerance_mg)

    def to_dict(self):
        return {
            "sample_mass_mg": self.sample_mass_mg,
            "diluent_mass_mg": self.diluent_mass_mg,
            "sample_fraction_pct": self.sample_fraction_pct,
            "achieved_edge_step": self.achieved_edge_step,
        }


class AbsorptionMetrics:
    """
    Total absorption (mu*t) and transmission just below and above the edge.

    Transmission is exp(-absorption) on each side.
    """

    def __init__(self, absorption_below, absorption_above):
        self.absorption_below = absorption_below
        self.absorption_above = absorption_above
        self.transmission_below = math.exp(-absorption_below)
        self.transmission_above = math.exp(-absorption_above)

    def to_dict(self):
        return {
            "absorption_below": self.absorption_below,
            "absorption_above": self.absorption_above,
            "transmission_below": self.transmission_below,
            "transmission_above": self.transmission_above,
        }


def _finite(*values):
    try:
        return all(math.isfinite(v) for v in values)
    except TypeError:
        return False


def compute_sample_weight_mix(sample_edge_step, diluent_edge_step,
                              total_mass_mg, area_cm2, target_edge_step):
    """
    Solve the sample/diluent mass split for a target edge step.

    Parameters
    ----------
    sample_edge_step : float
        Sample edge step (mu above minus mu below), cm^2/g.
    diluent_edge_step : float
        Diluent edge step, cm^2/g.
    total_mass_mg : float
        Total pellet mass in mg. Must be > 0.
    area_cm2 : float
        Illuminated area in cm^2. Must be > 0.
    target_edge_step : float
        Requested edge step (dimensionless). Must be > 0.

    Returns
    -------
    MixResult or None
        None for malformed input or a degenerate system (equal edge steps).
    """
    if not _finite(sample_edge_step, diluent_edge_step, total_mass_mg,
                   area_cm2, target_edge_step):
        return None
    if not (total_mass_mg > 0 and area_cm2 > 0 and target_edge_step > 0):
        return None
    denominator = sample_edge_step - diluent_edge_step
    if abs(denominator) < DEGENERATE_EPS:
        return None

    total_mass_g = total_mass_mg / MG_PER_G
    sample_mass_g = ((target_edge_step * area_cm2
                      - diluent_edge_step * total_mass_g) / denominator)
    diluent_mass_g = total_mass_g - sample_mass_g

    achieved = (sample_edge_step * (sample_mass_g / area_cm2)
                + diluent_edge_step * (diluent_mass_g / area_cm2))

    return MixResult(
        sample_mass_mg=sample_mass_g * MG_PER_G,
        diluent_mass_mg=diluent_mass_g * MG_PER_G,
        sample_fraction_pct=(sample_mass_g / total_mass_g) * 100.0,
        achieved_edge_step=achieved,
    )


def compute_absorption_metrics(sample_mu_below, sample_mu_above,
                               diluent_mu_below, diluent_mu_above,
                               sample_mass_mg, diluent_mass_mg, area_cm2):
    """
    Absorption and transmission of a two-component pellet either side of an edge.

    mu*t = mu_sample * (m_s / A) + mu_diluent * (m_d / A), with mass
    attenuation coefficients in cm^2/g and masses converted to grams.

    Returns
    -------
    AbsorptionMetrics or None
        None if area_cm2 <= 0 or either absorption is non-finite.
    """
    if not (_finite(area_cm2) and area_cm2 > 0):
        return None
    sample_mass_g = sample_mass_mg / MG_PER_G
    diluent_mass_g = diluent_mass_mg / MG_PER_G

    absorption_below = (sample_mu_below * (sample_mass_g / area_cm2)
                        + diluent_mu_below * (diluent_mass_g / area_cm2))
    absorption_above = (sample_mu_above * (sample_mass_g / area_cm2)
                        + diluent_mu_above * (diluent_mass_g / area_cm2))

    if not _finite(absorption_below, absorption_above):
        return None
    return AbsorptionMetrics(absorption_below, absorption_above)
