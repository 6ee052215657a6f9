"""
XrayDB-backed physics evaluator for the planner and the web services.

The solvers in this package never compute a cross section themselves; they
take evaluator callables. This module is the concrete evaluator the web
services inject, built on the Elam tables shipped with the `xraydb`
package:

    edge_energy(absorber, edge)    edge energy in eV
    mass_mu(formula, energies)     mass attenuation mu/rho (cm^2/g)
    suppression(mixture, ...)      exact self-absorption suppression ratio
    ionchamber_fluxes(...)         ion chamber fluxes for a gas mixture

Exact suppression ratio for a pellet of thickness d (Booth expression, no
series expansion):

    R(E, chi) = ( F(E, chi) - 1 ) / chi

    F = [ (1 - exp(-A b)) / (1 - exp(-alpha b)) ] * [ alpha (1 + chi) / A ]

    A     = alpha + mu_a(E) chi
    alpha = mu_T(E) + g mu_f
    g     = sin(phi) / sin(theta)
    b     = d / sin(phi)

mu_T and mu_a are linear photo-absorption coefficients (cm^-1) of the
whole pellet and of the absorber alone; mu_f is the pellet attenuation at
the absorber emission lines, weighted by line intensity.

Errors from xraydb (unknown element, formula, edge) are raised as
ValueError with a readable message.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

import numpy as np
import xraydb

from sampleprep.constants import MAX_ENERGY_POINTS, REFERENCE_PRESSURE_TORR

log = logging.getLogger(__name__)


def energy_grid(start, stop, step):
    """
    Evenly spaced energies from start to stop inclusive, in eV.

    Raises
    ------
    ValueError
        For a non-positive step, an empty range, or more than
        MAX_ENERGY_POINTS points.
    """
    start, stop, step = float(start), float(stop), float(step)
    if not all(math.isfinite(v) for v in (start, stop, step)):
        raise ValueError("Energy range must be finite")
    if step <= 0:
        raise ValueError("Energy step must be > 0")
    if stop <= start:
        raise ValueError("Energy end must be greater than start")
    n = int(math.floor((stop - start) / step + 1e-9)) + 1
    if n > MAX_ENERGY_POINTS:
        raise ValueError("Energy range has %d points (max %d)"
                         % (n, MAX_ENERGY_POINTS))
    return [start + i * step for i in range(n)]


def mass_fractions(formula):
    """
    Element mass fractions of a chemical formula.

    Returns
    -------
    dict
        Element symbol -> mass fraction (sums to 1).
    """
    if not formula or not str(formula).strip():
        raise ValueError("Formula must not be empty")
    try:
        counts = xraydb.chemparse(formula)
    except (ValueError, KeyError) as e:
        raise ValueError("Could not parse formula '%s': %s" % (formula, e))
    if not counts:
        raise ValueError("Could not parse formula '%s'" % formula)
    masses = {}
    for symbol, count in counts.items():
        try:
            masses[symbol] = count * xraydb.atomic_mass(symbol)
        except (ValueError, KeyError, TypeError):
            raise ValueError("Unknown element '%s' in '%s'" % (symbol, formula))
    total = sum(masses.values())
    if not (total > 0 and math.isfinite(total)):
        raise ValueError("Formula '%s' has no mass" % formula)
    return {symbol: m / total for symbol, m in masses.items()}


def mix_fractions(first, first_mass, second, second_mass):
    """Mass-weighted combination of two mass-fraction dicts."""
    total = first_mass + second_mass
    if not total > 0:
        raise ValueError("Mixture has no mass")
    combined = {}
    for fractions, mass in ((first, first_mass), (second, second_mass)):
        for symbol, w in fractions.items():
            combined[symbol] = combined.get(symbol, 0.0) + w * mass / total
    return combined


def _mu_mass(fractions, energies, kind):
    mu = np.zeros_like(energies)
    for symbol, w in fractions.items():
        mu += w * np.asarray(xraydb.mu_elam(symbol, energies, kind=kind),
                             dtype=float)
    return mu


def _one_minus_exp_neg(x):
    return -np.expm1(-np.clip(x, 0.0, 700.0))


class XrayEvaluator:
    """
    Physics evaluator for one absorber/edge.

    Parameters
    ----------
    absorber : str
        Absorbing element symbol (e.g. "Fe").
    edge : str
        Absorption edge (e.g. "K").
    kind : str, optional
        Cross section used for mass_mu (default "total").
    """

    def __init__(self, absorber, edge, kind="total"):
        self.absorber = absorber
        self.edge = edge
        self.kind = kind
        self._fractions = {}

    def fractions(self, formula):
        if formula not in self._fractions:
            self._fractions[formula] = mass_fractions(formula)
        return self._fractions[formula]

    def edge_energy(self, absorber, edge):
        try:
            found = xraydb.xray_edge(absorber, edge)
        except (ValueError, KeyError) as e:
            raise ValueError("Unknown absorber '%s': %s" % (absorber, e))
        if found is None:
            raise ValueError("%s has no %s edge" % (absorber, edge))
        return float(found.energy)

    def mass_mu(self, formula, energies):
        """Mass attenuation coefficient (cm^2/g) of `formula` at each energy."""
        e = np.asarray(energies, dtype=float)
        return _mu_mass(self.fractions(formula), e, self.kind).tolist()

    def fluorescence_mu(self, fractions, density):
        """
        Intensity-weighted linear attenuation at the absorber emission lines.

        Returns
        -------
        tuple of float
            (mu_f in cm^-1, weighted emission energy in eV)
        """
        lines = xraydb.xray_lines(self.absorber, initial_level=self.edge)
        weights = []
        line_energies = []
        for line in lines.values():
            if math.isfinite(line.intensity) and line.intensity > 0:
                weights.append(line.intensity)
                line_energies.append(line.energy)
        if not weights:
            raise ValueError("%s %s has no positive-intensity emission lines"
                             % (self.absorber, self.edge))
        weights = np.asarray(weights, dtype=float)
        line_energies = np.asarray(line_energies, dtype=float)
        mu_lines = density * _mu_mass(fractions, line_energies, "photo")
        w_sum = weights.sum()
        return (float((weights * mu_lines).sum() / w_sum),
                float((weights * line_energies).sum() / w_sum))

    def suppression(self, mixture, energies, phi_rad, theta_rad, chi):
        """
        Exact retained-signal fraction R(E, chi) for a pellet mixture.

        Parameters
        ----------
        mixture : PelletMixture
            Sample/diluent identifiers, masses (mg), density (g/cm^3) and
            thickness (cm).
        energies : sequence of float
            Incident energies in eV.
        phi_rad, theta_rad : float
            Incident and exit angles.
        chi : float
            Assumed EXAFS amplitude (non-zero).

        Returns
        -------
        list of float
            R at each energy (1.0 means no suppression).
        """
        if not chi or not math.isfinite(chi):
            raise ValueError("chi must be finite and non-zero")
        sin_phi = math.sin(phi_rad)
        sin_theta = math.sin(theta_rad)
        if sin_phi <= 0 or sin_theta <= 0:
            raise ValueError("angles must have positive sine")
        density = mixture.density_g_cm3
        thickness = mixture.thickness_cm
        if not (density > 0 and thickness > 0):
            raise ValueError("density and thickness must be > 0")

        fractions = mix_fractions(
            self.fractions(mixture.sample), mixture.sample_mass_mg,
            self.fractions(mixture.diluent), mixture.diluent_mass_mg)
        w_absorber = fractions.get(self.absorber)
        if not w_absorber:
            raise ValueError("Absorber %s not found in the mixture"
                             % self.absorber)

        e = np.asarray(energies, dtype=float)
        mu_total = density * _mu_mass(fractions, e, "photo")
        mu_a = density * w_absorber * np.asarray(
            xraydb.mu_elam(self.absorber, e, kind="photo"), dtype=float)
        mu_f, _ = self.fluorescence_mu(fractions, density)

        g = sin_phi / sin_theta
        b = thickness / sin_phi
        alpha = mu_total + g * mu_f
        big_a = alpha + mu_a * chi

        denom = _one_minus_exp_neg(alpha * b)
        if np.any(np.abs(denom) < 1e-300) or np.any(np.abs(big_a) < 1e-300):
            raise ValueError("unstable suppression denominator")
        ratio = (_one_minus_exp_neg(big_a * b) / denom) * (
            alpha * (1.0 + chi) / big_a)
        r = (ratio - 1.0) / chi
        if not np.all(np.isfinite(r)):
            raise ValueError("non-finite suppression factor")
        return r.tolist()


def ionchamber_fluxes(gases, volts, length_cm, energy, sensitivity=1e-6,
                      with_compton=True, both_carriers=False,
                      pressure_torr=REFERENCE_PRESSURE_TORR):
    """
    Incident and transmitted flux for an ion chamber gas fill.

    Parameters
    ----------
    gases : list of GasEntry
        Fill mixture. Entries at zero fraction are ignored.
    volts : float
        Measured amplifier output voltage.
    length_cm : float
        Active chamber length in cm (scaled by pressure / 760 torr).
    energy : float
        X-ray energy in eV.
    sensitivity : float, optional
        Amplifier sensitivity in A/V.

    Returns
    -------
    dict
        incident, transmitted, photo, incoherent, coherent (photons/s),
        absorption_percent and effective_length_cm.
    """
    fill = {g.name: g.fraction for g in gases if g.fraction > 0}
    if not fill:
        raise ValueError("Gas mixture has no component above zero fraction")
    effective_length = length_cm * (pressure_torr / REFERENCE_PRESSURE_TORR)
    try:
        flux = xraydb.ionchamber_fluxes(
            gas=fill, volts=volts, length=effective_length, energy=energy,
            sensitivity=sensitivity, with_compton=with_compton,
            both_carriers=both_carriers)
    except (ValueError, KeyError, TypeError, Warning) as e:
        # xraydb raises a bare Warning for materials it has no density for
        log.warning("ionchamber_fluxes failed for %s: %s", fill, e)
        raise ValueError("Could not compute ion chamber fluxes: %s" % e)

    incident = float(flux.incident)
    transmitted = float(flux.transmitted)
    absorption = ((incident - transmitted) / incident * 100.0
                  if incident > 0 else 0.0)
    return {
        "incident": incident,
        "transmitted": transmitted,
        "photo": float(flux.photo),
        "incoherent": float(flux.incoherent),
        "coherent": float(flux.coherent),
        "absorption_percent": absorption,
        "effective_length_cm": effective_length,
    }
