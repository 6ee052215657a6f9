"""
Deterministic stand-ins for the XrayDB-backed physics.

A strong absorber "S" (edge step 350 cm^2/g) in a nearly transparent
diluent "D", with a retained signal that falls with sample fraction and
pellet thickness.
"""

import math

EDGE = 7112.0


class StubEvaluator:
    """Step-function attenuation and a smooth suppression model."""

    mu = {
        "S": (50.0, 400.0),
        "D": (2.0, 2.1),
    }

    def __init__(self, absorber="Fe", edge="K", fail_suppression=False):
        self.absorber = absorber
        self.edge = edge
        self.fail_suppression = fail_suppression

    def edge_energy(self, absorber, edge):
        return EDGE

    def mass_mu(self, material, energies):
        if material not in self.mu:
            raise ValueError("Could not parse formula '%s'" % material)
        below, above = self.mu[material]
        return [above if e > EDGE else below for e in energies]

    def suppression(self, mixture, energies, phi_rad, theta_rad, chi):
        if self.fail_suppression:
            raise ValueError("no tables")
        total = mixture.sample_mass_mg + mixture.diluent_mass_mg
        w = mixture.sample_mass_mg / total
        depth = 1.0 - math.exp(-mixture.thickness_cm / 0.01)
        return [1.0 - 0.3 * w * depth for _ in energies]


def fake_fluxes(gases, volts, length_cm, energy, sensitivity=1e-6,
                with_compton=True, both_carriers=False, pressure_torr=760.0):
    """Records the call; 1e9 photons/s in, 40% absorbed."""
    fake_fluxes.last_call = {
        "gases": [(g.name, g.fraction) for g in gases],
        "volts": volts,
        "length_cm": length_cm,
        "energy": energy,
        "pressure_torr": pressure_torr,
    }
    return {
        "incident": 1e9,
        "transmitted": 6e8,
        "photo": 3.9e8,
        "incoherent": 1e7,
        "coherent": 0.0,
        "absorption_percent": 40.0,
        "effective_length_cm": length_cm * pressure_torr / 760.0,
    }
