"""
Reference presets for the sample preparation and ion chamber tools.

Diluents: common low-Z pellet binders with their tabulated bulk densities.
Gases: ion chamber fill gases, keyed by the short label the dashboard
shows, mapped to the names xraydb knows them by.

IMPORTANT: No unicode characters (Windows charmap constraint).
"""

# Each diluent entry contains:
#   id: short label
#   formula: chemical formula passed to the evaluator
#   density: bulk density in g/cm^3
DILUENTS = [
    {"id": "BN", "formula": "BN", "density": 2.1},
    {"id": "Cellulose", "formula": "C6H10O5", "density": 1.5},
    {"id": "SiO2", "formula": "SiO2", "density": 2.2},
    {"id": "Al2O3", "formula": "Al2O3", "density": 3.95},
    {"id": "PE", "formula": "C2H4", "density": 0.93},
]

# Short label -> xraydb gas name
GASES = {
    "He": "helium",
    "N2": "nitrogen",
    "Ne": "neon",
    "Ar": "argon",
    "Kr": "krypton",
    "Xe": "xenon",
}

# Planner defaults: Fe2O3 diluted in BN, Fe K edge, 13 mm pellet
DEFAULT_PLAN = {
    "sample": "Fe2O3",
    "diluent": "BN",
    "absorber": "Fe",
    "edge": "K",
    "sample_density": 5.24,
    "diluent_density": 2.1,
    "total_mass_mg": 150.0,
    "diameter_mm": 13.0,
    "phi_deg": 45.0,
    "theta_deg": 45.0,
    "target_edge_step": 1.0,
    "chi_assumed": 0.1,
    "e_start": 7000.0,
    "e_end": 8000.0,
    "e_step": 2.0,
}

# Ion chamber defaults: 15 cm nitrogen chamber at 10 keV
DEFAULT_IONCHAMBER = {
    "gases": [{"name": "N2", "fraction": 1.0}],
    "energy": 10000.0,
    "length_cm": 15.0,
    "pressure_torr": 760.0,
    "volts": 1.0,
    "sensitivity": 1e-6,
    "with_compton": True,
    "both_carriers": False,
}


def get_diluent(diluent_id):
    """Return a diluent preset by id, or None."""
    for d in DILUENTS:
        if d["id"] == diluent_id:
            return d
    return None


def gas_name(label):
    """xraydb gas name for a dashboard label; unknown labels pass through."""
    return GASES.get(label, label)


def is_known_gas(name):
    """True for a dashboard label or an xraydb gas name from GASES."""
    return name in GASES or name in GASES.values()


def get_all_presets():
    return {
        "diluents": DILUENTS,
        "gases": sorted(GASES),
        "plan": DEFAULT_PLAN,
        "ionchamber": DEFAULT_IONCHAMBER,
    }
