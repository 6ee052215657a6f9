"""
Sample preparation planner: labelled candidate pellets for one experiment.

Combines the mixing solver, the mu*t target search, the retained-signal
threshold solver and the classifiers into the candidate set the dashboard
shows for a sample/diluent pair:

    pure            - the whole pellet mass is sample
    target          - diluted to the requested edge step
    suggested       - diluted to mu*t = 4 above the edge (only when the
                      target case is not transmission suitable)
    fluo-dilution   - most concentrated mix that keeps R >= 90%
    fluo-thickness  - thickest sample-only pellet that keeps R >= 90%

Physics comes from an injected evaluator (see sampleprep.xray for the
XrayDB-backed one). The planner only needs three methods from it:

    edge_energy(absorber, edge)                        -> eV
    mass_mu(material, energies)                        -> cm^2/g per energy
    suppression(mixture, energies, phi, theta, chi)    -> retained fraction
                                                          per energy

Anything the planner cannot build is reported in `warnings` rather than
raised; only a malformed configuration or an unusable pure pellet raise
ValueError.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

from sampleprep.constants import (
    ABSORPTION_MAX,
    DEGENERATE_EPS,
    EDGE_OFFSET_EV,
    FLUORESCENCE_MIN_PERCENT,
    MASS_TOLERANCE_MG,
    MAX_ENERGY_POINTS,
    MAX_THICKNESS_CM,
    MAX_THICKNESS_DOUBLINGS,
    MG_PER_G,
    MIN_SAMPLE_FRACTION,
    MIN_THICKNESS_CM,
    MIN_THICKNESS_SEED_CM,
    PLANNER_DILUTION_VALUE_TOLERANCE,
    PLANNER_SAMPLE_POINTS,
    THRESHOLD_MAX_ITERATIONS,
    THRESHOLD_TARGET_TOLERANCE,
    THRESHOLD_VALUE_TOLERANCE,
)
from sampleprep.edge_step import (
    SuggestedTargetInput,
    compute_suggested_target_edge_step,
    reachable_edge_step_range,
)
from sampleprep.mixing import compute_absorption_metrics, compute_sample_weight_mix
from sampleprep.suitability import (
    classify_fluorescence,
    classify_transmission,
    summarize_suitability,
)
from sampleprep.threshold import (
    solve_dilution_for_fluorescence,
    solve_thickness_for_fluorescence,
)

log = logging.getLogger(__name__)


class PlanConfig:
    """
    Planner configuration.

    Parameters
    ----------
    sample : str
        Sample material identifier (a chemical formula for the XrayDB
        evaluator). Opaque to the planner.
    diluent : str
        Diluent material identifier.
    absorber : str
        Absorbing element symbol (e.g. "Fe").
    edge : str
        Absorption edge (e.g. "K").
    energies : list of float
        Energy grid in eV for the retained-signal curves. Capped at
        MAX_ENERGY_POINTS.
    target_edge_step : float, optional
        Requested transmission edge step (default 1.0).
    chi_assumed : float, optional
        Assumed EXAFS amplitude for the suppression ratio (default 0.1).
    sample_density, diluent_density : float, optional
        Densities in g/cm^3 (defaults 5.24 and 2.1, Fe2O3 in BN).
    total_mass_mg : float, optional
        Pellet mass in mg (default 150).
    diameter_mm : float, optional
        Pellet diameter in mm (default 13).
    phi_deg, theta_deg : float, optional
        Incident and fluorescence exit angles in degrees (default 45/45).
    """

    def __init__(self, sample, diluent, absorber, edge, energies,
                 target_edge_step=1.0, chi_assumed=0.1,
                 sample_density=5.24, diluent_density=2.1,
                 total_mass_mg=150.0, diameter_mm=13.0,
                 phi_deg=45.0, theta_deg=45.0):
        self.sample = str(sample or "").strip()
        self.diluent = str(diluent or "").strip()
        self.absorber = str(absorber or "").strip()
        self.edge = str(edge or "").strip()
        self.energies = [float(e) for e in (energies or [])][:MAX_ENERGY_POINTS]
        self.target_edge_step = float(target_edge_step)
        self.chi_assumed = float(chi_assumed)
        self.sample_density = float(sample_density)
        self.diluent_density = float(diluent_density)
        self.total_mass_mg = float(total_mass_mg)
        self.diameter_mm = float(diameter_mm)
        self.phi_deg = float(phi_deg)
        self.theta_deg = float(theta_deg)

    def validate(self):
        """
        Check the configuration.

        Raises
        ------
        ValueError
            With a user-facing message for the first problem found.
        """
        if not self.sample:
            raise ValueError("Enter a sample formula")
        if not self.diluent:
            raise ValueError("Enter a diluent formula")
        if not self.absorber:
            raise ValueError("Select an absorbing atom")
        if not self.edge:
            raise ValueError("Select an absorption edge")
        if not (math.isfinite(self.target_edge_step)
                and self.target_edge_step > 0):
            raise ValueError("Target edge step must be > 0")
        if not (math.isfinite(self.chi_assumed) and self.chi_assumed > 0):
            raise ValueError("Assumed chi must be finite and > 0")
        if not (self.sample_density > 0 and self.diluent_density > 0):
            raise ValueError("Sample and diluent densities must be > 0")
        if not (self.total_mass_mg > 0 and self.diameter_mm > 0):
            raise ValueError("Total pellet mass and pellet diameter must be > 0")
        if not 0 < self.phi_deg <= 90:
            raise ValueError("Incident angle phi must be in (0, 90] degrees")
        if not 0 < self.theta_deg <= 90:
            raise ValueError("Exit angle theta must be in (0, 90] degrees")
        if not self.energies:
            raise ValueError("Energy grid must not be empty")
        if not all(math.isfinite(e) and e > 0 for e in self.energies):
            raise ValueError("Energies must be finite and > 0 eV")

    @property
    def phi_rad(self):
        return math.radians(self.phi_deg)

    @property
    def theta_rad(self):
        return math.radians(self.theta_deg)

    @property
    def pellet_area_cm2(self):
        diameter_cm = self.diameter_mm / 10.0
        return math.pi * diameter_cm * diameter_cm / 4.0

    @property
    def effective_area_cm2(self):
        """Beam footprint: pellet area projected by the incident angle."""
        return self.pellet_area_cm2 * math.cos(self.phi_rad)

    def to_dict(self):
        return {
            "sample": self.sample,
            "diluent": self.diluent,
            "absorber": self.absorber,
            "edge": self.edge,
            "target_edge_step": self.target_edge_step,
            "chi_assumed": self.chi_assumed,
            "sample_density": self.sample_density,
            "diluent_density": self.diluent_density,
            "total_mass_mg": self.total_mass_mg,
            "diameter_mm": self.diameter_mm,
            "phi_deg": self.phi_deg,
            "theta_deg": self.theta_deg,
            "num_energies": len(self.energies),
        }


class PelletMixture:
    """What the suppression evaluator needs to know about a pellet."""

    def __init__(self, sample, diluent, sample_mass_mg, diluent_mass_mg,
                 density_g_cm3, thickness_cm):
        self.sample = sample
        self.diluent = diluent
        self.sample_mass_mg = sample_mass_mg
        self.diluent_mass_mg = diluent_mass_mg
        self.density_g_cm3 = density_g_cm3
        self.thickness_cm = thickness_cm


class CaseResult:
    """
    One labelled candidate pellet.

    Holds the composition, transmission metrics and verdict, the
    retained-signal summary and verdict, and the optional solver outputs
    (solved thickness, equivalent mass, solver note) for the cases that
    come from the threshold solver.
    """

    def __init__(self, case_id, title, target_edge_step, achieved_edge_step,
                 sample_mass_mg, diluent_mass_mg, sample_fraction_pct,
                 absorption, transmission, fluorescence_min_percent,
                 fluorescence_mean_percent, fluorescence, thickness_cm,
                 density_g_cm3, retained_percent, solved_thickness_cm=None,
                 equivalent_mass_mg=None, solver_note=None):
        self.case_id = case_id
        self.title = title
        self.target_edge_step = target_edge_step
        self.achieved_edge_step = achieved_edge_step
        self.sample_mass_mg = sample_mass_mg
        self.diluent_mass_mg = diluent_mass_mg
        self.sample_fraction_pct = sample_fraction_pct
        self.absorption = absorption
        self.transmission = transmission
        self.fluorescence_min_percent = fluorescence_min_percent
        self.fluorescence_mean_percent = fluorescence_mean_percent
        self.fluorescence = fluorescence
        self.combined_label = summarize_suitability(
            transmission.suitable, fluorescence.suitable)
        self.thickness_cm = thickness_cm
        self.density_g_cm3 = density_g_cm3
        self.retained_percent = retained_percent
        self.solved_thickness_cm = solved_thickness_cm
        self.equivalent_mass_mg = equivalent_mass_mg
        self.solver_note = solver_note

    def to_dict(self):
        result = {
            "id": self.case_id,
            "title": self.title,
            "target_edge_step": self.target_edge_step,
            "achieved_edge_step": self.achieved_edge_step,
            "sample_mass_mg": self.sample_mass_mg,
            "diluent_mass_mg": self.diluent_mass_mg,
            "sample_fraction_pct": self.sample_fraction_pct,
            "transmission_suitable": self.transmission.suitable,
            "transmission_label": self.transmission.label,
            "fluorescence_min_percent": self.fluorescence_min_percent,
            "fluorescence_mean_percent": self.fluorescence_mean_percent,
            "fluorescence_suitable": self.fluorescence.suitable,
            "fluorescence_label": self.fluorescence.label,
            "combined_label": self.combined_label,
            "thickness_cm": self.thickness_cm,
            "density_g_cm3": self.density_g_cm3,
            "retained_percent": self.retained_percent,
            "solved_thickness_cm": self.solved_thickness_cm,
            "equivalent_mass_mg": self.equivalent_mass_mg,
            "solver_note": self.solver_note,
        }
        result.update(self.absorption.to_dict())
        return result


class PlanResult:
    """Planner output: context numbers, candidate cases and warnings."""

    def __init__(self, config, edge_energy, sample_edge_step,
                 diluent_edge_step, reachable_edge_step, cases, warnings):
        self.config = config
        self.edge_energy = edge_energy
        self.sample_edge_step = sample_edge_step
        self.diluent_edge_step = diluent_edge_step
        self.reachable_edge_step = reachable_edge_step
        self.cases = cases
        self.warnings = warnings

    def case(self, case_id):
        """First case with the given id, or None."""
        for c in self.cases:
            if c.case_id == case_id:
                return c
        return None

    def to_dict(self):
        return {
            "config": self.config.to_dict(),
            "edge_energy": self.edge_energy,
            "effective_area_cm2": self.config.effective_area_cm2,
            "sample_edge_step": self.sample_edge_step,
            "diluent_edge_step": self.diluent_edge_step,
            "reachable_edge_step": list(self.reachable_edge_step),
            "cases": [c.to_dict() for c in self.cases],
            "warnings": list(self.warnings),
        }


class SamplePreparationPlanner:
    """
    Builds the candidate set for a PlanConfig using an injected evaluator.

    Parameters
    ----------
    evaluator : object
        Provides edge_energy(), mass_mu() and suppression(); see module
        docstring.
    target_percent : float, optional
        Minimum retained fluorescence signal (default 90.0).
    """

    def __init__(self, evaluator, target_percent=FLUORESCENCE_MIN_PERCENT):
        self.evaluator = evaluator
        self.target_percent = target_percent

    def plan(self, config):
        """
        Run the full planning pass.

        Returns
        -------
        PlanResult

        Raises
        ------
        ValueError
            If the configuration is invalid, the evaluator cannot provide
            edge or attenuation data, or the pure pellet cannot be built.
        """
        config.validate()
        if not config.effective_area_cm2 > 0:
            raise ValueError("Invalid pellet area/beam geometry")

        edge_energy = self.evaluator.edge_energy(config.absorber, config.edge)
        if not (edge_energy and math.isfinite(edge_energy)):
            raise ValueError("Could not determine edge energy")

        below = [edge_energy - EDGE_OFFSET_EV]
        above = [edge_energy + EDGE_OFFSET_EV]
        mu = {
            "sample_below": self.evaluator.mass_mu(config.sample, below)[0],
            "sample_above": self.evaluator.mass_mu(config.sample, above)[0],
            "diluent_below": self.evaluator.mass_mu(config.diluent, below)[0],
            "diluent_above": self.evaluator.mass_mu(config.diluent, above)[0],
        }
        if not all(math.isfinite(v) for v in mu.values()):
            raise ValueError("Could not compute attenuation for sample/diluent")

        sample_step = mu["sample_above"] - mu["sample_below"]
        diluent_step = mu["diluent_above"] - mu["diluent_below"]
        if abs(sample_step - diluent_step) < DEGENERATE_EPS:
            raise ValueError("Sample and diluent edge steps are too similar")

        builder = _CaseBuilder(self.evaluator, config, mu, sample_step,
                               diluent_step)
        reachable = reachable_edge_step_range(
            sample_step, diluent_step, config.total_mass_mg,
            config.effective_area_cm2)
        cases = []
        warnings = []

        pure = builder.build("pure", "Pure pellet", config.target_edge_step,
                             config.total_mass_mg, 0.0)
        if pure is None:
            raise ValueError("Could not evaluate the pure pellet case")
        cases.append(pure)

        target_case = self._target_case(builder, config, reachable, cases,
                                        warnings)
        if target_case is not None and not target_case.transmission.suitable:
            self._suggested_case(builder, config, mu, sample_step,
                                 diluent_step, cases, warnings)
        self._dilution_case(builder, config, cases, warnings)
        self._thickness_case(builder, config, pure, cases, warnings)

        log.info("planned %s in %s (%s %s): %d cases, %d warnings",
                 config.sample, config.diluent, config.absorber, config.edge,
                 len(cases), len(warnings))
        return PlanResult(config, edge_energy, sample_step, diluent_step,
                          reachable, cases, warnings)

    def _target_case(self, builder, config, reachable, cases, warnings):
        mix = compute_sample_weight_mix(
            builder.sample_step, builder.diluent_step, config.total_mass_mg,
            config.effective_area_cm2, config.target_edge_step)
        if mix is None:
            warnings.append(
                "Could not compute dilution for the selected target edge step")
            return None
        if not mix.is_physical(MASS_TOLERANCE_MG):
            warnings.append(
                "Target edge step %.3f is not reachable with non-negative "
                "masses for this pellet. Reachable range is approximately "
                "%.3f to %.3f." % (config.target_edge_step,
                                   max(0.0, reachable[0]),
                                   max(0.0, reachable[1])))
            return None
        case = builder.build("target", "Diluted for target",
                             config.target_edge_step, mix.sample_mass_mg,
                             mix.diluent_mass_mg)
        if case is None:
            warnings.append("Could not build the target dilution case from "
                            "the computed composition.")
            return None
        cases.append(case)
        return case

    def _suggested_case(self, builder, config, mu, sample_step, diluent_step,
                        cases, warnings):
        suggested = compute_suggested_target_edge_step(SuggestedTargetInput(
            sample_edge_step=sample_step,
            diluent_edge_step=diluent_step,
            sample_mu_above=mu["sample_above"],
            diluent_mu_above=mu["diluent_above"],
            total_mass_mg=config.total_mass_mg,
            area_cm2=config.effective_area_cm2,
            target_absorption=ABSORPTION_MAX,
        ))
        if suggested is None:
            warnings.append(
                "No feasible diluted composition reaches mu*t=4 with current "
                "mass, diameter, and formulas.")
            return
        mix = compute_sample_weight_mix(
            sample_step, diluent_step, config.total_mass_mg,
            config.effective_area_cm2, suggested)
        if mix is None:
            warnings.append(
                "Could not compute mass split for suggested mu*t=4 target.")
            return
        case = builder.build("suggested", "Diluted for mu*t=4", suggested,
                             mix.sample_mass_mg, mix.diluent_mass_mg)
        if case is None:
            warnings.append("Suggested mu*t=4 dilution was not physically valid.")
            return
        cases.append(case)

    def _dilution_case(self, builder, config, cases, warnings):
        total = config.total_mass_mg

        def evaluate(sample_fraction):
            f = min(1.0, max(MIN_SAMPLE_FRACTION, sample_fraction))
            trial = builder.build("fluo-dilution", "trial",
                                  config.target_edge_step, total * f,
                                  total * (1.0 - f))
            return None if trial is None else trial.fluorescence_min_percent

        solve = solve_dilution_for_fluorescence(
            MIN_SAMPLE_FRACTION, 1.0, evaluate,
            target=self.target_percent,
            target_tolerance=THRESHOLD_TARGET_TOLERANCE,
            value_tolerance=PLANNER_DILUTION_VALUE_TOLERANCE,
            max_iterations=THRESHOLD_MAX_ITERATIONS,
            sample_points=PLANNER_SAMPLE_POINTS,
        )
        if solve is None:
            warnings.append("Fluorescence dilution solver failed to initialize.")
            return

        if solve.feasible:
            sample_mass = total * solve.value
            case = builder.build(
                "fluo-dilution", "Diluted for fluorescence (R>=90%)",
                config.target_edge_step, sample_mass, total - sample_mass,
                solver_note=solve.note)
            if case is None:
                warnings.append("Could not build fluorescence dilution case "
                                "from solved ratio.")
            else:
                cases.append(case)
            return

        sample_mass = total * solve.best_value
        case = builder.build(
            "fluo-dilution", "Diluted for fluorescence (best effort)",
            config.target_edge_step, sample_mass, total - sample_mass,
            solver_note=solve.reason)
        if case is not None:
            cases.append(case)
        warnings.append(solve.reason)

    def _thickness_case(self, builder, config, pure, cases, warnings):
        area = config.pellet_area_cm2
        density = config.sample_density

        def mass_for(thickness_cm):
            return density * area * thickness_cm * MG_PER_G

        def evaluate(thickness_cm):
            if not (math.isfinite(thickness_cm) and thickness_cm > 0):
                return None
            trial = builder.build("fluo-thickness", "trial",
                                  config.target_edge_step,
                                  mass_for(thickness_cm), 0.0)
            return None if trial is None else trial.fluorescence_min_percent

        # Grow the upper bound until it fails the target (or hits the cap)
        max_thickness = max(pure.thickness_cm, MIN_THICKNESS_SEED_CM)
        max_eval = evaluate(max_thickness)
        doublings = 0
        while (max_eval is not None and max_eval >= self.target_percent
               and max_thickness < MAX_THICKNESS_CM
               and doublings < MAX_THICKNESS_DOUBLINGS):
            max_thickness *= 2.0
            max_eval = evaluate(max_thickness)
            doublings += 1

        solve = solve_thickness_for_fluorescence(
            MIN_THICKNESS_CM, max_thickness, evaluate,
            target=self.target_percent,
            target_tolerance=THRESHOLD_TARGET_TOLERANCE,
            value_tolerance=THRESHOLD_VALUE_TOLERANCE,
            max_iterations=THRESHOLD_MAX_ITERATIONS,
            sample_points=PLANNER_SAMPLE_POINTS,
        )
        if solve is None:
            warnings.append("Fluorescence thickness solver failed to initialize.")
            return

        if solve.feasible:
            thickness = solve.value
            case = builder.build(
                "fluo-thickness",
                "Thickness for fluorescence (sample only, R>=90%)",
                config.target_edge_step, mass_for(thickness), 0.0,
                solved_thickness_cm=thickness,
                equivalent_mass_mg=mass_for(thickness),
                solver_note=solve.note)
            if case is None:
                warnings.append("Could not build fluorescence thickness case "
                                "from solved thickness.")
            else:
                cases.append(case)
            return

        thickness = solve.best_value
        case = builder.build(
            "fluo-thickness",
            "Thickness for fluorescence (sample only, best effort)",
            config.target_edge_step, mass_for(thickness), 0.0,
            solved_thickness_cm=thickness,
            equivalent_mass_mg=mass_for(thickness),
            solver_note=solve.reason)
        if case is not None:
            cases.append(case)
        warnings.append(solve.reason)


class _CaseBuilder:
    """Evaluates one candidate pellet against both measurement modes."""

    def __init__(self, evaluator, config, mu, sample_step, diluent_step):
        self.evaluator = evaluator
        self.config = config
        self.mu = mu
        self.sample_step = sample_step
        self.diluent_step = diluent_step

    def build(self, case_id, title, target_edge_step, sample_mass_mg,
              diluent_mass_mg, solved_thickness_cm=None,
              equivalent_mass_mg=None, solver_note=None):
        """
        Build a CaseResult, or None if the pellet is unphysical or the
        evaluator cannot describe it.
        """
        if (sample_mass_mg < -MASS_TOLERANCE_MG
                or diluent_mass_mg < -MASS_TOLERANCE_MG):
            return None
        config = self.config
        sample_mg = max(0.0, sample_mass_mg)
        diluent_mg = max(0.0, diluent_mass_mg)
        sample_g = sample_mg / MG_PER_G
        diluent_g = diluent_mg / MG_PER_G
        total_g = sample_g + diluent_g
        if not total_g > 0:
            return None

        area = config.effective_area_cm2
        absorption = compute_absorption_metrics(
            self.mu["sample_below"], self.mu["sample_above"],
            self.mu["diluent_below"], self.mu["diluent_above"],
            sample_mg, diluent_mg, area)
        if absorption is None:
            return None

        achieved = (self.sample_step * (sample_g / area)
                    + self.diluent_step * (diluent_g / area))
        transmission = classify_transmission(achieved,
                                             absorption.absorption_above)

        volume = (sample_g / config.sample_density
                  + diluent_g / config.diluent_density)
        if not volume > 0:
            return None
        density = total_g / volume
        thickness = volume / config.pellet_area_cm2

        mixture = PelletMixture(config.sample, config.diluent, sample_mg,
                                diluent_mg, density, thickness)
        try:
            retained = self.evaluator.suppression(
                mixture, config.energies, config.phi_rad, config.theta_rad,
                config.chi_assumed)
        except (ValueError, ArithmeticError) as e:
            log.debug("suppression failed for %s: %s", case_id, e)
            return None
        retained_percent = [float(r) * 100.0 for r in retained]
        if not retained_percent or not all(
                math.isfinite(r) for r in retained_percent):
            return None

        r_min = min(retained_percent)
        r_mean = sum(retained_percent) / len(retained_percent)

        return CaseResult(
            case_id=case_id,
            title=title,
            target_edge_step=target_edge_step,
            achieved_edge_step=achieved,
            sample_mass_mg=sample_mg,
            diluent_mass_mg=diluent_mg,
            sample_fraction_pct=(sample_g / total_g) * 100.0,
            absorption=absorption,
            transmission=transmission,
            fluorescence_min_percent=r_min,
            fluorescence_mean_percent=r_mean,
            fluorescence=classify_fluorescence(r_min),
            thickness_cm=thickness,
            density_g_cm3=density,
            retained_percent=retained_percent,
            solved_thickness_cm=solved_thickness_cm,
            equivalent_mass_mg=equivalent_mass_mg,
            solver_note=solver_note,
        )
