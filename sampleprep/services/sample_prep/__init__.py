"""
Sample Preparation Service: transmission and fluorescence candidate pellets.

Endpoints:
    POST /api/sample-prep/plan            - full candidate set for a pellet
    POST /api/sample-prep/suggest-target  - edge step that gives mu*t = 4
    POST /api/sample-prep/classify        - verdicts for given metrics

The plan endpoint builds an XrayEvaluator for the requested absorber/edge
and runs the SamplePreparationPlanner over an evenly spaced energy grid.
The other two endpoints are pure arithmetic on numbers the caller supplies.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

from flask import jsonify, request

from data.presets import DEFAULT_PLAN, get_diluent
from sampleprep.constants import ABSORPTION_MAX, FLUORESCENCE_MIN_PERCENT
from sampleprep.edge_step import (
    SuggestedTargetInput,
    absorption_at_edge_step,
    compute_suggested_target_edge_step,
    reachable_edge_step_range,
)
from sampleprep.mixing import compute_sample_weight_mix
from sampleprep.planner import PlanConfig, SamplePreparationPlanner
from sampleprep.services import PrepService, json_safe, require_number
from sampleprep.services.sample_weight import pellet_area_cm2
from sampleprep.suitability import (
    classify_fluorescence,
    classify_transmission,
    summarize_suitability,
)
from sampleprep.xray import XrayEvaluator, energy_grid

log = logging.getLogger(__name__)

_PLAN_NUMBERS = ("target_edge_step", "chi_assumed", "sample_density",
                 "diluent_density", "total_mass_mg", "diameter_mm",
                 "phi_deg", "theta_deg")


class SamplePrepService(PrepService):
    """
    Pellet planner for transmission and fluorescence XAS.
    """

    id = "sample-prep"
    name = "Sample Preparation"
    description = "Candidate pellets for transmission and fluorescence"
    category = "fluorescence"
    status = "live"
    route = "/sample-prep"

    def __init__(self, evaluator_factory=XrayEvaluator):
        self._evaluator_factory = evaluator_factory

    def validate(self, config):
        """
        Validate a plan request and return a PlanConfig.

        A diluent given by preset id (e.g. "BN") is replaced by its formula,
        and its tabulated density is used unless one is supplied.
        """
        if not config or not isinstance(config, dict):
            raise ValueError("Request body must be JSON")

        diluent = config.get("diluent", DEFAULT_PLAN["diluent"])
        numbers = {}
        preset = get_diluent(diluent)
        if preset is not None:
            diluent = preset["formula"]
            numbers["diluent_density"] = preset["density"]

        for key in _PLAN_NUMBERS:
            if config.get(key) is not None or key not in numbers:
                numbers[key] = require_number(config, key, DEFAULT_PLAN[key])

        if config.get("energies") is not None:
            energies = config["energies"]
            if not isinstance(energies, list):
                raise ValueError("energies must be a list of numbers")
            try:
                energies = [float(e) for e in energies]
            except (TypeError, ValueError):
                raise ValueError("energies must be a list of numbers")
        else:
            energies = energy_grid(
                require_number(config, "e_start", DEFAULT_PLAN["e_start"]),
                require_number(config, "e_end", DEFAULT_PLAN["e_end"]),
                require_number(config, "e_step", DEFAULT_PLAN["e_step"]))

        plan_config = PlanConfig(
            sample=config.get("sample", DEFAULT_PLAN["sample"]),
            diluent=diluent,
            absorber=config.get("absorber", DEFAULT_PLAN["absorber"]),
            edge=config.get("edge", DEFAULT_PLAN["edge"]),
            energies=energies,
            **numbers)
        plan_config.validate()
        return plan_config

    def compute(self, config):
        """Run the planner for a validated PlanConfig."""
        evaluator = self._evaluator_factory(config.absorber, config.edge)
        result = SamplePreparationPlanner(evaluator).plan(config)
        return json_safe(result.to_dict())

    def validate_suggest(self, data):
        """Validate a suggest-target request into a SuggestedTargetInput."""
        if not data or not isinstance(data, dict):
            raise ValueError("Request body must be JSON")
        inp = SuggestedTargetInput(
            sample_edge_step=require_number(data, "sample_edge_step"),
            diluent_edge_step=require_number(data, "diluent_edge_step"),
            sample_mu_above=require_number(data, "sample_mu_above"),
            diluent_mu_above=require_number(data, "diluent_mu_above"),
            total_mass_mg=require_number(data, "total_mass_mg", positive=True),
            area_cm2=pellet_area_cm2(data),
            target_absorption=require_number(
                data, "target_absorption", ABSORPTION_MAX, positive=True),
        )
        return inp

    def suggest(self, inp):
        """Suggested edge step, its mass split and absorption, or nulls."""
        suggested = compute_suggested_target_edge_step(inp)
        log.debug("suggested edge step for mu*t=%.2f: %s",
                  inp.target_absorption, suggested)
        reachable = reachable_edge_step_range(
            inp.sample_edge_step, inp.diluent_edge_step, inp.total_mass_mg,
            inp.area_cm2)
        result = {
            "suggested_edge_step": suggested,
            "target_absorption": inp.target_absorption,
            "reachable_edge_step": list(reachable),
            "mix": None,
            "absorption_above": None,
            "warnings": [],
        }
        if suggested is None:
            result["warnings"].append(
                "No feasible diluted composition reaches mu*t=%.1f with the "
                "given mass, area and edge steps." % inp.target_absorption)
            return json_safe(result)
        mix = compute_sample_weight_mix(
            inp.sample_edge_step, inp.diluent_edge_step, inp.total_mass_mg,
            inp.area_cm2, suggested)
        if mix is not None:
            result["mix"] = mix.to_dict()
        result["absorption_above"] = absorption_at_edge_step(suggested, inp)
        return json_safe(result)

    def classify(self, data):
        """Transmission and (optionally) fluorescence verdicts."""
        if not data or not isinstance(data, dict):
            raise ValueError("Request body must be JSON")
        transmission = classify_transmission(
            require_number(data, "achieved_edge_step"),
            require_number(data, "absorption_above"))
        result = {"transmission": transmission.to_dict()}
        if data.get("min_retained_percent") is not None:
            fluorescence = classify_fluorescence(
                require_number(data, "min_retained_percent"))
            result["fluorescence"] = fluorescence.to_dict()
            result["combined_label"] = summarize_suitability(
                transmission.suitable, fluorescence.suitable)
        result["fluorescence_threshold_percent"] = FLUORESCENCE_MIN_PERCENT
        return result

    def register_routes(self, bp):
        """Mount sample preparation endpoints."""
        service = self

        @bp.route("/sample-prep/plan", methods=["POST"])
        def sample_prep_plan():
            data = request.get_json(silent=True)
            try:
                config = service.validate(data)
                result = service.compute(config)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(result)

        @bp.route("/sample-prep/suggest-target", methods=["POST"])
        def sample_prep_suggest_target():
            data = request.get_json(silent=True)
            try:
                inp = service.validate_suggest(data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(service.suggest(inp))

        @bp.route("/sample-prep/classify", methods=["POST"])
        def sample_prep_classify():
            data = request.get_json(silent=True)
            try:
                result = service.classify(data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(result)
