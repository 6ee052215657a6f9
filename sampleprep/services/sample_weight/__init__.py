"""
Sample Weight Service: sample/diluent masses for a target edge step.

Endpoints:
    POST /api/sample-weight/mix - solve the mass split for a pellet

The edge steps come either straight from the request (numeric mode) or
from XrayDB for a sample/diluent formula pair at an absorber edge
(formula mode).

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging
import math

from flask import jsonify, request

from sampleprep.constants import EDGE_OFFSET_EV, MASS_TOLERANCE_MG
from sampleprep.edge_step import reachable_edge_step_range
from sampleprep.mixing import compute_absorption_metrics, compute_sample_weight_mix
from sampleprep.services import PrepService, json_safe, require_number
from sampleprep.suitability import classify_transmission
from sampleprep.xray import XrayEvaluator

log = logging.getLogger(__name__)

_MU_KEYS = ("sample_mu_below", "sample_mu_above",
            "diluent_mu_below", "diluent_mu_above")


def pellet_area_cm2(config):
    """Area from area_cm2, or from diameter_mm for a round pellet."""
    if config.get("area_cm2") is not None:
        return require_number(config, "area_cm2", positive=True)
    diameter_mm = require_number(config, "diameter_mm", positive=True)
    return math.pi * (diameter_mm / 10.0) ** 2 / 4.0


class SampleWeightService(PrepService):
    """
    Transmission pellet mass calculator.
    """

    id = "sample-weight"
    name = "Sample Weight"
    description = "Sample and diluent masses for a target edge step"
    category = "transmission"
    status = "live"
    route = "/sample-weight"

    def __init__(self, evaluator_factory=XrayEvaluator):
        self._evaluator_factory = evaluator_factory

    def validate(self, config):
        """Validate a mix request (numeric or formula mode)."""
        if not config or not isinstance(config, dict):
            raise ValueError("Request body must be JSON")

        normalized = {
            "total_mass_mg": require_number(config, "total_mass_mg",
                                            positive=True),
            "area_cm2": pellet_area_cm2(config),
            "target_edge_step": require_number(config, "target_edge_step",
                                               positive=True),
        }

        if config.get("sample_edge_step") is not None:
            normalized["mode"] = "numeric"
            normalized["sample_edge_step"] = require_number(
                config, "sample_edge_step")
            normalized["diluent_edge_step"] = require_number(
                config, "diluent_edge_step")
            if all(config.get(k) is not None for k in _MU_KEYS):
                for k in _MU_KEYS:
                    normalized[k] = require_number(config, k)
            return normalized

        for key in ("sample", "diluent", "absorber", "edge"):
            value = config.get(key)
            if not value or not str(value).strip():
                raise ValueError("{} is required".format(key))
            normalized[key] = str(value).strip()
        normalized["mode"] = "formula"
        normalized["edge_offset_ev"] = require_number(
            config, "edge_offset_ev", EDGE_OFFSET_EV, positive=True)
        return normalized

    def _edge_data(self, config):
        """Edge energy and mass attenuation either side of the edge."""
        evaluator = self._evaluator_factory(config["absorber"], config["edge"])
        edge_energy = evaluator.edge_energy(config["absorber"], config["edge"])
        below = [edge_energy - config["edge_offset_ev"]]
        above = [edge_energy + config["edge_offset_ev"]]
        mu = {
            "sample_mu_below": evaluator.mass_mu(config["sample"], below)[0],
            "sample_mu_above": evaluator.mass_mu(config["sample"], above)[0],
            "diluent_mu_below": evaluator.mass_mu(config["diluent"], below)[0],
            "diluent_mu_above": evaluator.mass_mu(config["diluent"], above)[0],
        }
        return edge_energy, mu

    def compute(self, config):
        """
        Solve the mix and, when attenuation data is known, its absorption.

        Raises
        ------
        ValueError
            If the two edge steps are identical (no unique solution).
        """
        edge_energy = None
        mu = {k: config[k] for k in _MU_KEYS if k in config}
        if config["mode"] == "formula":
            edge_energy, mu = self._edge_data(config)
            sample_step = mu["sample_mu_above"] - mu["sample_mu_below"]
            diluent_step = mu["diluent_mu_above"] - mu["diluent_mu_below"]
        else:
            sample_step = config["sample_edge_step"]
            diluent_step = config["diluent_edge_step"]

        mix = compute_sample_weight_mix(
            sample_step, diluent_step, config["total_mass_mg"],
            config["area_cm2"], config["target_edge_step"])
        if mix is None:
            raise ValueError("Sample and diluent have identical edge steps")

        reachable = reachable_edge_step_range(
            sample_step, diluent_step, config["total_mass_mg"],
            config["area_cm2"])
        feasible = mix.is_physical(MASS_TOLERANCE_MG)
        warnings = []
        if not feasible:
            warnings.append(
                "Target edge step %.3f is not reachable with non-negative "
                "masses. Reachable range is approximately %.3f to %.3f."
                % (config["target_edge_step"], max(0.0, reachable[0]),
                   max(0.0, reachable[1])))

        absorption = None
        transmission = None
        if len(mu) == len(_MU_KEYS) and feasible:
            metrics = compute_absorption_metrics(
                mu["sample_mu_below"], mu["sample_mu_above"],
                mu["diluent_mu_below"], mu["diluent_mu_above"],
                max(0.0, mix.sample_mass_mg), max(0.0, mix.diluent_mass_mg),
                config["area_cm2"])
            if metrics is not None:
                absorption = metrics.to_dict()
                transmission = classify_transmission(
                    mix.achieved_edge_step, metrics.absorption_above).to_dict()

        log.debug("sample weight mix (%s): feasible=%s", config["mode"],
                  feasible)
        return json_safe({
            "mix": mix.to_dict(),
            "feasible": feasible,
            "edge_energy": edge_energy,
            "sample_edge_step": sample_step,
            "diluent_edge_step": diluent_step,
            "reachable_edge_step": list(reachable),
            "absorption": absorption,
            "transmission": transmission,
            "warnings": warnings,
        })

    def register_routes(self, bp):
        """Mount sample weight endpoints."""
        service = self

        @bp.route("/sample-weight/mix", methods=["POST"])
        def sample_weight_mix():
            data = request.get_json(silent=True)
            try:
                config = service.validate(data)
                result = service.compute(config)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(result)
