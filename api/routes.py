"""
Flask API blueprint for the sample preparation dashboard.

Shared endpoints:
  GET  /api/services   - metadata for every registered calculator
  GET  /api/constants  - experiment thresholds and solver tolerances
  GET  /api/presets    - diluent, gas and default-input presets

Each live PrepService mounts its own namespaced endpoints on the same
blueprint (e.g. POST /api/sample-weight/mix).
"""

import logging

from flask import Blueprint, jsonify

from data.presets import get_all_presets
from sampleprep import constants

log = logging.getLogger(__name__)

_EXPOSED_CONSTANTS = (
    "EDGE_STEP_MIN",
    "EDGE_STEP_MAX",
    "ABSORPTION_MAX",
    "FLUORESCENCE_MIN_PERCENT",
    "MASS_TOLERANCE_MG",
    "EDGE_OFFSET_EV",
    "THRESHOLD_TARGET_TOLERANCE",
    "THRESHOLD_VALUE_TOLERANCE",
    "THRESHOLD_MAX_ITERATIONS",
    "THRESHOLD_SAMPLE_POINTS",
    "MAX_ENERGY_POINTS",
    "DEFAULT_NEW_GAS_FRACTION",
)


def create_api_blueprint(registry):
    """
    Build the /api blueprint for a populated PrepRegistry.

    Parameters
    ----------
    registry : PrepRegistry
        Services to list and mount.

    Returns
    -------
    flask.Blueprint
    """
    api = Blueprint("api", __name__, url_prefix="/api")

    @api.route("/services", methods=["GET"])
    def list_services():
        """Return metadata for all registered services."""
        return jsonify(registry.list_all())

    @api.route("/constants", methods=["GET"])
    def get_constants():
        """Return the thresholds the classifiers and solvers use."""
        return jsonify({name: getattr(constants, name)
                        for name in _EXPOSED_CONSTANTS})

    @api.route("/presets", methods=["GET"])
    def get_presets():
        return jsonify(get_all_presets())

    for service in registry.live():
        service.register_routes(api)
        log.debug("mounted routes for service %s", service.id)

    return api
