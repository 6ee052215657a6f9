"""
Ion Chamber Service: gas fill editing and flux estimates.

Endpoints:
    POST /api/ionchamber/mix     - apply one add/remove/update edit to a fill
    POST /api/ionchamber/fluxes  - incident/transmitted flux for a fill

Fills are sent as [{"name": "N2", "fraction": 0.7}, ...] using the short
gas labels from data.presets; labels are mapped to xraydb gas names only
when fluxes are computed.

IMPORTANT: No unicode characters allowed (Windows charmap constraint).
"""

import logging

from flask import jsonify, request

from data.presets import DEFAULT_IONCHAMBER, gas_name, is_known_gas
from sampleprep.constants import DEFAULT_NEW_GAS_FRACTION
from sampleprep.gas_mix import (
    GasEntry,
    add_gas,
    remove_gas,
    total_fraction,
    update_gas_fraction,
)
from sampleprep.services import PrepService, json_safe, require_number
from sampleprep.xray import ionchamber_fluxes

log = logging.getLogger(__name__)

ACTIONS = ("add", "remove", "update")


def parse_gases(data):
    """GasEntry list from the request's "gases" array."""
    raw = data.get("gases")
    if raw is None:
        raise ValueError("gases is required")
    if not isinstance(raw, list):
        raise ValueError("gases must be a list")
    return [GasEntry.from_dict(g) for g in raw]


def require_index(data):
    raw = data.get("index")
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError("index must be an integer")
    return raw


class IonChamberService(PrepService):
    """
    Ion chamber fill mixer and flux estimator.
    """

    id = "ionchamber"
    name = "Ion Chamber"
    description = "Gas fill mixing and ion chamber flux estimates"
    category = "detectors"
    status = "live"
    route = "/ionchamber"

    def __init__(self, flux_function=ionchamber_fluxes):
        self._flux_function = flux_function

    def validate(self, config):
        """Validate a flux request."""
        if not config or not isinstance(config, dict):
            raise ValueError("Request body must be JSON")
        gases = parse_gases(config)
        if not gases:
            raise ValueError("Gas mixture must not be empty")
        if any(g.fraction < 0 for g in gases):
            raise ValueError("Gas fractions must be >= 0")
        unknown = [g.name for g in gases if not is_known_gas(g.name)]
        if unknown:
            raise ValueError("Unknown gas: {}".format(", ".join(unknown)))

        return {
            "gases": gases,
            "energy": require_number(config, "energy",
                                     DEFAULT_IONCHAMBER["energy"],
                                     positive=True),
            "length_cm": require_number(config, "length_cm",
                                        DEFAULT_IONCHAMBER["length_cm"],
                                        positive=True),
            "pressure_torr": require_number(
                config, "pressure_torr", DEFAULT_IONCHAMBER["pressure_torr"],
                positive=True),
            "volts": require_number(config, "volts",
                                    DEFAULT_IONCHAMBER["volts"]),
            "sensitivity": require_number(
                config, "sensitivity", DEFAULT_IONCHAMBER["sensitivity"],
                positive=True),
            "with_compton": bool(config.get(
                "with_compton", DEFAULT_IONCHAMBER["with_compton"])),
            "both_carriers": bool(config.get(
                "both_carriers", DEFAULT_IONCHAMBER["both_carriers"])),
        }

    def compute(self, config):
        """Fluxes for the fill, with gas labels mapped to xraydb names."""
        fill = [GasEntry(gas_name(g.name), g.fraction)
                for g in config["gases"]]
        result = self._flux_function(
            fill, config["volts"], config["length_cm"], config["energy"],
            sensitivity=config["sensitivity"],
            with_compton=config["with_compton"],
            both_carriers=config["both_carriers"],
            pressure_torr=config["pressure_torr"])
        result["gases"] = [g.to_dict() for g in config["gases"]]
        result["total_fraction"] = total_fraction(config["gases"])
        return json_safe(result)

    def apply_edit(self, data):
        """
        Apply one fill edit.

        Payload: {"gases": [...], "action": "add" | "remove" | "update", ...}
            add    - "name", optional "fraction" (default 0.1)
            remove - "index"
            update - "index", "fraction"

        Returns
        -------
        dict
            The new fill and its total fraction.
        """
        if not data or not isinstance(data, dict):
            raise ValueError("Request body must be JSON")
        gases = parse_gases(data)
        action = data.get("action")
        if action not in ACTIONS:
            raise ValueError("action must be one of: {}".format(
                ", ".join(ACTIONS)))

        if action == "add":
            name = data.get("name")
            if not name or not isinstance(name, str):
                raise ValueError("name is required to add a gas")
            fraction = require_number(data, "fraction",
                                      DEFAULT_NEW_GAS_FRACTION)
            updated = add_gas(gases, name, fraction)
        elif action == "remove":
            updated = remove_gas(gases, require_index(data))
        else:
            updated = update_gas_fraction(gases, require_index(data),
                                          require_number(data, "fraction"))

        log.debug("gas mix %s: %s -> %s", action, gases, updated)
        return {
            "gases": [g.to_dict() for g in updated],
            "total_fraction": total_fraction(updated),
        }

    def register_routes(self, bp):
        """Mount ion chamber endpoints."""
        service = self

        @bp.route("/ionchamber/mix", methods=["POST"])
        def ionchamber_mix():
            data = request.get_json(silent=True)
            try:
                result = service.apply_edit(data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(result)

        @bp.route("/ionchamber/fluxes", methods=["POST"])
        def ionchamber_flux():
            data = request.get_json(silent=True)
            try:
                config = service.validate(data)
                result = service.compute(config)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            return jsonify(result)
