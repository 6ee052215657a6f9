"""
X-ray sample preparation dashboard.
Flask application factory.

Serves the JSON API for the pellet calculators via registered PrepService
instances.

Usage:
    python app.py              # Development server on http://localhost:5000
    flask run                  # Same, via Flask CLI

Settings can be supplied as SAMPLEPREP_* environment variables
(e.g. SAMPLEPREP_JSON_SORT_KEYS=false) or as a mapping to create_app().
"""

__version__ = "0.1.0"

import logging

from flask import Flask, jsonify

from sampleprep.services import PrepRegistry
from sampleprep.services.ionchamber import IonChamberService
from sampleprep.services.sample_prep import SamplePrepService
from sampleprep.services.sample_weight import SampleWeightService


def create_registry():
    """Build and populate the service registry."""
    registry = PrepRegistry()
    registry.register(SampleWeightService())
    registry.register(SamplePrepService())
    registry.register(IonChamberService())
    return registry


def create_app(config=None):
    """
    Application factory for the sample preparation dashboard.

    Parameters
    ----------
    config : mapping, optional
        Extra Flask settings, applied after SAMPLEPREP_* environment
        variables.
    """
    app = Flask(__name__)
    app.config.from_prefixed_env("SAMPLEPREP")
    if config:
        app.config.update(config)

    # Build service registry
    registry = create_registry()

    # Create and register API blueprint (shared + service-owned routes)
    from api.routes import create_api_blueprint
    api = create_api_blueprint(registry)
    app.register_blueprint(api)

    # Dashboard listing
    @app.route("/")
    def home():
        return jsonify({
            "name": "X-ray Sample Preparation",
            "version": __version__,
            "services": registry.list_all(),
            "sections": registry.by_category(),
        })

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")
    app = create_app()
    app.run(debug=True, host="127.0.0.1", port=5000)
