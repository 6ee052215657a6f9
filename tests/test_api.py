"""
Tests for Flask API endpoints.

Integration tests that validate the REST API returns correct status codes,
JSON structure, and physically reasonable values. Endpoints that need
XrayDB tables run against the stubs in stubs.py through a separately built
app, so they do not depend on the tabulated cross sections.
"""

import json
import pytest
from flask import Flask

from api.routes import create_api_blueprint
from sampleprep.services import PrepRegistry
from sampleprep.services.ionchamber import IonChamberService
from sampleprep.services.sample_prep import SamplePrepService
from sampleprep.services.sample_weight import SampleWeightService
from stubs import StubEvaluator, fake_fluxes


@pytest.fixture
def stub_client():
    """API client whose services use stub physics."""
    registry = PrepRegistry()
    registry.register(SampleWeightService(evaluator_factory=StubEvaluator))
    registry.register(SamplePrepService(evaluator_factory=StubEvaluator))
    registry.register(IonChamberService(flux_function=fake_fluxes))
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.register_blueprint(create_api_blueprint(registry))
    return app.test_client()


def post(client, url, payload):
    return client.post(url, data=json.dumps(payload),
                       content_type="application/json")


class TestSharedEndpoints:

    def test_home(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.get_json()
        assert "version" in data
        assert len(data["services"]) == 3
        assert [s["id"] for s in data["sections"]] == [
            "transmission", "fluorescence", "detectors"]

    def test_services(self, client):
        resp = client.get("/api/services")
        assert resp.status_code == 200
        ids = [s["id"] for s in resp.get_json()]
        assert ids == ["sample-weight", "sample-prep", "ionchamber"]

    def test_constants(self, client):
        data = client.get("/api/constants").get_json()
        assert data["EDGE_STEP_MIN"] == 0.2
        assert data["EDGE_STEP_MAX"] == 2.0
        assert data["ABSORPTION_MAX"] == 4.0
        assert data["FLUORESCENCE_MIN_PERCENT"] == 90.0

    def test_presets(self, client):
        data = client.get("/api/presets").get_json()
        assert any(d["id"] == "BN" for d in data["diluents"])
        assert "N2" in data["gases"]
        assert data["plan"]["absorber"] == "Fe"

    def test_duplicate_service_rejected(self):
        registry = PrepRegistry()
        registry.register(IonChamberService())
        with pytest.raises(ValueError):
            registry.register(IonChamberService())


class TestSampleWeightEndpoint:
    """Test POST /api/sample-weight/mix."""

    def test_numeric_mode(self, client):
        resp = post(client, "/api/sample-weight/mix", {
            "sample_edge_step": 120.0,
            "diluent_edge_step": 10.0,
            "total_mass_mg": 150.0,
            "area_cm2": 1.0,
            "target_edge_step": 1.8,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        mix = data["mix"]
        assert data["feasible"] is True
        assert mix["sample_mass_mg"] == pytest.approx(300.0 / 110.0)
        assert mix["sample_mass_mg"] + mix["diluent_mass_mg"] == pytest.approx(
            150.0)
        assert data["absorption"] is None
        assert data["warnings"] == []

    def test_numeric_mode_with_attenuation(self, client):
        resp = post(client, "/api/sample-weight/mix", {
            "sample_edge_step": 120.0,
            "diluent_edge_step": 10.0,
            "sample_mu_below": 10.0,
            "sample_mu_above": 130.0,
            "diluent_mu_below": 1.0,
            "diluent_mu_above": 11.0,
            "total_mass_mg": 150.0,
            "area_cm2": 1.0,
            "target_edge_step": 1.8,
        })
        data = resp.get_json()
        assert data["absorption"]["absorption_above"] == pytest.approx(
            130.0 * 0.3 / 110.0 + 11.0 * (0.15 - 0.3 / 110.0))
        assert data["transmission"]["suitable"] is True

    def test_unreachable_target(self, client):
        resp = post(client, "/api/sample-weight/mix", {
            "sample_edge_step": 120.0,
            "diluent_edge_step": 10.0,
            "total_mass_mg": 150.0,
            "area_cm2": 1.0,
            "target_edge_step": 50.0,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["feasible"] is False
        assert data["mix"]["diluent_mass_mg"] < 0
        assert "not reachable" in data["warnings"][0]

    def test_formula_mode(self, stub_client):
        resp = post(stub_client, "/api/sample-weight/mix", {
            "sample": "S",
            "diluent": "D",
            "absorber": "Fe",
            "edge": "K",
            "total_mass_mg": 150.0,
            "diameter_mm": 13.0,
            "target_edge_step": 1.0,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["edge_energy"] == 7112.0
        assert data["sample_edge_step"] == pytest.approx(350.0)
        assert data["mix"]["achieved_edge_step"] == pytest.approx(1.0)
        assert data["transmission"]["suitable"] is True

    def test_degenerate_edge_steps(self, client):
        resp = post(client, "/api/sample-weight/mix", {
            "sample_edge_step": 10.0,
            "diluent_edge_step": 10.0,
            "total_mass_mg": 150.0,
            "area_cm2": 1.0,
            "target_edge_step": 1.0,
        })
        assert resp.status_code == 400
        assert "identical" in resp.get_json()["error"]

    def test_missing_fields(self, client):
        resp = post(client, "/api/sample-weight/mix", {"sample": "Fe2O3"})
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_negative_mass(self, client):
        resp = post(client, "/api/sample-weight/mix", {
            "sample_edge_step": 120.0,
            "diluent_edge_step": 10.0,
            "total_mass_mg": -5,
            "area_cm2": 1.0,
            "target_edge_step": 1.0,
        })
        assert resp.status_code == 400

    def test_not_json(self, client):
        resp = client.post("/api/sample-weight/mix", data="mass=150")
        assert resp.status_code == 400


class TestSamplePrepEndpoints:
    """Test /api/sample-prep/*."""

    def test_plan(self, stub_client):
        resp = post(stub_client, "/api/sample-prep/plan", {
            "sample": "S",
            "diluent": "D",
            "absorber": "Fe",
            "edge": "K",
            "energies": [7150.0, 7200.0],
        })
        assert resp.status_code == 200
        data = resp.get_json()
        ids = [c["id"] for c in data["cases"]]
        assert ids[0] == "pure"
        assert "fluo-dilution" in ids
        assert "fluo-thickness" in ids
        assert data["config"]["num_energies"] == 2

    def test_plan_energy_range(self, stub_client):
        resp = post(stub_client, "/api/sample-prep/plan", {
            "sample": "S",
            "diluent": "D",
            "e_start": 7150.0,
            "e_end": 7160.0,
            "e_step": 5.0,
        })
        assert resp.status_code == 200
        assert resp.get_json()["config"]["num_energies"] == 3

    def test_plan_bad_energy_step(self, stub_client):
        resp = post(stub_client, "/api/sample-prep/plan", {
            "sample": "S", "diluent": "D", "e_step": 0,
        })
        assert resp.status_code == 400
        assert "step" in resp.get_json()["error"]

    def test_plan_unknown_material(self, stub_client):
        resp = post(stub_client, "/api/sample-prep/plan", {
            "sample": "Unobtainium", "diluent": "D", "energies": [7200.0],
        })
        assert resp.status_code == 400

    def test_diluent_preset_resolved(self):
        config = SamplePrepService().validate({
            "sample": "Fe2O3", "diluent": "Cellulose", "energies": [7200.0],
        })
        assert config.diluent == "C6H10O5"
        assert config.diluent_density == 1.5

    def test_diluent_preset_density_override(self):
        config = SamplePrepService().validate({
            "sample": "Fe2O3", "diluent": "BN", "diluent_density": 1.9,
            "energies": [7200.0],
        })
        assert config.diluent_density == 1.9

    def test_suggest_target(self, client):
        resp = post(client, "/api/sample-prep/suggest-target", {
            "sample_edge_step": 100.0,
            "diluent_edge_step": 0.0,
            "sample_mu_above": 120.0,
            "diluent_mu_above": 1.0,
            "total_mass_mg": 100.0,
            "area_cm2": 1.0,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["suggested_edge_step"] == pytest.approx(
            100.0 * 3.9 / 119.0, rel=1e-6)
        assert data["absorption_above"] == pytest.approx(4.0, abs=1e-5)

    def test_suggest_target_unreachable(self, client):
        resp = post(client, "/api/sample-prep/suggest-target", {
            "sample_edge_step": 50.0,
            "diluent_edge_step": 0.0,
            "sample_mu_above": 8.0,
            "diluent_mu_above": 6.0,
            "total_mass_mg": 1000.0,
            "area_cm2": 0.1,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["suggested_edge_step"] is None
        assert data["warnings"]

    def test_classify(self, client):
        resp = post(client, "/api/sample-prep/classify", {
            "achieved_edge_step": 1.0,
            "absorption_above": 2.0,
            "min_retained_percent": 85.0,
        })
        data = resp.get_json()
        assert data["transmission"]["suitable"] is True
        assert data["fluorescence"]["suitable"] is False
        assert data["combined_label"] == (
            "Transmission suitable / Fluorescence not suitable")

    def test_classify_missing(self, client):
        resp = post(client, "/api/sample-prep/classify", {"achieved_edge_step": 1})
        assert resp.status_code == 400


class TestIonChamberEndpoints:
    """Test /api/ionchamber/*."""

    def test_add(self, client):
        resp = post(client, "/api/ionchamber/mix", {
            "gases": [{"name": "N2", "fraction": 0.7},
                      {"name": "He", "fraction": 0.3}],
            "action": "add",
            "name": "Ar",
            "fraction": 0.1,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert [g["name"] for g in data["gases"]] == ["N2", "He", "Ar"]
        assert data["total_fraction"] == pytest.approx(1.0)

    def test_remove(self, client):
        resp = post(client, "/api/ionchamber/mix", {
            "gases": [{"name": "N2", "fraction": 0.5},
                      {"name": "He", "fraction": 0.3},
                      {"name": "Ar", "fraction": 0.2}],
            "action": "remove",
            "index": 1,
        })
        data = resp.get_json()
        assert len(data["gases"]) == 2
        assert data["total_fraction"] == pytest.approx(1.0)

    def test_update(self, client):
        resp = post(client, "/api/ionchamber/mix", {
            "gases": [{"name": "N2", "fraction": 0.6},
                      {"name": "He", "fraction": 0.4}],
            "action": "update",
            "index": 0,
            "fraction": 0.2,
        })
        fractions = [g["fraction"] for g in resp.get_json()["gases"]]
        assert fractions == pytest.approx([0.2, 0.8])

    def test_bad_action(self, client):
        resp = post(client, "/api/ionchamber/mix", {
            "gases": [{"name": "N2", "fraction": 1.0}],
            "action": "swap",
        })
        assert resp.status_code == 400

    def test_bad_index(self, client):
        resp = post(client, "/api/ionchamber/mix", {
            "gases": [{"name": "N2", "fraction": 1.0}],
            "action": "remove",
            "index": "first",
        })
        assert resp.status_code == 400

    def test_fluxes(self, stub_client):
        resp = post(stub_client, "/api/ionchamber/fluxes", {
            "gases": [{"name": "N2", "fraction": 0.8},
                      {"name": "He", "fraction": 0.2}],
            "energy": 9000.0,
            "length_cm": 10.0,
            "pressure_torr": 380.0,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["effective_length_cm"] == pytest.approx(5.0)
        assert data["total_fraction"] == pytest.approx(1.0)
        call = fake_fluxes.last_call
        assert call["gases"] == [("nitrogen", 0.8), ("helium", 0.2)]
        assert call["energy"] == 9000.0

    def test_fluxes_unknown_gas(self, client):
        resp = post(client, "/api/ionchamber/fluxes", {
            "gases": [{"name": "Unobtainium", "fraction": 1.0}],
        })
        assert resp.status_code == 400
        assert "Unobtainium" in resp.get_json()["error"]

    def test_fluxes_accepts_xraydb_names(self, stub_client):
        resp = post(stub_client, "/api/ionchamber/fluxes", {
            "gases": [{"name": "argon", "fraction": 1.0}],
        })
        assert resp.status_code == 200
        assert fake_fluxes.last_call["gases"] == [("argon", 1.0)]

    def test_fluxes_empty_fill(self, stub_client):
        resp = post(stub_client, "/api/ionchamber/fluxes", {"gases": []})
        assert resp.status_code == 400
