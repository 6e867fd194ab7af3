"""API tests with TestClient."""

import os

import pytest
from fastapi.testclient import TestClient

from cost_savings.api import app

# Fixture sets COSTSAV_API_KEYS; these headers map to actors "doctor" and "viewer".
AUTH_HEADERS = {"X-API-Key": "test_doctor_key"}
READ_ONLY_HEADERS = {"X-API-Key": "test_viewer_key"}


@pytest.fixture
def api_client(db: str, config_path: str):
    os.environ["COSTSAV_API_KEYS"] = "doctor:test_doctor_key,viewer:test_viewer_key:read_only"
    os.environ["COSTSAV_CONFIG_PATH"] = config_path
    try:
        yield TestClient(app)
    finally:
        os.environ.pop("COSTSAV_API_KEYS", None)
        os.environ.pop("COSTSAV_CONFIG_PATH", None)


def _create_patient(client: TestClient, document: str = "27333444") -> int:
    resp = client.post(
        "/patients",
        json={"first_name": "Juan", "last_name": "Gómez", "document_number": document},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def _create_case(client: TestClient, **overrides) -> dict:
    body = {
        "patient_id": _create_patient(client),
        "diagnosis": "Esclerosis múltiple",
        "intervention_type": "generic_substitution",
        "initial_monthly_cost": 1000,
        "projected_period_months": 6,
        "intervention_cost": 200,
    }
    body.update(overrides)
    resp = client.post("/cases", json=body, headers=AUTH_HEADERS)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health(api_client: TestClient) -> None:
    resp = api_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["db_status"] == "ok"
    assert "engine_version" in data


def test_correlation_id_echoed(api_client: TestClient) -> None:
    resp = api_client.get("/health", headers={"X-Correlation-ID": "req-1"})
    assert resp.headers["X-Correlation-ID"] == "req-1"


def test_preview_savings_example(api_client: TestClient) -> None:
    resp = api_client.post(
        "/savings/preview",
        json={
            "initial_monthly_cost": 1000,
            "projected_period_months": 6,
            "initial_cost": 6000,
            "current_monthly_cost": 700,
            "intervention_cost": 200,
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["savings"]["current_projected_cost"] == 4200
    assert data["savings"]["monthly_savings"] == 300
    assert data["savings"]["projected_savings"] == 1600
    assert data["savings"]["savings_percentage"] == pytest.approx(26.67, abs=0.01)
    assert data["ars"]["available"] is True
    assert data["ars"]["projected_savings"] == 1600
    assert data["efficiency_band"] == "baja"


def test_preview_usd_without_rate_flags_unavailable(api_client: TestClient) -> None:
    resp = api_client.post(
        "/savings/preview",
        json={
            "initial_monthly_cost": 1000,
            "projected_period_months": 6,
            "current_monthly_cost": 1200,
            "currency_type": "USD",
            "exchange_rate": 0,
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["ars"]["available"] is False
    assert data["ars"]["projected_savings"] is None
    assert data["savings"]["projected_savings"] == -1200
    assert data["upside_savings"] == 0
    assert data["gauge_percentage"] == 0


def test_preview_rejects_bad_input(api_client: TestClient) -> None:
    resp = api_client.post(
        "/savings/preview",
        json={"initial_monthly_cost": -1, "projected_period_months": 0},
    )
    assert resp.status_code == 422


def test_mutations_require_api_key(api_client: TestClient) -> None:
    body = {"first_name": "A", "last_name": "B", "document_number": "1"}
    assert api_client.post("/patients", json=body).status_code == 401
    assert (
        api_client.post("/patients", json=body, headers={"X-API-Key": "nope"}).status_code == 401
    )
    assert api_client.post("/patients", json=body, headers=READ_ONLY_HEADERS).status_code == 403


def test_duplicate_patient_document(api_client: TestClient) -> None:
    _create_patient(api_client, "111")
    resp = api_client.post(
        "/patients",
        json={"first_name": "X", "last_name": "Y", "document_number": "111"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 409


def test_create_and_get_case(api_client: TestClient) -> None:
    case = _create_case(api_client)
    assert case["status"] == "en_evaluacion"
    assert case["status_label"] == "En Evaluación"
    assert case["initial_projected_cost"] == 6000
    assert case["projected_savings"] == 5800
    assert case["actor"] == "doctor"
    resp = api_client.get(f"/cases/{case['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == case["id"]
    assert api_client.get("/cases/9999").status_code == 404


def test_create_case_default_period_from_config(api_client: TestClient) -> None:
    case = _create_case(api_client, projected_period_months=None)
    assert case["projected_period_months"] == 6


def test_create_usd_case_without_rate_rejected(api_client: TestClient) -> None:
    patient = _create_patient(api_client)
    resp = api_client.post(
        "/cases",
        json={
            "patient_id": patient,
            "diagnosis": "x",
            "intervention_type": "y",
            "initial_monthly_cost": 10,
            "projected_period_months": 3,
            "currency_type": "USD",
            "exchange_rate": 0,
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 422


def test_transitions_menu(api_client: TestClient) -> None:
    case = _create_case(api_client)
    resp = api_client.get(f"/cases/{case['id']}/transitions")
    assert resp.status_code == 200
    options = {o["status"]: o for o in resp.json()}
    assert set(options) == {"intervenido", "sin_optimizacion"}
    assert options["intervenido"]["label"] == "Registrar Intervención"
    assert options["sin_optimizacion"]["requires_justification"] is True
    assert options["intervenido"]["validation"] == {
        "valid": True,
        "error": None,
        "warning": None,
    }


def test_status_change_flow(api_client: TestClient) -> None:
    case = _create_case(api_client)
    cid = case["id"]
    resp = api_client.post(f"/cases/{cid}/status", json={"status": "completado"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["detail"]["valid"] is False

    resp = api_client.post(
        f"/cases/{cid}/status", json={"status": "intervenido"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "intervenido"

    resp = api_client.post(
        f"/cases/{cid}/status", json={"status": "completado"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 400  # no current monthly cost yet

    resp = api_client.patch(
        f"/cases/{cid}/costs", json={"current_monthly_cost": 1100}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["monthly_savings"] == -100

    resp = api_client.post(
        f"/cases/{cid}/status", json={"status": "completado"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["requires_confirmation"] is True
    assert resp.json()["detail"]["warning"]

    resp = api_client.post(
        f"/cases/{cid}/status", json={"status": "completado", "confirm": True}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["requires_justification"] is True

    resp = api_client.post(
        f"/cases/{cid}/status",
        json={"status": "completado", "confirm": True, "justification": "Nuevo protocolo"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "completado"
    assert resp.json()["justification_for_increase"] == "Nuevo protocolo"

    timeline = api_client.get(f"/cases/{cid}/timeline").json()
    changes = [e for e in timeline if e["event_type"] == "status_change"]
    assert len(changes) == 2
    assert changes[0]["title"] == "Cambio de Estado"
    assert changes[0]["metadata_json"]["new_status"] == "completado"
    assert changes[0]["actor"] == "doctor"


def test_status_change_unknown_status_is_422(api_client: TestClient) -> None:
    case = _create_case(api_client)
    resp = api_client.post(
        f"/cases/{case['id']}/status", json={"status": "cerrado"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 422


def test_status_change_stale_version(api_client: TestClient) -> None:
    case = _create_case(api_client)
    resp = api_client.post(
        f"/cases/{case['id']}/status",
        json={"status": "intervenido", "expected_version": case["version"] + 1},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 409


def test_record_results(api_client: TestClient) -> None:
    case = _create_case(api_client)
    resp = api_client.put(
        f"/cases/{case['id']}/results", json={"current_monthly_cost": 700}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "completado"
    assert data["projected_savings"] == 1600


def test_notes_and_list_filters(api_client: TestClient) -> None:
    case = _create_case(api_client)
    resp = api_client.post(
        f"/cases/{case['id']}/notes", json={"note": "Llamar a la farmacia"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["event_type"] == "note"
    assert len(api_client.get("/cases", params={"status": "en_evaluacion"}).json()) == 1
    assert api_client.get("/cases", params={"status": "completado"}).json() == []
    assert api_client.get("/cases", params={"status": "bogus"}).status_code == 400
    assert len(api_client.get("/cases", params={"search": "esclerosis"}).json()) == 1


def test_report_summary(api_client: TestClient) -> None:
    _create_case(api_client)
    resp = api_client.get("/reports/summary")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_cases"] == 1
    assert data["total_projected_savings"] == 5800
    assert data["cases_by_status"] == {"en_evaluacion": 1}


def test_openapi_includes_case_paths(api_client: TestClient) -> None:
    paths = api_client.get("/openapi.json").json()["paths"]
    for p in ("/cases", "/cases/{case_id}", "/cases/{case_id}/status", "/patients"):
        assert p in paths


def test_record_results_on_completed_case_rejected(api_client: TestClient) -> None:
    case = _create_case(api_client)
    url = f"/cases/{case['id']}/results"
    first = api_client.put(url, json={"current_monthly_cost": 500}, headers=AUTH_HEADERS)
    assert first.json()["status"] == "completado"
    resp = api_client.put(url, json={"current_monthly_cost": 1200}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["detail"]["valid"] is False
    data = api_client.get(f"/cases/{case['id']}").json()
    assert data["status"] == "completado"
    assert data["current_monthly_cost"] == 500


@pytest.mark.parametrize("field", ["projected_period_months", "intervention_cost", "exchange_rate"])
def test_cost_update_rejects_null_for_required_field(api_client: TestClient, field: str) -> None:
    case = _create_case(api_client)
    resp = api_client.patch(
        f"/cases/{case['id']}/costs", json={field: None}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 422
    assert api_client.get(f"/cases/{case['id']}").json()["version"] == case["version"]


def test_cost_update_can_clear_current_cost(api_client: TestClient) -> None:
    case = _create_case(api_client, current_monthly_cost=700)
    resp = api_client.patch(
        f"/cases/{case['id']}/costs", json={"current_monthly_cost": None}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["current_monthly_cost"] is None
    assert resp.json()["projected_savings"] == 5800
