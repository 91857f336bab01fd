from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from shipment_batch.core.deps import get_registry, get_template_store
from shipment_batch.main import app
from shipment_batch.services.batch import BatchRegistry


HEADERS = {"X-User-Id": "u1"}

ROWS = [
    {
        "receiverName": "Jane Doe",
        "orderReference": "A-1",
        "receiverCountry": "USA",
        "packageLength": 25,
        "packageWidth": 20,
        "packageHeight": 8,
        "packageWeight": 1.28,
        "hsCode": "6109.10",
        "customsValue": 5000,
        "shippingTerms": "DDP",
    },
    {
        "receiverName": "Max Mustermann",
        "orderReference": "A-2",
        "receiverCountry": "Germany",
        "packageLength": 25,
        "packageWidth": 20,
        "packageHeight": 8,
        "packageWeight": 1.28,
        "customsValue": 3000,
        "taxId": "",
    },
]


@pytest.fixture
def client(providers):
    registry = BatchRegistry(**providers)
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_template_store] = lambda: providers["template_store"]
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create(client):
    response = client.post("/api/batches", json={"rows": ROWS}, headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def test_requests_without_user_are_rejected(client):
    response = client.post("/api/batches", json={"rows": ROWS})
    assert response.status_code == 401


def test_create_and_fetch_batch(client):
    batch = _create(client)

    assert [draft["row_index"] for draft in batch["drafts"]] == [1, 2]
    assert batch["drafts"][0]["shipping_terms"] == "ddp"
    assert batch["pricing_state"] == "idle"

    response = client.get(f"/api/batches/{batch['id']}", headers=HEADERS)
    assert response.status_code == 200
    assert client.get(f"/api/batches/{batch['id']}", headers={"X-User-Id": "u2"}).status_code == 404


def test_recalculate_and_select_service(client):
    batch = _create(client)
    draft_id = batch["drafts"][0]["id"]

    response = client.post(f"/api/batches/{batch['id']}/recalculate", json={}, headers=HEADERS)
    assert response.json()["succeeded"] == 2

    response = client.post(
        f"/api/batches/{batch['id']}/drafts/{draft_id}/service", json={"option_id": "express"}, headers=HEADERS
    )
    assert response.json()["selected_service_option"]["id"] == "express"

    response = client.post(
        f"/api/batches/{batch['id']}/drafts/{draft_id}/service", json={"option_id": "nope"}, headers=HEADERS
    )
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_service_option"


def test_missing_dimensions_lists_rows(client):
    batch = _create(client)
    draft_id = batch["drafts"][1]["id"]
    client.patch(f"/api/batches/{batch['id']}/drafts/{draft_id}", json={"height": None}, headers=HEADERS)

    response = client.post(f"/api/batches/{batch['id']}/recalculate", json={}, headers=HEADERS)

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "missing_dimensions"
    assert [detail["row_index"] for detail in body["details"]] == [2]


def test_validate_and_blocked_submit(client):
    batch = _create(client)
    client.post(f"/api/batches/{batch['id']}/recalculate", json={}, headers=HEADERS)

    validation = client.post(f"/api/batches/{batch['id']}/validate", headers=HEADERS).json()
    assert validation["valid"] is False
    assert validation["issues"][0]["required_type"] == "IOSS"

    response = client.post(f"/api/batches/{batch['id']}/submit", headers=HEADERS)
    assert response.status_code == 422
    assert response.json()["error"] == "compliance_violation"


def test_submit_after_fixing_tax_id(client, providers):
    batch = _create(client)
    draft_id = batch["drafts"][1]["id"]
    client.patch(f"/api/batches/{batch['id']}/drafts/{draft_id}", json={"tax_id": "IM2760000742"}, headers=HEADERS)
    client.post(f"/api/batches/{batch['id']}/recalculate", json={}, headers=HEADERS)

    response = client.post(f"/api/batches/{batch['id']}/submit", headers=HEADERS)

    assert response.status_code == 200
    assert len(response.json()["submitted_ids"]) == 2
    assert len(providers["order_provider"].batches) == 1


def test_ddp_quote_and_insufficient_balance(client, providers):
    providers["duty_provider"].total = Decimal("42.50")
    providers["balance_provider"].balance = 3000
    batch = _create(client)

    quote = client.post(f"/api/batches/{batch['id']}/ddp/quote", headers=HEADERS).json()
    assert quote["can_afford"] is False
    assert quote["total_minor"] == 4250

    response = client.post(
        f"/api/batches/{batch['id']}/ddp/confirm", json={"quote_id": quote["quote_id"]}, headers=HEADERS
    )
    assert response.status_code == 402
    assert response.json()["details"][0]["shortfall"] == 1250


def test_ddp_confirm_twice_is_conflict(client):
    batch = _create(client)
    quote = client.post(f"/api/batches/{batch['id']}/ddp/quote", headers=HEADERS).json()

    first = client.post(f"/api/batches/{batch['id']}/ddp/confirm", json={"quote_id": quote["quote_id"]}, headers=HEADERS)
    second = client.post(f"/api/batches/{batch['id']}/ddp/confirm", json={"quote_id": quote["quote_id"]}, headers=HEADERS)

    assert first.status_code == 200
    assert first.json()["new_balance"] == 10_000 - 1250
    assert second.status_code == 409


def test_templates_round_trip_through_api(client):
    template = {"name": "Mailer", "length": 30, "width": 20, "height": 5, "weight": 0.4}
    assert client.put("/api/templates/Mailer", json=template, headers=HEADERS).status_code == 200
    assert client.put("/api/templates/Other", json=template, headers=HEADERS).status_code == 400

    listed = client.get("/api/templates", headers=HEADERS).json()
    assert [item["name"] for item in listed["templates"]] == ["Mailer"]

    batch = _create(client)
    draft_id = batch["drafts"][0]["id"]
    response = client.post(
        f"/api/batches/{batch['id']}/drafts/{draft_id}/template", json={"template_name": "Mailer"}, headers=HEADERS
    )
    assert response.json()["selected_template"] == "Mailer"

    assert client.delete("/api/templates/Mailer", headers=HEADERS).status_code == 200
    assert client.get("/api/templates/Mailer", headers=HEADERS).status_code == 404


def test_discard_batch(client):
    batch = _create(client)
    assert client.delete(f"/api/batches/{batch['id']}", headers=HEADERS).status_code == 200
    assert client.get(f"/api/batches/{batch['id']}", headers=HEADERS).status_code == 404
