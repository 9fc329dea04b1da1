def _create(client, tender_id: int, **extra):
    payload = {"tender_id": tender_id, "title": "Referenzprojekte", **extra}
    return client.post("/api/v1/criteria", json=payload)


def test_create_get_update_delete_criterion(client, seeded):
    created = _create(client, seeded["tender_id"], category="technisch", weight="12.5")
    assert created.status_code == 201
    data = created.json()["data"]
    criterion_id = data["criterion_id"]
    assert data["tender_id"] == seeded["tender_id"]
    assert float(data["weight"]) == 12.5

    loaded = client.get(f"/api/v1/criteria/{criterion_id}")
    assert loaded.status_code == 200
    assert loaded.json()["data"]["title"] == "Referenzprojekte"

    updated = client.put(f"/api/v1/criteria/{criterion_id}", json={"title": "Fuenf Referenzprojekte"})
    assert updated.status_code == 200
    assert updated.json()["data"]["title"] == "Fuenf Referenzprojekte"
    assert updated.json()["data"]["category"] == "technisch"

    deleted = client.delete(f"/api/v1/criteria/{criterion_id}")
    assert deleted.status_code == 200
    assert deleted.json()["data"] == {
        "criterion_id": criterion_id,
        "deleted": True,
        "dependencies_removed": 0,
        "evidence_removed": 0,
    }

    missing = client.get(f"/api/v1/criteria/{criterion_id}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "CRITERION_NOT_FOUND"


def test_create_criterion_for_missing_tender_is_unprocessable(client):
    resp = _create(client, 999)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "TENDER_NOT_FOUND"


def test_implicit_criterion_without_reasoning_is_rejected(client, seeded):
    resp = _create(client, seeded["tender_id"], explicitness="implicit")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"


def test_tender_id_is_immutable_over_http(client, seeded):
    criterion_id = _create(client, seeded["tender_id"]).json()["data"]["criterion_id"]

    resp = client.put(f"/api/v1/criteria/{criterion_id}", json={"tender_id": seeded["other_tender_id"]})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "CRITERION_TENDER_IMMUTABLE"

    same = client.put(f"/api/v1/criteria/{criterion_id}", json={"tender_id": seeded["tender_id"], "weight": 3})
    assert same.status_code == 200
    assert same.json()["data"]["tender_id"] == seeded["tender_id"]


def test_list_tender_criteria_with_category_filter(client, seeded):
    tender_id = seeded["tender_id"]
    _create(client, tender_id, title="Preis", category="kommerziell", weight=60)
    _create(client, tender_id, title="Konzept", category="technisch", weight=30)
    _create(client, tender_id, title="Team", category="technisch", weight=10)

    everything = client.get(f"/api/v1/tenders/{tender_id}/criteria")
    assert everything.status_code == 200
    assert [x["title"] for x in everything.json()["data"]["items"]] == ["Preis", "Konzept", "Team"]

    technical = client.get(f"/api/v1/tenders/{tender_id}/criteria", params={"category": "technisch"})
    data = technical.json()["data"]
    assert data["total"] == 2
    assert [x["title"] for x in data["items"]] == ["Konzept", "Team"]


def test_null_weight_on_update_is_rejected(client, seeded):
    criterion_id = _create(client, seeded["tender_id"], weight="7.5").json()["data"]["criterion_id"]

    resp = client.put(f"/api/v1/criteria/{criterion_id}", json={"weight": None})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"
    assert float(client.get(f"/api/v1/criteria/{criterion_id}").json()["data"]["weight"]) == 7.5
