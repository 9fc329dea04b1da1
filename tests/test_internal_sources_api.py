INTERNAL_HEADERS = {"x-internal-debug": "true"}


def test_internal_endpoints_require_debug_header(client):
    resp = client.post("/api/v1/internal/tenders", json={"title": "x"})
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "AUTH_FORBIDDEN"
    assert client.delete("/api/v1/internal/tenders/1").status_code == 403


def test_register_document_suggests_type(client):
    tender_id = client.post("/api/v1/internal/tenders", json={"title": "x"}, headers=INTERNAL_HEADERS).json()[
        "data"
    ]["tender_id"]
    resp = client.post(
        "/api/v1/internal/documents",
        json={"tender_id": tender_id, "file_name": "Preisblatt.xlsx"},
        headers=INTERNAL_HEADERS,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["document_type_id"] == 5


def test_register_document_for_missing_tender(client):
    resp = client.post(
        "/api/v1/internal/documents",
        json={"tender_id": 77, "file_name": "a.pdf"},
        headers=INTERNAL_HEADERS,
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "TENDER_NOT_FOUND"


def test_register_image_rejects_unknown_type(client, seeded):
    resp = client.post(
        "/api/v1/internal/images",
        json={"document_id": seeded["document_id"], "image_path": "x.png", "image_type": "sketch"},
        headers=INTERNAL_HEADERS,
    )
    assert resp.status_code == 400


def test_remove_tender_cascades_criteria(client, seeded):
    created = client.post("/api/v1/criteria", json={"tender_id": seeded["tender_id"], "title": "A"})
    criterion_id = created.json()["data"]["criterion_id"]

    resp = client.delete(f"/api/v1/internal/tenders/{seeded['tender_id']}", headers=INTERNAL_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["data"]["criteria_removed"] == 1
    assert client.get(f"/api/v1/criteria/{criterion_id}").status_code == 404

    again = client.delete(f"/api/v1/internal/tenders/{seeded['tender_id']}", headers=INTERNAL_HEADERS)
    assert again.status_code == 404


def test_remove_image_clears_evidence_reference(client, seeded):
    created = client.post("/api/v1/criteria", json={"tender_id": seeded["tender_id"], "title": "A"})
    criterion_id = created.json()["data"]["criterion_id"]
    client.post(
        f"/api/v1/criteria/{criterion_id}/evidence",
        json={"extract": "Plan", "image_id": seeded["image_id"]},
    )

    resp = client.delete(f"/api/v1/internal/images/{seeded['image_id']}", headers=INTERNAL_HEADERS)
    assert resp.json()["data"]["evidence_refs_cleared"] == 1
    item = client.get(f"/api/v1/criteria/{criterion_id}/evidence").json()["data"]["items"][0]
    assert item["image_id"] is None
    assert item["source_removed"] is True
