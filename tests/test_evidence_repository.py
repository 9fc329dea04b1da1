from __future__ import annotations

import pytest

from tender_criteria.errors import FieldValidationError, ReferenceNotFoundError
from tender_criteria.repositories.evidence import InMemoryEvidenceRepository, PostgresEvidenceRepository


def _evidence() -> dict:
    return {
        "criterion_id": 1,
        "document_id": 2,
        "image_id": None,
        "extract": "Zertifikat liegt vor",
        "page_number": 7,
        "section_reference": "2.1",
    }


def test_inmemory_evidence_repository_requires_a_source():
    evidence: dict[int, dict] = {}
    repo = InMemoryEvidenceRepository(evidence=evidence, criteria={}, documents={}, images={})

    with pytest.raises(FieldValidationError) as exc:
        repo.insert(evidence={**_evidence(), "document_id": None})
    assert exc.value.code == "EVIDENCE_SOURCE_REQUIRED"
    assert evidence == {}


def test_inmemory_tender_lookup_goes_through_criterion():
    criteria = {1: {"criterion_id": 1, "tender_id": 8}}
    repo = InMemoryEvidenceRepository(evidence={}, criteria=criteria, documents={}, images={})
    created = repo.insert(evidence=_evidence())

    assert repo.tender_id_for(evidence_id=created["evidence_id"]) == 8
    assert repo.tender_id_for(evidence_id=99) is None


def test_postgres_evidence_insert_maps_columns(fake_runner):
    fake_runner.results.append((5, 1, 2, None, "Zertifikat liegt vor", 7, "2.1", "2026-01-01T00:00:00+00:00"))
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)

    created = repo.insert(evidence=_evidence())

    sql, params = fake_runner.statements[0]
    assert sql.startswith(
        "INSERT INTO tender_criteria_source ( criteria_id, tender_document_id, tender_image_id, evidence_extract,"
    )
    assert "tender_id" not in sql.replace("tender_document_id", "").replace("tender_image_id", "")
    assert params == (1, 2, None, "Zertifikat liegt vor", 7, "2.1")
    assert created == {
        "evidence_id": 5,
        "criterion_id": 1,
        "document_id": 2,
        "image_id": None,
        "extract": "Zertifikat liegt vor",
        "page_number": 7,
        "section_reference": "2.1",
        "created_at": "2026-01-01T00:00:00+00:00",
    }


def test_postgres_evidence_insert_without_source_never_reaches_database(fake_runner):
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)
    with pytest.raises(FieldValidationError):
        repo.insert(evidence={**_evidence(), "document_id": None})
    assert fake_runner.statements == []


@pytest.mark.parametrize(("sqlstate", "error"), [("23503", ReferenceNotFoundError), ("23514", FieldValidationError)])
def test_postgres_evidence_insert_translates_integrity_errors(fake_runner, pg_error, sqlstate, error):
    fake_runner.failures["INSERT INTO tender_criteria_source"] = pg_error(sqlstate)
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)
    with pytest.raises(error):
        repo.insert(evidence=_evidence())


def test_postgres_list_for_criterion_left_joins_sources(fake_runner):
    fake_runner.results.append(
        [
            (5, 1, 2, None, "a", 7, None, "2026-01-01T00:00:00+00:00", "Leistungsumfang.pdf", None),
            (6, 1, None, None, "b", None, None, "2026-01-02T00:00:00+00:00", None, None),
        ]
    )
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)

    items = repo.list_for_criterion(criterion_id=1)

    sql, params = fake_runner.statements[0]
    assert "LEFT JOIN tender_documents d ON d.id = e.tender_document_id" in sql
    assert "LEFT JOIN tender_document_images i ON i.id = e.tender_image_id" in sql
    assert sql.endswith("ORDER BY e.created_at ASC, e.id ASC")
    assert params == (1,)
    assert items[0]["document_name"] == "Leistungsumfang.pdf"
    assert items[0]["source_removed"] is False
    assert items[1]["source_removed"] is True


def test_postgres_tender_lookup_joins_criteria(fake_runner):
    fake_runner.results.append((8,))
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)

    assert repo.tender_id_for(evidence_id=5) == 8
    sql, _ = fake_runner.statements[0]
    assert "JOIN tender_criteria c ON c.id = e.criteria_id" in sql


def test_postgres_scope_violation_query_filters_by_tender(fake_runner):
    fake_runner.results.append([(5, 1, 3, "document", 2, 4)])
    repo = PostgresEvidenceRepository(tx_runner=fake_runner)

    items = repo.find_scope_violations(tender_id=3)

    sql, params = fake_runner.statements[0]
    assert sql.count("IS DISTINCT FROM c.tender_id AND c.tender_id = %s") == 2
    assert params == (3, 3)
    assert items == [
        {
            "evidence_id": 5,
            "criterion_id": 1,
            "criterion_tender_id": 3,
            "source": "document",
            "source_id": 2,
            "source_tender_id": 4,
        }
    ]
