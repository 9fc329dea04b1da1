from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from tender_criteria.db.postgres import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    PostgresTxRunner,
    sqlstate_of,
    validate_identifier,
)
from tender_criteria.errors import FieldValidationError, ReferenceNotFoundError


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _missing_source_error() -> FieldValidationError:
    return FieldValidationError(
        code="EVIDENCE_SOURCE_REQUIRED",
        message="evidence requires document_id or image_id",
    )


class InMemoryEvidenceRepository:
    def __init__(
        self,
        *,
        evidence: dict[int, dict[str, Any]],
        criteria: dict[int, dict[str, Any]],
        documents: dict[int, dict[str, Any]],
        images: dict[int, dict[str, Any]],
    ) -> None:
        self._evidence = evidence
        self._criteria = criteria
        self._documents = documents
        self._images = images
        self._next_id = max(evidence, default=0) + 1

    def insert(self, *, evidence: dict[str, Any]) -> dict[str, Any]:
        if evidence.get("document_id") is None and evidence.get("image_id") is None:
            raise _missing_source_error()
        item = dict(evidence)
        item["evidence_id"] = self._next_id
        self._next_id += 1
        item["created_at"] = _utcnow_iso()
        self._evidence[item["evidence_id"]] = item
        return dict(item)

    def get(self, *, evidence_id: int) -> dict[str, Any] | None:
        row = self._evidence.get(evidence_id)
        return None if row is None else dict(row)

    def list_for_criterion(self, *, criterion_id: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for row in self._evidence.values():
            if row.get("criterion_id") != criterion_id:
                continue
            document = self._documents.get(row.get("document_id")) or {}
            image = self._images.get(row.get("image_id")) or {}
            item = dict(row)
            item["document_name"] = document.get("file_name")
            item["image_path"] = image.get("image_path")
            item["source_removed"] = row.get("document_id") is None and row.get("image_id") is None
            items.append(item)
        # stable sort keeps insertion order for equal timestamps
        return sorted(items, key=lambda x: str(x.get("created_at") or ""))

    def tender_id_for(self, *, evidence_id: int) -> int | None:
        row = self._evidence.get(evidence_id)
        if row is None:
            return None
        criterion = self._criteria.get(row.get("criterion_id"))
        return None if criterion is None else criterion.get("tender_id")

    def find_scope_violations(self, *, tender_id: int | None = None) -> list[dict[str, Any]]:
        violations: list[dict[str, Any]] = []
        for row in self._evidence.values():
            criterion = self._criteria.get(row.get("criterion_id"))
            if criterion is None:
                continue
            expected = criterion.get("tender_id")
            if tender_id is not None and expected != tender_id:
                continue
            sources: list[tuple[str, int, dict[str, Any] | None]] = []
            if row.get("document_id") is not None:
                sources.append(("document", row["document_id"], self._documents.get(row["document_id"])))
            if row.get("image_id") is not None:
                image = self._images.get(row["image_id"]) or {}
                sources.append(("image", row["image_id"], self._documents.get(image.get("document_id"))))
            for source, source_id, document in sources:
                actual = None if document is None else document.get("tender_id")
                if actual != expected:
                    violations.append(
                        {
                            "evidence_id": row["evidence_id"],
                            "criterion_id": criterion["criterion_id"],
                            "criterion_tender_id": expected,
                            "source": source,
                            "source_id": source_id,
                            "source_tender_id": actual,
                        }
                    )
        return sorted(violations, key=lambda x: (x["evidence_id"], x["source"]))


class PostgresEvidenceRepository:
    _SELECT_COLUMNS = (
        "id, criteria_id, tender_document_id, tender_image_id, evidence_extract, page_number, "
        "section_reference, created_at"
    )

    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "tender_criteria_source",
        criteria_table: str = "tender_criteria",
        documents_table: str = "tender_documents",
        images_table: str = "tender_document_images",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._criteria_table = validate_identifier(criteria_table)
        self._documents_table = validate_identifier(documents_table)
        self._images_table = validate_identifier(images_table)

    @staticmethod
    def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
        return {
            "evidence_id": row[0],
            "criterion_id": row[1],
            "document_id": row[2],
            "image_id": row[3],
            "extract": row[4],
            "page_number": row[5],
            "section_reference": row[6],
            "created_at": row[7],
        }

    def insert(self, *, evidence: dict[str, Any]) -> dict[str, Any]:
        if evidence.get("document_id") is None and evidence.get("image_id") is None:
            raise _missing_source_error()
        sql = f"""
            INSERT INTO {self._table_name} (
                criteria_id, tender_document_id, tender_image_id, evidence_extract, page_number, section_reference
            ) VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {self._SELECT_COLUMNS}
        """
        params = (
            evidence.get("criterion_id"),
            evidence.get("document_id"),
            evidence.get("image_id"),
            evidence.get("extract"),
            evidence.get("page_number"),
            evidence.get("section_reference"),
        )

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                try:
                    cur.execute(sql, params)
                except Exception as exc:
                    state = sqlstate_of(exc)
                    if state == FOREIGN_KEY_VIOLATION:
                        raise ReferenceNotFoundError(
                            code="EVIDENCE_REFERENCE_NOT_FOUND",
                            message="criterion, document or image referenced by evidence not found",
                        ) from exc
                    if state == CHECK_VIOLATION:
                        raise FieldValidationError(message="evidence violates a table constraint") from exc
                    raise
                row = cur.fetchone()
            return self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, evidence_id: int) -> dict[str, Any] | None:
        sql = f"SELECT {self._SELECT_COLUMNS} FROM {self._table_name} WHERE id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (evidence_id,))
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def list_for_criterion(self, *, criterion_id: int) -> list[dict[str, Any]]:
        sql = f"""
            SELECT e.id, e.criteria_id, e.tender_document_id, e.tender_image_id, e.evidence_extract,
                   e.page_number, e.section_reference, e.created_at, d.file_name, i.image_path
            FROM {self._table_name} e
            LEFT JOIN {self._documents_table} d ON d.id = e.tender_document_id
            LEFT JOIN {self._images_table} i ON i.id = e.tender_image_id
            WHERE e.criteria_id = %s
            ORDER BY e.created_at ASC, e.id ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (criterion_id,))
                rows = cur.fetchall() or []
            items: list[dict[str, Any]] = []
            for row in rows:
                item = self._row_to_record(row)
                item["document_name"] = row[8]
                item["image_path"] = row[9]
                item["source_removed"] = item["document_id"] is None and item["image_id"] is None
                items.append(item)
            return items

        return self._tx_runner.run_in_tx(fn=_op)

    def tender_id_for(self, *, evidence_id: int) -> int | None:
        sql = f"""
            SELECT c.tender_id
            FROM {self._table_name} e
            JOIN {self._criteria_table} c ON c.id = e.criteria_id
            WHERE e.id = %s
        """

        def _op(conn: Any) -> int | None:
            with conn.cursor() as cur:
                cur.execute(sql, (evidence_id,))
                row = cur.fetchone()
            return None if row is None else row[0]

        return self._tx_runner.run_in_tx(fn=_op)

    def find_scope_violations(self, *, tender_id: int | None = None) -> list[dict[str, Any]]:
        tender_filter = "" if tender_id is None else "AND c.tender_id = %s"
        sql = f"""
            SELECT e.id, c.id, c.tender_id, 'document' AS source, e.tender_document_id, d.tender_id
            FROM {self._table_name} e
            JOIN {self._criteria_table} c ON c.id = e.criteria_id
            LEFT JOIN {self._documents_table} d ON d.id = e.tender_document_id
            WHERE e.tender_document_id IS NOT NULL
              AND d.tender_id IS DISTINCT FROM c.tender_id {tender_filter}
            UNION ALL
            SELECT e.id, c.id, c.tender_id, 'image' AS source, e.tender_image_id, d.tender_id
            FROM {self._table_name} e
            JOIN {self._criteria_table} c ON c.id = e.criteria_id
            LEFT JOIN {self._images_table} i ON i.id = e.tender_image_id
            LEFT JOIN {self._documents_table} d ON d.id = i.tender_document_id
            WHERE e.tender_image_id IS NOT NULL
              AND d.tender_id IS DISTINCT FROM c.tender_id {tender_filter}
            ORDER BY 1, 4
        """
        params: tuple[Any, ...] = () if tender_id is None else (tender_id, tender_id)

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() or []
            return [
                {
                    "evidence_id": row[0],
                    "criterion_id": row[1],
                    "criterion_tender_id": row[2],
                    "source": row[3],
                    "source_id": row[4],
                    "source_tender_id": row[5],
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)
