"""Read side of the tender, document and image stores.

These tables belong to the ingestion pipeline. The criteria core only needs
their identities, the document -> tender and image -> document links, and a
few display fields. Writes are kept here so the in-memory backend can emulate
the referential actions the ingestion schema declares (documents and images
cascade from their tender, evidence references are cleared on source removal).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from tender_criteria.db.postgres import FOREIGN_KEY_VIOLATION, PostgresTxRunner, sqlstate_of, validate_identifier
from tender_criteria.document_types import document_type_title
from tender_criteria.errors import ReferenceNotFoundError

TENDER_STATUSES = (
    "draft",
    "review",
    "published",
    "accepting_submissions",
    "submission_closed",
    "evaluation",
    "awarded",
    "cancelled",
    "archived",
)
IMAGE_TYPES = ("diagram", "chart", "photo", "logo", "signature", "form", "table", "map", "other")


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _image_sort_key(row: dict[str, Any]) -> tuple[Any, ...]:
    page = row.get("page_number")
    return (row.get("document_name") or "", page is None, page or 0, row["image_id"])


class InMemorySourcesRepository:
    def __init__(
        self,
        *,
        tenders: dict[int, dict[str, Any]],
        documents: dict[int, dict[str, Any]],
        images: dict[int, dict[str, Any]],
        criteria: dict[int, dict[str, Any]],
        dependencies: dict[int, dict[str, Any]],
        evidence: dict[int, dict[str, Any]],
    ) -> None:
        self._tenders = tenders
        self._documents = documents
        self._images = images
        self._criteria = criteria
        self._dependencies = dependencies
        self._evidence = evidence
        self._next_ids = {
            "tender": max(tenders, default=0) + 1,
            "document": max(documents, default=0) + 1,
            "image": max(images, default=0) + 1,
        }

    def _allocate(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    def insert_tender(self, *, tender: dict[str, Any]) -> dict[str, Any]:
        item = dict(tender)
        item["tender_id"] = self._allocate("tender")
        item.setdefault("created_at", _utcnow_iso())
        self._tenders[item["tender_id"]] = item
        return dict(item)

    def insert_document(self, *, document: dict[str, Any]) -> dict[str, Any]:
        item = dict(document)
        item["document_id"] = self._allocate("document")
        item.setdefault("created_at", _utcnow_iso())
        self._documents[item["document_id"]] = item
        return dict(item)

    def insert_image(self, *, image: dict[str, Any]) -> dict[str, Any]:
        item = dict(image)
        item["image_id"] = self._allocate("image")
        item.setdefault("created_at", _utcnow_iso())
        self._images[item["image_id"]] = item
        return dict(item)

    def get_tender(self, *, tender_id: int) -> dict[str, Any] | None:
        row = self._tenders.get(tender_id)
        return None if row is None else dict(row)

    def get_document(self, *, document_id: int) -> dict[str, Any] | None:
        row = self._documents.get(document_id)
        return None if row is None else dict(row)

    def get_image(self, *, image_id: int) -> dict[str, Any] | None:
        row = self._images.get(image_id)
        return None if row is None else dict(row)

    def list_images_for_tender(self, *, tender_id: int) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for image in self._images.values():
            document = self._documents.get(image.get("document_id"))
            if document is None or document.get("tender_id") != tender_id:
                continue
            rows.append(
                {
                    "image_id": image["image_id"],
                    "image_path": image.get("image_path"),
                    "image_type": image.get("image_type"),
                    "document_id": document["document_id"],
                    "document_name": document.get("file_name"),
                    "page_number": image.get("page_number"),
                }
            )
        return sorted(rows, key=_image_sort_key)

    def _clear_evidence_refs(self, *, field: str, ids: set[int]) -> int:
        cleared = 0
        for row in self._evidence.values():
            if row.get(field) in ids:
                row[field] = None
                cleared += 1
        return cleared

    def delete_image(self, *, image_id: int) -> dict[str, Any] | None:
        if self._images.pop(image_id, None) is None:
            return None
        cleared = self._clear_evidence_refs(field="image_id", ids={image_id})
        return {"image_id": image_id, "deleted": True, "evidence_refs_cleared": cleared}

    def delete_document(self, *, document_id: int) -> dict[str, Any] | None:
        if self._documents.pop(document_id, None) is None:
            return None
        image_ids = {k for k, v in self._images.items() if v.get("document_id") == document_id}
        for image_id in image_ids:
            del self._images[image_id]
        cleared = self._clear_evidence_refs(field="document_id", ids={document_id})
        cleared += self._clear_evidence_refs(field="image_id", ids=image_ids)
        return {
            "document_id": document_id,
            "deleted": True,
            "images_removed": len(image_ids),
            "evidence_refs_cleared": cleared,
        }

    def delete_tender(self, *, tender_id: int) -> dict[str, Any] | None:
        if self._tenders.pop(tender_id, None) is None:
            return None
        criterion_ids = {k for k, v in self._criteria.items() if v.get("tender_id") == tender_id}
        edge_ids = [
            k
            for k, v in self._dependencies.items()
            if v.get("criterion_id") in criterion_ids or v.get("dependency_id") in criterion_ids
        ]
        evidence_ids = [k for k, v in self._evidence.items() if v.get("criterion_id") in criterion_ids]
        for edge_id in edge_ids:
            del self._dependencies[edge_id]
        for evidence_id in evidence_ids:
            del self._evidence[evidence_id]
        for criterion_id in criterion_ids:
            del self._criteria[criterion_id]
        document_ids = [k for k, v in self._documents.items() if v.get("tender_id") == tender_id]
        for document_id in document_ids:
            self.delete_document(document_id=document_id)
        return {
            "tender_id": tender_id,
            "deleted": True,
            "criteria_removed": len(criterion_ids),
            "documents_removed": len(document_ids),
        }


class PostgresSourcesRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        tenders_table: str = "tenders",
        documents_table: str = "tender_documents",
        images_table: str = "tender_document_images",
        document_types_table: str = "tender_document_types",
    ) -> None:
        self._tx_runner = tx_runner
        self._tenders_table = validate_identifier(tenders_table)
        self._documents_table = validate_identifier(documents_table)
        self._images_table = validate_identifier(images_table)
        self._document_types_table = validate_identifier(document_types_table)

    def insert_tender(self, *, tender: dict[str, Any]) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._tenders_table} (title, status)
            VALUES (%s, %s)
            RETURNING id, title, status, created_at
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (tender.get("title"), tender.get("status", "draft")))
                row = cur.fetchone()
            return {"tender_id": row[0], "title": row[1], "status": row[2], "created_at": row[3]}

        return self._tx_runner.run_in_tx(fn=_op)

    def insert_document(self, *, document: dict[str, Any]) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._documents_table} (tender_id, file_name, page_count, document_type_id)
            VALUES (
                %s, %s, %s,
                (SELECT id FROM {self._document_types_table} WHERE title = %s AND is_active = true)
            )
            RETURNING id, tender_id, file_name, page_count, document_type_id, created_at
        """
        type_title = document_type_title(document.get("document_type_id"))

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        sql,
                        (document.get("tender_id"), document.get("file_name"), document.get("page_count"), type_title),
                    )
                except Exception as exc:
                    if sqlstate_of(exc) == FOREIGN_KEY_VIOLATION:
                        raise ReferenceNotFoundError(
                            code="TENDER_NOT_FOUND",
                            message=f"tender {document.get('tender_id')} not found",
                        ) from exc
                    raise
                row = cur.fetchone()
            return {
                "document_id": row[0],
                "tender_id": row[1],
                "file_name": row[2],
                "page_count": row[3],
                "document_type_id": row[4],
                "created_at": row[5],
            }

        return self._tx_runner.run_in_tx(fn=_op)

    def insert_image(self, *, image: dict[str, Any]) -> dict[str, Any]:
        # The ingestion table still carries its own tender_id column; it is
        # filled from the owning document and never read back.
        sql = f"""
            INSERT INTO {self._images_table} (
                tender_id, tender_document_id, image_path, image_type, page_number, document_section
            )
            SELECT d.tender_id, d.id, %s, %s, %s, %s
            FROM {self._documents_table} d
            WHERE d.id = %s
            RETURNING id, tender_document_id, image_path, image_type, page_number, document_section, created_at
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (
                        image.get("image_path"),
                        image.get("image_type"),
                        image.get("page_number"),
                        image.get("document_section"),
                        image.get("document_id"),
                    ),
                )
                row = cur.fetchone()
            if row is None:
                raise ReferenceNotFoundError(
                    code="DOCUMENT_NOT_FOUND",
                    message=f"document {image.get('document_id')} not found",
                )
            return {
                "image_id": row[0],
                "document_id": row[1],
                "image_path": row[2],
                "image_type": row[3],
                "page_number": row[4],
                "document_section": row[5],
                "created_at": row[6],
            }

        return self._tx_runner.run_in_tx(fn=_op)

    def get_tender(self, *, tender_id: int) -> dict[str, Any] | None:
        sql = f"SELECT id, title, status, created_at FROM {self._tenders_table} WHERE id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (tender_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return {"tender_id": row[0], "title": row[1], "status": row[2], "created_at": row[3]}

        return self._tx_runner.run_in_tx(fn=_op)

    def get_document(self, *, document_id: int) -> dict[str, Any] | None:
        sql = f"""
            SELECT id, tender_id, file_name, page_count, document_type_id, created_at
            FROM {self._documents_table}
            WHERE id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return {
                "document_id": row[0],
                "tender_id": row[1],
                "file_name": row[2],
                "page_count": row[3],
                "document_type_id": row[4],
                "created_at": row[5],
            }

        return self._tx_runner.run_in_tx(fn=_op)

    def get_image(self, *, image_id: int) -> dict[str, Any] | None:
        sql = f"""
            SELECT id, tender_document_id, image_path, image_type, page_number, document_section, created_at
            FROM {self._images_table}
            WHERE id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (image_id,))
                row = cur.fetchone()
            if row is None:
                return None
            return {
                "image_id": row[0],
                "document_id": row[1],
                "image_path": row[2],
                "image_type": row[3],
                "page_number": row[4],
                "document_section": row[5],
                "created_at": row[6],
            }

        return self._tx_runner.run_in_tx(fn=_op)

    def list_images_for_tender(self, *, tender_id: int) -> list[dict[str, Any]]:
        sql = f"""
            SELECT i.id, i.image_path, i.image_type, d.id, d.file_name, i.page_number
            FROM {self._images_table} i
            JOIN {self._documents_table} d ON d.id = i.tender_document_id
            WHERE d.tender_id = %s
            ORDER BY d.file_name ASC, i.page_number ASC NULLS LAST, i.id ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (tender_id,))
                rows = cur.fetchall() or []
            return [
                {
                    "image_id": row[0],
                    "image_path": row[1],
                    "image_type": row[2],
                    "document_id": row[3],
                    "document_name": row[4],
                    "page_number": row[5],
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_image(self, *, image_id: int) -> dict[str, Any] | None:
        sql = f"DELETE FROM {self._images_table} WHERE id = %s"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (image_id,))
                if cur.rowcount == 0:
                    return None
            return {"image_id": image_id, "deleted": True}

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_document(self, *, document_id: int) -> dict[str, Any] | None:
        sql = f"DELETE FROM {self._documents_table} WHERE id = %s"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (document_id,))
                if cur.rowcount == 0:
                    return None
            return {"document_id": document_id, "deleted": True}

        return self._tx_runner.run_in_tx(fn=_op)

    def delete_tender(self, *, tender_id: int) -> dict[str, Any] | None:
        sql = f"DELETE FROM {self._tenders_table} WHERE id = %s"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (tender_id,))
                if cur.rowcount == 0:
                    return None
            return {"tender_id": tender_id, "deleted": True}

        return self._tx_runner.run_in_tx(fn=_op)
