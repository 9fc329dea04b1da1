from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from tender_criteria.db.postgres import PostgresTxRunner, _import_psycopg
from tender_criteria.db.schema import CRITERIA_TABLE, DEPENDENCIES_TABLE, EVIDENCE_TABLE, SchemaManager
from tender_criteria.document_types import document_type_title, suggest_document_type
from tender_criteria.errors import (
    CycleError,
    DuplicateEdgeError,
    FieldValidationError,
    NotFoundError,
    ReferenceNotFoundError,
    SelfLoopError,
)
from tender_criteria.repositories.criteria import MUTABLE_FIELDS
from tender_criteria.repositories.criteria import InMemoryCriteriaRepository
from tender_criteria.repositories.criteria import PostgresCriteriaRepository
from tender_criteria.repositories.dependencies import DEPENDENCY_TYPES
from tender_criteria.repositories.dependencies import InMemoryDependenciesRepository
from tender_criteria.repositories.dependencies import PostgresDependenciesRepository
from tender_criteria.repositories.evidence import InMemoryEvidenceRepository
from tender_criteria.repositories.evidence import PostgresEvidenceRepository
from tender_criteria.repositories.sources import IMAGE_TYPES, TENDER_STATUSES
from tender_criteria.repositories.sources import InMemorySourcesRepository
from tender_criteria.repositories.sources import PostgresSourcesRepository
from tender_criteria.runtime_profile import apply_schema_on_start, postgres_required, reject_cycles_default

logger = logging.getLogger(__name__)

EXPLICITNESS_VALUES = ("explicit", "implicit")
DEFAULT_WEIGHT = Decimal("1.00")
WEIGHT_LIMIT = Decimal("1000")
WEIGHT_WARN_ABOVE = Decimal("100")
_CENTS = Decimal("0.01")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_weight(value: Any) -> Decimal:
    if value is None:
        return DEFAULT_WEIGHT
    if isinstance(value, bool):
        raise FieldValidationError(message="weight must be a number")
    try:
        weight = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise FieldValidationError(message=f"weight is not a number: {value!r}") from exc
    if not weight.is_finite():
        raise FieldValidationError(message="weight must be finite")
    if weight < 0:
        raise FieldValidationError(message="weight must not be negative")
    if weight >= WEIGHT_LIMIT:
        raise FieldValidationError(message="weight must be below 1000")
    weight = weight.quantize(_CENTS)
    # 999.995 rounds up to the limit
    if weight >= WEIGHT_LIMIT:
        raise FieldValidationError(message="weight must be below 1000")
    return weight


def _positive_int_or_none(value: Any, *, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise FieldValidationError(message=f"{field} must be a positive integer")
    return value


def normalize_criterion(record: dict[str, Any]) -> dict[str, Any]:
    """Validate a full criterion record and return its stored form."""
    title = record.get("title")
    if not isinstance(title, str) or not title.strip():
        raise FieldValidationError(message="title must not be empty")
    explicitness = record.get("explicitness") or "explicit"
    if explicitness not in EXPLICITNESS_VALUES:
        raise FieldValidationError(message=f"unknown explicitness: {explicitness}")
    reasoning = record.get("reasoning")
    if explicitness == "implicit" and _is_blank(reasoning):
        raise FieldValidationError(message="implicit criteria require reasoning")
    if explicitness == "explicit" and not _is_blank(reasoning):
        raise FieldValidationError(message="explicit criteria must not carry reasoning")
    validation_condition = record.get("validation_condition")
    if validation_condition is not None and not isinstance(validation_condition, dict):
        raise FieldValidationError(message="validation_condition must be an object")
    metadata = record.get("metadata")
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise FieldValidationError(message="metadata must be an object")
    weight = _parse_weight(record.get("weight"))
    return {
        "tender_id": record.get("tender_id"),
        "title": title.strip(),
        "description": record.get("description"),
        "category": record.get("category"),
        "explicitness": explicitness,
        "reasoning": reasoning if explicitness == "implicit" else None,
        "validation_condition": validation_condition,
        "verification_method": record.get("verification_method"),
        "weight": weight,
        "is_binary": bool(record.get("is_binary", False)),
        "metadata": metadata,
    }


class CriteriaStore:
    """Criteria graph and evidence operations over the in-memory backend."""

    def __init__(self, *, reject_cycles: bool = False) -> None:
        self.reject_cycles_default = reject_cycles
        self._lock = threading.RLock()
        self.tenders: dict[int, dict[str, Any]] = {}
        self.documents: dict[int, dict[str, Any]] = {}
        self.images: dict[int, dict[str, Any]] = {}
        self.criteria: dict[int, dict[str, Any]] = {}
        self.dependencies: dict[int, dict[str, Any]] = {}
        self.evidence: dict[int, dict[str, Any]] = {}
        self._bind_repositories()

    def _bind_repositories(self) -> None:
        self.sources_repository = InMemorySourcesRepository(
            tenders=self.tenders,
            documents=self.documents,
            images=self.images,
            criteria=self.criteria,
            dependencies=self.dependencies,
            evidence=self.evidence,
        )
        self.criteria_repository = InMemoryCriteriaRepository(self.criteria, self.dependencies, self.evidence)
        self.dependencies_repository = InMemoryDependenciesRepository(self.dependencies, self.criteria)
        self.evidence_repository = InMemoryEvidenceRepository(
            evidence=self.evidence,
            criteria=self.criteria,
            documents=self.documents,
            images=self.images,
        )

    def reset(self) -> None:
        with self._lock:
            self.tenders.clear()
            self.documents.clear()
            self.images.clear()
            self.criteria.clear()
            self.dependencies.clear()
            self.evidence.clear()
            self._bind_repositories()

    # ------------------------------------------------------------------
    # External sources
    # ------------------------------------------------------------------

    def _require_tender(self, tender_id: int) -> dict[str, Any]:
        tender = self.sources_repository.get_tender(tender_id=tender_id)
        if tender is None:
            raise ReferenceNotFoundError(code="TENDER_NOT_FOUND", message=f"tender {tender_id} not found")
        return tender

    def _require_document(self, document_id: int) -> dict[str, Any]:
        document = self.sources_repository.get_document(document_id=document_id)
        if document is None:
            raise ReferenceNotFoundError(code="DOCUMENT_NOT_FOUND", message=f"document {document_id} not found")
        return document

    def _require_image(self, image_id: int) -> dict[str, Any]:
        image = self.sources_repository.get_image(image_id=image_id)
        if image is None:
            raise ReferenceNotFoundError(code="IMAGE_NOT_FOUND", message=f"image {image_id} not found")
        return image

    def register_tender(self, *, title: str, status: str = "draft") -> dict[str, Any]:
        if _is_blank(title):
            raise FieldValidationError(message="tender title must not be empty")
        if status not in TENDER_STATUSES:
            raise FieldValidationError(message=f"unknown tender status: {status}")
        with self._lock:
            return self.sources_repository.insert_tender(tender={"title": title.strip(), "status": status})

    def register_document(
        self,
        *,
        tender_id: int,
        file_name: str,
        document_type_id: int | None = None,
        page_count: int | None = None,
    ) -> dict[str, Any]:
        if _is_blank(file_name):
            raise FieldValidationError(message="file_name must not be empty")
        if document_type_id is None:
            document_type_id = suggest_document_type(file_name)
        elif document_type_title(document_type_id) is None:
            raise FieldValidationError(message=f"unknown document type: {document_type_id}")
        page_count = _positive_int_or_none(page_count, field="page_count")
        with self._lock:
            self._require_tender(tender_id)
            return self.sources_repository.insert_document(
                document={
                    "tender_id": tender_id,
                    "file_name": file_name,
                    "document_type_id": document_type_id,
                    "page_count": page_count,
                }
            )

    def register_image(
        self,
        *,
        document_id: int,
        image_path: str,
        image_type: str | None = None,
        page_number: int | None = None,
        document_section: str | None = None,
    ) -> dict[str, Any]:
        if _is_blank(image_path):
            raise FieldValidationError(message="image_path must not be empty")
        if image_type is not None and image_type not in IMAGE_TYPES:
            raise FieldValidationError(message=f"unknown image type: {image_type}")
        page_number = _positive_int_or_none(page_number, field="page_number")
        with self._lock:
            self._require_document(document_id)
            return self.sources_repository.insert_image(
                image={
                    "document_id": document_id,
                    "image_path": image_path,
                    "image_type": image_type,
                    "page_number": page_number,
                    "document_section": document_section,
                }
            )

    def remove_tender(self, *, tender_id: int) -> dict[str, Any]:
        with self._lock:
            summary = self.sources_repository.delete_tender(tender_id=tender_id)
        if summary is None:
            raise NotFoundError(code="TENDER_NOT_FOUND", message=f"tender {tender_id} not found")
        logger.info("tender_removed tender_id=%s", tender_id)
        return summary

    def remove_document(self, *, document_id: int) -> dict[str, Any]:
        with self._lock:
            summary = self.sources_repository.delete_document(document_id=document_id)
        if summary is None:
            raise NotFoundError(code="DOCUMENT_NOT_FOUND", message=f"document {document_id} not found")
        logger.info(
            "document_removed document_id=%s evidence_refs_cleared=%s",
            document_id,
            summary.get("evidence_refs_cleared"),
        )
        return summary

    def remove_image(self, *, image_id: int) -> dict[str, Any]:
        with self._lock:
            summary = self.sources_repository.delete_image(image_id=image_id)
        if summary is None:
            raise NotFoundError(code="IMAGE_NOT_FOUND", message=f"image {image_id} not found")
        logger.info("image_removed image_id=%s evidence_refs_cleared=%s", image_id, summary.get("evidence_refs_cleared"))
        return summary

    def list_images_for_tender(self, *, tender_id: int) -> list[dict[str, Any]]:
        with self._lock:
            if self.sources_repository.get_tender(tender_id=tender_id) is None:
                raise NotFoundError(code="TENDER_NOT_FOUND", message=f"tender {tender_id} not found")
            return self.sources_repository.list_images_for_tender(tender_id=tender_id)

    # ------------------------------------------------------------------
    # Criteria
    # ------------------------------------------------------------------

    def _warn_on_heavy_weight(self, record: dict[str, Any]) -> None:
        if record["weight"] > WEIGHT_WARN_ABOVE:
            logger.warning("criterion_weight_above_100 title=%s weight=%s", record["title"], record["weight"])

    def create_criterion(self, *, tender_id: int, title: str, **attributes: Any) -> dict[str, Any]:
        unknown = set(attributes) - MUTABLE_FIELDS
        if unknown:
            raise FieldValidationError(message=f"unknown criterion fields: {sorted(unknown)}")
        record = normalize_criterion({**attributes, "tender_id": tender_id, "title": title})
        self._warn_on_heavy_weight(record)
        with self._lock:
            self._require_tender(tender_id)
            return self.criteria_repository.insert(criterion=record)

    def get_criterion(self, *, criterion_id: int) -> dict[str, Any]:
        with self._lock:
            criterion = self.criteria_repository.get(criterion_id=criterion_id)
        if criterion is None:
            raise NotFoundError(code="CRITERION_NOT_FOUND", message=f"criterion {criterion_id} not found")
        return criterion

    def update_criterion(self, *, criterion_id: int, patch: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            current = self.get_criterion(criterion_id=criterion_id)
            fields = dict(patch)
            if "tender_id" in fields:
                if fields.pop("tender_id") != current["tender_id"]:
                    raise FieldValidationError(
                        code="CRITERION_TENDER_IMMUTABLE",
                        message="tender_id cannot change after creation",
                    )
            unknown = set(fields) - MUTABLE_FIELDS
            if unknown:
                raise FieldValidationError(message=f"unknown criterion fields: {sorted(unknown)}")
            if "weight" in fields and fields["weight"] is None:
                raise FieldValidationError(message="weight cannot be cleared")
            if fields.get("explicitness") == "explicit" and "reasoning" not in fields:
                fields["reasoning"] = None
            merged = normalize_criterion({**current, **fields})
            changes = {key: merged[key] for key in fields}
            if "weight" in changes:
                self._warn_on_heavy_weight(merged)
            updated = self.criteria_repository.update(criterion_id=criterion_id, fields=changes)
        if updated is None:
            raise NotFoundError(code="CRITERION_NOT_FOUND", message=f"criterion {criterion_id} not found")
        return updated

    def delete_criterion(self, *, criterion_id: int) -> dict[str, Any]:
        with self._lock:
            summary = self.criteria_repository.delete(criterion_id=criterion_id)
        if summary is None:
            raise NotFoundError(code="CRITERION_NOT_FOUND", message=f"criterion {criterion_id} not found")
        logger.info(
            "criterion_deleted criterion_id=%s dependencies_removed=%s evidence_removed=%s",
            criterion_id,
            summary["dependencies_removed"],
            summary["evidence_removed"],
        )
        return summary

    def list_criteria(self, *, tender_id: int) -> list[dict[str, Any]]:
        with self._lock:
            return self.criteria_repository.list_by_tender(tender_id=tender_id)

    def list_criteria_by_category(self, *, tender_id: int, category: str) -> list[dict[str, Any]]:
        with self._lock:
            return self.criteria_repository.list_by_tender_and_category(tender_id=tender_id, category=category)

    # ------------------------------------------------------------------
    # Dependency graph
    # ------------------------------------------------------------------

    def _require_criterion_ref(self, criterion_id: int) -> dict[str, Any]:
        criterion = self.criteria_repository.get(criterion_id=criterion_id)
        if criterion is None:
            raise ReferenceNotFoundError(code="CRITERION_NOT_FOUND", message=f"criterion {criterion_id} not found")
        return criterion

    def add_dependency(
        self,
        *,
        criterion_id: int,
        dependency_id: int,
        dependency_type: str = "requires",
        description: str | None = None,
        reject_cycles: bool | None = None,
    ) -> dict[str, Any]:
        if criterion_id == dependency_id:
            raise SelfLoopError(criterion_id=criterion_id)
        if dependency_type not in DEPENDENCY_TYPES:
            raise FieldValidationError(message=f"unknown dependency type: {dependency_type}")
        check_cycles = self.reject_cycles_default if reject_cycles is None else reject_cycles
        with self._lock:
            self._require_criterion_ref(criterion_id)
            self._require_criterion_ref(dependency_id)
            if self.dependencies_repository.get_by_pair(criterion_id=criterion_id, dependency_id=dependency_id):
                raise DuplicateEdgeError(criterion_id=criterion_id, dependency_id=dependency_id)
            try:
                return self.dependencies_repository.insert(
                    edge={
                        "criterion_id": criterion_id,
                        "dependency_id": dependency_id,
                        "dependency_type": dependency_type,
                        "description": description,
                        "is_active": True,
                    },
                    reject_cycles=check_cycles,
                )
            except CycleError:
                logger.warning("dependency_cycle_refused criterion_id=%s dependency_id=%s", criterion_id, dependency_id)
                raise

    def _set_dependency_active(self, *, edge_id: int, is_active: bool, reject_cycles: bool | None) -> dict[str, Any]:
        check_cycles = self.reject_cycles_default if reject_cycles is None else reject_cycles
        with self._lock:
            try:
                edge = self.dependencies_repository.set_active(
                    edge_id=edge_id,
                    is_active=is_active,
                    reject_cycles=check_cycles,
                )
            except CycleError:
                logger.warning("dependency_cycle_refused edge_id=%s", edge_id)
                raise
        if edge is None:
            raise NotFoundError(code="DEPENDENCY_NOT_FOUND", message=f"dependency {edge_id} not found")
        return edge

    def deactivate_dependency(self, *, edge_id: int) -> dict[str, Any]:
        return self._set_dependency_active(edge_id=edge_id, is_active=False, reject_cycles=False)

    def reactivate_dependency(self, *, edge_id: int, reject_cycles: bool | None = None) -> dict[str, Any]:
        return self._set_dependency_active(edge_id=edge_id, is_active=True, reject_cycles=reject_cycles)

    def list_dependencies(self, *, criterion_id: int) -> list[dict[str, Any]]:
        with self._lock:
            self.get_criterion(criterion_id=criterion_id)
            return self.dependencies_repository.list_dependencies(criterion_id=criterion_id)

    def list_dependents(self, *, criterion_id: int) -> list[dict[str, Any]]:
        with self._lock:
            self.get_criterion(criterion_id=criterion_id)
            return self.dependencies_repository.list_dependents(criterion_id=criterion_id)

    def has_path(self, *, source_id: int, target_id: int) -> bool:
        with self._lock:
            self.get_criterion(criterion_id=source_id)
            self.get_criterion(criterion_id=target_id)
            return self.dependencies_repository.has_path(source_id=source_id, target_id=target_id)

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def attach_evidence(
        self,
        *,
        criterion_id: int,
        extract: str,
        document_id: int | None = None,
        image_id: int | None = None,
        page_number: int | None = None,
        section_reference: str | None = None,
    ) -> dict[str, Any]:
        if not isinstance(extract, str) or not extract.strip():
            raise FieldValidationError(message="extract must not be empty")
        page_number = _positive_int_or_none(page_number, field="page_number")
        if document_id is None and image_id is None:
            raise FieldValidationError(
                code="EVIDENCE_SOURCE_REQUIRED",
                message="evidence requires document_id or image_id",
            )
        with self._lock:
            criterion = self._require_criterion_ref(criterion_id)
            tender_id = criterion["tender_id"]
            if document_id is not None:
                document = self._require_document(document_id)
                if document["tender_id"] != tender_id:
                    raise FieldValidationError(
                        code="EVIDENCE_SCOPE_MISMATCH",
                        message=f"document {document_id} does not belong to tender {tender_id}",
                    )
            if image_id is not None:
                image = self._require_image(image_id)
                owner = self.sources_repository.get_document(document_id=image["document_id"])
                if owner is None or owner["tender_id"] != tender_id:
                    raise FieldValidationError(
                        code="EVIDENCE_SCOPE_MISMATCH",
                        message=f"image {image_id} does not belong to tender {tender_id}",
                    )
            return self.evidence_repository.insert(
                evidence={
                    "criterion_id": criterion_id,
                    "document_id": document_id,
                    "image_id": image_id,
                    "extract": extract,
                    "page_number": page_number,
                    "section_reference": section_reference,
                }
            )

    def get_evidence(self, *, evidence_id: int) -> dict[str, Any]:
        with self._lock:
            evidence = self.evidence_repository.get(evidence_id=evidence_id)
        if evidence is None:
            raise NotFoundError(code="EVIDENCE_NOT_FOUND", message=f"evidence {evidence_id} not found")
        return evidence

    def list_evidence(self, *, criterion_id: int) -> list[dict[str, Any]]:
        with self._lock:
            self.get_criterion(criterion_id=criterion_id)
            return self.evidence_repository.list_for_criterion(criterion_id=criterion_id)

    def tender_id_for_evidence(self, *, evidence_id: int) -> int:
        with self._lock:
            tender_id = self.evidence_repository.tender_id_for(evidence_id=evidence_id)
        if tender_id is None:
            raise NotFoundError(code="EVIDENCE_NOT_FOUND", message=f"evidence {evidence_id} not found")
        return tender_id

    def find_evidence_scope_violations(self, *, tender_id: int | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return self.evidence_repository.find_scope_violations(tender_id=tender_id)


class PostgresCriteriaStore(CriteriaStore):
    """Same operations with every repository bound to PostgreSQL tables."""

    def __init__(self, *, dsn: str, reject_cycles: bool = False, apply_schema: bool = False) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must be provided for postgres store backend")
        self._dsn = dsn.strip()
        self._tx_runner = PostgresTxRunner(self._dsn)
        if apply_schema:
            SchemaManager(self._dsn).apply()
        super().__init__(reject_cycles=reject_cycles)

    def _bind_repositories(self) -> None:
        self.sources_repository = PostgresSourcesRepository(tx_runner=self._tx_runner)
        self.criteria_repository = PostgresCriteriaRepository(
            tx_runner=self._tx_runner,
            table_name=CRITERIA_TABLE,
            dependencies_table=DEPENDENCIES_TABLE,
            evidence_table=EVIDENCE_TABLE,
        )
        self.dependencies_repository = PostgresDependenciesRepository(
            tx_runner=self._tx_runner,
            table_name=DEPENDENCIES_TABLE,
            criteria_table=CRITERIA_TABLE,
        )
        self.evidence_repository = PostgresEvidenceRepository(
            tx_runner=self._tx_runner,
            table_name=EVIDENCE_TABLE,
            criteria_table=CRITERIA_TABLE,
        )

    def reset(self) -> None:
        psycopg = _import_psycopg()
        with self._lock:
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"TRUNCATE TABLE {EVIDENCE_TABLE}, {DEPENDENCIES_TABLE}, {CRITERIA_TABLE} RESTART IDENTITY"
                    )
                conn.commit()


def create_store_from_env(environ: Mapping[str, str] | None = None) -> CriteriaStore:
    env = os.environ if environ is None else environ
    backend = env.get("TC_STORE_BACKEND", "memory").strip().lower() or "memory"
    if postgres_required(env) and backend != "postgres":
        raise RuntimeError("TC_STORE_BACKEND must be postgres when TC_REQUIRE_POSTGRES=true")
    reject_cycles = reject_cycles_default(env)
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "").strip()
        if not dsn:
            raise ValueError("POSTGRES_DSN must be set when TC_STORE_BACKEND=postgres")
        return PostgresCriteriaStore(
            dsn=dsn,
            reject_cycles=reject_cycles,
            apply_schema=apply_schema_on_start(env),
        )
    if backend != "memory":
        raise ValueError(f"unsupported TC_STORE_BACKEND: {backend}")
    return CriteriaStore(reject_cycles=reject_cycles)


store = create_store_from_env()
