from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from tender_criteria.db.postgres import (
    FOREIGN_KEY_VIOLATION,
    PostgresTxRunner,
    sqlstate_of,
    validate_identifier,
)
from tender_criteria.errors import ReferenceNotFoundError

# record key -> column
_COLUMNS: dict[str, str] = {
    "tender_id": "tender_id",
    "title": "title",
    "description": "description",
    "category": "category",
    "explicitness": "explicitness",
    "reasoning": "reasoning_for_implicit",
    "validation_condition": "validation_condition",
    "verification_method": "verification_method",
    "weight": "weight",
    "is_binary": "is_binary_validation",
    "metadata": "metadata",
}
_JSON_FIELDS = {"validation_condition", "metadata"}
MUTABLE_FIELDS = frozenset(_COLUMNS) - {"tender_id"}


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _ranking_key(row: dict[str, Any]) -> tuple[Decimal, str]:
    weight = row.get("weight")
    return (-(weight if weight is not None else Decimal("0")), str(row.get("title") or ""))


class InMemoryCriteriaRepository:
    def __init__(
        self,
        criteria: dict[int, dict[str, Any]],
        dependencies: dict[int, dict[str, Any]],
        evidence: dict[int, dict[str, Any]],
    ) -> None:
        self._criteria = criteria
        self._dependencies = dependencies
        self._evidence = evidence
        self._next_id = max(criteria, default=0) + 1

    def insert(self, *, criterion: dict[str, Any]) -> dict[str, Any]:
        item = dict(criterion)
        item["criterion_id"] = self._next_id
        self._next_id += 1
        now = _utcnow_iso()
        item["created_at"] = now
        item["updated_at"] = now
        self._criteria[item["criterion_id"]] = item
        return dict(item)

    def get(self, *, criterion_id: int) -> dict[str, Any] | None:
        row = self._criteria.get(criterion_id)
        return None if row is None else dict(row)

    def update(self, *, criterion_id: int, fields: dict[str, Any]) -> dict[str, Any] | None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"not updatable: {sorted(unknown)}")
        row = self._criteria.get(criterion_id)
        if row is None:
            return None
        row.update(fields)
        row["updated_at"] = _utcnow_iso()
        return dict(row)

    def delete(self, *, criterion_id: int) -> dict[str, Any] | None:
        if criterion_id not in self._criteria:
            return None
        edge_ids = [
            k
            for k, v in self._dependencies.items()
            if v.get("criterion_id") == criterion_id or v.get("dependency_id") == criterion_id
        ]
        evidence_ids = [k for k, v in self._evidence.items() if v.get("criterion_id") == criterion_id]
        for edge_id in edge_ids:
            del self._dependencies[edge_id]
        for evidence_id in evidence_ids:
            del self._evidence[evidence_id]
        del self._criteria[criterion_id]
        return {
            "criterion_id": criterion_id,
            "deleted": True,
            "dependencies_removed": len(edge_ids),
            "evidence_removed": len(evidence_ids),
        }

    def list_by_tender(self, *, tender_id: int) -> list[dict[str, Any]]:
        rows = [dict(x) for x in self._criteria.values() if x.get("tender_id") == tender_id]
        return sorted(rows, key=_ranking_key)

    def list_by_tender_and_category(self, *, tender_id: int, category: str) -> list[dict[str, Any]]:
        return [x for x in self.list_by_tender(tender_id=tender_id) if x.get("category") == category]


class PostgresCriteriaRepository:
    _SELECT_COLUMNS = (
        "id, tender_id, title, description, category, explicitness, reasoning_for_implicit, "
        "validation_condition, verification_method, weight, is_binary_validation, metadata, created_at, updated_at"
    )

    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "tender_criteria",
        dependencies_table: str = "tender_criteria_dependencies",
        evidence_table: str = "tender_criteria_source",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._dependencies_table = validate_identifier(dependencies_table)
        self._evidence_table = validate_identifier(evidence_table)

    @staticmethod
    def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
        return {
            "criterion_id": row[0],
            "tender_id": row[1],
            "title": row[2],
            "description": row[3],
            "category": row[4],
            "explicitness": row[5],
            "reasoning": row[6],
            "validation_condition": row[7],
            "verification_method": row[8],
            "weight": row[9],
            "is_binary": bool(row[10]),
            "metadata": row[11] if isinstance(row[11], dict) else {},
            "created_at": row[12],
            "updated_at": row[13],
        }

    @staticmethod
    def _param(key: str, value: Any) -> Any:
        if key in _JSON_FIELDS:
            return None if value is None else json.dumps(value, ensure_ascii=True, sort_keys=True)
        return value

    def insert(self, *, criterion: dict[str, Any]) -> dict[str, Any]:
        keys = list(_COLUMNS)
        columns = ", ".join(_COLUMNS[k] for k in keys)
        placeholders = ", ".join("%s::jsonb" if k in _JSON_FIELDS else "%s" for k in keys)
        sql = f"""
            INSERT INTO {self._table_name} ({columns})
            VALUES ({placeholders})
            RETURNING {self._SELECT_COLUMNS}
        """
        params = tuple(self._param(k, criterion.get(k)) for k in keys)

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                try:
                    cur.execute(sql, params)
                except Exception as exc:
                    if sqlstate_of(exc) == FOREIGN_KEY_VIOLATION:
                        raise ReferenceNotFoundError(
                            code="TENDER_NOT_FOUND",
                            message=f"tender {criterion.get('tender_id')} not found",
                        ) from exc
                    raise
                row = cur.fetchone()
            return self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, criterion_id: int) -> dict[str, Any] | None:
        sql = f"SELECT {self._SELECT_COLUMNS} FROM {self._table_name} WHERE id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (criterion_id,))
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def update(self, *, criterion_id: int, fields: dict[str, Any]) -> dict[str, Any] | None:
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"not updatable: {sorted(unknown)}")
        if not fields:
            return self.get(criterion_id=criterion_id)
        keys = list(fields)
        assignments = ", ".join(
            f"{_COLUMNS[k]} = %s::jsonb" if k in _JSON_FIELDS else f"{_COLUMNS[k]} = %s" for k in keys
        )
        sql = f"""
            UPDATE {self._table_name}
            SET {assignments}
            WHERE id = %s
            RETURNING {self._SELECT_COLUMNS}
        """
        params = tuple(self._param(k, fields[k]) for k in keys) + (criterion_id,)

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def delete(self, *, criterion_id: int) -> dict[str, Any] | None:
        count_edges_sql = f"""
            SELECT COUNT(*) FROM {self._dependencies_table}
            WHERE criteria_id = %s OR dependency_id = %s
        """
        count_evidence_sql = f"SELECT COUNT(*) FROM {self._evidence_table} WHERE criteria_id = %s"
        delete_sql = f"DELETE FROM {self._table_name} WHERE id = %s RETURNING id"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(count_edges_sql, (criterion_id, criterion_id))
                edges = int((cur.fetchone() or (0,))[0])
                cur.execute(count_evidence_sql, (criterion_id,))
                evidence = int((cur.fetchone() or (0,))[0])
                cur.execute(delete_sql, (criterion_id,))
                if cur.fetchone() is None:
                    return None
            return {
                "criterion_id": criterion_id,
                "deleted": True,
                "dependencies_removed": edges,
                "evidence_removed": evidence,
            }

        return self._tx_runner.run_in_tx(fn=_op)

    def _list(self, where: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        sql = f"""
            SELECT {self._SELECT_COLUMNS}
            FROM {self._table_name}
            WHERE {where}
            ORDER BY weight DESC NULLS LAST, title ASC
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall() or []
            return [self._row_to_record(row) for row in rows]

        return self._tx_runner.run_in_tx(fn=_op)

    def list_by_tender(self, *, tender_id: int) -> list[dict[str, Any]]:
        return self._list("tender_id = %s", (tender_id,))

    def list_by_tender_and_category(self, *, tender_id: int, category: str) -> list[dict[str, Any]]:
        return self._list("tender_id = %s AND category = %s", (tender_id, category))
