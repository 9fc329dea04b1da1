from __future__ import annotations

from collections import deque
from datetime import UTC, datetime
from typing import Any

from tender_criteria.db.postgres import (
    CHECK_VIOLATION,
    FOREIGN_KEY_VIOLATION,
    UNIQUE_VIOLATION,
    PostgresTxRunner,
    sqlstate_of,
    validate_identifier,
)
from tender_criteria.errors import (
    CycleError,
    DuplicateEdgeError,
    ReferenceNotFoundError,
    SelfLoopError,
)

DEPENDENCY_TYPES = ("requires", "conflicts", "enhances")


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _reachable(adjacency: dict[int, list[int]], source_id: int, target_id: int) -> bool:
    """Breadth-first search; the visited set keeps stored cycles from looping forever."""
    if source_id == target_id:
        return True
    visited = {source_id}
    queue = deque([source_id])
    while queue:
        node = queue.popleft()
        for nxt in adjacency.get(node, ()):
            if nxt == target_id:
                return True
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return False


class InMemoryDependenciesRepository:
    def __init__(
        self,
        dependencies: dict[int, dict[str, Any]],
        criteria: dict[int, dict[str, Any]],
    ) -> None:
        self._dependencies = dependencies
        self._criteria = criteria
        self._next_id = max(dependencies, default=0) + 1

    def _active_adjacency(self) -> dict[int, list[int]]:
        adjacency: dict[int, list[int]] = {}
        for row in self._dependencies.values():
            if row.get("is_active"):
                adjacency.setdefault(row["criterion_id"], []).append(row["dependency_id"])
        return adjacency

    def has_path(self, *, source_id: int, target_id: int) -> bool:
        return _reachable(self._active_adjacency(), source_id, target_id)

    def get_by_pair(self, *, criterion_id: int, dependency_id: int) -> dict[str, Any] | None:
        for row in self._dependencies.values():
            if row.get("criterion_id") == criterion_id and row.get("dependency_id") == dependency_id:
                return dict(row)
        return None

    def insert(self, *, edge: dict[str, Any], reject_cycles: bool = False) -> dict[str, Any]:
        criterion_id = edge["criterion_id"]
        dependency_id = edge["dependency_id"]
        if criterion_id == dependency_id:
            raise SelfLoopError(criterion_id=criterion_id)
        for endpoint in (criterion_id, dependency_id):
            if endpoint not in self._criteria:
                raise ReferenceNotFoundError(code="CRITERION_NOT_FOUND", message=f"criterion {endpoint} not found")
        if self.get_by_pair(criterion_id=criterion_id, dependency_id=dependency_id) is not None:
            raise DuplicateEdgeError(criterion_id=criterion_id, dependency_id=dependency_id)
        if reject_cycles and self.has_path(source_id=dependency_id, target_id=criterion_id):
            raise CycleError(criterion_id=criterion_id, dependency_id=dependency_id)
        item = dict(edge)
        item["edge_id"] = self._next_id
        self._next_id += 1
        item.setdefault("dependency_type", "requires")
        item.setdefault("is_active", True)
        item["created_at"] = _utcnow_iso()
        self._dependencies[item["edge_id"]] = item
        return dict(item)

    def get(self, *, edge_id: int) -> dict[str, Any] | None:
        row = self._dependencies.get(edge_id)
        return None if row is None else dict(row)

    def set_active(self, *, edge_id: int, is_active: bool, reject_cycles: bool = False) -> dict[str, Any] | None:
        row = self._dependencies.get(edge_id)
        if row is None:
            return None
        if (
            is_active
            and not row.get("is_active")
            and reject_cycles
            and self.has_path(source_id=row["dependency_id"], target_id=row["criterion_id"])
        ):
            raise CycleError(criterion_id=row["criterion_id"], dependency_id=row["dependency_id"])
        row["is_active"] = is_active
        return dict(row)

    def list_dependencies(self, *, criterion_id: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for row in self._dependencies.values():
            if row.get("criterion_id") != criterion_id or not row.get("is_active"):
                continue
            target = self._criteria.get(row["dependency_id"], {})
            items.append(
                {
                    "edge_id": row["edge_id"],
                    "dependency_id": row["dependency_id"],
                    "dependency_title": target.get("title"),
                    "dependency_type": row.get("dependency_type"),
                    "description": row.get("description"),
                }
            )
        return sorted(items, key=lambda x: (x["dependency_type"] or "", x["dependency_title"] or ""))

    def list_dependents(self, *, criterion_id: int) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for row in self._dependencies.values():
            if row.get("dependency_id") != criterion_id or not row.get("is_active"):
                continue
            source = self._criteria.get(row["criterion_id"], {})
            items.append(
                {
                    "edge_id": row["edge_id"],
                    "criterion_id": row["criterion_id"],
                    "criterion_title": source.get("title"),
                    "dependency_type": row.get("dependency_type"),
                    "description": row.get("description"),
                }
            )
        return sorted(items, key=lambda x: (x["dependency_type"] or "", x["criterion_title"] or ""))


class PostgresDependenciesRepository:
    _SELECT_COLUMNS = "id, criteria_id, dependency_id, dependency_type, dependency_description, is_active, created_at"

    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "tender_criteria_dependencies",
        criteria_table: str = "tender_criteria",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = validate_identifier(table_name)
        self._criteria_table = validate_identifier(criteria_table)

    @staticmethod
    def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
        return {
            "edge_id": row[0],
            "criterion_id": row[1],
            "dependency_id": row[2],
            "dependency_type": row[3],
            "description": row[4],
            "is_active": bool(row[5]),
            "created_at": row[6],
        }

    def _has_path_sql(self) -> str:
        # UNION (not UNION ALL) drops revisited nodes, so stored cycles terminate.
        return f"""
            WITH RECURSIVE reachable(node) AS (
                SELECT dependency_id FROM {self._table_name}
                WHERE criteria_id = %s AND is_active = true
                UNION
                SELECT d.dependency_id
                FROM {self._table_name} d
                JOIN reachable r ON d.criteria_id = r.node
                WHERE d.is_active = true
            )
            SELECT EXISTS (SELECT 1 FROM reachable WHERE node = %s)
        """

    def _path_exists(self, cur: Any, source_id: int, target_id: int) -> bool:
        if source_id == target_id:
            return True
        cur.execute(self._has_path_sql(), (source_id, target_id))
        row = cur.fetchone()
        return bool(row and row[0])

    def has_path(self, *, source_id: int, target_id: int) -> bool:
        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                return self._path_exists(cur, source_id, target_id)

        return self._tx_runner.run_in_tx(fn=_op)

    def get_by_pair(self, *, criterion_id: int, dependency_id: int) -> dict[str, Any] | None:
        sql = f"""
            SELECT {self._SELECT_COLUMNS} FROM {self._table_name}
            WHERE criteria_id = %s AND dependency_id = %s
            LIMIT 1
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (criterion_id, dependency_id))
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def insert(self, *, edge: dict[str, Any], reject_cycles: bool = False) -> dict[str, Any]:
        criterion_id = edge["criterion_id"]
        dependency_id = edge["dependency_id"]
        sql = f"""
            INSERT INTO {self._table_name} (criteria_id, dependency_id, dependency_type, dependency_description, is_active)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {self._SELECT_COLUMNS}
        """
        params = (
            criterion_id,
            dependency_id,
            edge.get("dependency_type", "requires"),
            edge.get("description"),
            edge.get("is_active", True),
        )

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                if reject_cycles and self._path_exists(cur, dependency_id, criterion_id):
                    raise CycleError(criterion_id=criterion_id, dependency_id=dependency_id)
                try:
                    cur.execute(sql, params)
                except Exception as exc:
                    state = sqlstate_of(exc)
                    if state == UNIQUE_VIOLATION:
                        raise DuplicateEdgeError(criterion_id=criterion_id, dependency_id=dependency_id) from exc
                    if state == CHECK_VIOLATION and criterion_id == dependency_id:
                        raise SelfLoopError(criterion_id=criterion_id) from exc
                    if state == FOREIGN_KEY_VIOLATION:
                        raise ReferenceNotFoundError(
                            code="CRITERION_NOT_FOUND",
                            message=f"criterion {criterion_id} or {dependency_id} not found",
                        ) from exc
                    raise
                row = cur.fetchone()
            return self._row_to_record(row)

        lock_tables = (self._table_name,) if reject_cycles else ()
        return self._tx_runner.run_in_tx(fn=_op, lock_tables=lock_tables)

    def get(self, *, edge_id: int) -> dict[str, Any] | None:
        sql = f"SELECT {self._SELECT_COLUMNS} FROM {self._table_name} WHERE id = %s LIMIT 1"

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (edge_id,))
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        return self._tx_runner.run_in_tx(fn=_op)

    def set_active(self, *, edge_id: int, is_active: bool, reject_cycles: bool = False) -> dict[str, Any] | None:
        select_sql = f"SELECT {self._SELECT_COLUMNS} FROM {self._table_name} WHERE id = %s"
        update_sql = f"""
            UPDATE {self._table_name} SET is_active = %s
            WHERE id = %s
            RETURNING {self._SELECT_COLUMNS}
        """

        def _op(conn: Any) -> dict[str, Any] | None:
            with conn.cursor() as cur:
                cur.execute(select_sql, (edge_id,))
                current = cur.fetchone()
                if current is None:
                    return None
                edge = self._row_to_record(current)
                if (
                    is_active
                    and not edge["is_active"]
                    and reject_cycles
                    and self._path_exists(cur, edge["dependency_id"], edge["criterion_id"])
                ):
                    raise CycleError(criterion_id=edge["criterion_id"], dependency_id=edge["dependency_id"])
                cur.execute(update_sql, (is_active, edge_id))
                row = cur.fetchone()
            return None if row is None else self._row_to_record(row)

        lock_tables = (self._table_name,) if reject_cycles else ()
        return self._tx_runner.run_in_tx(fn=_op, lock_tables=lock_tables)

    def list_dependencies(self, *, criterion_id: int) -> list[dict[str, Any]]:
        sql = f"""
            SELECT d.id, d.dependency_id, c.title, d.dependency_type, d.dependency_description
            FROM {self._table_name} d
            JOIN {self._criteria_table} c ON c.id = d.dependency_id
            WHERE d.criteria_id = %s AND d.is_active = true
            ORDER BY d.dependency_type, c.title
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (criterion_id,))
                rows = cur.fetchall() or []
            return [
                {
                    "edge_id": row[0],
                    "dependency_id": row[1],
                    "dependency_title": row[2],
                    "dependency_type": row[3],
                    "description": row[4],
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)

    def list_dependents(self, *, criterion_id: int) -> list[dict[str, Any]]:
        sql = f"""
            SELECT d.id, d.criteria_id, c.title, d.dependency_type, d.dependency_description
            FROM {self._table_name} d
            JOIN {self._criteria_table} c ON c.id = d.criteria_id
            WHERE d.dependency_id = %s AND d.is_active = true
            ORDER BY d.dependency_type, c.title
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, (criterion_id,))
                rows = cur.fetchall() or []
            return [
                {
                    "edge_id": row[0],
                    "criterion_id": row[1],
                    "criterion_title": row[2],
                    "dependency_type": row[3],
                    "description": row[4],
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(fn=_op)
