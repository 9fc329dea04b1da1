from __future__ import annotations

import pytest

from tender_criteria.errors import CycleError, DuplicateEdgeError, ReferenceNotFoundError, SelfLoopError
from tender_criteria.repositories.dependencies import InMemoryDependenciesRepository, PostgresDependenciesRepository


def _edge_row(edge_id: int = 4, *, is_active: bool = True) -> tuple:
    return (edge_id, 1, 2, "requires", None, is_active, "2026-01-01T00:00:00+00:00")


def test_inmemory_dependencies_repository_guards_insert():
    criteria = {1: {"criterion_id": 1, "title": "A"}, 2: {"criterion_id": 2, "title": "B"}}
    repo = InMemoryDependenciesRepository({}, criteria)

    with pytest.raises(SelfLoopError):
        repo.insert(edge={"criterion_id": 1, "dependency_id": 1})
    with pytest.raises(ReferenceNotFoundError):
        repo.insert(edge={"criterion_id": 1, "dependency_id": 3})

    repo.insert(edge={"criterion_id": 1, "dependency_id": 2})
    with pytest.raises(DuplicateEdgeError):
        repo.insert(edge={"criterion_id": 1, "dependency_id": 2})
    with pytest.raises(CycleError):
        repo.insert(edge={"criterion_id": 2, "dependency_id": 1}, reject_cycles=True)


def test_inmemory_has_path_ignores_inactive_edges():
    criteria = {n: {"criterion_id": n, "title": str(n)} for n in (1, 2, 3)}
    dependencies: dict[int, dict] = {}
    repo = InMemoryDependenciesRepository(dependencies, criteria)
    first = repo.insert(edge={"criterion_id": 1, "dependency_id": 2})
    repo.insert(edge={"criterion_id": 2, "dependency_id": 3})

    assert repo.has_path(source_id=1, target_id=3) is True
    repo.set_active(edge_id=first["edge_id"], is_active=False)
    assert repo.has_path(source_id=1, target_id=3) is False
    assert repo.set_active(edge_id=99, is_active=True) is None


def test_postgres_has_path_uses_recursive_union(fake_runner):
    fake_runner.results.append((True,))
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    assert repo.has_path(source_id=1, target_id=9) is True
    sql, params = fake_runner.statements[0]
    assert sql.startswith("WITH RECURSIVE reachable(node) AS (")
    assert " UNION SELECT d.dependency_id" in sql
    assert "UNION ALL" not in sql
    assert "is_active = true" in sql
    assert params == (1, 9)


def test_postgres_has_path_short_circuits_for_same_node(fake_runner):
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)
    assert repo.has_path(source_id=5, target_id=5) is True
    assert fake_runner.statements == []


def test_postgres_insert_without_cycle_check_skips_lock(fake_runner):
    fake_runner.results.append(_edge_row())
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    edge = repo.insert(edge={"criterion_id": 1, "dependency_id": 2, "description": None})

    assert edge["edge_id"] == 4
    assert edge["is_active"] is True
    assert fake_runner.lock_calls == [()]
    sql, params = fake_runner.statements[0]
    assert sql.startswith("INSERT INTO tender_criteria_dependencies")
    assert params == (1, 2, "requires", None, True)


def test_postgres_insert_with_cycle_check_locks_and_checks_first(fake_runner):
    fake_runner.results.extend([(False,), _edge_row()])
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    repo.insert(edge={"criterion_id": 1, "dependency_id": 2}, reject_cycles=True)

    assert fake_runner.lock_calls == [("tender_criteria_dependencies",)]
    assert fake_runner.statements[0][0].startswith("WITH RECURSIVE")
    assert fake_runner.statements[0][1] == (2, 1)
    assert fake_runner.statements[1][0].startswith("INSERT INTO")


def test_postgres_insert_refuses_cycle_without_writing(fake_runner):
    fake_runner.results.append((True,))
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    with pytest.raises(CycleError):
        repo.insert(edge={"criterion_id": 1, "dependency_id": 2}, reject_cycles=True)
    assert not any(sql.startswith("INSERT") for sql, _ in fake_runner.statements)


@pytest.mark.parametrize(
    ("sqlstate", "edge", "error"),
    [
        ("23505", {"criterion_id": 1, "dependency_id": 2}, DuplicateEdgeError),
        ("23514", {"criterion_id": 1, "dependency_id": 1}, SelfLoopError),
        ("23503", {"criterion_id": 1, "dependency_id": 2}, ReferenceNotFoundError),
    ],
)
def test_postgres_insert_translates_integrity_errors(fake_runner, pg_error, sqlstate, edge, error):
    fake_runner.failures["INSERT INTO tender_criteria_dependencies"] = pg_error(sqlstate)
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    with pytest.raises(error):
        repo.insert(edge=edge)


def test_postgres_reactivation_refuses_cycle(fake_runner):
    fake_runner.results.extend([_edge_row(is_active=False), (True,)])
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    with pytest.raises(CycleError):
        repo.set_active(edge_id=4, is_active=True, reject_cycles=True)
    assert not any(sql.startswith("UPDATE") for sql, _ in fake_runner.statements)
    assert fake_runner.lock_calls == [("tender_criteria_dependencies",)]


def test_postgres_deactivation_updates_flag(fake_runner):
    fake_runner.results.extend([_edge_row(), _edge_row(is_active=False)])
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    edge = repo.set_active(edge_id=4, is_active=False)

    assert edge["is_active"] is False
    sql, params = fake_runner.statements[1]
    assert sql.startswith("UPDATE tender_criteria_dependencies SET is_active = %s")
    assert params == (False, 4)


def test_postgres_list_dependencies_joins_titles(fake_runner):
    fake_runner.results.append([(4, 2, "Budget", "requires", "needs budget approval")])
    repo = PostgresDependenciesRepository(tx_runner=fake_runner)

    items = repo.list_dependencies(criterion_id=1)

    assert items == [
        {
            "edge_id": 4,
            "dependency_id": 2,
            "dependency_title": "Budget",
            "dependency_type": "requires",
            "description": "needs budget approval",
        }
    ]
    sql, _ = fake_runner.statements[0]
    assert "WHERE d.criteria_id = %s AND d.is_active = true" in sql
    assert sql.endswith("ORDER BY d.dependency_type, c.title")
