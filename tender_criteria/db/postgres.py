from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


def validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def sqlstate_of(exc: BaseException) -> str | None:
    state = getattr(exc, "sqlstate", None)
    return state if isinstance(state, str) else None


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction."""

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()

    def run_in_tx(
        self,
        *,
        fn: Callable[[Any], Any],
        lock_tables: tuple[str, ...] = (),
    ) -> Any:
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as conn:
            if lock_tables:
                names = ", ".join(validate_identifier(x) for x in lock_tables)
                with conn.cursor() as cur:
                    cur.execute(f"LOCK TABLE {names} IN SHARE ROW EXCLUSIVE MODE")
            result = fn(conn)
            conn.commit()
            return result
