from __future__ import annotations

from collections.abc import Mapping
import os


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def postgres_required(environ: Mapping[str, str] | None = None) -> bool:
    return _as_bool(_env(environ).get("TC_REQUIRE_POSTGRES", "false"))


def reject_cycles_default(environ: Mapping[str, str] | None = None) -> bool:
    return _as_bool(_env(environ).get("TC_REJECT_DEPENDENCY_CYCLES", "false"))


def apply_schema_on_start(environ: Mapping[str, str] | None = None) -> bool:
    return _as_bool(_env(environ).get("TC_POSTGRES_APPLY_SCHEMA", "false"))
