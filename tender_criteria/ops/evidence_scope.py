from __future__ import annotations

from typing import Any

from tender_criteria.store import CriteriaStore


def find_evidence_scope_violations(store: CriteriaStore, *, tender_id: int | None = None) -> list[dict[str, Any]]:
    """Evidence rows whose document (or image's document) sits in another tender than their criterion."""
    return store.find_evidence_scope_violations(tender_id=tender_id)


def summarize_scope_report(violations: list[dict[str, Any]], *, tender_id: int | None = None) -> dict[str, Any]:
    affected = sorted({x["evidence_id"] for x in violations})
    by_source: dict[str, int] = {}
    for item in violations:
        by_source[item["source"]] = by_source.get(item["source"], 0) + 1
    return {
        "tender_id": tender_id,
        "consistent": len(violations) == 0,
        "violation_count": len(violations),
        "affected_evidence_ids": affected,
        "by_source": by_source,
        "violations": violations,
    }
