from tender_criteria.ops.evidence_scope import find_evidence_scope_violations, summarize_scope_report

__all__ = [
    "find_evidence_scope_violations",
    "summarize_scope_report",
]
