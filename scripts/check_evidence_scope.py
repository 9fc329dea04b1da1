#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tender_criteria.ops.evidence_scope import find_evidence_scope_violations, summarize_scope_report
from tender_criteria.store import PostgresCriteriaStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Report evidence whose source belongs to another tender")
    parser.add_argument("--dsn", default=os.getenv("POSTGRES_DSN", ""), help="PostgreSQL DSN")
    parser.add_argument("--tender-id", type=int, default=None, help="limit the check to one tender")
    args = parser.parse_args()

    dsn = str(args.dsn or "").strip()
    if not dsn:
        raise SystemExit("POSTGRES_DSN is required (pass --dsn or set env)")

    store = PostgresCriteriaStore(dsn=dsn)
    violations = find_evidence_scope_violations(store, tender_id=args.tender_id)
    report = summarize_scope_report(violations, tender_id=args.tender_id)
    print(json.dumps(report, ensure_ascii=True, sort_keys=True, indent=2, default=str))
    return 0 if report["consistent"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
