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

from tender_criteria.db.schema import SchemaManager


def main() -> int:
    parser = argparse.ArgumentParser(description="Create criteria, dependency and evidence tables on PostgreSQL")
    parser.add_argument("--dsn", default=os.getenv("POSTGRES_DSN", ""), help="PostgreSQL DSN")
    parser.add_argument("--tenders-table", default="tenders")
    parser.add_argument("--documents-table", default="tender_documents")
    parser.add_argument("--images-table", default="tender_document_images")
    args = parser.parse_args()

    dsn = str(args.dsn or "").strip()
    if not dsn:
        raise SystemExit("POSTGRES_DSN is required (pass --dsn or set env)")

    manager = SchemaManager(
        dsn,
        tenders_table=args.tenders_table,
        documents_table=args.documents_table,
        images_table=args.images_table,
    )
    applied = manager.apply()
    print(json.dumps({"applied_tables": applied, "count": len(applied)}, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
