from __future__ import annotations

from tender_criteria.db.postgres import _import_psycopg, validate_identifier

CRITERIA_TABLE = "tender_criteria"
DEPENDENCIES_TABLE = "tender_criteria_dependencies"
EVIDENCE_TABLE = "tender_criteria_source"


def core_statements(
    *,
    tenders_table: str = "tenders",
    documents_table: str = "tender_documents",
    images_table: str = "tender_document_images",
) -> list[str]:
    tenders = validate_identifier(tenders_table)
    documents = validate_identifier(documents_table)
    images = validate_identifier(images_table)
    return [
        """
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {CRITERIA_TABLE} (
            id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            tender_id BIGINT NOT NULL REFERENCES {tenders}(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT,
            category TEXT,
            explicitness TEXT NOT NULL DEFAULT 'explicit',
            reasoning_for_implicit TEXT,
            validation_condition JSONB,
            verification_method TEXT,
            weight DECIMAL(5,2) DEFAULT 1.00,
            is_binary_validation BOOLEAN DEFAULT false,
            metadata JSONB DEFAULT '{{}}',
            CONSTRAINT chk_criteria_explicitness CHECK (explicitness IN ('explicit', 'implicit'))
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {DEPENDENCIES_TABLE} (
            id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            criteria_id BIGINT NOT NULL REFERENCES {CRITERIA_TABLE}(id) ON DELETE CASCADE,
            dependency_id BIGINT NOT NULL REFERENCES {CRITERIA_TABLE}(id) ON DELETE CASCADE,
            dependency_type TEXT DEFAULT 'requires',
            dependency_description TEXT,
            is_active BOOLEAN DEFAULT true,
            CONSTRAINT chk_no_self_dependency CHECK (criteria_id != dependency_id),
            CONSTRAINT chk_dependency_type CHECK (dependency_type IN ('requires', 'conflicts', 'enhances')),
            UNIQUE (criteria_id, dependency_id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {EVIDENCE_TABLE} (
            id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            criteria_id BIGINT NOT NULL REFERENCES {CRITERIA_TABLE}(id) ON DELETE CASCADE,
            tender_document_id BIGINT REFERENCES {documents}(id) ON DELETE SET NULL,
            tender_image_id BIGINT REFERENCES {images}(id) ON DELETE SET NULL,
            evidence_extract TEXT,
            page_number INTEGER,
            section_reference TEXT,
            CONSTRAINT chk_source_page_positive CHECK (page_number IS NULL OR page_number > 0)
        )
        """,
        # SET NULL from the source tables must be able to clear both references,
        # so the at-least-one-source rule only guards inserts.
        f"""
        CREATE OR REPLACE FUNCTION {EVIDENCE_TABLE}_require_source()
        RETURNS TRIGGER AS $$
        BEGIN
            IF NEW.tender_document_id IS NULL AND NEW.tender_image_id IS NULL THEN
                RAISE EXCEPTION 'evidence requires a document or image reference'
                    USING ERRCODE = 'check_violation';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"DROP TRIGGER IF EXISTS {EVIDENCE_TABLE}_require_source ON {EVIDENCE_TABLE}",
        f"""
        CREATE TRIGGER {EVIDENCE_TABLE}_require_source
            BEFORE INSERT ON {EVIDENCE_TABLE}
            FOR EACH ROW EXECUTE FUNCTION {EVIDENCE_TABLE}_require_source()
        """,
        f"DROP TRIGGER IF EXISTS update_{CRITERIA_TABLE}_updated_at ON {CRITERIA_TABLE}",
        f"""
        CREATE TRIGGER update_{CRITERIA_TABLE}_updated_at
            BEFORE UPDATE ON {CRITERIA_TABLE}
            FOR EACH ROW EXECUTE FUNCTION update_updated_at_column()
        """,
        f"CREATE INDEX IF NOT EXISTS idx_tender_criteria_tender_id ON {CRITERIA_TABLE}(tender_id)",
        f"CREATE INDEX IF NOT EXISTS idx_tender_criteria_category ON {CRITERIA_TABLE}(category)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_tender_category ON {CRITERIA_TABLE}(tender_id, category)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_tender_weight ON {CRITERIA_TABLE}(tender_id, weight)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_dependencies_criteria_id ON {DEPENDENCIES_TABLE}(criteria_id)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_dependencies_dependency_id ON {DEPENDENCIES_TABLE}(dependency_id)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_source_criteria_id ON {EVIDENCE_TABLE}(criteria_id)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_source_document_id ON {EVIDENCE_TABLE}(tender_document_id)",
        f"CREATE INDEX IF NOT EXISTS idx_criteria_source_image_id ON {EVIDENCE_TABLE}(tender_image_id)",
    ]


class SchemaManager:
    """Create the criteria graph and evidence tables on PostgreSQL."""

    def __init__(
        self,
        dsn: str,
        *,
        tenders_table: str = "tenders",
        documents_table: str = "tender_documents",
        images_table: str = "tender_document_images",
    ) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()
        self._statements = core_statements(
            tenders_table=tenders_table,
            documents_table=documents_table,
            images_table=images_table,
        )

    def apply(self) -> list[str]:
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                for statement in self._statements:
                    cur.execute(statement)
            conn.commit()
        return [CRITERIA_TABLE, DEPENDENCIES_TABLE, EVIDENCE_TABLE]
