from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentType:
    type_id: int
    title: str
    description: str
    category: str
    is_required: bool
    expected_criteria_count: int
    display_order: int
    is_active: bool = True


DOCUMENT_TYPES: tuple[DocumentType, ...] = (
    DocumentType(1, "Technische Spezifikationen", "Detaillierte technische Anforderungen und Spezifikationen", "technisch", True, 15, 1),
    DocumentType(2, "Allgemeine Geschäftsbedingungen", "Rechtliche Bedingungen, Konditionen und Vertragsanforderungen", "rechtlich", True, 8, 2),
    DocumentType(3, "Einreichungsrichtlinien", "Anweisungen für die Angebotsabgabe und Formatanforderungen", "administrativ", True, 5, 3),
    DocumentType(4, "Bewertungskriterien", "Bewertungsmethodik und Details zu den Bewertungskriterien", "kommerziell", True, 12, 4),
    DocumentType(5, "Kommerzielle Anforderungen", "Preisstruktur, Zahlungsbedingungen und kommerzielle Konditionen", "kommerziell", True, 6, 5),
    DocumentType(6, "Leistungsumfang", "Detaillierte Beschreibung der zu erbringenden Arbeiten", "technisch", True, 10, 6),
    DocumentType(7, "Hintergrundinformationen", "Projektkontext, Hintergrund und ergänzende Informationen", "ergänzend", False, 2, 7),
    DocumentType(8, "Formulare und Vorlagen", "Erforderliche Formulare, Vorlagen und Einreichungsformate", "administrativ", False, 1, 8),
    DocumentType(9, "Anhänge", "Unterstützende Dokumente, Diagramme und Referenzmaterialien", "ergänzend", False, 0, 9),
    DocumentType(10, "Änderungsmitteilung", "Änderungen, Korrekturen oder Updates zur ursprünglichen Ausschreibung", "administrativ", False, 3, 10),
)

DEFAULT_DOCUMENT_TYPE = "Hintergrundinformationen"

# Evaluated in order; the first rule with a keyword hit wins.
FILENAME_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("spezifikation", "technisch", "tech"), "Technische Spezifikationen"),
    (("bedingung", "agb", "vertrag", "terms"), "Allgemeine Geschäftsbedingungen"),
    (("richtlinie", "anweisung", "einreichung", "guideline"), "Einreichungsrichtlinien"),
    (("bewertung", "kriterien", "scoring", "evaluation"), "Bewertungskriterien"),
    (("kommerziell", "preis", "zahlung", "commercial"), "Kommerzielle Anforderungen"),
    (("leistung", "umfang", "arbeit", "scope"), "Leistungsumfang"),
    (("formular", "vorlage", "template", "form"), "Formulare und Vorlagen"),
    (("änderung", "update", "korrektur", "amendment"), "Änderungsmitteilung"),
    (("anhang", "attachment", "anlage"), "Anhänge"),
)


def _active_by_title() -> dict[str, DocumentType]:
    return {x.title: x for x in DOCUMENT_TYPES if x.is_active}


def _ordered(items: list[DocumentType]) -> list[DocumentType]:
    return sorted(items, key=lambda x: (x.display_order, x.title))


def suggest_document_type(filename: str) -> int | None:
    lower_name = filename.lower()
    by_title = _active_by_title()
    for keywords, title in FILENAME_RULES:
        if any(keyword in lower_name for keyword in keywords):
            match = by_title.get(title)
            return None if match is None else match.type_id
    fallback = by_title.get(DEFAULT_DOCUMENT_TYPE)
    return None if fallback is None else fallback.type_id


def document_type_title(type_id: int | None) -> str | None:
    if type_id is None:
        return None
    for item in DOCUMENT_TYPES:
        if item.type_id == type_id:
            return item.title
    return None


def document_types_by_category(category: str) -> list[DocumentType]:
    return _ordered([x for x in DOCUMENT_TYPES if x.is_active and x.category == category])


def required_document_types() -> list[DocumentType]:
    return _ordered([x for x in DOCUMENT_TYPES if x.is_active and x.is_required])


def active_document_types() -> list[DocumentType]:
    return _ordered([x for x in DOCUMENT_TYPES if x.is_active])
