from __future__ import annotations

import pytest

from tender_criteria.document_types import (
    DOCUMENT_TYPES,
    document_type_title,
    document_types_by_category,
    required_document_types,
    suggest_document_type,
)


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("Technische_Spezifikation.pdf", 1),
        ("AGB.pdf", 2),
        ("Vertragsbedingungen.docx", 2),
        ("Einreichungsrichtlinie.pdf", 3),
        ("Bewertungsmatrix.xlsx", 4),
        ("Preisblatt.xlsx", 5),
        ("Leistungsumfang.pdf", 6),
        ("Angebotsformular.pdf", 8),
        ("Aenderung_2.pdf", 7),
        ("Update_2.pdf", 10),
        ("Anlage_3.pdf", 9),
        ("notizen.txt", 7),
    ],
)
def test_suggest_document_type_uses_first_matching_rule(filename, expected):
    assert suggest_document_type(filename) == expected


def test_rule_order_decides_between_competing_keywords():
    # "technisch" is checked before "vertrag"
    assert suggest_document_type("technischer_vertrag.pdf") == 1


def test_document_type_title_lookup():
    assert document_type_title(7) == "Hintergrundinformationen"
    assert document_type_title(None) is None
    assert document_type_title(99) is None


def test_required_document_types_are_ordered_by_display_order():
    required = required_document_types()
    assert [x.type_id for x in required] == [1, 2, 3, 4, 5, 6]
    assert all(x.is_required for x in required)


def test_document_types_by_category():
    assert [x.title for x in document_types_by_category("administrativ")] == [
        "Einreichungsrichtlinien",
        "Formulare und Vorlagen",
        "Änderungsmitteilung",
    ]
    assert document_types_by_category("unbekannt") == []


def test_reference_table_has_ten_active_types():
    assert len(DOCUMENT_TYPES) == 10
    assert len({x.type_id for x in DOCUMENT_TYPES}) == 10
