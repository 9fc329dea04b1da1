from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request

from tender_criteria.document_types import (
    active_document_types,
    document_type_title,
    document_types_by_category,
    required_document_types,
    suggest_document_type,
)
from tender_criteria.routes._deps import trace_id_from_request
from tender_criteria.schemas import success_envelope

router = APIRouter(prefix="/api/v1/document-types", tags=["document-types"])


@router.get("")
def list_document_types(
    request: Request,
    category: str | None = Query(default=None),
    required: bool = Query(default=False),
):
    if category is None:
        types = required_document_types() if required else active_document_types()
    else:
        types = document_types_by_category(category)
        if required:
            types = [x for x in types if x.is_required]
    items = [asdict(x) for x in types]
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/suggest")
def suggest(request: Request, filename: str = Query(min_length=1)):
    type_id = suggest_document_type(filename)
    return success_envelope(
        {"filename": filename, "document_type_id": type_id, "title": document_type_title(type_id)},
        trace_id_from_request(request),
    )
