from __future__ import annotations

from fastapi import APIRouter, Header, Request

from tender_criteria.routes._deps import created_response, require_internal_debug, trace_id_from_request
from tender_criteria.schemas import (
    DocumentCreateRequest,
    ImageCreateRequest,
    TenderCreateRequest,
    success_envelope,
)
from tender_criteria.store import store

router = APIRouter(prefix="/api/v1/internal", tags=["internal"])

# ---------------------------------------------------------------------------
# Source seeding; these rows are owned by the ingestion pipeline in production
# ---------------------------------------------------------------------------


@router.post("/tenders")
def register_tender(
    payload: TenderCreateRequest,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    data = store.register_tender(title=payload.title, status=payload.status)
    return created_response(request, data)


@router.post("/documents")
def register_document(
    payload: DocumentCreateRequest,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    data = store.register_document(**payload.model_dump())
    return created_response(request, data)


@router.post("/images")
def register_image(
    payload: ImageCreateRequest,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    data = store.register_image(**payload.model_dump())
    return created_response(request, data)


@router.delete("/tenders/{tender_id}")
def remove_tender(
    tender_id: int,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    return success_envelope(store.remove_tender(tender_id=tender_id), trace_id_from_request(request))


@router.delete("/documents/{document_id}")
def remove_document(
    document_id: int,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    return success_envelope(store.remove_document(document_id=document_id), trace_id_from_request(request))


@router.delete("/images/{image_id}")
def remove_image(
    image_id: int,
    request: Request,
    x_internal_debug: str | None = Header(default=None, alias="x-internal-debug"),
):
    require_internal_debug(x_internal_debug)
    return success_envelope(store.remove_image(image_id=image_id), trace_id_from_request(request))
