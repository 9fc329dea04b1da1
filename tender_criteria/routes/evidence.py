from __future__ import annotations

from fastapi import APIRouter, Request

from tender_criteria.routes._deps import created_response, trace_id_from_request
from tender_criteria.schemas import EvidenceCreateRequest, success_envelope
from tender_criteria.store import store

router = APIRouter(prefix="/api/v1", tags=["evidence"])


@router.post("/criteria/{criterion_id}/evidence")
def attach_evidence(criterion_id: int, payload: EvidenceCreateRequest, request: Request):
    data = store.attach_evidence(criterion_id=criterion_id, **payload.model_dump())
    return created_response(request, data)


@router.get("/criteria/{criterion_id}/evidence")
def list_evidence(criterion_id: int, request: Request):
    items = store.list_evidence(criterion_id=criterion_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/evidence/{evidence_id}")
def get_evidence(evidence_id: int, request: Request):
    return success_envelope(store.get_evidence(evidence_id=evidence_id), trace_id_from_request(request))


@router.get("/evidence/{evidence_id}/tender")
def get_evidence_tender(evidence_id: int, request: Request):
    tender_id = store.tender_id_for_evidence(evidence_id=evidence_id)
    return success_envelope({"evidence_id": evidence_id, "tender_id": tender_id}, trace_id_from_request(request))


@router.get("/tenders/{tender_id}/images")
def list_tender_images(tender_id: int, request: Request):
    items = store.list_images_for_tender(tender_id=tender_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))
