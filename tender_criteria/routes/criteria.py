from __future__ import annotations

from fastapi import APIRouter, Body, Query, Request

from tender_criteria.routes._deps import created_response, trace_id_from_request
from tender_criteria.schemas import (
    CriterionCreateRequest,
    CriterionUpdateRequest,
    DependencyCreateRequest,
    DependencyReactivateRequest,
    success_envelope,
)
from tender_criteria.store import store

router = APIRouter(prefix="/api/v1", tags=["criteria"])

# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


@router.post("/criteria")
def create_criterion(payload: CriterionCreateRequest, request: Request):
    attributes = payload.model_dump(exclude={"tender_id", "title"})
    data = store.create_criterion(tender_id=payload.tender_id, title=payload.title, **attributes)
    return created_response(request, data)


@router.get("/criteria/{criterion_id}")
def get_criterion(criterion_id: int, request: Request):
    return success_envelope(store.get_criterion(criterion_id=criterion_id), trace_id_from_request(request))


@router.put("/criteria/{criterion_id}")
def update_criterion(criterion_id: int, payload: CriterionUpdateRequest, request: Request):
    data = store.update_criterion(criterion_id=criterion_id, patch=payload.model_dump(exclude_unset=True))
    return success_envelope(data, trace_id_from_request(request))


@router.delete("/criteria/{criterion_id}")
def delete_criterion(criterion_id: int, request: Request):
    return success_envelope(store.delete_criterion(criterion_id=criterion_id), trace_id_from_request(request))


@router.get("/tenders/{tender_id}/criteria")
def list_tender_criteria(tender_id: int, request: Request, category: str | None = Query(default=None)):
    if category is None:
        items = store.list_criteria(tender_id=tender_id)
    else:
        items = store.list_criteria_by_category(tender_id=tender_id, category=category)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


# ---------------------------------------------------------------------------
# Dependency graph
# ---------------------------------------------------------------------------


@router.post("/criteria/{criterion_id}/dependencies")
def add_dependency(criterion_id: int, payload: DependencyCreateRequest, request: Request):
    data = store.add_dependency(
        criterion_id=criterion_id,
        dependency_id=payload.dependency_id,
        dependency_type=payload.dependency_type,
        description=payload.description,
        reject_cycles=payload.reject_cycles,
    )
    return created_response(request, data)


@router.get("/criteria/{criterion_id}/dependencies")
def list_dependencies(criterion_id: int, request: Request):
    items = store.list_dependencies(criterion_id=criterion_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/criteria/{criterion_id}/dependents")
def list_dependents(criterion_id: int, request: Request):
    items = store.list_dependents(criterion_id=criterion_id)
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/criteria/{source_id}/reachable/{target_id}")
def has_path(source_id: int, target_id: int, request: Request):
    reachable = store.has_path(source_id=source_id, target_id=target_id)
    return success_envelope(
        {"source_id": source_id, "target_id": target_id, "reachable": reachable},
        trace_id_from_request(request),
    )


@router.post("/dependencies/{edge_id}/deactivate")
def deactivate_dependency(edge_id: int, request: Request):
    return success_envelope(store.deactivate_dependency(edge_id=edge_id), trace_id_from_request(request))


@router.post("/dependencies/{edge_id}/reactivate")
def reactivate_dependency(
    edge_id: int,
    request: Request,
    payload: DependencyReactivateRequest | None = Body(default=None),
):
    reject_cycles = None if payload is None else payload.reject_cycles
    data = store.reactivate_dependency(edge_id=edge_id, reject_cycles=reject_cycles)
    return success_envelope(data, trace_id_from_request(request))
