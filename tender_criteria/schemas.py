from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field


class CriterionCreateRequest(BaseModel):
    tender_id: int
    title: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None
    explicitness: Literal["explicit", "implicit"] = "explicit"
    reasoning: str | None = None
    validation_condition: dict[str, Any] | None = None
    verification_method: str | None = None
    weight: Decimal | None = None
    is_binary: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class CriterionUpdateRequest(BaseModel):
    tender_id: int | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    explicitness: Literal["explicit", "implicit"] | None = None
    reasoning: str | None = None
    validation_condition: dict[str, Any] | None = None
    verification_method: str | None = None
    weight: Decimal | None = None
    is_binary: bool | None = None
    metadata: dict[str, Any] | None = None


class DependencyCreateRequest(BaseModel):
    dependency_id: int
    dependency_type: Literal["requires", "conflicts", "enhances"] = "requires"
    description: str | None = None
    reject_cycles: bool | None = None


class DependencyReactivateRequest(BaseModel):
    reject_cycles: bool | None = None


class EvidenceCreateRequest(BaseModel):
    extract: str = Field(min_length=1)
    document_id: int | None = None
    image_id: int | None = None
    page_number: int | None = Field(default=None, ge=1)
    section_reference: str | None = None


class TenderCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    status: Literal[
        "draft",
        "review",
        "published",
        "accepting_submissions",
        "submission_closed",
        "evaluation",
        "awarded",
        "cancelled",
        "archived",
    ] = "draft"


class DocumentCreateRequest(BaseModel):
    tender_id: int
    file_name: str = Field(min_length=1)
    document_type_id: int | None = None
    page_count: int | None = Field(default=None, ge=1)


class ImageCreateRequest(BaseModel):
    document_id: int
    image_path: str = Field(min_length=1)
    image_type: Literal["diagram", "chart", "photo", "logo", "signature", "form", "table", "map", "other"] | None = None
    page_number: int | None = Field(default=None, ge=1)
    document_section: str | None = None


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
