from __future__ import annotations


class ApiError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class ReferenceNotFoundError(ApiError):
    """A referenced tender, document, image or criterion does not exist."""

    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(code=code, message=message, error_class="validation", retryable=False, http_status=422)


class FieldValidationError(ApiError):
    def __init__(self, *, message: str, code: str = "REQ_VALIDATION_FAILED") -> None:
        super().__init__(code=code, message=message, error_class="validation", retryable=False, http_status=400)


class NotFoundError(ApiError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(code=code, message=message, error_class="validation", retryable=False, http_status=404)


class SelfLoopError(ApiError):
    def __init__(self, *, criterion_id: int) -> None:
        super().__init__(
            code="DEPENDENCY_SELF_LOOP",
            message=f"criterion {criterion_id} cannot depend on itself",
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class DuplicateEdgeError(ApiError):
    def __init__(self, *, criterion_id: int, dependency_id: int) -> None:
        super().__init__(
            code="DEPENDENCY_DUPLICATE",
            message=f"dependency {criterion_id} -> {dependency_id} already exists",
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )


class CycleError(ApiError):
    def __init__(self, *, criterion_id: int, dependency_id: int) -> None:
        super().__init__(
            code="DEPENDENCY_CYCLE",
            message=f"dependency {criterion_id} -> {dependency_id} would close a cycle",
            error_class="business_rule",
            retryable=False,
            http_status=409,
        )
