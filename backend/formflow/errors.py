"""Exception taxonomy shared by the store, services and API layer."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from formflow.models.workflow import GraphValidationResult


class FormflowError(Exception):
    """Base exception for formflow errors."""

    def __init__(self, message: str, retriable: bool = False):
        super().__init__(message)
        self.message = message
        self.retriable = retriable


class NotFoundError(FormflowError):
    """A referenced form, response, workflow or task does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class TransientFetchError(FormflowError):
    """The data collaborator failed to read or write."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message, retriable=True)
        self.operation = operation


class GraphValidationError(FormflowError):
    """A workflow graph has blocking errors and cannot be saved."""

    def __init__(self, result: "GraphValidationResult"):
        super().__init__("; ".join(result.blocking_errors) or "Invalid workflow graph")
        self.result = result


class GraphConfirmationRequired(FormflowError):
    """A workflow graph has warnings the caller has not confirmed."""

    def __init__(self, result: "GraphValidationResult"):
        super().__init__("; ".join(result.warnings))
        self.result = result


class WorkflowStatusError(FormflowError):
    """A workflow status transition is not allowed."""

    pass


class ResponseValidationError(FormflowError):
    """A submitted response does not satisfy its form schema."""

    def __init__(self, errors: dict[str, str]):
        super().__init__(f"{len(errors)} field(s) failed validation")
        self.errors: dict[str, Any] = errors
