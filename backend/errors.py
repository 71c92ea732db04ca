from typing import Any, Dict, List, Optional


class LedgerError(Exception):
    """Base for expected business outcomes.

    ``kind`` is the discriminator the HTTP layer (or any other caller) uses to
    decide how to present the failure; ``status_code`` is only a suggestion.
    """

    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "kind": self.kind, "message": self.message}


class NotFound(LedgerError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, ref: Any = None):
        msg = f"{entity} not found" if ref is None else f"{entity} not found: {ref}"
        super().__init__(msg)
        self.entity = entity
        self.ref = ref


class InsufficientStock(LedgerError):
    kind = "insufficient_stock"
    status_code = 400

    def __init__(self, name: str, available: int, requested: int):
        super().__init__(f"Insufficient stock for {name}. Available: {available}")
        self.name = name
        self.available = available
        self.requested = requested

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["available"] = self.available
        out["requested"] = self.requested
        return out


class IdentifierConflict(LedgerError):
    """Raised once identifier retries are exhausted; callers may resubmit."""

    kind = "identifier_conflict"
    status_code = 409

    def __init__(self, prefix: str, attempts: int):
        super().__init__(f"Could not allocate a unique {prefix} identifier after {attempts} attempts")
        self.prefix = prefix
        self.attempts = attempts


class ValidationError(LedgerError):
    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str = "Validation Error", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, [{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out


class StorageUnavailable(LedgerError):
    kind = "storage_unavailable"
    status_code = 503
