"""
Scanara — Error Taxonomy

Request-facing errors carry their HTTP status and label so the server can map
them at a single boundary:

  ValidationError  400  missing/invalid input (no appId, empty codebase)
  NotFound         404  application or codebase record absent
  Forbidden        403  caller is not the resource owner
  InternalError    500  store failure, oracle failure, parse failure

StoreError, OracleError and ParseError are raised by the collaborators and
converted to InternalError by the audit orchestrator.
"""


class ScanaraError(Exception):
    status_code = 500
    label = "Internal server error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.label

    def to_dict(self) -> dict:
        return {"error": self.label, "message": self.message}


class ValidationError(ScanaraError):
    status_code = 400
    label = "Validation error"


class NotFound(ScanaraError):
    status_code = 404
    label = "Not found"


class Forbidden(ScanaraError):
    status_code = 403
    label = "Forbidden"


class InternalError(ScanaraError):
    status_code = 500
    label = "Internal server error"


# ============================================================
# COLLABORATOR FAILURES
# ============================================================
class StoreError(Exception):
    """Document store read or write failed."""


class OracleError(Exception):
    """Analysis oracle call failed (network, non-2xx, timeout, empty reply)."""


class ParseError(Exception):
    """No parseable JSON object in the oracle response."""
