# Overview: Domain error taxonomy shared by services, routes, and the CLI.

"""
Shopbooks Error Taxonomy

WHY: Every coordinator either commits all of its writes or none of them.
Callers need to know which of those happened and why, without parsing
messages. Each class carries the HTTP status the API maps it to.

- NotFoundError: referenced entity is missing or outside the caller's tenant.
- ValidationError: input rejected before any write.
- ConflictError: business rule conflict (duplicate reference, bad transition).
- ConsistencyViolation: stored ledger state disagrees with the domain entity
  it describes (e.g. an invoice without an active ledger entry). Distinct
  from NotFound so drift is never mistaken for a bad id.
- TransactionFailure: storage/infrastructure failure mid-coordinator; the
  transaction was rolled back and the original cause is chained.
"""


class ShopbooksError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ShopbooksError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(ShopbooksError, ValueError):
    """400-level input problem."""

    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(ShopbooksError, ValueError):
    """409-level business rule conflict (e.g., duplicate invoice reference)."""

    status_code = 409
    code = "CONFLICT"


class ConsistencyViolation(ShopbooksError):
    """Ledger state does not match the entity it should describe."""

    status_code = 409
    code = "LEDGER_DRIFT"


class TransactionFailure(ShopbooksError):
    """A coordinator failed after starting its writes; everything was rolled back."""

    status_code = 500
    code = "TRANSACTION_FAILED"
