"""
Exception hierarchy for the deal redemption service.

Business outcomes of a redemption (every denial reason) are returned as
values and never raised. These exceptions cover the rest: bad input on the
management surface, invalid lifecycle moves, and infrastructure trouble.

Exception Hierarchy:
    DealEngineError (base)
    ├── DealNotFoundError
    ├── RedemptionNotFoundError
    ├── DealValidationError
    ├── DealConfigurationError
    ├── InvalidTransitionError
    ├── VendorActionNotPermittedError
    └── TransientError
        ├── RedemptionConflictError
        └── StoreUnavailableError
"""

from typing import Optional, Dict, Any


class DealEngineError(Exception):
    """
    Base exception for all deal redemption errors.

    Attributes:
        message: Human-readable error message
        detail: Optional dict with additional error context
        status_code: Suggested HTTP status code
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


class DealNotFoundError(DealEngineError):
    status_code = 404

    def __init__(self, deal_id):
        super().__init__("Deal not found", detail={"deal_id": deal_id})


class RedemptionNotFoundError(DealEngineError):
    status_code = 404

    def __init__(self, redemption_id=None, detail=None):
        super().__init__("Redemption not found", detail=detail or {"redemption_id": redemption_id})


class DealValidationError(DealEngineError):
    """Payload is well-formed but semantically invalid."""

    status_code = 400


class DealConfigurationError(DealEngineError):
    """
    The deal's redemption policy cannot be evaluated.

    Raised at publish time so bad policy never goes live, and by the policy
    resolvers when pre-existing rows are already broken.
    """

    status_code = 422


class InvalidTransitionError(DealEngineError):
    status_code = 409

    def __init__(self, current: str, action: str):
        super().__init__(
            f"Cannot {action} a deal in '{current}' status",
            detail={"status": current, "action": action},
        )


class VendorActionNotPermittedError(DealEngineError):
    """Caller may not void or look up this vendor's redemptions."""

    status_code = 403


class TransientError(DealEngineError):
    """Safe to retry. Never a business decision."""

    status_code = 503


class RedemptionConflictError(TransientError):
    """Lock conflicts outlasted the command's retry budget."""


class StoreUnavailableError(TransientError):
    """The database could not be reached or failed mid-transaction."""
