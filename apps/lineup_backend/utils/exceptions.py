"""Typed error outcomes for the lineup core.

Exception tree:
    LineupCoreError
    +-- ValidationFailed            (malformed input, caught before any write)
    |   +-- DuplicateAssignment     (two players share a label in one slot)
    +-- NotFound                    (referenced record does not exist)
    +-- AccessDenied                (ownership or access-state failure)
    +-- PromoInvalid                (code cannot be redeemed)
    +-- AlreadyHasAccess            (team access is already active)
    +-- OptimizerError
    |   +-- OptimizerUnreachable    (connection failure or timeout)
    |   +-- OptimizerRejected       (non-success response)
    |   +-- OptimizerMalformedResponse
    +-- InternalInconsistency       (atomic unit failed and was rolled back)
    +-- PaymentProviderError        (payment provider call failed)
    +-- Conflict                    (request clashes with stored state)

Every error carries a machine-readable ``kind``, a human ``detail`` and the
HTTP status the API layer renders it with.
"""

from typing import Any, Dict, Optional


class LineupCoreError(Exception):
    """Base exception for all lineup core errors."""

    kind = "error"
    status_code = 400

    def __init__(self, detail: str, **extra: Any):
        self.detail = detail
        self.extra: Dict[str, Any] = extra
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.detail, **self.extra}


class ValidationFailed(LineupCoreError):
    """Malformed input; nothing has been written."""

    kind = "validation_failed"
    status_code = 422


class DuplicateAssignment(ValidationFailed):
    """Two entries carry the same non-excluded label within one slot."""

    kind = "duplicate_assignment"

    def __init__(self, slot: int, label: str):
        self.slot = slot
        self.label = label
        super().__init__(
            f"Duplicate position '{label}' found in inning {slot}.", slot=slot, label=label
        )


class NotFound(LineupCoreError):
    kind = "not_found"
    status_code = 404


class AccessDenied(LineupCoreError):
    """Raised by the access gate.

    ``reason`` is one of NOT_OWNER, NO_ACCESS or ACCESS_EXPIRED so callers can
    choose between "buy/redeem" and "renew" messaging.
    """

    kind = "access_denied"
    status_code = 403

    NOT_OWNER = "not_owner"
    NO_ACCESS = "no_access"
    ACCESS_EXPIRED = "access_expired"

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        super().__init__(detail or _ACCESS_DENIED_MESSAGES.get(reason, "Access denied."), reason=reason)


_ACCESS_DENIED_MESSAGES = {
    AccessDenied.NOT_OWNER: "You do not manage this team.",
    AccessDenied.NO_ACCESS: "This team does not have active paid access or a valid promo code applied.",
    AccessDenied.ACCESS_EXPIRED: "Your team's access has expired. Please renew or apply a new promo code.",
}


class PromoInvalid(LineupCoreError):
    kind = "promo_invalid"
    status_code = 400

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    ALREADY_USED = "already_used"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(_PROMO_MESSAGES[reason], reason=reason)


_PROMO_MESSAGES = {
    PromoInvalid.NOT_FOUND: "Invalid promo code.",
    PromoInvalid.INACTIVE: "This promo code is not active.",
    PromoInvalid.EXPIRED: "This promo code has expired.",
    PromoInvalid.LIMIT_REACHED: "Promo code usage limit reached.",
    PromoInvalid.ALREADY_USED: "You have already used this promo code for this team.",
}


class AlreadyHasAccess(LineupCoreError):
    kind = "already_has_access"
    status_code = 409

    def __init__(self, detail: str = "This team already has active access."):
        super().__init__(detail)


class OptimizerError(LineupCoreError):
    """Base for failures of the external optimizer call."""

    kind = "optimizer_error"
    status_code = 502


class OptimizerUnreachable(OptimizerError):
    """Connection failure or timeout. Never retried."""

    kind = "optimizer_unreachable"
    status_code = 503


class OptimizerRejected(OptimizerError):
    """The optimizer answered with a non-success status."""

    kind = "optimizer_rejected"

    def __init__(self, upstream_status: int, upstream_detail: Any):
        self.upstream_status = upstream_status
        self.upstream_detail = upstream_detail
        super().__init__(
            "Lineup optimization service failed.",
            upstream_status=upstream_status,
            upstream_detail=upstream_detail,
        )


class OptimizerMalformedResponse(OptimizerError):
    kind = "optimizer_malformed_response"


class InternalInconsistency(LineupCoreError):
    """A multi-write unit failed part way; the transaction was rolled back."""

    kind = "internal_inconsistency"
    status_code = 500


class PaymentProviderError(LineupCoreError):
    """The payment provider refused or failed a request."""

    kind = "payment_provider_error"
    status_code = 502


class Conflict(LineupCoreError):
    """The request clashes with the current state of a record."""

    kind = "conflict"
    status_code = 409
