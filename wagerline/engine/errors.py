"""
wagerline.engine.errors — Ledger Error Taxonomy
================================================

Every rejection the core can produce is a :class:`LedgerError` carrying a
stable machine ``code`` (returned to providers and API clients), a human
message, and optional structured ``details``.  ``status_code`` is the HTTP
status the API layer renders it with.

Idempotent replay is never an error.  Storage failures are not wrapped;
``SQLAlchemyError`` propagates as-is so the unit of work rolls back.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all rejections raised by the ledger core."""

    status_code = 400
    default_code = "ledger_error"
    retryable = False

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict | None = None,
    ):
        self.code = code or self.default_code
        self.message = message or self.code.replace("_", " ")
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        body.update(self.details)
        return body


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class ValidationFailed(LedgerError):
    """Malformed input: rejected, never persisted."""
    default_code = "validation_failed"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------
class NotFound(LedgerError):
    status_code = 404
    default_code = "not_found"


class AccountNotFound(NotFound):
    default_code = "account_not_found"


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------
class BusinessRuleViolation(LedgerError):
    default_code = "business_rule_violation"


class AccountInactive(BusinessRuleViolation):
    status_code = 403
    default_code = "account_inactive"


class InsufficientFunds(BusinessRuleViolation):
    default_code = "insufficient_funds"


class RolloverNotCompleted(BusinessRuleViolation):
    default_code = "rollover_not_completed"


class RedeemCodeLimitReached(BusinessRuleViolation):
    default_code = "redeem_code_limit_reached"


# ---------------------------------------------------------------------------
# Internal consistency
# ---------------------------------------------------------------------------
class LedgerConflict(LedgerError):
    """Stored state contradicts what the operation expects."""
    status_code = 409
    default_code = "ledger_conflict"


# ---------------------------------------------------------------------------
# External provider
# ---------------------------------------------------------------------------
class ProviderUnavailable(LedgerError):
    """Timeout or connection failure talking to a provider.  Safe to retry."""
    status_code = 503
    default_code = "provider_unavailable"
    retryable = True


class ProviderRejected(LedgerError):
    """The provider answered, but with an error or an unusable body."""
    status_code = 502
    default_code = "provider_rejected"
