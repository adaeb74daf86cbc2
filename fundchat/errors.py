"""
fundchat/errors.py
------------------

Error taxonomy shared by the store, the engines and the HTTP layer.

Every error carries a machine-readable ``code`` and the HTTP status the
API layer answers with. Routes never build HTTPException themselves for
business failures; a single exception handler in fundchat_api maps these.
"""

from __future__ import annotations


class FundchatError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFound(FundchatError):
    code = "not_found"
    status_code = 404


class AccountNotFound(NotFound):
    code = "account_not_found"


class ProjectNotFound(NotFound):
    code = "project_not_found"


class ThreadNotFound(NotFound):
    code = "thread_not_found"


# ---------------------------------------------------------------------------
# Invalid input (detected before any lock is taken)
# ---------------------------------------------------------------------------


class InvalidInput(FundchatError):
    code = "invalid_input"
    status_code = 400


class InvalidAmount(InvalidInput):
    code = "invalid_amount"


class InvalidParticipants(InvalidInput):
    code = "invalid_participants"


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class BusinessRuleViolation(FundchatError):
    code = "business_rule_violation"
    status_code = 400


class InsufficientFunds(BusinessRuleViolation):
    code = "insufficient_funds"


class BalanceLimitExceeded(BusinessRuleViolation):
    code = "balance_limit_exceeded"


class AccountExists(BusinessRuleViolation):
    code = "account_exists"
    status_code = 409


class InvalidCredentials(BusinessRuleViolation):
    code = "invalid_credentials"
    status_code = 401


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class StoreUnavailable(FundchatError):
    code = "store_unavailable"
    status_code = 503


class StoreBusy(FundchatError):
    code = "store_busy"
    status_code = 503
