"""Domain exception hierarchy for Rental Tax Ledger.

All domain-specific exceptions inherit from RentalTaxLedgerError, so callers
can catch every application error with a single base class while keeping
specific types for individual failures.
"""

from typing import Any


class RentalTaxLedgerError(Exception):
    """Base exception for all Rental Tax Ledger errors.

    Includes an error_code for API responses and extra context.
    """

    error_code: str = "RTL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Record Errors
# =============================================================================


class RecordNotFoundError(RentalTaxLedgerError):
    """Base exception for lookups of missing records."""

    error_code = "RECORD_NOT_FOUND"
    status_code = 404


class TransactionNotFoundError(RecordNotFoundError):
    error_code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"Transaction not found: {transaction_id}",
            context={"transaction_id": transaction_id},
        )


class InvoiceNotFoundError(RecordNotFoundError):
    error_code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str) -> None:
        super().__init__(
            f"Invoice not found: {invoice_id}",
            context={"invoice_id": invoice_id},
        )


class PropertyNotFoundError(RecordNotFoundError):
    error_code = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: str) -> None:
        super().__init__(
            f"Property not found: {property_id}",
            context={"property_id": property_id},
        )


# =============================================================================
# Reconciliation Errors
# =============================================================================


class ReconciliationError(RentalTaxLedgerError):
    """Base exception for reconciliation-related errors."""

    error_code = "RECONCILIATION_ERROR"
    status_code = 409


class LinkedTransactionError(ReconciliationError):
    """Raised when a manual status change targets a transaction with a receipt."""

    error_code = "TRANSACTION_HAS_RECEIPT"

    def __init__(self, transaction_id: str, invoice_id: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} is linked to invoice {invoice_id}; "
            "delete the invoice to change its status",
            context={"transaction_id": transaction_id, "invoice_id": invoice_id},
        )


class LinkStateError(ReconciliationError):
    """Raised when an invoice/transaction pair violates link symmetry."""

    error_code = "LINK_STATE_INVALID"


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(RentalTaxLedgerError):
    """Base exception for validation errors."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class InvalidAmountError(ValidationError):
    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str) -> None:
        super().__init__(
            f"Invalid amount '{amount}': {reason}",
            context={"amount": amount, "reason": reason},
        )


class InvalidCategoryError(ValidationError):
    error_code = "INVALID_CATEGORY"

    def __init__(self, category: str) -> None:
        super().__init__(
            f"Unknown category code: {category}",
            context={"category": category},
        )


class InvalidDateError(ValidationError):
    error_code = "INVALID_DATE"

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Unrecognized date: {value!r}",
            context={"value": value},
        )


class InvalidTaxYearError(ValidationError):
    error_code = "INVALID_TAX_YEAR"

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Unknown tax year: {value}",
            context={"tax_year": value},
        )


# =============================================================================
# Collaborator Errors
# =============================================================================


class CollaboratorError(RentalTaxLedgerError):
    """Raised by collaborator adapters when the remote service fails.

    Orchestration code recovers these into safe defaults; they only reach
    callers that use an adapter directly.
    """

    error_code = "COLLABORATOR_ERROR"
    status_code = 502


class CollaboratorNotConfiguredError(CollaboratorError):
    error_code = "COLLABORATOR_NOT_CONFIGURED"
    status_code = 503

    def __init__(self, setting: str) -> None:
        super().__init__(
            f"External collaborator is not configured: set {setting}",
            context={"setting": setting},
        )


# =============================================================================
# Store Errors
# =============================================================================


class StoreError(RentalTaxLedgerError):
    """Base exception for record store failures."""

    error_code = "STORE_ERROR"
    status_code = 500
