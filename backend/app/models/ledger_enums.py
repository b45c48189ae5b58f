"""
Ledger enumerations.
"""

import enum


class TransactionType(str, enum.Enum):
    """Ledger transaction type enumeration."""
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class TransactionKind(str, enum.Enum):
    """
    What a ledger transaction represents.

    Resolved once from the reference/invoice fields when the
    transaction is loaded.
    """
    STARTING_BALANCE = "STARTING_BALANCE"  # reference STARTING-BALANCE...
    DEBIT_NOTE = "DEBIT_NOTE"  # reference #DEBIT...
    CREDIT_NOTE = "CREDIT_NOTE"  # reference #CREDIT...
    INVOICE = "INVOICE"  # linked to a shipment invoice
    MANUAL = "MANUAL"


class AccountType(str, enum.Enum):
    """Ledger account owner type."""
    VENDOR = "vendor"
    CUSTOMER = "customer"


class PaymentTransactionType(str, enum.Enum):
    """Payment direction enumeration."""
    EXPENSE = "EXPENSE"  # Paid out to a vendor
    INCOME = "INCOME"  # Received from a customer


class JournalTransactionType(str, enum.Enum):
    """Journal posting templates for ledger transactions."""
    VENDOR_DEBIT = "VENDOR_DEBIT"
    VENDOR_CREDIT = "VENDOR_CREDIT"
    CUSTOMER_DEBIT = "CUSTOMER_DEBIT"
    CUSTOMER_CREDIT = "CUSTOMER_CREDIT"


class RecalculationStage(str, enum.Enum):
    """Stages of a ledger recalculation, reported on failure."""
    LOCK = "lock"
    COLLECT = "collect"
    RESOLVE = "resolve"
    SEQUENCE = "sequence"
    WRITE = "write"


# Reference prefixes written by the booking flows
STARTING_BALANCE_PREFIX = "STARTING-BALANCE"
DEBIT_NOTE_PREFIX = "#DEBIT"
CREDIT_NOTE_PREFIX = "#CREDIT"
