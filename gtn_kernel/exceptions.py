"""
Typed Exception Hierarchy for the GTN Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Pricing and gross-to-net results end up on a dashboard and in commercial
negotiations. A failure must be catchable by type and must carry enough
structured context (customer, date, conflicting records) to fix the source
data. Parsing error messages is fragile; attributes survive logging,
serialization, and API responses.

Rules:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE class attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA as attributes

Example:
    try:
        discount = index.resolve("cust-1", date(2025, 3, 1))
    except AmbiguousValidityError as e:
        badge(e.entity_id, code=e.code, records=e.record_ids)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GtnKernelError (base)
    |
    +-- ValidityError
    |   +-- AmbiguousValidityError
    |   +-- InvalidValidityWindowError
    |
    +-- PricingError
    |   +-- InvalidPricingInputError
    |   +-- UnknownCustomerError
    |
    +-- WaterfallError
    |   +-- NegativeNetError
    |   +-- InvalidDeductionError
    |
    +-- PeriodError
    |   +-- InvalidPeriodError
    |
    +-- RecordError
    |   +-- InvalidRecordError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                      | When Raised
-----------|---------------------------|------------------------------------------
Validity   | AMBIGUOUS_VALIDITY        | Overlapping windows survive the tie-break
           | INVALID_VALIDITY_WINDOW   | valid_to earlier than valid_from
-----------|---------------------------|------------------------------------------
Pricing    | INVALID_PRICING_INPUT     | aip < 0 or discount pct outside [0, 100]
           | UNKNOWN_CUSTOMER          | Customer id not in the snapshot
-----------|---------------------------|------------------------------------------
Waterfall  | NEGATIVE_NET              | A bridge step drives the running total < 0
           | INVALID_DEDUCTION         | Deduction amount/percent out of range
-----------|---------------------------|------------------------------------------
Period     | INVALID_PERIOD            | Unparseable month/quarter label
-----------|---------------------------|------------------------------------------
Record     | INVALID_RECORD            | Boundary row cannot become a typed record
-----------|---------------------------|------------------------------------------
Currency   | INVALID_CURRENCY          | Not a valid ISO 4217 code
           | CURRENCY_MISMATCH         | Mixed currencies in one computation
-----------|---------------------------|------------------------------------------
Config     | INVALID_CONFIG            | Engine settings fail validation

NotFound (no discount on a date) is NOT an exception: resolution returns
None and callers price at 0%. Growth division guards (NO_BASELINE,
UNDEFINED) are sentinel values, not exceptions.
"""


class GtnKernelError(Exception):
    """
    Base exception for all GTN kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GTN_KERNEL_ERROR"


# Validity-window exceptions


class ValidityError(GtnKernelError):
    """Base exception for time-bounded record errors."""

    code: str = "VALIDITY_ERROR"


class AmbiguousValidityError(ValidityError):
    """
    More than one record is effective for an entity on a date and the
    tie-break (latest valid_from, then narrowest window) cannot pick one.

    This is a data-integrity violation, never a runtime decision.
    """

    code: str = "AMBIGUOUS_VALIDITY"

    def __init__(self, entity_id: str, as_of_date, record_ids: list[str]):
        self.entity_id = entity_id
        self.as_of_date = as_of_date
        self.record_ids = record_ids
        super().__init__(
            f"Ambiguous validity for {entity_id} on {as_of_date}: "
            f"records {', '.join(record_ids)} overlap with identical windows"
        )


class InvalidValidityWindowError(ValidityError):
    """Record window ends before it starts."""

    code: str = "INVALID_VALIDITY_WINDOW"

    def __init__(self, record_id: str, valid_from, valid_to):
        self.record_id = record_id
        self.valid_from = valid_from
        self.valid_to = valid_to
        super().__init__(
            f"Record {record_id} has valid_to {valid_to} before valid_from {valid_from}"
        )


# Pricing exceptions


class PricingError(GtnKernelError):
    """Base exception for price list errors."""

    code: str = "PRICING_ERROR"


class InvalidPricingInputError(PricingError):
    """List price or discount percentage is out of range for one product."""

    code: str = "INVALID_PRICING_INPUT"

    def __init__(self, product_id: str, field: str, value, reason: str):
        self.product_id = product_id
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid pricing input for product {product_id}: "
            f"{field}={value} ({reason})"
        )


class UnknownCustomerError(PricingError):
    """Customer id is not part of the loaded snapshot."""

    code: str = "UNKNOWN_CUSTOMER"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Unknown customer: {customer_id}")


# Waterfall exceptions


class WaterfallError(GtnKernelError):
    """Base exception for gross-to-net bridge errors."""

    code: str = "WATERFALL_ERROR"


class NegativeNetError(WaterfallError):
    """
    A bridge step drives the running total below zero.

    Surfaced, never clamped: it points at a data or contract-term error.
    """

    code: str = "NEGATIVE_NET"

    def __init__(
        self,
        step_name: str,
        running_total: str,
        customer_id: str | None = None,
        as_of_date=None,
    ):
        self.step_name = step_name
        self.running_total = running_total
        self.customer_id = customer_id
        self.as_of_date = as_of_date
        super().__init__(
            f"Step '{step_name}' drives net below zero ({running_total})"
            + (f" for customer {customer_id}" if customer_id else "")
            + (f" on {as_of_date}" if as_of_date else "")
        )


class InvalidDeductionError(WaterfallError):
    """Deduction definition is out of range."""

    code: str = "INVALID_DEDUCTION"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid deduction '{name}': {reason}")


# Period exceptions


class PeriodError(GtnKernelError):
    """Base exception for reporting-period errors."""

    code: str = "PERIOD_ERROR"


class InvalidPeriodError(PeriodError):
    """Period label is not a recognised month or quarter."""

    code: str = "INVALID_PERIOD"

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(
            f"Invalid period {raw!r}: expected YYYY-MM, MM-YYYY, YYYY-Qn or Qn-YYYY"
        )


# Record exceptions


class RecordError(GtnKernelError):
    """Base exception for boundary record errors."""

    code: str = "RECORD_ERROR"


class InvalidRecordError(RecordError):
    """A boundary row cannot be turned into a typed record."""

    code: str = "INVALID_RECORD"

    def __init__(self, record_type: str, field: str, reason: str, row: int | None = None):
        self.record_type = record_type
        self.field = field
        self.reason = reason
        self.row = row
        location = f" (row {row})" if row is not None else ""
        super().__init__(f"Invalid {record_type}{location}: {field} {reason}")


# Currency exceptions


class CurrencyError(GtnKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not valid ISO 4217."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Two amounts in one computation carry different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Currency mismatch: expected {expected}, got {received}")


# Configuration exceptions


class ConfigError(GtnKernelError):
    """Base exception for engine settings errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """Engine settings failed validation."""

    code: str = "INVALID_CONFIG"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}: {reason}")
