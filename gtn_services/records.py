"""
gtn_services.records -- Map raw rows into typed engine records.

Responsibility:
    Boundary between loosely typed rows (uploads, JSON bodies, storage
    reads) and the immutable records the engines consume.  Required
    fields are checked, amounts become Decimal, dates and periods are
    parsed, and the open custom-attribute map on products is restricted to
    scalar values.

Failure modes:
    - InvalidRecordError naming the record type, field and row index.
      ``map_rows`` collects these per row instead of stopping at the first.

Usage:
    from gtn_services.records import map_rows, product_from_row

    products, errors = map_rows(raw_rows, product_from_row)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from gtn_engines.actuals import ActualsRow
from gtn_kernel.domain.periods import parse_period
from gtn_kernel.domain.records import (
    AipVersion,
    Customer,
    CustomerDiscount,
    GrossLine,
    Product,
    SalesTransaction,
    Scalar,
)
from gtn_kernel.domain.values import to_decimal
from gtn_kernel.exceptions import InvalidPeriodError, InvalidRecordError
from gtn_kernel.logging_config import get_logger

logger = get_logger("services.records")

T = TypeVar("T")

_SCALAR_TYPES = (str, int, Decimal, bool)

_ACTUALS_AMOUNT_FIELDS = (
    "d_channel", "d_customer", "d_product", "d_volume", "d_value",
    "d_other_sales", "d_mandatory", "d_local",
    "r_direct", "r_prompt", "r_indirect", "r_mandatory", "r_local",
    "inc_royalty", "inc_other",
)


def _required(row: Mapping[str, Any], record_type: str, name: str, index: int | None) -> Any:
    value = row.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidRecordError(record_type, name, "is required", index)
    return value.strip() if isinstance(value, str) else value


def _optional_str(row: Mapping[str, Any], name: str) -> str | None:
    value = row.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _decimal(value: Any, record_type: str, name: str, index: int | None) -> Decimal:
    # JSON bodies carry floats; their shortest repr is the intended value.
    if isinstance(value, float):
        value = repr(value)
    try:
        parsed = to_decimal(value)
    except ValueError:
        raise InvalidRecordError(record_type, name, f"is not a number: {value!r}", index) from None
    if not parsed.is_finite():
        raise InvalidRecordError(record_type, name, f"is not a finite number: {value!r}", index)
    return parsed


def _date(value: Any, record_type: str, name: str, index: int | None) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidRecordError(record_type, name, f"is not an ISO date: {value!r}", index) from None


def _optional_date(row: Mapping[str, Any], record_type: str, name: str, index: int | None) -> date | None:
    value = row.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _date(value, record_type, name, index)


def validate_custom(
    custom: Any, record_type: str = "product", index: int | None = None,
) -> dict[str, Scalar]:
    """
    Check an open custom-attribute map.

    Raises:
        InvalidRecordError: If it is not a mapping, a key is not a string,
            or a value is not a scalar (str, int, Decimal, bool, None).
    """
    if custom is None:
        return {}
    if not isinstance(custom, Mapping):
        raise InvalidRecordError(record_type, "custom", "must be a mapping", index)
    checked: dict[str, Scalar] = {}
    for key, value in custom.items():
        if not isinstance(key, str) or not key:
            raise InvalidRecordError(record_type, "custom", f"key {key!r} is not a string", index)
        if isinstance(value, float):
            value = _decimal(value, record_type, f"custom.{key}", index)
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            raise InvalidRecordError(
                record_type, f"custom.{key}",
                f"must be a scalar, got {type(value).__name__}", index,
            )
        checked[key] = value
    return checked


def product_from_row(row: Mapping[str, Any], index: int | None = None) -> Product:
    sku = str(_required(row, "product", "sku", index))
    min_order_qty = row.get("min_order_qty", 1)
    try:
        min_order_qty = int(str(min_order_qty).strip()) if min_order_qty not in (None, "") else 1
    except ValueError:
        raise InvalidRecordError(
            "product", "min_order_qty", f"is not an integer: {min_order_qty!r}", index,
        ) from None
    if min_order_qty < 1:
        raise InvalidRecordError("product", "min_order_qty", "must be positive", index)
    return Product(
        product_id=str(row.get("product_id") or sku).strip(),
        sku=sku,
        name=str(_required(row, "product", "name", index)),
        aip=_decimal(_required(row, "product", "aip", index), "product", "aip", index),
        min_order_qty=min_order_qty,
        pack_size=_optional_str(row, "pack_size"),
        registration_no=_optional_str(row, "registration_no"),
        zi_number=_optional_str(row, "zi_number"),
        case_pack=_optional_str(row, "case_pack"),
        custom=validate_custom(row.get("custom"), "product", index),
    )


def customer_from_row(row: Mapping[str, Any], index: int | None = None) -> Customer:
    return Customer(
        customer_id=str(_required(row, "customer", "customer_id", index)),
        name=str(_required(row, "customer", "name", index)),
        code=_optional_str(row, "code"),
    )


def discount_from_row(row: Mapping[str, Any], index: int | None = None) -> CustomerDiscount:
    return CustomerDiscount(
        discount_id=str(_required(row, "discount", "discount_id", index)),
        customer_id=str(_required(row, "discount", "customer_id", index)),
        discount_pct=_decimal(
            _required(row, "discount", "discount_pct", index), "discount", "discount_pct", index,
        ),
        valid_from=_date(_required(row, "discount", "valid_from", index), "discount", "valid_from", index),
        valid_to=_optional_date(row, "discount", "valid_to", index),
    )


def aip_version_from_row(row: Mapping[str, Any], index: int | None = None) -> AipVersion:
    return AipVersion(
        version_id=str(_required(row, "aip_version", "version_id", index)),
        product_id=str(_required(row, "aip_version", "product_id", index)),
        aip=_decimal(_required(row, "aip_version", "aip", index), "aip_version", "aip", index),
        valid_from=_date(
            _required(row, "aip_version", "valid_from", index), "aip_version", "valid_from", index,
        ),
        valid_to=_optional_date(row, "aip_version", "valid_to", index),
    )


def transaction_from_row(row: Mapping[str, Any], index: int | None = None) -> SalesTransaction:
    raw_period = _required(row, "transaction", "period", index)
    try:
        period = parse_period(raw_period)
    except InvalidPeriodError as exc:
        raise InvalidRecordError("transaction", "period", str(exc), index) from None
    return SalesTransaction(
        customer_id=str(_required(row, "transaction", "customer_id", index)),
        sku=str(_required(row, "transaction", "sku", index)),
        period=period,
        gross_amount=_decimal(row.get("gross_amount", 0), "transaction", "gross_amount", index),
        claim_amount=_decimal(row.get("claim_amount", 0), "transaction", "claim_amount", index),
        units=_decimal(row.get("units", 0), "transaction", "units", index),
    )


def gross_line_from_row(
    row: Mapping[str, Any],
    index: int | None = None,
    *,
    products: Mapping[str, Product],
) -> GrossLine:
    """Resolve ``product_id`` against loaded products."""
    product_id = str(_required(row, "gross_line", "product_id", index))
    product = products.get(product_id)
    if product is None:
        raise InvalidRecordError("gross_line", "product_id", f"unknown product {product_id!r}", index)
    quantity = _decimal(_required(row, "gross_line", "quantity", index), "gross_line", "quantity", index)
    if quantity < 0:
        raise InvalidRecordError("gross_line", "quantity", "cannot be negative", index)
    return GrossLine(product=product, quantity=quantity)


def actuals_row_from_row(row: Mapping[str, Any], index: int | None = None) -> ActualsRow:
    raw_period = _required(row, "actuals", "period", index)
    try:
        period = parse_period(raw_period)
    except InvalidPeriodError as exc:
        raise InvalidRecordError("actuals", "period", str(exc), index) from None
    amounts = {
        name: _decimal(row.get(name) or 0, "actuals", name, index)
        for name in _ACTUALS_AMOUNT_FIELDS
    }
    reported = {
        name: _decimal(row[name], "actuals", name, index)
        for name in ("invoiced", "net")
        if row.get(name) not in (None, "")
    }
    return ActualsRow(
        customer_id=str(_required(row, "actuals", "customer_id", index)),
        sku=str(_required(row, "actuals", "sku", index)),
        period=period,
        gross=_decimal(_required(row, "actuals", "gross", index), "actuals", "gross", index),
        product_group=_optional_str(row, "product_group") or "",
        **amounts,
        **reported,
    )


def map_rows(
    rows: Iterable[Mapping[str, Any]],
    mapper: Callable[[Mapping[str, Any], int | None], T],
) -> tuple[list[T], list[InvalidRecordError]]:
    """
    Apply a row mapper to every row, collecting failures per row.

    Returns:
        (records, errors) -- records in input order; errors carry the
        zero-based row index.
    """
    records: list[T] = []
    errors: list[InvalidRecordError] = []
    for index, row in enumerate(rows):
        try:
            records.append(mapper(row, index))
        except InvalidRecordError as exc:
            errors.append(exc)
        except ValueError as exc:
            record_type = getattr(mapper, "__name__", "record").removesuffix("_from_row")
            errors.append(InvalidRecordError(record_type, "row", str(exc), index))
    if errors:
        logger.warning("records_rejected", extra={
            "mapper": getattr(mapper, "__name__", repr(mapper)),
            "accepted_count": len(records),
            "rejected_count": len(errors),
            "first_row": errors[0].row,
        })
    return records, errors
