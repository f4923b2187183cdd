"""
Records -- Typed input snapshots consumed by the engines.

Products, customers, discounts, AIP versions and sales history reach the
engines as already-materialised, immutable records. Mapping raw rows
(uploads, forms, storage) into these records happens at the boundary
(gtn_services.records); engines never inspect unknown keys.

Range checks that the engines must REPORT per item (a negative AIP, a
discount outside [0, 100]) are deliberately not enforced here: the price
list engine turns them into per-product failures instead of aborting a
whole batch. Structural problems (float amounts, a negative quantity) are
rejected at construction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Protocol

from gtn_kernel.domain.periods import Period, parse_period
from gtn_kernel.domain.values import to_decimal

# Open key-value map values allowed on Product.custom
Scalar = str | int | Decimal | bool | None

_EMPTY_CUSTOM: Mapping[str, Scalar] = MappingProxyType({})


class TimeBounded(Protocol):
    """Anything with an inclusive [valid_from, valid_to] window."""

    @property
    def record_id(self) -> str: ...

    @property
    def valid_from(self) -> date: ...

    @property
    def valid_to(self) -> date | None: ...


def covers(record: TimeBounded, as_of_date: date) -> bool:
    """Inclusive window check; an open valid_to never ends."""
    if as_of_date < record.valid_from:
        return False
    if record.valid_to is not None and as_of_date > record.valid_to:
        return False
    return True


@dataclass(frozen=True)
class Product:
    """
    A catalogue product carrying its AIP list price.

    ``aip`` is the undiscounted wholesale price (Apotheek Inkoop Prijs).
    """

    product_id: str
    sku: str
    name: str
    aip: Decimal
    min_order_qty: int = 1
    pack_size: str | None = None
    registration_no: str | None = None
    zi_number: str | None = None
    case_pack: str | None = None
    custom: Mapping[str, Scalar] = field(default_factory=lambda: _EMPTY_CUSTOM, hash=False)

    def __post_init__(self) -> None:
        if not isinstance(self.aip, Decimal):
            object.__setattr__(self, "aip", to_decimal(self.aip))
        if isinstance(self.min_order_qty, bool) or not isinstance(self.min_order_qty, int):
            raise ValueError(f"min_order_qty must be an integer, got {self.min_order_qty!r}")
        if self.min_order_qty < 1:
            raise ValueError(f"min_order_qty must be positive, got {self.min_order_qty}")
        if not isinstance(self.custom, MappingProxyType):
            object.__setattr__(self, "custom", MappingProxyType(dict(self.custom)))


@dataclass(frozen=True)
class Customer:
    """A customer (typically a wholesaler). Pricing is derived via discounts."""

    customer_id: str
    name: str
    code: str | None = None


@dataclass(frozen=True)
class CustomerDiscount:
    """
    A time-bounded GIP discount agreement for one customer.

    ``valid_to`` of None means open-ended: effective until superseded.
    """

    discount_id: str
    customer_id: str
    discount_pct: Decimal
    valid_from: date
    valid_to: date | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.discount_pct, Decimal):
            object.__setattr__(self, "discount_pct", to_decimal(self.discount_pct))

    @property
    def record_id(self) -> str:
        return self.discount_id

    def is_effective(self, as_of_date: date) -> bool:
        return covers(self, as_of_date)


@dataclass(frozen=True)
class AipVersion:
    """A dated AIP for a product; supersedes Product.aip while effective."""

    version_id: str
    product_id: str
    aip: Decimal
    valid_from: date
    valid_to: date | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.aip, Decimal):
            object.__setattr__(self, "aip", to_decimal(self.aip))

    @property
    def record_id(self) -> str:
        return self.version_id


@dataclass(frozen=True)
class SalesTransaction:
    """
    Aggregated sales for one customer and SKU in one reporting period.

    ``claim_amount`` is the wholesaler claim (chargeback) settled against the
    gross revenue; net revenue is gross minus claims.
    """

    customer_id: str
    sku: str
    period: Period
    gross_amount: Decimal
    claim_amount: Decimal = Decimal("0")
    units: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not isinstance(self.period, Period):
            object.__setattr__(self, "period", parse_period(self.period))
        for name in ("gross_amount", "claim_amount", "units"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))

    @property
    def net_amount(self) -> Decimal:
        return self.gross_amount - self.claim_amount


@dataclass(frozen=True)
class GrossLine:
    """One product line of a gross-to-net bridge: quantity sold at list price."""

    product: Product
    quantity: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, Decimal):
            object.__setattr__(self, "quantity", to_decimal(self.quantity))
        if not self.quantity.is_finite():
            raise ValueError(
                f"Quantity must be finite for product {self.product.product_id}: "
                f"{self.quantity}"
            )
        if self.quantity < Decimal("0"):
            raise ValueError(
                f"Quantity cannot be negative for product {self.product.product_id}: "
                f"{self.quantity}"
            )
