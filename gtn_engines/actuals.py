"""
gtn_engines.actuals -- Historical gross-to-net bridge from recorded sales.

Responsibility:
    Aggregate recorded sales rows (gross, per-category discounts, invoiced
    sales, per-category rebates, other income, reported net) into one
    bridge: discount categories, an "Invoiced Sales" subtotal, rebate
    categories, other income, then "Net Realized".  Rows whose reported
    net or invoiced figure disagrees with the recomputed value are flagged.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Shares BridgeAccumulator with gtn_engines.waterfall so historical and
    contract bridges follow the same rounding and anchoring rules.

Invariants enforced:
    - Deduction columns are magnitudes: the sign in the source is ignored
      and the absolute value is deducted.  Income columns are added.
    - net = gross - discounts - rebates + income, per row and in total.
    - A row is flagged when |reported - computed| exceeds the tolerance.

Failure modes:
    - NegativeNetError if the aggregated bridge goes below zero.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from gtn_kernel.domain.periods import Period, parse_period
from gtn_kernel.domain.values import Currency, Money, to_decimal
from gtn_kernel.logging_config import get_logger
from gtn_engines.tracer import traced_engine
from gtn_engines.waterfall import BridgeAccumulator, WaterfallStep

logger = get_logger("engines.actuals")

_ZERO = Decimal("0")

# (attribute, step label) in bridge order
DISCOUNT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("d_channel", "Channel Discounts"),
    ("d_customer", "Customer Discounts"),
    ("d_product", "Product Discounts"),
    ("d_volume", "Volume Discounts"),
    ("d_value", "Value Discounts"),
    ("d_other_sales", "Other Sales Discounts"),
    ("d_mandatory", "Mandatory Discounts"),
    ("d_local", "Discount Local"),
)
REBATE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("r_direct", "Direct Rebates"),
    ("r_prompt", "Prompt Payment Rebates"),
    ("r_indirect", "Indirect Rebates"),
    ("r_mandatory", "Mandatory Rebates"),
    ("r_local", "Rebate Local"),
)
INCOME_COLUMNS: tuple[tuple[str, str], ...] = (
    ("inc_royalty", "Royalty Income"),
    ("inc_other", "Other Income"),
)

_AMOUNT_FIELDS = (
    ("gross",)
    + tuple(name for name, _ in DISCOUNT_COLUMNS)
    + tuple(name for name, _ in REBATE_COLUMNS)
    + tuple(name for name, _ in INCOME_COLUMNS)
)


@dataclass(frozen=True)
class ActualsRow:
    """One recorded sales line.  ``invoiced`` and ``net`` are as reported."""

    customer_id: str
    sku: str
    period: Period
    gross: Decimal
    product_group: str = ""
    d_channel: Decimal = _ZERO
    d_customer: Decimal = _ZERO
    d_product: Decimal = _ZERO
    d_volume: Decimal = _ZERO
    d_value: Decimal = _ZERO
    d_other_sales: Decimal = _ZERO
    d_mandatory: Decimal = _ZERO
    d_local: Decimal = _ZERO
    r_direct: Decimal = _ZERO
    r_prompt: Decimal = _ZERO
    r_indirect: Decimal = _ZERO
    r_mandatory: Decimal = _ZERO
    r_local: Decimal = _ZERO
    inc_royalty: Decimal = _ZERO
    inc_other: Decimal = _ZERO
    invoiced: Decimal | None = None
    net: Decimal | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.period, Period):
            object.__setattr__(self, "period", parse_period(self.period))
        for name in _AMOUNT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))
        for name in ("invoiced", "net"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))

    @property
    def total_discounts(self) -> Decimal:
        return sum((abs(getattr(self, n)) for n, _ in DISCOUNT_COLUMNS), _ZERO)

    @property
    def total_rebates(self) -> Decimal:
        return sum((abs(getattr(self, n)) for n, _ in REBATE_COLUMNS), _ZERO)

    @property
    def total_income(self) -> Decimal:
        return sum((getattr(self, n) for n, _ in INCOME_COLUMNS), _ZERO)

    @property
    def computed_invoiced(self) -> Decimal:
        return self.gross - self.total_discounts

    @property
    def computed_net(self) -> Decimal:
        return self.computed_invoiced - self.total_rebates + self.total_income


@dataclass(frozen=True)
class RowMismatch:
    """A row whose reported figure disagrees with the recomputed one."""

    index: int
    customer_id: str
    sku: str
    period: Period
    field: str  # "invoiced" or "net"
    reported: Decimal
    computed: Decimal

    @property
    def difference(self) -> Decimal:
        return self.reported - self.computed


@dataclass(frozen=True)
class ActualsBridge:
    """Aggregated historical bridge plus the rows that did not add up."""

    steps: tuple[WaterfallStep, ...]
    row_count: int
    mismatches: tuple[RowMismatch, ...] = field(default_factory=tuple)

    @property
    def gross(self) -> Money:
        return self.steps[0].value

    @property
    def net(self) -> Money:
        return self.steps[-1].value

    @property
    def is_consistent(self) -> bool:
        return not self.mismatches


@traced_engine("actuals_bridge", "1.0", fingerprint_fields=("rows", "currency"))
def bridge_from_actuals(
    rows: Sequence[ActualsRow],
    currency: str | Currency = "EUR",
    tolerance: Decimal = Decimal("0.01"),
    *,
    invoiced_label: str = "Invoiced Sales",
    gross_label: str = "Gross Sales",
    net_label: str = "Net Realized",
) -> ActualsBridge:
    """
    Build one bridge from recorded gross-to-net columns.

    Empty categories still produce a step so bridges for different
    selections line up column for column.

    Raises:
        NegativeNetError: If the aggregated running total goes below zero.
    """
    t0 = time.monotonic()
    currency = currency if isinstance(currency, Currency) else Currency(currency)

    def total(name: str) -> Money:
        return Money(amount=sum((getattr(r, name) for r in rows), _ZERO), currency=currency)

    def magnitude(name: str) -> Money:
        return Money(amount=sum((abs(getattr(r, name)) for r in rows), _ZERO), currency=currency)

    bridge = BridgeAccumulator(gross_label, total("gross"))
    for name, label in DISCOUNT_COLUMNS:
        bridge.deduct(label, magnitude(name))
    bridge.subtotal(invoiced_label)
    for name, label in REBATE_COLUMNS:
        bridge.deduct(label, magnitude(name))
    for name, label in INCOME_COLUMNS:
        bridge.deduct(label, -total(name))
    steps = bridge.close(net_label)

    mismatches: list[RowMismatch] = []
    for index, row in enumerate(rows):
        for name, computed in (("invoiced", row.computed_invoiced), ("net", row.computed_net)):
            reported = getattr(row, name)
            if reported is not None and abs(reported - computed) > tolerance:
                mismatches.append(RowMismatch(
                    index=index,
                    customer_id=row.customer_id,
                    sku=row.sku,
                    period=row.period,
                    field=name,
                    reported=reported,
                    computed=computed,
                ))

    if mismatches:
        logger.warning("actuals_rows_mismatched", extra={
            "mismatch_count": len(mismatches),
            "first_index": mismatches[0].index,
        })
    logger.info("actuals_bridge_completed", extra={
        "row_count": len(rows),
        "gross": str(steps[0].value.amount),
        "net": str(steps[-1].value.amount),
        "mismatch_count": len(mismatches),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return ActualsBridge(steps=steps, row_count=len(rows), mismatches=tuple(mismatches))
