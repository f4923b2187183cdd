"""
gtn_engines.waterfall -- Gross-to-net bridge for one customer and date.

Responsibility:
    Build the ordered sequence of named steps that bridges list-price
    revenue (AIP x quantity) to net realized revenue: the customer's
    contract discount first, then each extra deduction in the order given.
    Each step records its value and its delta from the previous step so the
    bridge can be charted without recomputation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Depends on gtn_engines.price_list for discount resolution and per-unit
    net prices, so the bridge reconciles to the GIP list to the cent.

Invariants enforced:
    - Step 1 is the list-price total; the last step is always the
      net-realized label and equals the final running total.
    - The first and last steps are anchors with a zero delta, so the sum
      of all deltas equals net - gross.
    - Percentage deductions apply to the running total after the previous
      step unless flagged ``basis=GROSS`` (off invoice from gross).
    - Step values are rounded half-up to the currency minor unit; deltas
      are differences of rounded values and reconcile exactly.
    - A running total below zero raises NegativeNetError; no net step is
      fabricated and nothing is clamped.

Failure modes:
    - NegativeNetError when a step drives the running total below zero.
    - AmbiguousValidityError when the customer's discount is ambiguous.
    - Invalid deductions (blank name, non-finite or negative value,
      percent > 100) are skipped and reported in ``rejected_deductions``;
      products that fail pricing are excluded and reported in
      ``pricing_failures``.
    - InvalidPricingInputError when two lines carry different products
      under one product id.

Usage:
    from gtn_engines.waterfall import Deduction, WaterfallBuilder

    builder = WaterfallBuilder(resolver)
    result = builder.build_waterfall(
        gross_lines, "wh-a", date(2025, 3, 1),
        [Deduction.fixed("Other Rebates", "50")],
    )
    for step in result.steps:
        print(step.name, step.value, step.delta)
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from gtn_kernel.domain.records import CustomerDiscount, GrossLine, Product
from gtn_kernel.domain.values import Currency, Money, to_decimal
from gtn_kernel.exceptions import InvalidDeductionError, InvalidPricingInputError, NegativeNetError
from gtn_kernel.logging_config import get_logger
from gtn_engines.price_list import PriceListResolver, PricingFailure
from gtn_engines.tracer import traced_engine

logger = get_logger("engines.waterfall")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


class DeductionKind(str, Enum):
    """How a deduction's value is interpreted."""

    FIXED = "fixed"  # Monetary amount
    PERCENT = "percent"  # Percentage of a base (0-100)


class DeductionBasis(str, Enum):
    """Base a percentage deduction applies to."""

    RUNNING = "running"  # Value after the previous step
    GROSS = "gross"  # Off invoice from gross


class StepKind(str, Enum):
    """Role of a step in the rendered bridge."""

    START = "start"
    DEDUCTION = "deduction"
    SUBTOTAL = "subtotal"
    END = "end"


@dataclass(frozen=True)
class WaterfallLabels:
    """Names of the fixed steps."""

    list_price: str = "List Price"
    contract_discount: str = "Contract Discount"
    net_realized: str = "Net Realized"


@dataclass(frozen=True)
class Deduction:
    """
    A named contractual deduction applied after the contract discount.

    ``value`` is an amount for FIXED and a percentage (0-100) for PERCENT.
    Range checks happen in the builder so a bad deduction is reported
    instead of aborting the bridge.
    """

    name: str
    kind: DeductionKind
    value: Decimal
    basis: DeductionBasis = DeductionBasis.RUNNING

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", DeductionKind(self.kind))
        object.__setattr__(self, "basis", DeductionBasis(self.basis))
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", to_decimal(self.value))

    @classmethod
    def fixed(cls, name: str, amount: Decimal | str | int) -> Deduction:
        return cls(name=name, kind=DeductionKind.FIXED, value=to_decimal(amount))

    @classmethod
    def percent(
        cls,
        name: str,
        pct: Decimal | str | int,
        basis: DeductionBasis = DeductionBasis.RUNNING,
    ) -> Deduction:
        return cls(name=name, kind=DeductionKind.PERCENT, value=to_decimal(pct), basis=basis)

    def validate(self) -> None:
        """
        Raises:
            InvalidDeductionError: On a blank name, a non-finite or negative
                value, or a percentage above 100.
        """
        if not self.name or not self.name.strip():
            raise InvalidDeductionError(self.name, "name is required")
        if not self.value.is_finite():
            raise InvalidDeductionError(self.name, f"value must be finite ({self.value})")
        if self.value < _ZERO:
            raise InvalidDeductionError(self.name, f"value cannot be negative ({self.value})")
        if self.kind == DeductionKind.PERCENT and self.value > _HUNDRED:
            raise InvalidDeductionError(self.name, f"percentage above 100 ({self.value})")


@dataclass(frozen=True)
class WaterfallStep:
    """One bar of the bridge: the value after the step and the change it made."""

    name: str
    value: Money
    delta: Money
    kind: StepKind = StepKind.DEDUCTION


@dataclass(frozen=True)
class RejectedDeduction:
    """A deduction left out of the bridge, with the reason."""

    name: str
    code: str
    reason: str


@dataclass(frozen=True)
class WaterfallResult:
    """Ordered bridge steps plus the items that could not be applied."""

    customer_id: str
    as_of_date: date
    steps: tuple[WaterfallStep, ...]
    discount: CustomerDiscount | None = None
    rejected_deductions: tuple[RejectedDeduction, ...] = ()
    pricing_failures: tuple[PricingFailure, ...] = ()

    @property
    def gross(self) -> Money:
        return self.steps[0].value

    @property
    def net(self) -> Money:
        return self.steps[-1].value

    @property
    def total_deductions(self) -> Money:
        """Net minus gross (negative when value was given away)."""
        return self.net - self.gross

    @property
    def net_to_gross_pct(self) -> Decimal | None:
        if self.gross.is_zero:
            return None
        return self.net.amount / self.gross.amount * _HUNDRED

    def step(self, name: str) -> WaterfallStep | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


@dataclass(frozen=True)
class ReconciliationResult:
    """Bridge net compared with independently summed receipts."""

    expected: Money
    actual: Money
    difference: Money  # actual - expected

    @property
    def is_reconciled(self) -> bool:
        return self.difference.is_zero


class BridgeAccumulator:
    """
    Running total that records one step per movement.

    Shared by the contract bridge and the actuals bridge so both enforce
    the same rounding, anchoring and non-negativity rules.
    """

    def __init__(
        self,
        start_label: str,
        start_value: Money,
        customer_id: str | None = None,
        as_of_date: date | None = None,
    ) -> None:
        self._customer_id = customer_id
        self._as_of_date = as_of_date
        self._gross = start_value.round()
        self._running = self._gross
        self._check(start_label, self._running)
        self._steps: list[WaterfallStep] = [
            WaterfallStep(
                name=start_label,
                value=self._running,
                delta=Money.zero(self._running.currency),
                kind=StepKind.START,
            )
        ]

    @property
    def gross(self) -> Money:
        return self._gross

    @property
    def running(self) -> Money:
        return self._running

    def move_to(self, name: str, value: Money, kind: StepKind = StepKind.DEDUCTION) -> WaterfallStep:
        """Record a step whose resulting value is known."""
        value = value.round()
        self._check(name, value)
        step = WaterfallStep(name=name, value=value, delta=value - self._running, kind=kind)
        self._steps.append(step)
        self._running = value
        return step

    def deduct(self, name: str, amount: Money) -> WaterfallStep:
        """Record a step that removes an amount from the running total."""
        return self.move_to(name, self._running - amount.round())

    def subtotal(self, name: str) -> WaterfallStep:
        """Anchor bar showing the running total without changing it."""
        return self.move_to(name, self._running, kind=StepKind.SUBTOTAL)

    def close(self, name: str) -> tuple[WaterfallStep, ...]:
        self.move_to(name, self._running, kind=StepKind.END)
        return tuple(self._steps)

    def _check(self, name: str, value: Money) -> None:
        if value.is_negative:
            logger.error("waterfall_negative_net", extra={
                "step_name": name,
                "running_total": str(value.amount),
                "customer_id": self._customer_id,
                "as_of_date": str(self._as_of_date) if self._as_of_date else None,
            })
            raise NegativeNetError(name, str(value.amount), self._customer_id, self._as_of_date)


def _distinct_products(gross_lines: Sequence[GrossLine]) -> list[Product]:
    """Products of the lines, first occurrence order, one per product id."""
    products: dict[str, Product] = {}
    for line in gross_lines:
        product = line.product
        seen = products.setdefault(product.product_id, product)
        if seen is not product and seen != product:
            raise InvalidPricingInputError(
                product.product_id, "product", product.aip,
                "lines carry conflicting definitions for one product id",
            )
    return list(products.values())


class WaterfallBuilder:
    """
    Pure gross-to-net bridge builder.

    Contract:
        No I/O, fully deterministic.  Discounts come from the resolver;
        gross lines and deductions are passed per call.
    Guarantees:
        - sum(step.delta) == net - gross exactly.
        - The final step equals the last running total.
        - Safe to call concurrently for different customers.
    Non-goals:
        - Does not persist bridges or model tax.
    """

    def __init__(
        self,
        resolver: PriceListResolver,
        labels: WaterfallLabels | None = None,
    ) -> None:
        self._resolver = resolver
        self._labels = labels or WaterfallLabels()

    @property
    def currency(self) -> Currency:
        return self._resolver.currency

    @property
    def labels(self) -> WaterfallLabels:
        return self._labels

    @traced_engine(
        "waterfall", "1.0",
        fingerprint_fields=("gross_lines", "customer_id", "as_of_date", "extra_deductions"),
    )
    def build_waterfall(
        self,
        gross_lines: Sequence[GrossLine],
        customer_id: str,
        as_of_date: date,
        extra_deductions: Sequence[Deduction] = (),
    ) -> WaterfallResult:
        """
        Bridge list-price revenue to net realized revenue.

        Postconditions:
            steps[0] is the list-price total, steps[1] the contract-net
            total, then one step per accepted deduction, then the
            net-realized anchor.

        Raises:
            NegativeNetError: If any step drives the running total below 0.
            AmbiguousValidityError: If the customer's discount is ambiguous.
            InvalidPricingInputError: If two lines carry different products
                under one product id.
        """
        t0 = time.monotonic()
        logger.info("waterfall_started", extra={
            "customer_id": customer_id,
            "as_of_date": str(as_of_date),
            "line_count": len(gross_lines),
            "deduction_count": len(extra_deductions),
        })

        products = _distinct_products(gross_lines)
        price_list = self._resolver.generate(customer_id, products, as_of_date)
        entries = {entry.product_id: entry for entry in price_list.entries}

        currency = self.currency
        gross = Money.zero(currency)
        contract_net = Money.zero(currency)
        for line in gross_lines:
            entry = entries.get(line.product.product_id)
            if entry is None:
                continue
            gross = gross + entry.aip * line.quantity
            contract_net = contract_net + entry.net_price * line.quantity

        bridge = BridgeAccumulator(self._labels.list_price, gross, customer_id, as_of_date)
        bridge.move_to(self._labels.contract_discount, contract_net)

        rejected: list[RejectedDeduction] = []
        for deduction in extra_deductions:
            try:
                deduction.validate()
            except InvalidDeductionError as exc:
                logger.warning("waterfall_deduction_rejected", extra={
                    "customer_id": customer_id,
                    "deduction": deduction.name,
                    "reason": exc.reason,
                })
                rejected.append(RejectedDeduction(deduction.name, exc.code, exc.reason))
                continue
            bridge.deduct(deduction.name, self._deduction_amount(deduction, bridge))

        steps = bridge.close(self._labels.net_realized)
        result = WaterfallResult(
            customer_id=customer_id,
            as_of_date=as_of_date,
            steps=steps,
            discount=price_list.discount,
            rejected_deductions=tuple(rejected),
            pricing_failures=price_list.failures,
        )

        logger.info("waterfall_completed", extra={
            "customer_id": customer_id,
            "as_of_date": str(as_of_date),
            "gross": str(result.gross.amount),
            "net": str(result.net.amount),
            "step_count": len(steps),
            "rejected_count": len(rejected),
            "pricing_failure_count": len(price_list.failures),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    def reconcile(
        self,
        result: WaterfallResult,
        receipts: Iterable[Money | Decimal | str],
    ) -> ReconciliationResult:
        """
        Compare the bridge's net with independently summed net receipts.

        Both sides are compared at the currency minor unit.
        """
        currency = self.currency
        actual = Money.zero(currency)
        for receipt in receipts:
            if not isinstance(receipt, Money):
                receipt = Money.of(receipt, currency)
            actual = actual + receipt
        actual = actual.round()
        expected = result.net
        reconciliation = ReconciliationResult(
            expected=expected,
            actual=actual,
            difference=actual - expected,
        )
        log = logger.info if reconciliation.is_reconciled else logger.warning
        log("waterfall_reconciled", extra={
            "customer_id": result.customer_id,
            "as_of_date": str(result.as_of_date),
            "expected": str(expected.amount),
            "actual": str(actual.amount),
            "difference": str(reconciliation.difference.amount),
            "is_reconciled": reconciliation.is_reconciled,
        })
        return reconciliation

    @staticmethod
    def _deduction_amount(deduction: Deduction, bridge: BridgeAccumulator) -> Money:
        if deduction.kind == DeductionKind.FIXED:
            return Money(amount=deduction.value, currency=bridge.running.currency)
        base = bridge.gross if deduction.basis == DeductionBasis.GROSS else bridge.running
        return base * (deduction.value / _HUNDRED)
