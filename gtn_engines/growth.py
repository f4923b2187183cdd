"""
gtn_engines.growth -- Contract growth attribution against the total portfolio.

Responsibility:
    Group sales history by contract (customer, or customer + SKU), sum a
    measure per contract for a baseline and a current period, and report
    each contract's growth next to the growth of the whole portfolio and its
    share of the portfolio's growth.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Independent of price resolution; shares gtn_kernel period values.

Invariants enforced:
    - The total row is the sum of the contract rows, never a separately
      fetched aggregate, so sum(per_contract.delta) == total.delta exactly
      (Decimal arithmetic, no rounding inside the engine).
    - A contract present in only one of the two periods is reported with a
      zero on the other side; it is not an error.
    - Division guards are values, not exceptions: pct is NO_BASELINE when
      the baseline is zero; share_of_total is UNDEFINED when the total
      delta is zero.

Failure modes:
    - ValueError for an unknown granularity or measure name.
    - InvalidPeriodError for an unparseable period label.

Usage:
    from gtn_engines.growth import ContractGrowthAggregator, Granularity

    report = ContractGrowthAggregator().compute_growth(
        transactions,
        granularity=Granularity.CUSTOMER_SKU,
        baseline_period="2024-Q1",
        current_period="2025-Q1",
    )
    print(report.total.delta)
"""

from __future__ import annotations

import time
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from gtn_kernel.domain.periods import Period, PeriodKind, parse_period
from gtn_kernel.domain.records import SalesTransaction
from gtn_kernel.logging_config import get_logger
from gtn_engines.tracer import traced_engine

logger = get_logger("engines.growth")

_ZERO = Decimal("0")


class Granularity(str, Enum):
    """What constitutes one contract."""

    CUSTOMER = "customer"
    CUSTOMER_SKU = "customer_sku"


class GrowthMeasure(str, Enum):
    """Which transaction figure is compared."""

    GROSS = "gross"  # Revenue before claims
    NET = "net"  # Gross minus wholesaler claims
    UNITS = "units"  # Volume


class RatioSentinel(str, Enum):
    """Reported in place of a ratio whose denominator is zero."""

    NO_BASELINE = "no_baseline"
    UNDEFINED = "undefined"


NO_BASELINE = RatioSentinel.NO_BASELINE
UNDEFINED = RatioSentinel.UNDEFINED

Ratio = Decimal | RatioSentinel


@dataclass(frozen=True)
class ContractKey:
    """Aggregation key; ``sku`` is None at customer granularity."""

    customer_id: str
    sku: str | None = None

    @property
    def label(self) -> str:
        if self.sku is None:
            return self.customer_id
        return f"{self.customer_id} | {self.sku}"

    @classmethod
    def for_transaction(cls, txn: SalesTransaction, granularity: Granularity) -> ContractKey:
        if granularity == Granularity.CUSTOMER_SKU:
            return cls(txn.customer_id, txn.sku)
        return cls(txn.customer_id)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class GrowthRecord:
    """
    Baseline vs current for one contract, or for the portfolio total.

    ``contract`` is None on the total row.
    """

    contract: ContractKey | None
    baseline: Decimal
    current: Decimal
    delta: Decimal
    pct: Ratio
    share_of_total: Ratio
    outperforms_total: bool | None = None

    @property
    def is_total(self) -> bool:
        return self.contract is None

    @property
    def has_baseline(self) -> bool:
        return self.pct is not NO_BASELINE


@dataclass(frozen=True)
class GrowthReport:
    """Per-contract growth rows plus the total they add up to."""

    granularity: Granularity
    measure: GrowthMeasure
    baseline_period: Period
    current_period: Period
    per_contract: tuple[GrowthRecord, ...]
    total: GrowthRecord

    def record_for(self, contract: ContractKey | str) -> GrowthRecord | None:
        label = contract.label if isinstance(contract, ContractKey) else contract
        for record in self.per_contract:
            if record.contract is not None and record.contract.label == label:
                return record
        return None

    @property
    def outperformers(self) -> tuple[GrowthRecord, ...]:
        return tuple(r for r in self.per_contract if r.outperforms_total)


def measure_value(txn: SalesTransaction, measure: GrowthMeasure) -> Decimal:
    """The figure a transaction contributes under a measure."""
    if measure == GrowthMeasure.NET:
        return txn.net_amount
    if measure == GrowthMeasure.UNITS:
        return txn.units
    return txn.gross_amount


def ratio(numerator: Decimal, denominator: Decimal, sentinel: RatioSentinel) -> Ratio:
    """numerator / denominator, or the sentinel when the denominator is zero."""
    if denominator == _ZERO:
        return sentinel
    return numerator / denominator


class ContractGrowthAggregator:
    """
    Pure growth calculator.

    Contract:
        No I/O, fully deterministic.  Transactions are passed per call.
    Guarantees:
        - ``compute_growth`` rows are ordered by contract label.
        - sum of per-contract deltas equals the total delta exactly.
    Non-goals:
        - Does not fetch or cache transactions between calls.
    """

    @traced_engine(
        "growth", "1.0",
        fingerprint_fields=("granularity", "baseline_period", "current_period", "measure"),
    )
    def compute_growth(
        self,
        transactions: Iterable[SalesTransaction],
        granularity: Granularity | str,
        baseline_period: Period | str,
        current_period: Period | str,
        measure: GrowthMeasure | str = GrowthMeasure.GROSS,
    ) -> GrowthReport:
        """
        Growth per contract between two periods.

        Preconditions:
            Periods may be months or quarters; a monthly transaction counts
            towards a quarterly period that contains it.

        Postconditions:
            Every contract with a transaction in either period appears once.
            total.delta == sum(r.delta for r in per_contract).
        """
        t0 = time.monotonic()
        granularity = Granularity(granularity)
        measure = GrowthMeasure(measure)
        baseline_period = parse_period(baseline_period)
        current_period = parse_period(current_period)

        logger.info("growth_started", extra={
            "granularity": granularity.value,
            "measure": measure.value,
            "baseline_period": baseline_period.key,
            "current_period": current_period.key,
        })

        baseline_sums: dict[ContractKey, Decimal] = defaultdict(lambda: _ZERO)
        current_sums: dict[ContractKey, Decimal] = defaultdict(lambda: _ZERO)
        for txn in transactions:
            in_baseline = baseline_period.contains(txn.period)
            in_current = current_period.contains(txn.period)
            if not (in_baseline or in_current):
                continue
            key = ContractKey.for_transaction(txn, granularity)
            value = measure_value(txn, measure)
            if in_baseline:
                baseline_sums[key] += value
            if in_current:
                current_sums[key] += value

        report = self._report(
            granularity, measure, baseline_period, current_period,
            baseline_sums, current_sums,
        )

        logger.info("growth_completed", extra={
            "contract_count": len(report.per_contract),
            "total_baseline": str(report.total.baseline),
            "total_current": str(report.total.current),
            "total_delta": str(report.total.delta),
            "no_baseline_count": sum(1 for r in report.per_contract if not r.has_baseline),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return report

    @traced_engine("growth", "1.0", fingerprint_fields=("granularity", "measure", "period_kind"))
    def compute_series(
        self,
        transactions: Sequence[SalesTransaction],
        granularity: Granularity | str,
        measure: GrowthMeasure | str = GrowthMeasure.GROSS,
        period_kind: PeriodKind | str | None = None,
    ) -> tuple[GrowthReport, ...]:
        """
        Period-over-period growth for every consecutive pair of periods.

        Periods are those present in the transactions, in chronological
        order.  With ``period_kind=QUARTER`` monthly history is rolled up to
        quarters first.

        Returns:
            One GrowthReport per consecutive pair; empty when fewer than two
            periods are present.
        """
        if period_kind is not None:
            period_kind = PeriodKind(period_kind)

        periods: set[Period] = set()
        for txn in transactions:
            if period_kind == PeriodKind.QUARTER:
                periods.add(txn.period.to_quarter())
            else:
                periods.add(txn.period)
        ordered = sorted(periods, key=lambda p: (p.sort_key, p.kind.value))

        if len({p.kind for p in ordered}) > 1:
            raise ValueError(
                "Transactions mix monthly and quarterly periods; "
                "pass period_kind='Q' to roll them up to quarters"
            )

        reports = tuple(
            self.compute_growth(transactions, granularity, previous, current, measure)
            for previous, current in zip(ordered, ordered[1:])
        )
        logger.info("growth_series_completed", extra={
            "period_count": len(ordered),
            "report_count": len(reports),
        })
        return reports

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _report(
        granularity: Granularity,
        measure: GrowthMeasure,
        baseline_period: Period,
        current_period: Period,
        baseline_sums: dict[ContractKey, Decimal],
        current_sums: dict[ContractKey, Decimal],
    ) -> GrowthReport:
        contracts = sorted(set(baseline_sums) | set(current_sums), key=lambda k: k.label)

        rows: list[tuple[ContractKey, Decimal, Decimal, Decimal]] = []
        total_baseline = _ZERO
        total_current = _ZERO
        total_delta = _ZERO
        for key in contracts:
            baseline = baseline_sums.get(key, _ZERO)
            current = current_sums.get(key, _ZERO)
            delta = current - baseline
            rows.append((key, baseline, current, delta))
            total_baseline += baseline
            total_current += current
            total_delta += delta

        total_pct = ratio(total_delta, total_baseline, NO_BASELINE)
        total = GrowthRecord(
            contract=None,
            baseline=total_baseline,
            current=total_current,
            delta=total_delta,
            pct=total_pct,
            share_of_total=ratio(total_delta, total_delta, UNDEFINED),
        )

        per_contract = []
        for key, baseline, current, delta in rows:
            pct = ratio(delta, baseline, NO_BASELINE)
            outperforms = None
            if isinstance(pct, Decimal) and isinstance(total_pct, Decimal):
                outperforms = pct > total_pct
            per_contract.append(GrowthRecord(
                contract=key,
                baseline=baseline,
                current=current,
                delta=delta,
                pct=pct,
                share_of_total=ratio(delta, total_delta, UNDEFINED),
                outperforms_total=outperforms,
            ))

        return GrowthReport(
            granularity=granularity,
            measure=measure,
            baseline_period=baseline_period,
            current_period=current_period,
            per_contract=tuple(per_contract),
            total=total,
        )


def latest_snapshot(reports: Sequence[GrowthReport]) -> GrowthReport | None:
    """The report whose current period is the most recent, if any."""
    if not reports:
        return None
    return max(reports, key=lambda r: r.current_period.sort_key)
