"""
Hypothesis property tests for the pricing engines.

Properties:
- Waterfall: sum of deltas equals net - gross; anchors carry zero delta;
  rebuilding with the same inputs gives the same bridge.
- Price list: 0 <= net unit price <= AIP for any in-range discount.
- Validity: a resolved record always covers the date, and batch
  resolution agrees with single resolution.
- Growth: the total row is the exact sum of the contract rows.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from gtn_engines.growth import ContractGrowthAggregator, Granularity
from gtn_engines.price_list import PriceListResolver
from gtn_engines.validity import ValidityIndex
from gtn_engines.waterfall import Deduction, DeductionBasis, WaterfallBuilder
from gtn_kernel.domain.records import CustomerDiscount, GrossLine, Product, SalesTransaction, covers
from gtn_kernel.domain.values import Money
from gtn_kernel.exceptions import AmbiguousValidityError, NegativeNetError

AS_OF = date(2025, 3, 1)

amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000"), places=2)
percents = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2)
quantities = st.integers(min_value=0, max_value=500).map(Decimal)

deductions = st.one_of(
    st.builds(Deduction.fixed, name=st.sampled_from(["Fee", "Rebate", "Bonus"]), amount=amounts),
    st.builds(
        Deduction.percent,
        name=st.sampled_from(["Prompt", "Off Invoice", "Volume"]),
        pct=percents,
        basis=st.sampled_from(list(DeductionBasis)),
    ),
)


@st.composite
def gross_lines(draw):
    count = draw(st.integers(min_value=0, max_value=6))
    lines = []
    for i in range(count):
        product = Product(product_id=f"p-{i}", sku=f"SKU-{i}", name=f"P{i}", aip=draw(amounts))
        lines.append(GrossLine(product, draw(quantities)))
    return lines


@st.composite
def discount_histories(draw):
    count = draw(st.integers(min_value=0, max_value=6))
    records = []
    for i in range(count):
        start = date(2024, 1, 1) + timedelta(days=draw(st.integers(0, 700)))
        length = draw(st.one_of(st.none(), st.integers(0, 400)))
        end = start + timedelta(days=length) if length is not None else None
        records.append(CustomerDiscount(f"d-{i}", "wh-a", draw(percents), start, end))
    return records


class TestWaterfallProperties:

    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    @given(lines=gross_lines(), pct=percents, extra=st.lists(deductions, max_size=5))
    def test_sum_of_deltas_is_net_minus_gross(self, lines, pct, extra):
        resolver = PriceListResolver([CustomerDiscount("d", "wh-a", pct, date(2024, 1, 1))])
        builder = WaterfallBuilder(resolver)
        try:
            result = builder.build_waterfall(lines, "wh-a", AS_OF, extra)
        except NegativeNetError:
            return

        total = sum((s.delta for s in result.steps), Money.zero("EUR"))
        assert total == result.net - result.gross
        assert result.steps[0].delta.is_zero
        assert result.steps[-1].delta.is_zero
        assert result.steps[-1].value == result.steps[-2].value
        assert all(not s.value.is_negative for s in result.steps)

    @settings(max_examples=50)
    @given(lines=gross_lines(), extra=st.lists(deductions, max_size=3))
    def test_rebuild_is_identical(self, lines, extra):
        builder = WaterfallBuilder(
            PriceListResolver([CustomerDiscount("d", "wh-a", Decimal("10"), date(2024, 1, 1))]),
        )
        try:
            first = builder.build_waterfall(lines, "wh-a", AS_OF, extra)
        except NegativeNetError:
            return
        assert builder.build_waterfall(lines, "wh-a", AS_OF, extra) == first


class TestPriceProperties:

    @given(aip=amounts, pct=percents)
    def test_net_within_bounds(self, aip, pct):
        net = PriceListResolver([]).net_unit_price("p", aip, pct)
        assert Decimal("0") <= net.amount <= aip
        assert net.amount == net.amount.quantize(Decimal("0.01"))


class TestValidityProperties:

    @settings(max_examples=200)
    @given(records=discount_histories(), offset=st.integers(-30, 1200))
    def test_resolved_record_covers_date(self, records, offset):
        index = ValidityIndex(records, key=lambda d: d.customer_id)
        as_of = date(2024, 1, 1) + timedelta(days=offset)
        try:
            record = index.resolve("wh-a", as_of)
        except AmbiguousValidityError as exc:
            assert len(exc.record_ids) >= 2
            assert all(covers(r, as_of) for r in records if r.discount_id in exc.record_ids)
            return

        covering = [r for r in records if covers(r, as_of)]
        if record is None:
            assert covering == []
        else:
            assert covers(record, as_of)
            assert record.valid_from == max(r.valid_from for r in covering)

    @settings(max_examples=100)
    @given(records=discount_histories(), offset=st.integers(0, 1200))
    def test_batch_agrees_with_single(self, records, offset):
        index = ValidityIndex(records, key=lambda d: d.customer_id)
        as_of = date(2024, 1, 1) + timedelta(days=offset)
        resolution = index.resolve_all(as_of)
        if "wh-a" in resolution.ambiguous:
            return
        assert resolution.get("wh-a") == index.resolve("wh-a", as_of)


class TestGrowthProperties:

    @given(
        rows=st.lists(
            st.tuples(
                st.sampled_from(["A", "B", "C"]),
                st.sampled_from(["S1", "S2"]),
                st.sampled_from(["2024-01", "2025-01"]),
                amounts,
            ),
            max_size=30,
        ),
        granularity=st.sampled_from(list(Granularity)),
    )
    def test_total_is_sum_of_rows(self, rows, granularity):
        transactions = [SalesTransaction(c, s, p, a) for c, s, p, a in rows]
        report = ContractGrowthAggregator().compute_growth(
            transactions, granularity, "2024-01", "2025-01",
        )
        assert report.total.delta == sum((r.delta for r in report.per_contract), Decimal("0"))
        assert report.total.baseline == sum((r.baseline for r in report.per_contract), Decimal("0"))
        assert report.total.current == sum((r.current for r in report.per_contract), Decimal("0"))
