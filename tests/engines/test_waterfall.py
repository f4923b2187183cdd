"""
Tests for the gross-to-net waterfall builder.

Covers:
- Step order and labels
- Anchor bars (first and last delta zero); sum of deltas = net - gross
- Fixed and percentage deductions, running vs gross basis
- Per-unit rounding matching the GIP list
- Negative running totals surfaced, never clamped
- Rejected deductions and pricing failures
- Reconciliation against receipts
"""

from datetime import date
from decimal import Decimal

import pytest

from gtn_engines.price_list import PriceListResolver
from gtn_engines.waterfall import (
    Deduction,
    DeductionBasis,
    StepKind,
    WaterfallBuilder,
    WaterfallLabels,
)
from gtn_kernel.domain.records import GrossLine, Product
from gtn_kernel.domain.values import Money
from gtn_kernel.exceptions import InvalidDeductionError, InvalidPricingInputError, NegativeNetError

MARCH_1 = date(2025, 3, 1)


def eur(amount: str) -> Money:
    return Money.of(amount, "EUR")


class TestWorkedExample:
    """1000 gross, 20% contract discount, 50 other rebates."""

    def setup_method(self):
        self.product = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))

    def _build(self, resolver, deductions=()):
        builder = WaterfallBuilder(resolver)
        return builder.build_waterfall(
            [GrossLine(self.product, Decimal("100"))], "wh-a", MARCH_1, deductions,
        )

    def test_steps(self, resolver):
        result = self._build(resolver, [Deduction.fixed("Other Rebates", "50")])

        assert [s.name for s in result.steps] == [
            "List Price", "Contract Discount", "Other Rebates", "Net Realized",
        ]
        assert [s.value for s in result.steps] == [eur("1000"), eur("800"), eur("750"), eur("750")]
        assert [s.delta for s in result.steps] == [eur("0"), eur("-200"), eur("-50"), eur("0")]
        assert [s.kind for s in result.steps] == [
            StepKind.START, StepKind.DEDUCTION, StepKind.DEDUCTION, StepKind.END,
        ]

    def test_sum_of_deltas_equals_net_minus_gross(self, resolver):
        result = self._build(resolver, [Deduction.fixed("Other Rebates", "50")])

        total = sum((s.delta for s in result.steps), eur("0"))
        assert total == eur("-250")
        assert total == result.net - result.gross
        assert result.total_deductions == eur("-250")
        assert result.net_to_gross_pct == Decimal("75")

    def test_no_deductions_net_equals_contract_net(self, resolver):
        result = self._build(resolver)
        assert len(result.steps) == 3
        assert result.net == eur("800")
        assert result.discount.discount_id == "d-a2"

    def test_customer_without_discount(self, discounts):
        builder = WaterfallBuilder(PriceListResolver(discounts))
        result = builder.build_waterfall([GrossLine(self.product, Decimal("3"))], "wh-new", MARCH_1)

        discount_step = result.step("Contract Discount")
        assert discount_step.delta == eur("0")
        assert result.net == result.gross
        assert result.discount is None

    def test_custom_labels(self, resolver):
        builder = WaterfallBuilder(resolver, WaterfallLabels("Bruto", "Contractkorting", "Netto"))
        result = builder.build_waterfall([GrossLine(self.product, Decimal("1"))], "wh-a", MARCH_1)
        assert [s.name for s in result.steps] == ["Bruto", "Contractkorting", "Netto"]


class TestPercentageDeductions:

    def setup_method(self):
        self.product = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))
        self.lines = [GrossLine(self.product, Decimal("100"))]

    def test_percent_of_running_total(self, resolver):
        result = WaterfallBuilder(resolver).build_waterfall(
            self.lines, "wh-a", MARCH_1, [Deduction.percent("Prompt Payment", "2")],
        )
        assert result.step("Prompt Payment").delta == eur("-16")
        assert result.net == eur("784")

    def test_percent_of_gross(self, resolver):
        result = WaterfallBuilder(resolver).build_waterfall(
            self.lines, "wh-a", MARCH_1,
            [Deduction.percent("Off Invoice", "1.5", basis=DeductionBasis.GROSS)],
        )
        assert result.step("Off Invoice").delta == eur("-15")
        assert result.net == eur("785")

    def test_deductions_apply_in_order(self, resolver):
        result = WaterfallBuilder(resolver).build_waterfall(
            self.lines, "wh-a", MARCH_1,
            [Deduction.fixed("Fee", "100"), Deduction.percent("Rebate", "10")],
        )
        # 10% of 700, not of 800
        assert result.step("Rebate").delta == eur("-70")
        assert result.net == eur("630")

    def test_percent_rounded_half_up(self, resolver):
        product = Product(product_id="p-x", sku="SKU-X", name="X", aip=Decimal("0.25"))
        result = WaterfallBuilder(PriceListResolver([])).build_waterfall(
            [GrossLine(product, Decimal("1"))], "wh-a", MARCH_1, [Deduction.percent("Half", "50")],
        )
        # 0.125 -> 0.13
        assert result.step("Half").delta == eur("-0.13")
        assert result.net == eur("0.12")


class TestRounding:

    def test_contract_net_uses_rounded_unit_price(self, resolver):
        product = Product(product_id="p-002", sku="SKU-002", name="Q", aip=Decimal("9.99"))
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(product, Decimal("3"))], "wh-a", MARCH_1,
        )
        # Unit net 7.99 (from 7.992); the bridge matches the price list, not 23.976
        assert result.gross == eur("29.97")
        assert result.step("Contract Discount").value == eur("23.97")

    def test_lines_for_same_product_are_added(self, resolver, products):
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(products[0], Decimal("2")), GrossLine(products[0], Decimal("3"))],
            "wh-a", MARCH_1,
        )
        assert result.gross == eur("50")
        assert result.step("Contract Discount").value == eur("40")

    def test_equal_products_in_separate_lines_are_one_product(self, resolver):
        first = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))
        second = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(first, Decimal("2")), GrossLine(second, Decimal("3"))],
            "wh-a", MARCH_1,
        )
        assert result.gross == eur("50")

    def test_conflicting_products_under_one_id_rejected(self, resolver):
        cheap = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))
        dear = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("12.00"))
        with pytest.raises(InvalidPricingInputError) as exc_info:
            WaterfallBuilder(resolver).build_waterfall(
                [GrossLine(cheap, Decimal("2")), GrossLine(dear, Decimal("3"))],
                "wh-a", MARCH_1,
            )
        assert exc_info.value.product_id == "p-001"
        assert exc_info.value.field == "product"


class TestNegativeNet:

    def test_raises_instead_of_clamping(self, resolver, products):
        with pytest.raises(NegativeNetError) as exc_info:
            WaterfallBuilder(resolver).build_waterfall(
                [GrossLine(products[0], Decimal("100"))], "wh-a", MARCH_1,
                [Deduction.fixed("Big Rebate", "900")],
            )
        assert exc_info.value.step_name == "Big Rebate"
        assert exc_info.value.code == "NEGATIVE_NET"

    def test_exactly_zero_is_allowed(self, resolver, products):
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(products[0], Decimal("100"))], "wh-a", MARCH_1,
            [Deduction.fixed("Full Rebate", "800")],
        )
        assert result.net == eur("0")


class TestRejectedItems:

    @pytest.mark.parametrize(
        "deduction",
        [
            Deduction.fixed("Negative", "-10"),
            Deduction.percent("Too Much", "120"),
            Deduction.fixed("   ", "10"),
            Deduction.fixed("Not A Number", "NaN"),
            Deduction.percent("Unbounded", "Infinity"),
        ],
    )
    def test_invalid_deduction_skipped_and_reported(self, resolver, products, deduction):
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(products[0], Decimal("10"))], "wh-a", MARCH_1, [deduction],
        )
        assert len(result.steps) == 3
        assert result.net == eur("80")
        assert len(result.rejected_deductions) == 1
        assert result.rejected_deductions[0].code == InvalidDeductionError.code

    def test_unpriceable_product_excluded(self, resolver, products):
        bad = Product(product_id="p-bad", sku="SKU-BAD", name="Bad", aip=Decimal("-1"))
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(products[0], Decimal("10")), GrossLine(bad, Decimal("5"))],
            "wh-a", MARCH_1,
        )
        assert result.gross == eur("100")
        assert [f.product_id for f in result.pricing_failures] == ["p-bad"]

    def test_non_finite_deduction_does_not_stop_later_ones(self, resolver, products):
        result = WaterfallBuilder(resolver).build_waterfall(
            [GrossLine(products[0], Decimal("100"))], "wh-a", MARCH_1,
            [Deduction.fixed("Bad", "NaN"), Deduction.fixed("Fee", "50")],
        )
        assert [r.name for r in result.rejected_deductions] == ["Bad"]
        assert result.step("Fee").delta == eur("-50")
        assert result.net == eur("750")

    def test_empty_lines_give_zero_bridge(self, resolver):
        result = WaterfallBuilder(resolver).build_waterfall([], "wh-a", MARCH_1)
        assert result.gross == eur("0")
        assert result.net == eur("0")


class TestReconcile:

    def setup_method(self):
        self.product = Product(product_id="p-001", sku="SKU-001", name="P", aip=Decimal("10.00"))

    def _result(self, resolver):
        builder = WaterfallBuilder(resolver)
        result = builder.build_waterfall(
            [GrossLine(self.product, Decimal("100"))], "wh-a", MARCH_1,
            [Deduction.fixed("Other Rebates", "50")],
        )
        return builder, result

    def test_matching_receipts(self, resolver):
        builder, result = self._result(resolver)
        reconciliation = builder.reconcile(result, ["700.00", Decimal("25"), eur("25")])
        assert reconciliation.is_reconciled
        assert reconciliation.actual == eur("750")

    def test_one_cent_short(self, resolver):
        builder, result = self._result(resolver)
        reconciliation = builder.reconcile(result, ["749.99"])
        assert not reconciliation.is_reconciled
        assert reconciliation.difference == eur("-0.01")
