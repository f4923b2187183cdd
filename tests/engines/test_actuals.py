"""Tests for the historical actuals bridge."""

from decimal import Decimal

import pytest

from gtn_engines.actuals import ActualsRow, bridge_from_actuals
from gtn_engines.waterfall import StepKind
from gtn_kernel.domain.values import Money
from gtn_kernel.exceptions import NegativeNetError


def eur(amount: str) -> Money:
    return Money.of(amount, "EUR")


def _row(**overrides) -> ActualsRow:
    values = dict(
        customer_id="wh-a",
        sku="SKU-001",
        period="2025-01",
        gross=Decimal("1000"),
        d_channel=Decimal("-50"),  # sign in source data is ignored
        d_customer=Decimal("30"),
        r_direct=Decimal("20"),
        inc_royalty=Decimal("5"),
        invoiced=Decimal("920"),
        net=Decimal("905"),
    )
    values.update(overrides)
    return ActualsRow(**values)


class TestBridgeFromActuals:

    def test_step_layout(self):
        bridge = bridge_from_actuals([_row()])

        names = [s.name for s in bridge.steps]
        assert names[0] == "Gross Sales"
        assert names[9] == "Invoiced Sales"
        assert names[-1] == "Net Realized"
        assert len(names) == 18
        assert bridge.steps[9].kind == StepKind.SUBTOTAL
        assert bridge.steps[9].delta == eur("0")

    def test_values(self):
        bridge = bridge_from_actuals([_row()])
        steps = {s.name: s for s in bridge.steps}

        assert steps["Channel Discounts"].delta == eur("-50")
        assert steps["Customer Discounts"].delta == eur("-30")
        assert steps["Invoiced Sales"].value == eur("920")
        assert steps["Direct Rebates"].delta == eur("-20")
        assert steps["Royalty Income"].delta == eur("5")
        assert bridge.net == eur("905")
        assert bridge.gross == eur("1000")

    def test_sum_of_deltas(self):
        bridge = bridge_from_actuals([_row(), _row(customer_id="wh-b", gross=Decimal("500"),
                                                   invoiced=None, net=None)])
        total = sum((s.delta for s in bridge.steps), eur("0"))
        assert total == bridge.net - bridge.gross

    def test_consistent_rows_not_flagged(self):
        bridge = bridge_from_actuals([_row()])
        assert bridge.is_consistent
        assert bridge.row_count == 1

    def test_mismatched_net_flagged(self):
        bridge = bridge_from_actuals([_row(), _row(net=Decimal("900"))])

        assert not bridge.is_consistent
        mismatch = bridge.mismatches[0]
        assert mismatch.index == 1
        assert mismatch.field == "net"
        assert mismatch.computed == Decimal("905")
        assert mismatch.difference == Decimal("-5")

    def test_within_tolerance_not_flagged(self):
        bridge = bridge_from_actuals([_row(net=Decimal("905.01"))])
        assert bridge.is_consistent

    def test_empty_rows(self):
        bridge = bridge_from_actuals([])
        assert bridge.net == eur("0")
        assert bridge.row_count == 0

    def test_negative_running_total_raises(self):
        with pytest.raises(NegativeNetError):
            bridge_from_actuals([_row(gross=Decimal("10"), invoiced=None, net=None)])

    def test_row_period_parsed(self):
        assert _row(period="Q1-2025").period.key == "2025-Q1"
        assert _row().computed_net == Decimal("905")
