"""
EngineSettings schema.

Typed, frozen view of a settings YAML file.  The loader parses raw YAML
into these types; ``get_active_config()`` is the only runtime entrypoint.
Values that name engine enums (granularity, measure, deduction kind) are
kept as validated strings so this package does not depend on the engines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

GRANULARITIES = ("customer", "customer_sku")
MEASURES = ("gross", "net", "units")
DEDUCTION_KINDS = ("fixed", "percent")
DEDUCTION_BASES = ("running", "gross")


@dataclass(frozen=True)
class WaterfallLabelsDef:
    """Display names of the fixed waterfall steps."""

    list_price: str = "List Price"
    contract_discount: str = "Contract Discount"
    invoiced_sales: str = "Invoiced Sales"
    net_realized: str = "Net Realized"


@dataclass(frozen=True)
class DeductionDef:
    """A named deduction from the catalogue, applied by name at bridge time."""

    name: str
    kind: str  # fixed | percent
    value: Decimal
    basis: str = "running"  # running | gross
    description: str = ""


@dataclass(frozen=True)
class EngineSettings:
    """Runtime settings shared by every engine invocation."""

    config_id: str
    version: int
    currency: str
    default_granularity: str = "customer"
    default_measure: str = "gross"
    actuals_tolerance: Decimal = Decimal("0.01")
    labels: WaterfallLabelsDef = field(default_factory=WaterfallLabelsDef)
    deductions: tuple[DeductionDef, ...] = ()
    checksum: str = ""

    def deduction(self, name: str) -> DeductionDef | None:
        for definition in self.deductions:
            if definition.name == name:
                return definition
        return None
