"""
Module: gtn_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    pricing engines.  This is the import surface for gtn_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import gtn_kernel (and sibling engine modules).
    MUST NOT import gtn_config or gtn_services.

Invariants enforced:
    - Purity: engines never read the clock.  Reference dates are explicit
      parameters supplied by the caller.
    - Decimal-only arithmetic: monetary amounts and percentages use
      ``Decimal``; floats are rejected at the record boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine entry point is wrapped by ``@traced_engine`` (see
    ``gtn_engines.tracer``), emitting GTN_ENGINE_TRACE records with engine
    name, version, input fingerprint and duration.

Usage:
    from gtn_engines import PriceListResolver, ValidityIndex
    from gtn_engines import ContractGrowthAggregator, Granularity
    from gtn_engines import Deduction, WaterfallBuilder
"""

from gtn_kernel.logging_config import get_logger

logger = get_logger("engines")

from gtn_engines.actuals import (
    ActualsBridge,
    ActualsRow,
    RowMismatch,
    bridge_from_actuals,
)
from gtn_engines.growth import (
    NO_BASELINE,
    UNDEFINED,
    ContractGrowthAggregator,
    ContractKey,
    Granularity,
    GrowthMeasure,
    GrowthRecord,
    GrowthReport,
    RatioSentinel,
    latest_snapshot,
)
from gtn_engines.price_list import (
    CatalogResult,
    PriceListEntry,
    PriceListResolver,
    PriceListResult,
    PricingFailure,
)
from gtn_engines.tracer import compute_input_fingerprint, traced_engine
from gtn_engines.validity import ValidityIndex, ValidityOverlap, ValidityResolution
from gtn_engines.waterfall import (
    Deduction,
    DeductionBasis,
    DeductionKind,
    ReconciliationResult,
    RejectedDeduction,
    StepKind,
    WaterfallBuilder,
    WaterfallLabels,
    WaterfallResult,
    WaterfallStep,
)

__all__ = [
    # Validity
    "ValidityIndex",
    "ValidityOverlap",
    "ValidityResolution",
    # Price list
    "CatalogResult",
    "PriceListEntry",
    "PriceListResolver",
    "PriceListResult",
    "PricingFailure",
    # Growth
    "NO_BASELINE",
    "UNDEFINED",
    "ContractGrowthAggregator",
    "ContractKey",
    "Granularity",
    "GrowthMeasure",
    "GrowthRecord",
    "GrowthReport",
    "RatioSentinel",
    "latest_snapshot",
    # Waterfall
    "Deduction",
    "DeductionBasis",
    "DeductionKind",
    "ReconciliationResult",
    "RejectedDeduction",
    "StepKind",
    "WaterfallBuilder",
    "WaterfallLabels",
    "WaterfallResult",
    "WaterfallStep",
    # Actuals
    "ActualsBridge",
    "ActualsRow",
    "RowMismatch",
    "bridge_from_actuals",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]

logger.debug("engines_package_loaded", extra={
    "module_count": 6,
    "modules": ["validity", "price_list", "growth", "waterfall", "actuals", "tracer"],
})
