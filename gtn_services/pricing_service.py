"""
gtn_services.pricing_service -- Facade over the pricing engines.

Responsibility:
    Holds one immutable snapshot of products, customer discounts and AIP
    versions, indexed once at construction, and exposes the pricing
    operations: discount resolution, GIP price lists, catalogues, contract
    growth, gross-to-net waterfalls and historical actuals bridges.
    Settings (currency, labels, defaults, deduction catalogue) come from
    ``gtn_config``.

Architecture position:
    Services -- composes gtn_engines with gtn_config.  The only layer that
    reads configuration; engines receive plain values.

Invariants enforced:
    - Indexes are built once and never mutated, so concurrent calls share
      them safely.
    - Every call binds ``customer_id`` into the log context when it has one.
    - Reference dates are always supplied by the caller.

Failure modes:
    - InvalidValidityWindowError at construction for an inverted window.
    - UnknownCustomerError when a customer list was supplied and the id is
      not in it.
    - InvalidRecordError at construction for duplicate product ids.
    - InvalidDeductionError for a deduction name missing from the catalogue.
    - Engine errors (AmbiguousValidityError, NegativeNetError) propagate.

Usage:
    from gtn_config import get_active_config
    from gtn_services import PricingService

    service = PricingService(products, discounts, get_active_config())
    price_list = service.generate_price_list("wh-a", date(2025, 3, 1))
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from gtn_config import DeductionDef, EngineSettings, get_active_config
from gtn_engines.actuals import ActualsBridge, ActualsRow, bridge_from_actuals
from gtn_engines.growth import ContractGrowthAggregator, GrowthReport
from gtn_engines.price_list import CatalogResult, PriceListResolver, PriceListResult
from gtn_engines.validity import ValidityIndex
from gtn_engines.waterfall import (
    Deduction,
    DeductionBasis,
    DeductionKind,
    ReconciliationResult,
    WaterfallBuilder,
    WaterfallLabels,
    WaterfallResult,
)
from gtn_kernel.domain.periods import Period
from gtn_kernel.domain.records import (
    AipVersion,
    Customer,
    CustomerDiscount,
    GrossLine,
    Product,
    SalesTransaction,
)
from gtn_kernel.domain.values import Money, to_decimal
from gtn_kernel.exceptions import InvalidDeductionError, InvalidRecordError, UnknownCustomerError
from gtn_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.pricing")


def deduction_from_def(definition: DeductionDef, value: Decimal | None = None) -> Deduction:
    """Turn a catalogue entry into an engine deduction, optionally overriding its value."""
    return Deduction(
        name=definition.name,
        kind=DeductionKind(definition.kind),
        value=definition.value if value is None else value,
        basis=DeductionBasis(definition.basis),
    )


class PricingService:
    """
    Read-only pricing facade.

    Contract:
        Construct once per data snapshot; call from any number of threads.
    Guarantees:
        - Same snapshot, same inputs, same outputs.
        - No method mutates the snapshot.
    Non-goals:
        - Does not load or persist data, or render charts.
    """

    def __init__(
        self,
        products: Iterable[Product],
        discounts: Iterable[CustomerDiscount],
        settings: EngineSettings | None = None,
        aip_versions: Iterable[AipVersion] = (),
        customers: Iterable[Customer] | None = None,
    ) -> None:
        t0 = time.monotonic()
        self._settings = settings if settings is not None else get_active_config()

        by_id: dict[str, Product] = {}
        for product in products:
            if product.product_id in by_id:
                raise InvalidRecordError(
                    "product", "product_id", f"duplicate id {product.product_id!r}",
                )
            by_id[product.product_id] = product
        self._products = by_id
        self._product_list = tuple(by_id.values())

        self._customers = (
            {c.customer_id: c for c in customers} if customers is not None else None
        )

        discount_index = ValidityIndex(
            discounts, key=lambda d: d.customer_id, name="customer_discounts",
        )
        versions = tuple(aip_versions)
        version_index = (
            ValidityIndex(versions, key=lambda v: v.product_id, name="aip_versions")
            if versions else None
        )
        self._resolver = PriceListResolver(
            discount_index, currency=self._settings.currency, aip_versions=version_index,
        )
        labels = self._settings.labels
        self._waterfall = WaterfallBuilder(
            self._resolver,
            WaterfallLabels(
                list_price=labels.list_price,
                contract_discount=labels.contract_discount,
                net_realized=labels.net_realized,
            ),
        )
        self._growth = ContractGrowthAggregator()

        logger.info("pricing_service_ready", extra={
            "config_id": self._settings.config_id,
            "checksum": self._settings.checksum,
            "product_count": len(self._products),
            "discount_customer_count": len(discount_index.entity_ids),
            "aip_version_count": len(versions),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def products(self) -> tuple[Product, ...]:
        return self._product_list

    # ------------------------------------------------------------------
    # Discounts and price lists
    # ------------------------------------------------------------------

    def resolve_discount(self, customer_id: str, as_of_date: date) -> CustomerDiscount | None:
        """Effective discount on a date; None when the customer has none (0%)."""
        self._check_customer(customer_id)
        with LogContext.bind(customer_id=customer_id, as_of_date=as_of_date):
            return self._resolver.resolve_discount(customer_id, as_of_date)

    def generate_price_list(
        self,
        customer_id: str,
        as_of_date: date,
        product_ids: Sequence[str] | None = None,
    ) -> PriceListResult:
        """
        GIP price list for one customer.

        ``product_ids`` restricts the list; unknown ids are ignored with a
        warning.
        """
        self._check_customer(customer_id)
        with LogContext.bind(customer_id=customer_id, as_of_date=as_of_date):
            return self._resolver.generate(customer_id, self._select(product_ids), as_of_date)

    def generate_catalog(
        self,
        as_of_date: date,
        customer_ids: Iterable[str] | None = None,
    ) -> CatalogResult:
        """Price lists for many customers; defaults to every known customer."""
        if customer_ids is None:
            if self._customers is not None:
                customer_ids = sorted(self._customers)
            else:
                customer_ids = self._resolver.discount_index.entity_ids
        else:
            customer_ids = list(customer_ids)
            for customer_id in customer_ids:
                self._check_customer(customer_id)
        return self._resolver.generate_catalog(customer_ids, self._product_list, as_of_date)

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    def compute_growth(
        self,
        transactions: Iterable[SalesTransaction],
        baseline_period: Period | str,
        current_period: Period | str,
        granularity: str | None = None,
        measure: str | None = None,
    ) -> GrowthReport:
        return self._growth.compute_growth(
            transactions,
            granularity or self._settings.default_granularity,
            baseline_period,
            current_period,
            measure or self._settings.default_measure,
        )

    def compute_growth_series(
        self,
        transactions: Sequence[SalesTransaction],
        granularity: str | None = None,
        measure: str | None = None,
        period_kind: str | None = None,
    ) -> tuple[GrowthReport, ...]:
        return self._growth.compute_series(
            transactions,
            granularity or self._settings.default_granularity,
            measure or self._settings.default_measure,
            period_kind,
        )

    # ------------------------------------------------------------------
    # Waterfalls
    # ------------------------------------------------------------------

    def catalogue_deduction(self, name: str, value: Decimal | str | None = None) -> Deduction:
        """
        Deduction from the configured catalogue.

        Raises:
            InvalidDeductionError: If no catalogue entry has this name.
        """
        definition = self._settings.deduction(name)
        if definition is None:
            raise InvalidDeductionError(name, "not in the deduction catalogue")
        return deduction_from_def(definition, to_decimal(value) if value is not None else None)

    def build_waterfall(
        self,
        gross_lines: Sequence[GrossLine],
        customer_id: str,
        as_of_date: date,
        extra_deductions: Sequence[Deduction | str] = (),
    ) -> WaterfallResult:
        """
        Gross-to-net bridge for one customer.

        ``extra_deductions`` may mix Deduction objects and catalogue names;
        names are looked up in the settings.
        """
        self._check_customer(customer_id)
        deductions = [
            d if isinstance(d, Deduction) else self.catalogue_deduction(d)
            for d in extra_deductions
        ]
        with LogContext.bind(customer_id=customer_id, as_of_date=as_of_date):
            return self._waterfall.build_waterfall(gross_lines, customer_id, as_of_date, deductions)

    def reconcile(
        self,
        result: WaterfallResult,
        receipts: Iterable[Money | Decimal | str],
    ) -> ReconciliationResult:
        with LogContext.bind(customer_id=result.customer_id, as_of_date=result.as_of_date):
            return self._waterfall.reconcile(result, receipts)

    def bridge_actuals(self, rows: Sequence[ActualsRow]) -> ActualsBridge:
        """Historical bridge with the configured labels and tolerance."""
        labels = self._settings.labels
        return bridge_from_actuals(
            rows,
            self._settings.currency,
            self._settings.actuals_tolerance,
            invoiced_label=labels.invoiced_sales,
            net_label=labels.net_realized,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_customer(self, customer_id: str) -> None:
        if self._customers is not None and customer_id not in self._customers:
            logger.warning("pricing_unknown_customer", extra={"customer_id": customer_id})
            raise UnknownCustomerError(customer_id)

    def _select(self, product_ids: Sequence[str] | None) -> tuple[Product, ...]:
        if product_ids is None:
            return self._product_list
        selected = [self._products[pid] for pid in product_ids if pid in self._products]
        unknown = [pid for pid in product_ids if pid not in self._products]
        if unknown:
            logger.warning("pricing_unknown_products", extra={"product_ids": unknown})
        return tuple(selected)
