"""
gtn_engines.price_list -- Customer-specific GIP price lists from the AIP master.

Responsibility:
    Combine the AIP master (products) with a customer's effective discount
    to produce the customer's GIP price list for a date, one entry per
    product, and expose the discount resolution the waterfall reuses.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Depends on gtn_engines.validity for discount and AIP-version lookup.

Invariants enforced:
    - net_price = round(aip * (1 - pct / 100), minor unit) with
      ROUND_HALF_UP (half away from zero); the rounding policy is fixed.
    - No effective discount on the date means 0% (NotFound is not an error).
    - Partial success: a product with aip < 0 or a discount outside
      [0, 100] becomes a PricingFailure; the remaining products are still
      priced.  Nothing is dropped silently.
    - Idempotence: identical inputs produce equal PriceListResults.

Failure modes:
    - AmbiguousValidityError from ``generate`` when the customer's discount
      windows overlap unresolvably (hard failure for that customer only).
      ``generate_catalog`` collects it per customer instead.
    - An ambiguous AIP version is reported as a per-product failure.

Usage:
    from gtn_engines.price_list import PriceListResolver

    resolver = PriceListResolver(discounts, currency="EUR")
    result = resolver.generate("wh-a", products, date(2025, 3, 1))
    for entry in result.entries:
        print(entry.sku, entry.net_price)
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from gtn_kernel.domain.records import AipVersion, CustomerDiscount, Product
from gtn_kernel.domain.values import Currency, Money, round_half_up
from gtn_kernel.exceptions import AmbiguousValidityError, InvalidPricingInputError
from gtn_kernel.logging_config import get_logger
from gtn_engines.tracer import traced_engine
from gtn_engines.validity import ValidityIndex, ValidityResolution

logger = get_logger("engines.price_list")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


@dataclass(frozen=True)
class PriceListEntry:
    """
    One GIP line: a product's net price for a customer on a date.

    Derived and never mutated; a new computation produces a new entry.
    """

    product_id: str
    sku: str
    customer_id: str
    as_of_date: date
    aip: Money
    discount_pct: Decimal
    net_price: Money
    discount_id: str | None = None
    aip_version_id: str | None = None
    min_order_qty: int = 1

    @property
    def discount_amount(self) -> Money:
        """Per-unit difference between list and net price."""
        return self.aip - self.net_price


@dataclass(frozen=True)
class PricingFailure:
    """A product excluded from a price list, with the reason."""

    product_id: str
    sku: str
    code: str
    field: str
    value: str
    reason: str

    @classmethod
    def from_error(cls, error: InvalidPricingInputError, sku: str) -> PricingFailure:
        return cls(
            product_id=error.product_id,
            sku=sku,
            code=error.code,
            field=error.field,
            value=str(error.value),
            reason=error.reason,
        )


@dataclass(frozen=True)
class PriceListResult:
    """Entries that priced successfully plus the products that did not."""

    customer_id: str
    as_of_date: date
    discount: CustomerDiscount | None
    entries: tuple[PriceListEntry, ...] = ()
    failures: tuple[PricingFailure, ...] = ()

    @property
    def discount_pct(self) -> Decimal:
        return self.discount.discount_pct if self.discount else _ZERO

    @property
    def is_complete(self) -> bool:
        return not self.failures

    def entry_for(self, product_id: str) -> PriceListEntry | None:
        for entry in self.entries:
            if entry.product_id == product_id:
                return entry
        return None


@dataclass(frozen=True)
class CatalogResult:
    """GIP lists for many customers on one date."""

    as_of_date: date
    price_lists: Mapping[str, PriceListResult] = field(default_factory=dict)
    ambiguous: Mapping[str, AmbiguousValidityError] = field(default_factory=dict)

    @property
    def failure_count(self) -> int:
        return sum(len(p.failures) for p in self.price_lists.values()) + len(self.ambiguous)


class PriceListResolver:
    """
    Pure GIP generator over a read-only discount index.

    Contract:
        No I/O, fully deterministic.  All reference data is passed in at
        construction (indexes) or per call (products, date).
    Guarantees:
        - ``generate`` returns every product either as an entry or as a
          failure, never both and never neither.
        - Safe to call concurrently: the resolver holds no mutable state.
    Non-goals:
        - Does not model tax or currency conversion.
    """

    def __init__(
        self,
        discounts: ValidityIndex[CustomerDiscount] | Iterable[CustomerDiscount],
        currency: str | Currency = "EUR",
        aip_versions: ValidityIndex[AipVersion] | Iterable[AipVersion] | None = None,
    ) -> None:
        if not isinstance(discounts, ValidityIndex):
            discounts = ValidityIndex(
                discounts, key=lambda d: d.customer_id, name="customer_discounts",
            )
        if aip_versions is not None and not isinstance(aip_versions, ValidityIndex):
            aip_versions = ValidityIndex(
                aip_versions, key=lambda v: v.product_id, name="aip_versions",
            )
        self._discounts = discounts
        self._aip_versions = aip_versions
        self._currency = currency if isinstance(currency, Currency) else Currency(currency)

    @property
    def currency(self) -> Currency:
        return self._currency

    @property
    def discount_index(self) -> ValidityIndex[CustomerDiscount]:
        return self._discounts

    def resolve_discount(self, customer_id: str, as_of_date: date) -> CustomerDiscount | None:
        """
        Effective discount for a customer on a date; None means 0%.

        Raises:
            AmbiguousValidityError: On unresolvable overlapping windows.
        """
        return self._discounts.resolve(customer_id, as_of_date)

    def net_unit_price(self, product_id: str, aip: Decimal, discount_pct: Decimal) -> Money:
        """
        Net price for one unit at a discount, rounded to the minor unit.

        Raises:
            InvalidPricingInputError: If aip is not finite or < 0, or
                discount_pct is not finite or outside [0, 100].
        """
        if not aip.is_finite():
            raise InvalidPricingInputError(product_id, "aip", aip, "list price must be finite")
        if not discount_pct.is_finite():
            raise InvalidPricingInputError(
                product_id, "discount_pct", discount_pct, "discount must be finite",
            )
        if aip < _ZERO:
            raise InvalidPricingInputError(product_id, "aip", aip, "list price cannot be negative")
        if discount_pct < _ZERO or discount_pct > _HUNDRED:
            raise InvalidPricingInputError(
                product_id, "discount_pct", discount_pct, "discount must be within [0, 100]",
            )
        net = aip * (Decimal("1") - discount_pct / _HUNDRED)
        return Money(
            amount=round_half_up(net, self._currency.decimal_places),
            currency=self._currency,
        )

    def price_product(
        self,
        product: Product,
        customer_id: str,
        as_of_date: date,
        discount: CustomerDiscount | None,
        aip_version: AipVersion | None = None,
    ) -> PriceListEntry:
        """
        Price one product for a customer whose discount is already resolved.

        Raises:
            InvalidPricingInputError: On out-of-range price or percentage.
        """
        aip = aip_version.aip if aip_version is not None else product.aip
        pct = discount.discount_pct if discount is not None else _ZERO
        net_price = self.net_unit_price(product.product_id, aip, pct)
        return PriceListEntry(
            product_id=product.product_id,
            sku=product.sku,
            customer_id=customer_id,
            as_of_date=as_of_date,
            aip=Money(amount=aip, currency=self._currency),
            discount_pct=pct,
            net_price=net_price,
            discount_id=discount.discount_id if discount is not None else None,
            aip_version_id=aip_version.version_id if aip_version is not None else None,
            min_order_qty=product.min_order_qty,
        )

    @traced_engine("price_list", "1.0", fingerprint_fields=("customer_id", "products", "as_of_date"))
    def generate(
        self,
        customer_id: str,
        products: Sequence[Product],
        as_of_date: date,
    ) -> PriceListResult:
        """
        Generate one customer's GIP price list.

        Postconditions:
            Every product appears exactly once, in input order, either in
            ``entries`` or in ``failures``.

        Raises:
            AmbiguousValidityError: If the customer's discount cannot be
                resolved unambiguously.
        """
        t0 = time.monotonic()
        logger.info("price_list_started", extra={
            "customer_id": customer_id,
            "as_of_date": str(as_of_date),
            "product_count": len(products),
        })

        discount = self.resolve_discount(customer_id, as_of_date)
        aip_resolution = self._resolve_aip_versions(as_of_date)
        result = self._build(customer_id, products, as_of_date, discount, aip_resolution)

        logger.info("price_list_completed", extra={
            "customer_id": customer_id,
            "as_of_date": str(as_of_date),
            "discount_id": discount.discount_id if discount else None,
            "discount_pct": str(result.discount_pct),
            "entry_count": len(result.entries),
            "failure_count": len(result.failures),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    @traced_engine("price_list", "1.0", fingerprint_fields=("customer_ids", "products", "as_of_date"))
    def generate_catalog(
        self,
        customer_ids: Iterable[str],
        products: Sequence[Product],
        as_of_date: date,
    ) -> CatalogResult:
        """
        Generate GIP lists for many customers, resolving discounts in one pass.

        A customer with ambiguous discount windows is reported in
        ``ambiguous`` and gets no price list; every other customer is priced.
        """
        t0 = time.monotonic()
        discount_resolution = self._discounts.resolve_all(as_of_date)
        aip_resolution = self._resolve_aip_versions(as_of_date)

        price_lists: dict[str, PriceListResult] = {}
        ambiguous: dict[str, AmbiguousValidityError] = {}
        for customer_id in dict.fromkeys(customer_ids):
            if customer_id in discount_resolution.ambiguous:
                ambiguous[customer_id] = discount_resolution.ambiguous[customer_id]
                continue
            price_lists[customer_id] = self._build(
                customer_id,
                products,
                as_of_date,
                discount_resolution.resolved.get(customer_id),
                aip_resolution,
            )

        result = CatalogResult(as_of_date=as_of_date, price_lists=price_lists, ambiguous=ambiguous)
        logger.info("price_catalog_completed", extra={
            "as_of_date": str(as_of_date),
            "customer_count": len(price_lists),
            "ambiguous_count": len(ambiguous),
            "failure_count": result.failure_count,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_aip_versions(self, as_of_date: date) -> ValidityResolution[AipVersion] | None:
        if self._aip_versions is None:
            return None
        return self._aip_versions.resolve_all(as_of_date)

    def _build(
        self,
        customer_id: str,
        products: Sequence[Product],
        as_of_date: date,
        discount: CustomerDiscount | None,
        aip_resolution: ValidityResolution[AipVersion] | None,
    ) -> PriceListResult:
        entries: list[PriceListEntry] = []
        failures: list[PricingFailure] = []

        for product in products:
            version = None
            if aip_resolution is not None:
                ambiguity = aip_resolution.ambiguous.get(product.product_id)
                if ambiguity is not None:
                    failures.append(PricingFailure(
                        product_id=product.product_id,
                        sku=product.sku,
                        code=ambiguity.code,
                        field="aip_version",
                        value=", ".join(ambiguity.record_ids),
                        reason=str(ambiguity),
                    ))
                    continue
                version = aip_resolution.resolved.get(product.product_id)

            try:
                entries.append(
                    self.price_product(product, customer_id, as_of_date, discount, version)
                )
            except InvalidPricingInputError as exc:
                logger.warning("price_list_product_rejected", extra={
                    "customer_id": customer_id,
                    "product_id": product.product_id,
                    "field": exc.field,
                    "value": str(exc.value),
                })
                failures.append(PricingFailure.from_error(exc, product.sku))

        return PriceListResult(
            customer_id=customer_id,
            as_of_date=as_of_date,
            discount=discount,
            entries=tuple(entries),
            failures=tuple(failures),
        )
