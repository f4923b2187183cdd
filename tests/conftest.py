"""
Shared fixtures for the pricing engine test suite.

Provides a small catalogue of products, customer discount histories and a
resolver built over them.  All data is in-memory; nothing touches disk
except the config tests, which use ``tmp_path``.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from gtn_engines.price_list import PriceListResolver
from gtn_kernel.domain.records import CustomerDiscount, Product
from gtn_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

MARCH_1 = date(2025, 3, 1)


@pytest.fixture
def products() -> list[Product]:
    return [
        Product(product_id="p-001", sku="SKU-001", name="Paracetamol 500mg", aip=Decimal("10.00")),
        Product(product_id="p-002", sku="SKU-002", name="Ibuprofen 400mg", aip=Decimal("9.99")),
        Product(
            product_id="p-003", sku="SKU-003", name="Omeprazol 20mg", aip=Decimal("25.50"),
            min_order_qty=6, zi_number="12345678",
        ),
    ]


@pytest.fixture
def discounts() -> list[CustomerDiscount]:
    return [
        # wh-a: closed history followed by an open-ended agreement
        CustomerDiscount("d-a1", "wh-a", Decimal("15"), date(2024, 1, 1), date(2024, 12, 31)),
        CustomerDiscount("d-a2", "wh-a", Decimal("20"), date(2025, 1, 1)),
        # wh-b: one bounded agreement
        CustomerDiscount("d-b1", "wh-b", Decimal("12.5"), date(2025, 1, 1), date(2025, 6, 30)),
    ]


@pytest.fixture
def resolver(discounts) -> PriceListResolver:
    return PriceListResolver(discounts, currency="EUR")


@pytest.fixture
def log_stream():
    """Capture gtn_kernel JSON log lines; yields a parser over them."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler, level=logging.DEBUG)

    def records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield records
    LogContext.clear()
    reset_logging()
