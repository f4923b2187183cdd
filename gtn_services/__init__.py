"""
gtn_services -- Package init and public API.

Responsibility:
    Composition layer: wires the pure engines to configuration and maps
    raw rows into typed records.  External callers (HTTP handlers, batch
    jobs, notebooks) import from here.

Architecture position:
    Dependency direction (enforced by tests/architecture/test_import_boundaries.py):
        gtn_services/ -> gtn_engines/, gtn_config/, gtn_kernel/  (allowed)
        gtn_engines/  -> gtn_services/, gtn_config/              (FORBIDDEN)
        gtn_kernel/   -> anything else in the project            (FORBIDDEN)
"""

from gtn_kernel.logging_config import get_logger

logger = get_logger("services")

from gtn_services.pricing_service import PricingService, deduction_from_def
from gtn_services.records import (
    actuals_row_from_row,
    aip_version_from_row,
    customer_from_row,
    discount_from_row,
    gross_line_from_row,
    map_rows,
    product_from_row,
    transaction_from_row,
    validate_custom,
)

__all__ = [
    "PricingService",
    "actuals_row_from_row",
    "aip_version_from_row",
    "customer_from_row",
    "deduction_from_def",
    "discount_from_row",
    "gross_line_from_row",
    "map_rows",
    "product_from_row",
    "transaction_from_row",
    "validate_custom",
]
