"""
GTN Kernel - pricing and gross-to-net primitives.

Value objects, input records, period values, typed exceptions, and
structured logging shared by the calculation engines:
- Decimal-only money arithmetic with fixed half-up rounding
- Time-bounded discount and AIP records
- Machine-readable error codes
- JSON log records with request-scoped context
"""

__version__ = "0.1.0"
