"""
Accounting Core - Source Package

The ledger behind a small-business accounting dashboard: transactions and
invoices, their status lifecycles, multi-currency normalization and the
KPIs derived from them.

DESIGN PRINCIPLES:
1. Records are validated before they exist
2. Fail early, fail visibly
3. Derived values are computed, never silently written back
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Accounting Core Team"
