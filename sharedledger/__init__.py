"""
Shared Ledger - Source Package

Settlement and obligation engine for groups that share expenses.

DESIGN PRINCIPLES:
1. Shares are frozen when an expense is written
2. Everything derived is recomputed from scratch, never patched
3. Untyped documents are parsed at the boundary, never deeper
4. Projections are disposable and safe to regenerate
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Shared Ledger Team"
