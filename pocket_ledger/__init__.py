"""
Pocket Ledger - Source Package

A personal finance tracker: record credits and debits, follow a running
balance, see where money moves by payment method, and keep an eye on
loans and credit cards.

DESIGN PRINCIPLES:
1. Validate at the write boundary, never inside the aggregation
2. Aggregation is a pure function of a full snapshot
3. Session state is passed explicitly, never held in module globals
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
