"""
Custody Ledger

Single-ledger accounting engine for a custodial banking service: deposits,
interest-bearing balances, peer transfers and over-collateralized lending,
with integer-truncating arithmetic and hash-chained audit trails.
"""

__version__ = "1.0.0"
