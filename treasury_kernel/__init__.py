"""
Treasury Kernel

An append-only cash ledger for a school treasury with:
- Four cash locations (registry, safe, bank, mobile money)
- A single locked balance snapshot updated atomically with every row
- Reversal and correction without mutating history
- Two-phase daily opening reconciliation
"""

__version__ = "0.1.0"
