"""
Bizbooks Kernel

The accounting core of the business-management suite:
- Double-entry journal with DRAFT -> POSTED -> VOID lifecycle
- Void by mirrored reversal, never by mutation
- Per-organization account trees with integrity checks
- Gap-free document numbering under row locks
- Balances derived from ledger lines, never stored
"""

__version__ = "0.1.0"
