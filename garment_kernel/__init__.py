"""
Garment Production Kernel

Production batch lifecycle engine for garment manufacturing with:
- An explicit batch state machine (cutting -> sewing -> finishing)
- Atomic material allocation against an append-only stock ledger
- Per-stage task assignment with incremental progress tracking
- Append-only batch timeline and best-effort notifications
"""

__version__ = "0.1.0"
