"""
Stock Kernel - inventory reconciliation and stock ledger

A multi-location stock ledger for bars and restaurants with:
- Atomic transfers that conserve quantity across locations
- Signed adjustments and waste write-offs with an immutable movement log
- Physical counts organized by storage area, with variance reporting
- Reconciliation of approved counts back into the ledger
- Location-scoped access control
"""

__version__ = "0.1.0"
