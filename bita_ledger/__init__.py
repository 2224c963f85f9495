"""
BITA Ledger - Source Package

Local-first persistence and synchronization engine for the BITA
(Bakery Intelligence & Tracking Assistant) vendor invoice ledger.

DESIGN PRINCIPLES:
1. The on-device database is the single source of truth
2. Every mutation is durable locally before anything goes remote
3. The remote backup is a mirror of the whole state, never a delta
4. Storage and network failures never stop local work
5. Backends are swappable
"""

__version__ = "1.0.0"
__author__ = "BITA Team"
