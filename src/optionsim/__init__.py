"""
optionsim: options market simulator and trading engine.

A synthetic underlying with a daily options chain, a single-user trade ledger
with settlement and live P&L, and Delta Lake snapshot persistence.
"""

__version__ = "0.1.0"
