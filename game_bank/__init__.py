"""
Game Bank

Ledger and settlement engine for an in-game banking economy: atomic money
movements, an append-only ledger and a periodic settlement batch.
"""

__version__ = "1.0.0"
