"""Poker tournament floor engine.

Pure state transitions for a live multi-table tournament: seating,
eliminations and payouts, table breaks, flight merges and dealer rotation.
"""

__version__ = "0.1.0"
