"""Inventory ledger and production consumption engine."""

__version__ = "1.0.0"
