"""Compact binary record encoding and an SBas compiler and evaluator."""

__version__ = "0.1.0"
__all__ = ["records", "sbas"]