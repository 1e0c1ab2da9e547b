"""Flight schedule reconciliation and live board for a single airport."""

__version__ = "0.1.0"
