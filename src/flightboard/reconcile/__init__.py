"""Reconciliation: identity keys, precedence merge, live overlay."""
