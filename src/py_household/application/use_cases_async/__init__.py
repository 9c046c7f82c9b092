"""Async use cases over the three ledger stores (accounts, journal, goals)."""
